"""
Command-line interface for the PCA manager.

Commands:
    refresh    Fetch this server's license and launch an update for it.
    notify     Deliver update job messages for a lock.
    status     Show the update in progress.
    manifest   Show the manifest that re-applies the installed license.

Results are printed to stdout as JSON. Failures print the error dictionary to
stderr and exit with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from pydantic import ValidationError

from pca_manager.config import build_arg_parser, load_config
from pca_manager.errors import InvalidArgumentError, PcaError
from pca_manager.logging import get_logger, setup_logging
from pca_manager.orchestrator import UpdateOrchestrator

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = build_arg_parser()
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("refresh", help="Fetch the server license and launch an update")

    notify = subparsers.add_parser("notify", help="Deliver update job messages")
    notify.add_argument("lock_id", help="Id of the lock the messages belong to")
    notify.add_argument(
        "--messages",
        "-m",
        required=True,
        help="JSON file with the message array, or '-' for stdin",
    )

    subparsers.add_parser("status", help="Show the update in progress")
    subparsers.add_parser("manifest", help="Show the manifest for the installed license")

    return parser


def _read_messages(source: str) -> Any:
    try:
        if source == "-":
            text = sys.stdin.read()
        else:
            with open(source, encoding="utf-8") as f:
                text = f.read()
        return json.loads(text)
    except (OSError, ValueError) as e:
        raise InvalidArgumentError(
            "Error reading messages",
            details={"source": source, "error": str(e)},
        ) from e


async def _run(orchestrator: UpdateOrchestrator, args: argparse.Namespace) -> Any:
    if args.command == "refresh":
        return await orchestrator.refresh_license()

    if args.command == "notify":
        messages = _read_messages(args.messages)
        await orchestrator.notify(args.lock_id, messages)
        return {"lockId": args.lock_id, "accepted": len(messages)}

    if args.command == "status":
        return await orchestrator.status()

    manifest = await orchestrator.current_manifest()
    return manifest.to_wire()


def main(argv: list[str] | None = None) -> int:
    """
    Run the ``pca-manager`` command.

    Args:
        argv: Command-line arguments without the program name. Defaults to
            ``sys.argv[1:]``.

    Returns:
        Process exit status.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _build_parser().parse_args(argv)

    try:
        config = load_config(cli_args=argv)
    except (FileNotFoundError, ValidationError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.logging)
    orchestrator = UpdateOrchestrator.from_config(config)

    try:
        result = asyncio.run(_run(orchestrator, args))
    except PcaError as e:
        logger.error(
            "Command failed",
            extra={"command": args.command, "error_code": e.error_code},
        )
        print(json.dumps(e.to_dict(), default=str), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0

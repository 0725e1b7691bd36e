"""
The installed license.

LicenseStore holds the list of components currently installed on the server.
It is loaded either from the persisted license file or, when a release source
is configured, by asking helm which releases are deployed. A missing license
file is not an error: the server simply has nothing installed yet.
"""

from __future__ import annotations

import asyncio
import fnmatch
import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pca_manager.errors import CorruptError, LoadError
from pca_manager.logging import get_logger
from pca_manager.manifest import diff_components
from pca_manager.models import License, SoftwareComponent, UpdateManifest
from pca_manager.records import JsonRecordFile

logger = get_logger(__name__)

LICENSE_FILE_NAME = "_license"


class HelmReleaseSource:
    """
    Lists the releases deployed in the cluster using ``helm list``.

    Releases whose name matches one of the ignore patterns (fnmatch syntax)
    are left out, so that infrastructure releases are never uninstalled.
    """

    def __init__(
        self,
        helm_binary: str = "helm",
        ignore_patterns: Iterable[str] = (),
        timeout: float = 60.0,
    ) -> None:
        self._helm_binary = helm_binary
        self._ignore_patterns = list(ignore_patterns)
        self._timeout = timeout

    @property
    def ignore_patterns(self) -> list[str]:
        """Get the ignore patterns."""
        return list(self._ignore_patterns)

    def is_ignored(self, release_name: str) -> bool:
        """Return True if the release matches an ignore pattern."""
        return any(
            fnmatch.fnmatch(release_name, pattern) for pattern in self._ignore_patterns
        )

    async def _run_command(self, *args: str) -> tuple[int, str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                self._helm_binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            raise LoadError(
                f"Listing installed releases timed out after {self._timeout}s",
                details={"command": self._helm_binary},
            ) from e
        except OSError as e:
            raise LoadError(
                "Error listing installed components",
                details={"command": self._helm_binary, "error": str(e)},
            ) from e

        return (
            process.returncode or 0,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def list_components(self) -> list[SoftwareComponent]:
        """
        Return the installed releases as components.

        Raises:
            LoadError: If helm fails or its output cannot be parsed.
        """
        returncode, stdout, stderr = await self._run_command(
            "list", "--all-namespaces", "--output", "json"
        )
        if returncode != 0:
            logger.error(
                "helm list failed",
                extra={"returncode": returncode, "stderr": stderr.strip()},
            )
            raise LoadError(
                "Error listing installed components",
                details={"returncode": returncode, "stderr": stderr.strip()},
            )

        try:
            releases = json.loads(stdout) if stdout.strip() else []
            components = [
                SoftwareComponent(
                    release_name=release["name"],
                    chart_name=release["chart"],
                    namespace=release["namespace"],
                    set_options=[],
                    container_repos=[],
                    service_accounts=[],
                )
                for release in releases
                if not self.is_ignored(release["name"])
            ]
        except (ValueError, KeyError, TypeError) as e:
            raise LoadError(
                "Error parsing installed component list",
                details={"error": str(e)},
            ) from e

        logger.debug(
            "Listed installed components",
            extra={"count": len(components), "ignored": len(releases) - len(components)},
        )
        return components


class LicenseStore:
    """
    The license describing what is installed on the server.

    Attributes:
        license_dir: Directory containing the license file.
        data: Copy of the current license.
    """

    def __init__(
        self,
        license_dir: Path | str,
        release_source: HelmReleaseSource | None = None,
    ) -> None:
        self._license_dir = Path(license_dir)
        self._file = JsonRecordFile(
            self._license_dir / LICENSE_FILE_NAME, License, "license"
        )
        self._release_source = release_source
        self._data = License(components=[])

    @property
    def license_dir(self) -> Path:
        """Get the license directory."""
        return self._license_dir

    @property
    def license_file(self) -> Path:
        """Get the license file path."""
        return self._file.path

    @property
    def data(self) -> License:
        """Get a copy of the current license."""
        return self._data.model_copy(deep=True)

    async def load(self) -> None:
        """
        Load the installed license.

        Raises:
            ReadError: If the license file exists but cannot be read.
            CorruptError: If the license file is not a valid license.
            LoadError: If querying installed releases fails.
        """
        if self._release_source is not None:
            components = await self._release_source.list_components()
            self._data = License(components=components)
            return

        logger.debug("Reading license file", extra={"path": str(self.license_file)})
        data = await self._file.read()
        if data is None:
            logger.warning(
                "License file does not exist. Setting data to default value",
                extra={"path": str(self.license_file)},
            )
            self._data = License(components=[])
            return

        self._data = data

    async def save(self) -> None:
        """
        Persist the current license to the license file.

        Raises:
            WriteError: If the file cannot be written.
        """
        logger.debug("Writing license file", extra={"path": str(self.license_file)})
        await self._file.write(self._data)

    def set_data(self, license_data: License | Mapping[str, Any]) -> None:
        """
        Replace the current license.

        Raises:
            CorruptError: If the data is not a valid license.
        """
        self._data = self._validate(license_data)

    def generate_update_manifest(
        self, license_data: License | Mapping[str, Any]
    ) -> UpdateManifest:
        """
        Build the manifest that moves the server from the current license to ``license_data``.

        Raises:
            CorruptError: If the data is not a valid license.
        """
        new_license = self._validate(license_data)
        return diff_components(self._data.components, new_license.components)

    def _validate(self, license_data: License | Mapping[str, Any]) -> License:
        if isinstance(license_data, License):
            return license_data.model_copy(deep=True)
        if not isinstance(license_data, Mapping):
            raise CorruptError(
                "License does not conform to expected schema",
                details={"type": type(license_data).__name__},
            )
        return self._file.validate(dict(license_data))

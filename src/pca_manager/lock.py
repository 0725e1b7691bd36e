"""
Durable lock for software updates.

The lock file records that an update is in progress: its id, its state, the
license being applied and the messages reported by the update job. Creating
the file is exclusive, so at most one update can hold the lock at a time.

State machine:
- ACTIVE: created, the update job is running
- ACTIVE -> DONE: the job reported success
- ACTIVE -> ERROR: the job reported failure
- DONE/ERROR -> (archived): cleanup renames the file to ``<lockId>``

A LockStore instance is single use. After ``cleanup`` every further
operation fails with NotAvailableError.
"""

from __future__ import annotations

import copy
import time
import uuid
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from pca_manager.errors import (
    AlreadyInitializedError,
    InvalidArgumentError,
    NotAvailableError,
    NotInitializedError,
    ReadError,
)
from pca_manager.logging import get_logger
from pca_manager.models import JobMessage, License, LockRecord, MessageKind
from pca_manager.records import JsonRecordFile

logger = get_logger(__name__)

LOCK_FILE_NAME = "_lock"


class LockState(str, Enum):
    """Lifecycle states of an update lock."""

    ACTIVE = "ACTIVE"
    DONE = "DONE"
    ERROR = "ERROR"


def generate_lock_id() -> str:
    """Return a short, filesystem and Kubernetes name safe lock id."""
    return uuid.uuid4().hex[:12]


class LockStore:
    """
    The lock file of a single update attempt.

    Attributes:
        lock_dir: Directory holding the lock file and archived locks.
        is_ready: True once initialized and until cleaned up.
    """

    def __init__(self, lock_dir: Path | str) -> None:
        self._lock_dir = Path(lock_dir)
        self._file = JsonRecordFile(self._lock_dir / LOCK_FILE_NAME, LockRecord, "lock")
        self._lock_id = ""
        self._state = ""
        self._license: dict[str, Any] = {}
        self._logs: list[dict[str, Any]] = []
        self._is_initialized = False
        self._is_cleaned_up = False

    @property
    def lock_dir(self) -> Path:
        """Get the lock directory."""
        return self._lock_dir

    @property
    def lock_file(self) -> Path:
        """Get the lock file path."""
        return self._file.path

    @property
    def is_ready(self) -> bool:
        """Return True if the lock is initialized and not yet cleaned up."""
        return self._is_initialized and not self._is_cleaned_up

    @property
    def lock_id(self) -> str:
        """Get the lock id."""
        self._check_initialized()
        return self._lock_id

    @property
    def state(self) -> str:
        """Get the lock state."""
        self._check_initialized()
        return self._state

    @property
    def license(self) -> dict[str, Any]:
        """Get a copy of the license being applied."""
        self._check_initialized()
        return copy.deepcopy(self._license)

    @property
    def logs(self) -> list[dict[str, Any]]:
        """Get a copy of the log entries."""
        self._check_initialized()
        return copy.deepcopy(self._logs)

    def exists(self) -> bool:
        """Return True if a lock file is present on disk."""
        return self._file.exists()

    async def create(self, license_data: License | Mapping[str, Any]) -> None:
        """
        Create a new lock file for the given license.

        The file is written with an exclusive create, which fails if another
        update already holds the lock. On success the lock is ACTIVE,
        initialized and seeded with a single log entry.

        Raises:
            AlreadyInitializedError: If this instance was already initialized.
            RecordExistsError: If a lock file already exists.
            WriteError: If the file cannot be written.
        """
        if self._is_initialized:
            raise AlreadyInitializedError(
                "Lock already initialized",
                details={"lock_id": self._lock_id},
            )

        if isinstance(license_data, License):
            license_dict = license_data.to_wire()
        else:
            license_dict = copy.deepcopy(dict(license_data))

        record = LockRecord(
            lock_id=generate_lock_id(),
            state=LockState.ACTIVE.value,
            license=license_dict,
            logs=[
                {
                    "kind": MessageKind.LOG.value,
                    "timestamp": int(time.time() * 1000),
                    "message": "Lock created",
                }
            ],
        )

        logger.debug("Creating lock file", extra={"path": str(self.lock_file)})
        await self._file.write(record, exclusive=True)

        self._apply(record)
        logger.info(
            "Lock created",
            extra={"lock_id": self._lock_id, "path": str(self.lock_file)},
        )

    async def init(self) -> None:
        """
        Load the lock from disk.

        Does nothing if the lock is already initialized.

        Raises:
            NotAvailableError: If the lock has been cleaned up.
            ReadError: If the lock file is missing or unreadable.
            CorruptError: If the lock file is not valid.
        """
        self._check_cleaned_up()
        if self._is_initialized:
            return

        logger.debug("Reading lock file", extra={"path": str(self.lock_file)})
        record = await self._file.read()
        if record is None:
            raise ReadError(
                "Lock file does not exist",
                details={"path": str(self.lock_file)},
            )

        self._apply(record)
        logger.debug(
            "Lock initialized from file",
            extra={"lock_id": self._lock_id, "state": self._state},
        )

    def add_log(self, record: JobMessage | Mapping[str, Any]) -> None:
        """Append a copy of a log record, in memory only."""
        self._check_initialized()
        self._check_cleaned_up()

        if isinstance(record, JobMessage):
            self._logs.append(record.to_wire())
        else:
            self._logs.append(copy.deepcopy(dict(record)))

    def update_state(self, new_state: LockState | str) -> None:
        """
        Change the lock state, in memory only.

        Raises:
            InvalidArgumentError: If the state is empty.
        """
        state = new_state.value if isinstance(new_state, LockState) else new_state
        if not isinstance(state, str) or not state:
            raise InvalidArgumentError(
                "Invalid lock state",
                details={"state": repr(new_state)},
            )
        self._check_initialized()
        self._check_cleaned_up()

        logger.info(
            f"Lock state transition: {self._state} -> {state}",
            extra={"lock_id": self._lock_id, "old_state": self._state, "new_state": state},
        )
        self._state = state

    async def save(self) -> None:
        """
        Write the in-memory lock back to the lock file.

        Raises:
            WriteError: If the file cannot be written.
        """
        self._check_initialized()
        self._check_cleaned_up()

        record = LockRecord(
            lock_id=self._lock_id,
            state=self._state,
            license=self._license,
            logs=self._logs,
        )
        await self._file.write(record)

    async def cleanup(self) -> None:
        """
        Archive the lock file as ``<lockId>``. The instance is unusable afterwards.

        Raises:
            WriteError: If the rename fails.
        """
        self._check_initialized()
        self._check_cleaned_up()

        archive_path = await self._file.archive(self._lock_id)
        self._is_cleaned_up = True
        logger.info(
            "Lock cleaned up",
            extra={"lock_id": self._lock_id, "archive": str(archive_path)},
        )

    def _apply(self, record: LockRecord) -> None:
        self._lock_id = record.lock_id
        self._state = record.state
        self._license = copy.deepcopy(record.license)
        self._logs = copy.deepcopy(record.logs)
        self._is_initialized = True

    def _check_initialized(self) -> None:
        if not self._is_initialized:
            raise NotInitializedError(
                "Lock not initialized",
                details={"path": str(self.lock_file)},
            )

    def _check_cleaned_up(self) -> None:
        if self._is_cleaned_up:
            raise NotAvailableError(
                "Lock is no longer available",
                details={"lock_id": self._lock_id},
            )

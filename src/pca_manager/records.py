"""
JSON record files.

A JsonRecordFile binds a file path to a pydantic model: it reads and
validates the file, writes it back atomically, creates it exclusively, and
archives it by renaming. Both the lock and the license are stored this way.

Exclusive creation (``open(..., "x")``) is the only cross-process mutual
exclusion used by the update core: whoever creates the lock file owns the
update, every other creator gets a RecordExistsError.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Generic, TextIO, TypeVar

from pydantic import BaseModel, ValidationError

from pca_manager.errors import CorruptError, ReadError, RecordExistsError, WriteError
from pca_manager.logging import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class JsonRecordFile(Generic[ModelT]):
    """
    A JSON file holding a single validated model instance.

    Attributes:
        path: Location of the file.
        model: Model class the contents are validated against.
        label: Short name used in error messages ("lock", "license").
    """

    def __init__(self, path: Path | str, model: type[ModelT], label: str) -> None:
        self._path = Path(path)
        self._model = model
        self._label = label

    @property
    def path(self) -> Path:
        """Get the file path."""
        return self._path

    def exists(self) -> bool:
        """Return True if the file is present."""
        return self._path.exists()

    async def read(self) -> ModelT | None:
        """
        Read and validate the file.

        Returns:
            The validated model, or None if the file does not exist.

        Raises:
            ReadError: If the file exists but cannot be read.
            CorruptError: If the contents are not JSON or fail validation.
        """

        def _read() -> str | None:
            try:
                return self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None

        try:
            text = await asyncio.get_event_loop().run_in_executor(None, _read)
        except OSError as e:
            logger.error(
                f"Error reading {self._label} file",
                extra={"path": str(self._path), "error": str(e)},
            )
            raise ReadError(
                f"Error reading {self._label} file",
                details={"path": str(self._path), "error": str(e)},
            ) from e

        if text is None:
            return None

        try:
            data = json.loads(text)
        except ValueError as e:
            logger.error(
                f"Error parsing {self._label} file",
                extra={"path": str(self._path), "error": str(e)},
            )
            raise CorruptError(
                f"Error parsing {self._label} file",
                details={"path": str(self._path), "error": str(e)},
            ) from e

        return self.validate(data)

    def validate(self, data: Any) -> ModelT:
        """
        Validate raw data against the record model.

        Raises:
            CorruptError: If the data does not conform to the model.
        """
        try:
            return self._model.model_validate(data)
        except ValidationError as e:
            logger.error(
                f"{self._label.capitalize()} data does not conform to expected schema",
                extra={"path": str(self._path), "errors": e.error_count()},
            )
            raise CorruptError(
                f"{self._label.capitalize()} data does not conform to expected schema",
                details={"path": str(self._path), "errors": _error_summary(e)},
            ) from e

    async def write(self, record: ModelT, *, exclusive: bool = False) -> None:
        """
        Write the record to disk.

        A regular write goes to a temporary sibling that is renamed over the
        file, so readers never see a partial document. An exclusive write
        creates the file and fails if it is already present.

        Raises:
            RecordExistsError: If ``exclusive`` is set and the file exists.
            WriteError: On any other I/O failure.
        """
        payload = json.dumps(record.model_dump(by_alias=True, mode="json"))

        def _flush(f: TextIO) -> None:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())

        def _write() -> None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if exclusive:
                with open(self._path, "x", encoding="utf-8") as f:
                    try:
                        _flush(f)
                    except OSError:
                        # only remove the file this call created
                        f.close()
                        self._path.unlink(missing_ok=True)
                        raise
                return

            temp_file = self._path.with_name(f".{self._path.name}.tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                _flush(f)
            os.replace(temp_file, self._path)

        try:
            await asyncio.get_event_loop().run_in_executor(None, _write)
        except FileExistsError as e:
            logger.warning(
                f"{self._label.capitalize()} file already exists",
                extra={"path": str(self._path)},
            )
            raise RecordExistsError(
                f"{self._label.capitalize()} file already exists",
                details={"path": str(self._path)},
            ) from e
        except OSError as e:
            logger.error(
                f"Error writing {self._label} file",
                extra={"path": str(self._path), "error": str(e)},
            )
            raise WriteError(
                f"Error writing {self._label} file",
                details={"path": str(self._path), "error": str(e)},
            ) from e

        logger.debug(
            f"Wrote {self._label} file",
            extra={"path": str(self._path), "exclusive": exclusive},
        )

    async def archive(self, name: str) -> Path:
        """
        Rename the file to ``name`` within the same directory.

        Returns:
            The archive path.

        Raises:
            WriteError: If the rename fails.
        """
        archive_path = self._path.with_name(name)

        try:
            await asyncio.get_event_loop().run_in_executor(
                None, os.rename, self._path, archive_path
            )
        except OSError as e:
            logger.error(
                f"Error archiving {self._label} file",
                extra={"path": str(self._path), "archive": str(archive_path)},
            )
            raise WriteError(
                f"Error archiving {self._label} file",
                details={
                    "path": str(self._path),
                    "archive": str(archive_path),
                    "error": str(e),
                },
            ) from e

        return archive_path


def _error_summary(exc: ValidationError) -> list[str]:
    """Render validation errors as ``loc: message`` strings."""
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]

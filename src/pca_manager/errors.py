"""
Error types for the PCA manager.

Every failure raised by the update core is a PcaError carrying an ErrorKind.
The kind is what callers branch on; the subclasses exist so that call sites
can catch a single failure category with a plain ``except`` clause.

The HTTP layer maps kinds to status codes via ``PcaError.http_status``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure categories surfaced by the update core."""

    INVALID_ARGUMENT = "invalid_argument"
    CORRUPT = "corrupt"
    READ_ERROR = "read_error"
    WRITE_ERROR = "write_error"
    CONFLICT = "conflict"
    ALREADY_INITIALIZED = "already_initialized"
    NOT_INITIALIZED = "not_initialized"
    NOT_AVAILABLE = "not_available"
    LOAD_ERROR = "load_error"
    CREDENTIAL_ERROR = "credential_error"
    LAUNCH_ERROR = "launch_error"


_CLIENT_ERRORS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.CONFLICT: 409,
}


class PcaError(Exception):
    """
    Base exception class for update core errors.

    Attributes:
        kind: The ErrorKind identifying the failure category.
        message: Human-readable error message.
        details: Optional structured details (paths, ids, states).

    Example:
        >>> raise PcaError(
        ...     ErrorKind.CORRUPT,
        ...     "Error parsing lock file",
        ...     details={"path": "/var/lib/pca/_lock"},
        ... )
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    @property
    def error_code(self) -> str:
        """Return the string code of the error kind."""
        return self.kind.value

    @property
    def http_status(self) -> int:
        """Return the HTTP status code an API layer should report."""
        return _CLIENT_ERRORS.get(self.kind, 500)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"kind={self.kind.value!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(PcaError):
    """Malformed input to a public operation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.INVALID_ARGUMENT, message, details)


class CorruptError(PcaError):
    """On-disk or supplied data failed to parse or failed schema validation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.CORRUPT, message, details)


class ReadError(PcaError):
    """I/O failure while reading a file, other than the file being absent."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.READ_ERROR, message, details)


class WriteError(PcaError):
    """I/O failure while writing or renaming a file."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.WRITE_ERROR, message, details)


class ConflictError(PcaError):
    """An operation collided with incompatible existing state."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.CONFLICT, message, details)


class RecordExistsError(ConflictError):
    """An exclusive create found the target file already present."""


class StateError(ConflictError):
    """The lock is in the wrong state, or belongs to a different update."""


class AlreadyInitializedError(PcaError):
    """An object that may only be initialized once was initialized again."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.ALREADY_INITIALIZED, message, details)


class NotInitializedError(PcaError):
    """An object was used before it was initialized."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.NOT_INITIALIZED, message, details)


class NotAvailableError(PcaError):
    """An object was used after it was cleaned up."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.NOT_AVAILABLE, message, details)


class LoadError(PcaError):
    """Querying a remote or live source for license data failed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.LOAD_ERROR, message, details)


class CredentialError(PcaError):
    """The credential token could not be obtained."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.CREDENTIAL_ERROR, message, details)


class LaunchError(PcaError):
    """The external update job could not be started or removed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorKind.LAUNCH_ERROR, message, details)

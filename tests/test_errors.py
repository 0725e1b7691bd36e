"""
Tests for the errors module.

This test module validates:
- PcaError base class functionality
- Error subclasses and their kinds
- HTTP status mapping
- Error serialization (to_dict)
"""

from __future__ import annotations

from typing import Any

import pytest

from pca_manager.errors import (
    AlreadyInitializedError,
    ConflictError,
    CorruptError,
    CredentialError,
    ErrorKind,
    InvalidArgumentError,
    LaunchError,
    LoadError,
    NotAvailableError,
    NotInitializedError,
    PcaError,
    ReadError,
    RecordExistsError,
    StateError,
    WriteError,
)

# =============================================================================
# Tests for PcaError Base Class
# =============================================================================


class TestPcaError:
    """Tests for PcaError base class."""

    def test_init_with_all_args(self) -> None:
        """Test PcaError initialization with all arguments."""
        error = PcaError(
            ErrorKind.CORRUPT,
            "Error parsing lock file",
            details={"path": "/tmp/_lock"},
        )

        assert error.kind is ErrorKind.CORRUPT
        assert error.error_code == "corrupt"
        assert error.message == "Error parsing lock file"
        assert error.details == {"path": "/tmp/_lock"}

    def test_init_with_minimal_args(self) -> None:
        """Test PcaError initialization without details."""
        error = PcaError(ErrorKind.READ_ERROR, "Read failed")

        assert error.details == {}

    def test_str_representation(self) -> None:
        """Test PcaError string representation."""
        error = PcaError(ErrorKind.WRITE_ERROR, "Write failed")
        assert str(error) == "Write failed"

    def test_repr_representation(self) -> None:
        """Test PcaError repr representation."""
        error = PcaError(ErrorKind.CONFLICT, "Busy", details={"lock_id": "abc"})
        repr_str = repr(error)

        assert "PcaError" in repr_str
        assert "conflict" in repr_str
        assert "Busy" in repr_str
        assert "lock_id" in repr_str

    def test_to_dict(self) -> None:
        """Test PcaError to_dict serialization."""
        details: dict[str, Any] = {"state": "DONE", "logs": [1, 2]}
        error = PcaError(ErrorKind.CONFLICT, "Lock is not ACTIVE", details=details)

        assert error.to_dict() == {
            "error_code": "conflict",
            "message": "Lock is not ACTIVE",
            "details": {"state": "DONE", "logs": [1, 2]},
        }

    def test_is_exception(self) -> None:
        """Test that PcaError is a proper exception."""
        with pytest.raises(PcaError) as exc_info:
            raise PcaError(ErrorKind.LOAD_ERROR, "Load failed")

        assert exc_info.value.error_code == "load_error"


# =============================================================================
# Tests for Error Subclasses
# =============================================================================


class TestErrorSubclasses:
    """Tests for the error subclasses."""

    @pytest.mark.parametrize(
        ("error_class", "kind"),
        [
            (InvalidArgumentError, ErrorKind.INVALID_ARGUMENT),
            (CorruptError, ErrorKind.CORRUPT),
            (ReadError, ErrorKind.READ_ERROR),
            (WriteError, ErrorKind.WRITE_ERROR),
            (ConflictError, ErrorKind.CONFLICT),
            (RecordExistsError, ErrorKind.CONFLICT),
            (StateError, ErrorKind.CONFLICT),
            (AlreadyInitializedError, ErrorKind.ALREADY_INITIALIZED),
            (NotInitializedError, ErrorKind.NOT_INITIALIZED),
            (NotAvailableError, ErrorKind.NOT_AVAILABLE),
            (LoadError, ErrorKind.LOAD_ERROR),
            (CredentialError, ErrorKind.CREDENTIAL_ERROR),
            (LaunchError, ErrorKind.LAUNCH_ERROR),
        ],
    )
    def test_kind(self, error_class: type[PcaError], kind: ErrorKind) -> None:
        """Test each subclass carries its kind."""
        error = error_class("message", details={"key": "value"})

        assert error.kind is kind
        assert error.details == {"key": "value"}
        assert isinstance(error, PcaError)

    def test_conflict_subclasses_are_catchable_as_conflict(self) -> None:
        """Test RecordExistsError and StateError are ConflictErrors."""
        with pytest.raises(ConflictError):
            raise RecordExistsError("Lock file already exists")

        with pytest.raises(ConflictError):
            raise StateError("Lock id mismatch")


class TestHttpStatus:
    """Tests for the HTTP status mapping."""

    def test_invalid_argument_is_400(self) -> None:
        """Test invalid arguments map to 400."""
        assert InvalidArgumentError("bad").http_status == 400

    def test_conflicts_are_409(self) -> None:
        """Test conflicts map to 409."""
        assert ConflictError("busy").http_status == 409
        assert StateError("wrong state").http_status == 409
        assert RecordExistsError("exists").http_status == 409

    @pytest.mark.parametrize(
        "error_class",
        [CorruptError, ReadError, WriteError, LoadError, CredentialError, LaunchError],
    )
    def test_other_errors_are_500(self, error_class: type[PcaError]) -> None:
        """Test remaining kinds map to 500."""
        assert error_class("failure").http_status == 500

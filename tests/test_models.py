"""
Tests for the data models.

Tests cover:
- camelCase wire aliases and snake_case population
- Required and non-empty fields
- JobMessage kinds and timestamps
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from conftest import make_component
from pca_manager.models import (
    JobDescriptor,
    JobMessage,
    License,
    LockRecord,
    MessageKind,
    RepoRecord,
    SoftwareComponent,
    UpdateManifest,
)

# =============================================================================
# License Tests
# =============================================================================


class TestSoftwareComponent:
    """Tests for SoftwareComponent."""

    def test_from_wire(self) -> None:
        """Test parsing the camelCase form."""
        component = SoftwareComponent.model_validate(
            make_component(
                "web",
                chart_name="charts/web",
                namespace="apps",
                set_options=[{"key": "replicas", "value": "3"}],
                container_repos=["registry.example.com/web"],
                service_accounts=["web-sa"],
            )
        )

        assert component.release_name == "web"
        assert component.chart_name == "charts/web"
        assert component.set_options[0].key == "replicas"
        assert component.container_repos == ["registry.example.com/web"]
        assert component.service_accounts == ["web-sa"]

    def test_populate_by_name(self) -> None:
        """Test snake_case construction."""
        component = SoftwareComponent(
            release_name="a",
            chart_name="ca",
            namespace="n1",
            set_options=[],
            container_repos=[],
            service_accounts=[],
        )

        assert component.set_options == []
        assert component.to_wire() == {
            "releaseName": "a",
            "chartName": "ca",
            "namespace": "n1",
            "setOptions": [],
            "containerRepos": [],
            "serviceAccounts": [],
        }

    @pytest.mark.parametrize(
        "field",
        [
            "releaseName",
            "chartName",
            "namespace",
            "setOptions",
            "containerRepos",
            "serviceAccounts",
        ],
    )
    def test_required_fields(self, field: str) -> None:
        """Test every field is required, including the lists."""
        data = make_component("a")
        del data[field]

        with pytest.raises(ValidationError):
            SoftwareComponent.model_validate(data)

    def test_empty_release_name_rejected(self) -> None:
        """Test empty strings are rejected."""
        with pytest.raises(ValidationError):
            SoftwareComponent.model_validate(make_component(""))

    def test_empty_set_option_value_rejected(self) -> None:
        """Test set options need a key and a value."""
        with pytest.raises(ValidationError):
            SoftwareComponent.model_validate(
                make_component("a", set_options=[{"key": "replicas", "value": ""}])
            )


class TestLicense:
    """Tests for License."""

    def test_empty_license(self) -> None:
        """Test a license may have no components."""
        assert License(components=[]).components == []
        assert License.model_validate({"components": []}).to_wire() == {"components": []}

    @pytest.mark.parametrize("data", [{}, {"error": "not found"}])
    def test_components_required(self, data: dict) -> None:
        """Test objects without a components list are not licenses."""
        with pytest.raises(ValidationError):
            License.model_validate(data)

    def test_components_must_be_list(self) -> None:
        """Test components must be a list."""
        with pytest.raises(ValidationError):
            License.model_validate({"components": "a"})


# =============================================================================
# Manifest Tests
# =============================================================================


class TestUpdateManifest:
    """Tests for UpdateManifest and its records."""

    def test_repo_record_requires_targets(self) -> None:
        """Test a repo record without targets is invalid."""
        with pytest.raises(ValidationError):
            RepoRecord(repo_uri="r1", targets=[])

    def test_empty_manifest_wire_form(self) -> None:
        """Test the wire form of an empty manifest."""
        assert UpdateManifest().to_wire() == {
            "installRecords": [],
            "uninstallRecords": [],
            "privateContainerRepos": [],
        }


# =============================================================================
# Job Tests
# =============================================================================


class TestJobMessage:
    """Tests for JobMessage."""

    @pytest.mark.parametrize("kind", ["log", "success", "fail"])
    def test_valid_kinds(self, kind: str) -> None:
        """Test the three message kinds."""
        message = JobMessage.model_validate(
            {"kind": kind, "timestamp": 1700000000000, "message": "step"}
        )
        assert message.kind == MessageKind(kind)

    def test_unknown_kind_rejected(self) -> None:
        """Test unknown kinds are rejected."""
        with pytest.raises(ValidationError):
            JobMessage.model_validate({"kind": "progress", "timestamp": 1, "message": "x"})

    def test_negative_timestamp_rejected(self) -> None:
        """Test timestamps cannot be negative."""
        with pytest.raises(ValidationError):
            JobMessage.model_validate({"kind": "log", "timestamp": -1, "message": "x"})

    def test_empty_message_rejected(self) -> None:
        """Test the message text is required."""
        with pytest.raises(ValidationError):
            JobMessage.model_validate({"kind": "log", "timestamp": 1, "message": ""})

    def test_wire_form(self) -> None:
        """Test the kind is serialized as its string value."""
        message = JobMessage(kind=MessageKind.SUCCESS, timestamp=5, message="done")
        assert message.to_wire() == {"kind": "success", "timestamp": 5, "message": "done"}
        assert isinstance(message.timestamp, int)

    def test_float_timestamp_kept(self) -> None:
        """Test fractional timestamps are accepted as floats."""
        message = JobMessage.model_validate({"kind": "log", "timestamp": 1.5, "message": "x"})
        assert message.timestamp == 1.5

    @pytest.mark.parametrize("timestamp", ["123", True, float("nan"), None])
    def test_non_numeric_timestamp_rejected(self, timestamp: object) -> None:
        """Test timestamps must be actual numbers."""
        with pytest.raises(ValidationError):
            JobMessage.model_validate(
                {"kind": "log", "timestamp": timestamp, "message": "x"}
            )


class TestJobDescriptor:
    """Tests for JobDescriptor."""

    def test_empty_token_rejected(self) -> None:
        """Test the descriptor needs a credential token."""
        with pytest.raises(ValidationError):
            JobDescriptor(
                callback_endpoint="https://cb/abc",
                credential_provider_endpoint="https://creds",
                credential_provider_auth_token="",
                manifest=UpdateManifest(),
            )


class TestLockRecord:
    """Tests for LockRecord."""

    def test_wire_round_trip(self) -> None:
        """Test the lock file uses camelCase keys."""
        record = LockRecord(
            lock_id="abc123",
            state="ACTIVE",
            license={"components": []},
            logs=[{"kind": "log", "timestamp": 1, "message": "Lock created"}],
        )

        wire = record.to_wire()

        assert wire["lockId"] == "abc123"
        assert LockRecord.model_validate(wire) == record

    def test_missing_logs_rejected(self) -> None:
        """Test every lock field is required."""
        with pytest.raises(ValidationError):
            LockRecord.model_validate(
                {"lockId": "abc", "state": "ACTIVE", "license": {}}
            )

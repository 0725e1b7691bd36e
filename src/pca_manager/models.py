"""
Data models for licenses, update manifests, job messages and lock records.

Field names are snake_case in Python and camelCase on disk and on the wire;
serialize with ``model_dump(by_alias=True, mode="json")``.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]

# epoch milliseconds; integers stay integers, strings and booleans are rejected
Timestamp = (
    Annotated[int, Field(strict=True, ge=0)]
    | Annotated[float, Field(strict=True, ge=0, allow_inf_nan=False)]
)


class WireModel(BaseModel):
    """Base for models persisted or exchanged using camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase JSON representation."""
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# License
# =============================================================================


class SetOption(WireModel):
    """A single ``--set key=value`` option applied when installing a chart."""

    key: NonEmptyStr
    value: NonEmptyStr


class SoftwareComponent(WireModel):
    """
    One independently installable release on the server.

    ``release_name`` identifies the component within a license.
    """

    release_name: NonEmptyStr
    chart_name: NonEmptyStr
    namespace: NonEmptyStr
    set_options: list[SetOption]
    container_repos: list[NonEmptyStr]
    service_accounts: list[NonEmptyStr]


class License(WireModel):
    """The set of components that should be (or are) installed on a server."""

    components: list[SoftwareComponent]


# =============================================================================
# Update Manifest
# =============================================================================


class InstallRecord(WireModel):
    """A component the update job has to install or upgrade."""

    release_name: NonEmptyStr
    chart_name: NonEmptyStr
    namespace: NonEmptyStr
    set_options: list[SetOption] = Field(default_factory=list)


class CredentialTarget(WireModel):
    """A service account that needs pull credentials for a private repo."""

    service_account: NonEmptyStr
    namespace: NonEmptyStr
    secret_name: NonEmptyStr


class RepoRecord(WireModel):
    """A private container repo and every account that pulls from it."""

    repo_uri: NonEmptyStr
    targets: list[CredentialTarget] = Field(min_length=1)


class UpdateManifest(WireModel):
    """The actions an update job performs to reach a desired license."""

    install_records: list[InstallRecord] = Field(default_factory=list)
    uninstall_records: list[NonEmptyStr] = Field(default_factory=list)
    private_container_repos: list[RepoRecord] = Field(default_factory=list)


# =============================================================================
# Update Job
# =============================================================================


class MessageKind(str, Enum):
    """Kinds of progress messages reported by the update job."""

    LOG = "log"
    SUCCESS = "success"
    FAIL = "fail"


class JobMessage(WireModel):
    """A progress message reported by the update job."""

    kind: MessageKind
    timestamp: Timestamp
    message: NonEmptyStr


class JobDescriptor(WireModel):
    """Everything the update job needs to run."""

    callback_endpoint: NonEmptyStr
    credential_provider_endpoint: NonEmptyStr
    credential_provider_auth_token: NonEmptyStr
    manifest: UpdateManifest


# =============================================================================
# Lock
# =============================================================================


class LockRecord(WireModel):
    """
    Contents of the lock file.

    ``license`` is kept as the raw license object that was applied; it is
    validated as a License only when it is promoted to the installed license.
    """

    lock_id: NonEmptyStr
    state: NonEmptyStr
    license: dict[str, Any]
    logs: list[dict[str, Any]]

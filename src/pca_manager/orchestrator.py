"""
Update orchestration.

UpdateOrchestrator is the single entry point for launching a software update
and for receiving the update job's progress messages. It owns the one active
LockStore of the process and drives the lock, the license store, the token
provider and the job launcher through the update lifecycle:

1. ``launch_update`` creates the lock, computes the manifest against the
   installed license, fetches a credential token and starts the job.
2. ``notify`` records job messages on the lock. A success message promotes
   the lock's license to the installed license; success or failure retires
   the job and archives the lock.

Both entry points run under one asyncio.Lock, acquired in call order, so no
two calls ever interleave their changes to the lock. Across processes, the
exclusive creation of the lock file is what prevents concurrent updates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from pca_manager.clients import LicenseServerClient, TokenProvider
from pca_manager.errors import (
    ConflictError,
    InvalidArgumentError,
    LaunchError,
    LoadError,
    StateError,
)
from pca_manager.jobs import JobLauncher, KubectlJobLauncher
from pca_manager.license import HelmReleaseSource, LicenseStore
from pca_manager.lock import LockState, LockStore
from pca_manager.logging import get_logger
from pca_manager.models import (
    JobDescriptor,
    JobMessage,
    License,
    MessageKind,
    UpdateManifest,
)

if TYPE_CHECKING:
    from pca_manager.config import AppConfig

logger = get_logger(__name__)

_MESSAGES_ADAPTER = TypeAdapter(list[JobMessage])


def _validate_license(license_data: License | Mapping[str, Any]) -> License:
    if isinstance(license_data, License):
        return license_data
    if not isinstance(license_data, Mapping):
        raise InvalidArgumentError(
            "Invalid license data",
            details={"type": type(license_data).__name__},
        )
    try:
        return License.model_validate(dict(license_data))
    except ValidationError as e:
        raise InvalidArgumentError(
            "Invalid license data",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e


def _validate_messages(messages: Any) -> list[JobMessage]:
    if not isinstance(messages, list):
        raise InvalidArgumentError(
            "Invalid messages",
            details={"type": type(messages).__name__},
        )
    try:
        return _MESSAGES_ADAPTER.validate_python(messages)
    except ValidationError as e:
        raise InvalidArgumentError(
            "Messages contain invalid values",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e


class UpdateOrchestrator:
    """
    Coordinates update launches and job notifications.

    Collaborators are injected as factories so that each update attempt gets
    fresh LockStore, LicenseStore and JobLauncher instances.

    Attributes:
        active_lock: The LockStore of the update in progress, if any.
    """

    def __init__(
        self,
        *,
        lock_factory: Callable[[], LockStore],
        license_factory: Callable[[], LicenseStore],
        token_provider: TokenProvider,
        launcher_factory: Callable[[str], JobLauncher],
        callback_endpoint: str,
        credential_provider_endpoint: str,
        license_client: LicenseServerClient | None = None,
    ) -> None:
        self._lock_factory = lock_factory
        self._license_factory = license_factory
        self._token_provider = token_provider
        self._launcher_factory = launcher_factory
        self._callback_endpoint = callback_endpoint.rstrip("/")
        self._credential_provider_endpoint = credential_provider_endpoint
        self._license_client = license_client

        self._lock: LockStore | None = None
        # claimed by launch_update until it has created the lock file
        self._launching: LockStore | None = None
        self._mutex = asyncio.Lock()

    @classmethod
    def from_config(cls, config: AppConfig) -> UpdateOrchestrator:
        """Build an orchestrator wired to the production collaborators."""
        lock_dir = Path(config.storage.lock_dir)
        license_dir = Path(config.storage.license_dir)

        release_source = None
        if config.license.source == "helm":
            release_source = HelmReleaseSource(
                helm_binary=config.license.helm_binary,
                ignore_patterns=config.license.ignore_patterns,
                timeout=config.license.query_timeout_seconds,
            )

        return cls(
            lock_factory=lambda: LockStore(lock_dir),
            license_factory=lambda: LicenseStore(license_dir, release_source),
            token_provider=TokenProvider.from_config(config.endpoints),
            launcher_factory=lambda job_id: KubectlJobLauncher(job_id, config.job),
            callback_endpoint=config.endpoints.callback_endpoint,
            credential_provider_endpoint=config.endpoints.credential_provider_endpoint,
            license_client=LicenseServerClient.from_config(
                config.endpoints, config.server.server_id
            ),
        )

    @property
    def active_lock(self) -> LockStore | None:
        """Get the lock of the update in progress."""
        return self._lock

    async def launch_update(
        self, desired_license: License | Mapping[str, Any]
    ) -> dict[str, str]:
        """
        Launch an update that brings the server to ``desired_license``.

        Args:
            desired_license: The license to apply.

        Returns:
            ``{"lockId": ..., "state": ...}`` of the new lock.

        Raises:
            ConflictError: If an update is already in progress.
            InvalidArgumentError: If the license is malformed.
            RecordExistsError: If another process holds the lock file.
            PcaError: Any failure of the launch steps, after the lock was
                cleaned up.
        """
        if self._lock is not None:
            raise ConflictError("Cannot create lock. A lock already exists")

        license_data = _validate_license(desired_license)

        lock = self._lock_factory()
        self._lock = lock
        self._launching = lock

        async with self._mutex:
            lock_created = False
            try:
                try:
                    await lock.create(license_data)
                finally:
                    self._launching = None
                lock_created = True
                await lock.init()

                license_store = self._license_factory()
                await license_store.load()

                token = await self._token_provider.fetch_token()
                manifest = license_store.generate_update_manifest(license_data)
                descriptor = self._build_descriptor(lock.lock_id, token, manifest)

                launcher = self._launcher_factory(lock.lock_id)
                await launcher.start(descriptor)
            except Exception:
                if lock_created:
                    logger.warning(
                        "Update launch failed, cleaning up lock",
                        extra={"lock_id": lock.lock_id},
                    )
                    try:
                        await lock.cleanup()
                    except Exception:
                        logger.error(
                            "Error cleaning up lock after failed launch",
                            exc_info=True,
                        )
                else:
                    logger.warning("Lock file not created. No clean up required")
                self._lock = None
                raise

            logger.info(
                "Update launched",
                extra={
                    "lock_id": lock.lock_id,
                    "installs": len(manifest.install_records),
                    "uninstalls": len(manifest.uninstall_records),
                },
            )
            return {"lockId": lock.lock_id, "state": lock.state}

    async def notify(self, lock_id: str, messages: list[Any]) -> None:
        """
        Record messages reported by the update job.

        Messages are applied in order: each is logged on the lock, a success
        message sets the state to DONE and a fail message sets it to ERROR.
        Once the lock leaves ACTIVE the job is removed and the lock archived;
        failures of that cleanup are logged and never raised.

        Args:
            lock_id: Id of the lock the messages belong to.
            messages: List of ``{kind, timestamp, message}`` records.

        Raises:
            InvalidArgumentError: If the arguments are malformed.
            StateError: If the lock is not ACTIVE or has a different id.
            PcaError: If the lock or license cannot be read or written.
        """
        if not isinstance(lock_id, str) or not lock_id:
            raise InvalidArgumentError("Invalid lockId", details={"lock_id": repr(lock_id)})
        records = _validate_messages(messages)

        async with self._mutex:
            if self._lock is None:
                logger.warning("No active lock reference. Loading lock from disk")
                self._lock = self._lock_factory()
                lock = self._lock
            elif self._lock is self._launching:
                logger.warning("Lock is still being created. Loading lock from disk")
                lock = self._lock_factory()
            else:
                lock = self._lock

            try:
                if not lock.is_ready:
                    await lock.init()

                if lock.state != LockState.ACTIVE:
                    raise StateError(
                        f"Lock is not ACTIVE. Current state: [{lock.state}]",
                        details={"lock_id": lock.lock_id, "state": lock.state},
                    )
                if lock.lock_id != lock_id:
                    logger.warning(
                        "Messages do not apply to current lock",
                        extra={"current_lock_id": lock.lock_id, "message_lock_id": lock_id},
                    )
                    raise StateError(
                        "Lock id mismatch. Messages do not apply to current lock",
                        details={"lock_id": lock_id},
                    )

                for record in records:
                    lock.add_log(record)
                    if record.kind == MessageKind.SUCCESS:
                        lock.update_state(LockState.DONE)
                    elif record.kind == MessageKind.FAIL:
                        lock.update_state(LockState.ERROR)
                await lock.save()

                if lock.state == LockState.DONE:
                    license_store = self._license_factory()
                    license_store.set_data(lock.license)
                    await license_store.save()
                    logger.info(
                        "Installed license updated",
                        extra={"lock_id": lock.lock_id},
                    )
            finally:
                await self._retire(lock)

    async def _retire(self, lock: LockStore) -> None:
        """Remove the job and archive the lock once it is no longer ACTIVE."""
        try:
            if not lock.is_ready:
                self._release(lock)
                return
            if lock.state == LockState.ACTIVE:
                logger.debug("Lock still active. No clean up required")
                return

            launcher = self._launcher_factory(lock.lock_id)
            await asyncio.gather(
                self._cleanup_job(launcher),
                self._cleanup_lock(lock),
            )
            self._release(lock)
        except Exception:
            logger.critical("Error retiring update lock", exc_info=True)

    def _release(self, lock: LockStore) -> None:
        if self._lock is lock:
            self._lock = None

    async def _cleanup_job(self, launcher: JobLauncher) -> None:
        try:
            await launcher.cleanup()
        except Exception:
            logger.error(
                "Error cleaning up job",
                extra={"job_id": launcher.job_id},
                exc_info=True,
            )

    async def _cleanup_lock(self, lock: LockStore) -> None:
        try:
            await lock.cleanup()
        except Exception:
            logger.error("Error cleaning up lock", exc_info=True)

    async def refresh_license(self) -> dict[str, str]:
        """
        Fetch this server's license from the license server and apply it.

        Raises:
            LoadError: If the license cannot be fetched.
            PcaError: Any failure of ``launch_update``.
        """
        if self._license_client is None:
            raise LoadError("License server client not configured")

        license_data = await self._license_client.fetch_license()
        return await self.launch_update(license_data)

    async def current_manifest(self) -> UpdateManifest:
        """Return the manifest that re-applies the installed license."""
        license_store = self._license_factory()
        await license_store.load()
        return license_store.generate_update_manifest(license_store.data)

    async def status(self) -> dict[str, Any] | None:
        """
        Describe the update in progress.

        Returns:
            ``{"lockId", "state", "logs"}``, or None if no lock exists.
        """
        async with self._mutex:
            lock = self._lock
            if lock is None or not lock.is_ready:
                lock = self._lock_factory()
                if not lock.exists():
                    return None
                await lock.init()

            return {"lockId": lock.lock_id, "state": lock.state, "logs": lock.logs}

    def _build_descriptor(
        self, lock_id: str, token: str, manifest: UpdateManifest
    ) -> JobDescriptor:
        try:
            return JobDescriptor(
                callback_endpoint=f"{self._callback_endpoint}/{lock_id}",
                credential_provider_endpoint=self._credential_provider_endpoint,
                credential_provider_auth_token=token,
                manifest=manifest,
            )
        except ValidationError as e:
            raise LaunchError(
                "JobDescriptor does not conform to expected schema",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e

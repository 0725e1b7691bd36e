"""
Update job launchers.

A JobLauncher starts the out-of-process agent that performs the actual
install and uninstall work, and removes it again once the update finished.
The orchestrator only relies on the two-operation contract of JobLauncher.

KubectlJobLauncher runs the agent as a Kubernetes Job: the manifest goes into
a ConfigMap mounted into the agent container, and both objects are applied
with ``kubectl apply``.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any

import yaml

from pca_manager.config import JobConfig
from pca_manager.errors import LaunchError
from pca_manager.logging import get_logger
from pca_manager.models import JobDescriptor

logger = get_logger(__name__)

MANIFEST_MOUNT_PATH = "/etc/pca/manifest"
ENV_PREFIX = "pcaUpdateAgent_production__"


class JobLauncher(ABC):
    """
    Abstract base class for update job launchers.

    Attributes:
        job_id: Unique identifier of the job; the lock id of the update.
    """

    def __init__(self, job_id: str) -> None:
        self._job_id = job_id

    @property
    def job_id(self) -> str:
        """Get the job id."""
        return self._job_id

    @abstractmethod
    async def start(self, descriptor: JobDescriptor) -> None:
        """
        Start the update job.

        Raises:
            LaunchError: If the job cannot be started.
        """

    @abstractmethod
    async def cleanup(self) -> None:
        """
        Remove the update job and anything created for it.

        Raises:
            LaunchError: If the job cannot be removed.
        """


class KubectlJobLauncher(JobLauncher):
    """Runs the update agent as a Kubernetes Job through kubectl."""

    def __init__(self, job_id: str, config: JobConfig | None = None) -> None:
        super().__init__(job_id)
        self._config = config or JobConfig()

    @property
    def config_map_name(self) -> str:
        """Name of the ConfigMap holding the manifest."""
        return f"pca-agent-config-{self._job_id}"

    @property
    def job_name(self) -> str:
        """Name of the Kubernetes Job."""
        return f"pca-agent-job-{self._job_id}"

    def build_config_map(self, descriptor: JobDescriptor) -> dict[str, Any]:
        """Return the ConfigMap resource carrying the update manifest."""
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": self.config_map_name,
                "labels": self._labels(),
            },
            "data": {"manifest": json.dumps(descriptor.manifest.to_wire())},
        }

    def build_job(self, descriptor: JobDescriptor) -> dict[str, Any]:
        """Return the Job resource running the update agent."""
        cfg = self._config
        env = [
            {"name": f"{ENV_PREFIX}callbackEndpoint", "value": descriptor.callback_endpoint},
            {
                "name": f"{ENV_PREFIX}credentialProviderEndpoint",
                "value": descriptor.credential_provider_endpoint,
            },
            {
                "name": f"{ENV_PREFIX}credentialProviderAuth",
                "value": descriptor.credential_provider_auth_token,
            },
            {"name": f"{ENV_PREFIX}manifestFile", "value": f"{MANIFEST_MOUNT_PATH}/manifest"},
            {"name": "LOG_LEVEL", "value": cfg.agent_log_level},
        ]

        return {
            "apiVersion": "batch/v1",
            "kind": "Job",
            "metadata": {"name": self.job_name, "labels": self._labels()},
            "spec": {
                "backoffLimit": cfg.backoff_limit,
                "activeDeadlineSeconds": cfg.active_deadline_seconds,
                "template": {
                    "metadata": {"labels": self._labels()},
                    "spec": {
                        "serviceAccountName": cfg.service_account,
                        "restartPolicy": "Never",
                        "containers": [
                            {
                                "name": "pca-agent",
                                "image": cfg.agent_image,
                                "env": env,
                                "volumeMounts": [
                                    {
                                        "name": "pca-agent-manifest",
                                        "mountPath": MANIFEST_MOUNT_PATH,
                                    },
                                    {
                                        "name": "helm-ca-tls-secret",
                                        "mountPath": "/root/.helm/ca.pem",
                                        "subPath": "ca.pem",
                                    },
                                    {
                                        "name": "helm-tls-secret",
                                        "mountPath": "/root/.helm/cert.pem",
                                        "subPath": "cert.pem",
                                    },
                                    {
                                        "name": "helm-tls-secret",
                                        "mountPath": "/root/.helm/key.pem",
                                        "subPath": "key.pem",
                                    },
                                ],
                            }
                        ],
                        "volumes": [
                            {
                                "name": "pca-agent-manifest",
                                "configMap": {"name": self.config_map_name},
                            },
                            {
                                "name": "helm-ca-tls-secret",
                                "secret": {
                                    "secretName": cfg.helm_ca_secret,
                                    "items": [{"key": "tls.crt", "path": "ca.pem"}],
                                },
                            },
                            {
                                "name": "helm-tls-secret",
                                "secret": {
                                    "secretName": cfg.helm_cert_secret,
                                    "items": [
                                        {"key": "tls.crt", "path": "cert.pem"},
                                        {"key": "tls.key", "path": "key.pem"},
                                    ],
                                },
                            },
                        ],
                    },
                },
            },
        }

    async def start(self, descriptor: JobDescriptor) -> None:
        """Apply the manifest ConfigMap, then the agent Job."""
        logger.info(
            "Starting update job",
            extra={"job_id": self._job_id, "namespace": self._config.namespace},
        )

        config_map_yaml = yaml.safe_dump(self.build_config_map(descriptor), sort_keys=False)
        returncode, _, stderr = await self._kubectl(
            "apply", "--namespace", self._config.namespace, "-f", "-",
            stdin=config_map_yaml,
        )
        if returncode != 0:
            logger.error(
                "Error creating configmap",
                extra={"job_id": self._job_id, "stderr": stderr.strip()},
            )
            raise LaunchError(
                "Error creating ConfigMap for update job",
                details={"job_id": self._job_id, "stderr": stderr.strip()},
            )

        job_yaml = yaml.safe_dump(self.build_job(descriptor), sort_keys=False)
        returncode, _, stderr = await self._kubectl(
            "apply", "--namespace", self._config.namespace, "-f", "-",
            stdin=job_yaml,
        )
        if returncode != 0:
            logger.error(
                "Error creating update job",
                extra={"job_id": self._job_id, "stderr": stderr.strip()},
            )
            raise LaunchError(
                "Error creating update job",
                details={"job_id": self._job_id, "stderr": stderr.strip()},
            )

        logger.info("Update job started", extra={"job_id": self._job_id})

    async def cleanup(self) -> None:
        """Delete the agent Job and its ConfigMap."""
        returncode, _, stderr = await self._kubectl(
            "delete",
            "--namespace",
            self._config.namespace,
            "--ignore-not-found",
            f"job/{self.job_name}",
            f"configmap/{self.config_map_name}",
        )
        if returncode != 0:
            raise LaunchError(
                "Error cleaning up update job",
                details={"job_id": self._job_id, "stderr": stderr.strip()},
            )

        logger.info("Update job cleaned up", extra={"job_id": self._job_id})

    def _labels(self) -> dict[str, str]:
        return {"app": "pca-agent", "pca-lock-id": self._job_id}

    async def _kubectl(self, *args: str, stdin: str | None = None) -> tuple[int, str, str]:
        """
        Run kubectl with the given arguments.

        Raises:
            LaunchError: If kubectl cannot be executed or times out.
        """
        timeout = self._config.command_timeout_seconds
        try:
            process = await asyncio.create_subprocess_exec(
                self._config.kubectl_binary,
                *args,
                stdin=asyncio.subprocess.PIPE if stdin is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin.encode("utf-8") if stdin is not None else None),
                timeout=timeout,
            )
        except TimeoutError as e:
            raise LaunchError(
                f"kubectl timed out after {timeout}s",
                details={"job_id": self._job_id, "args": list(args)},
            ) from e
        except OSError as e:
            raise LaunchError(
                f"Failed to execute kubectl: {e}",
                details={"job_id": self._job_id, "error": str(e)},
            ) from e

        return (
            process.returncode or 0,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

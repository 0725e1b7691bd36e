"""
Configuration management for the PCA manager.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (/etc/pca-manager/config.yml or --config path)
3. Environment variables (PCA_MANAGER_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CONFIG_PATH = Path("/etc/pca-manager/config.yml")
DEFAULT_ENV_PREFIX = "PCA_MANAGER_"

_VALID_LOG_LEVELS = {"debug", "info", "warn", "warning", "error", "critical"}


def _normalize_log_level(value: str) -> str:
    v_lower = value.lower()
    if v_lower not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {value}. "
            f"Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    if v_lower == "warn":
        return "warning"
    return v_lower


# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """Server identity settings.

    Attributes:
        server_id: Identifier of this server at the license server.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    server_id: str = Field(
        default="",
        description="Identifier of this server, substituted into the license endpoint",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Whether to emit JSON lines.
        debug_mode: Force debug level logging.
    """

    level: str = Field(default="info", description="Log level")
    log_to_stdout: bool = Field(default=True, description="Whether to log to stdout")
    json_format: bool = Field(default=True, description="Emit JSON formatted records")
    debug_mode: bool = Field(
        default=False,
        description="Enable extra diagnostic logging",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)


# =============================================================================
# Storage Configuration
# =============================================================================


class StorageConfig(BaseModel):
    """Locations of the lock and license files.

    Attributes:
        lock_dir: Directory holding the lock file and archived locks.
        license_dir: Directory holding the installed license file.
    """

    lock_dir: str = Field(
        default="/var/lib/pca-manager/locks",
        description="Directory containing the lock file",
    )
    license_dir: str = Field(
        default="/var/lib/pca-manager/license",
        description="Directory containing the license file",
    )


# =============================================================================
# License Source Configuration
# =============================================================================


class LicenseSourceConfig(BaseModel):
    """How the currently installed component list is obtained.

    Attributes:
        source: 'file' reads the persisted license, 'helm' queries installed releases.
        ignore_patterns: Release name globs excluded from helm query results.
        helm_binary: Helm executable used for queries.
        query_timeout_seconds: Timeout for the helm query.
    """

    source: str = Field(
        default="file",
        description="License source: 'file' or 'helm'",
    )
    ignore_patterns: list[str] = Field(
        default_factory=list,
        description="fnmatch patterns of release names to ignore when querying helm",
    )
    helm_binary: str = Field(default="helm", description="Helm executable")
    query_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for querying installed releases",
    )

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        """Validate license source."""
        valid_sources = {"file", "helm"}
        v_lower = v.lower()
        if v_lower not in valid_sources:
            raise ValueError(
                f"Invalid license source: {v}. Must be one of: {', '.join(sorted(valid_sources))}"
            )
        return v_lower


# =============================================================================
# Endpoint Configuration
# =============================================================================


class EndpointsConfig(BaseModel):
    """Remote endpoints used during an update.

    Attributes:
        sts_endpoint: Token service issuing software update tokens.
        server_api_key: Key sent in the authorization header to remote services.
        callback_endpoint: Base URL the update job reports progress to.
        credential_provider_endpoint: URL the update job fetches repo credentials from.
        license_server_endpoint: License URL; ':serverId' is replaced by the server id.
        request_timeout_seconds: Timeout for outgoing HTTP requests.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    sts_endpoint: str = Field(default="", description="Token service endpoint")
    server_api_key: str = Field(default="", description="API key for remote services")
    callback_endpoint: str = Field(default="", description="Job callback base URL")
    credential_provider_endpoint: str = Field(
        default="",
        description="Credential provider URL handed to the update job",
    )
    license_server_endpoint: str = Field(
        default="",
        description="License server URL, may contain ':serverId'",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP request timeout",
    )


# =============================================================================
# Update Job Configuration
# =============================================================================


class JobConfig(BaseModel):
    """Kubernetes settings for the update agent job.

    Attributes:
        namespace: Namespace the job and its config map are created in.
        agent_image: Container image of the update agent.
        service_account: Service account the agent runs as.
        kubectl_binary: kubectl executable.
        backoff_limit: Job retry limit.
        active_deadline_seconds: Job deadline.
        helm_ca_secret: Secret holding the helm CA certificate.
        helm_cert_secret: Secret holding the helm client certificate and key.
        agent_log_level: LOG_LEVEL handed to the agent.
        command_timeout_seconds: Timeout for each kubectl invocation.
    """

    namespace: str = Field(default="kube-system", description="Job namespace")
    agent_image: str = Field(
        default="vamship/pca-update-agent:2.0.1",
        description="Update agent image",
    )
    service_account: str = Field(default="pca-agent", description="Agent service account")
    kubectl_binary: str = Field(default="kubectl", description="kubectl executable")
    backoff_limit: int = Field(default=4, ge=0, description="Job backoff limit")
    active_deadline_seconds: int = Field(default=300, gt=0, description="Job deadline")
    helm_ca_secret: str = Field(
        default="pca-helm-ca-certificate",
        description="Secret with the helm CA certificate",
    )
    helm_cert_secret: str = Field(
        default="pca-helm-certificate",
        description="Secret with the helm TLS certificate",
    )
    agent_log_level: str = Field(default="trace", description="Agent LOG_LEVEL")
    command_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for kubectl commands",
    )


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        server: Server identity settings.
        logging: Logging configuration.
        storage: Lock and license file locations.
        license: Installed license source.
        endpoints: Remote endpoints.
        job: Update agent job settings.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    license: LicenseSourceConfig = Field(default_factory=LicenseSourceConfig)
    endpoints: EndpointsConfig = Field(default_factory=EndpointsConfig)
    job: JobConfig = Field(default_factory=JobConfig)


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, values in ``override`` win."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """Parse an environment variable value to a bool, number, list or string."""
    lowered = value.lower()
    if lowered in ("true", "yes", "1", "on"):
        return True
    if lowered in ("false", "no", "0", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if "," in value:
        return [item.strip() for item in value.split(",") if item.strip()]

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Nested keys use a double underscore, e.g.
    ``PCA_MANAGER_STORAGE__LOCK_DIR=/data/locks``.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = key[len(prefix) :].lower().split("__")

        current = result
        for part in parts[:-1]:
            current = current.setdefault(part, {})

        current[parts[-1]] = _parse_env_value(value)

    return result


def build_arg_parser() -> argparse.ArgumentParser:
    """Return the parser for the options shared by every command."""
    parser = argparse.ArgumentParser(
        prog="pca-manager",
        description="Software update manager for PCA servers",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", "-c", type=str, help="Path to configuration file")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    return parser


def _cli_overrides(parsed: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed command-line options into a config dictionary."""
    result: dict[str, Any] = {}

    if getattr(parsed, "config", None):
        result["_config_path"] = parsed.config

    if getattr(parsed, "log_level", None):
        result["logging"] = {"level": parsed.log_level}

    if getattr(parsed, "debug", False):
        result.setdefault("logging", {})["debug_mode"] = True

    return result


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """Parse command-line arguments into a config dictionary."""
    parsed, _ = build_arg_parser().parse_known_args(args)
    return _cli_overrides(parsed)


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Args:
        config_path: Path to YAML configuration file. If None, uses the
            --config argument or the default path when it exists.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If the specified config file doesn't exist.
        ValidationError: If the configuration is invalid.
    """
    config_dict: dict[str, Any] = {}

    cli_config = _parse_cli_args(cli_args)

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif DEFAULT_CONFIG_PATH.exists():
            config_path = DEFAULT_CONFIG_PATH
    elif isinstance(config_path, str):
        config_path = Path(config_path)
    cli_config.pop("_config_path", None)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)

"""Configuration management for deploy checks."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from deploy_checks.spec_parser import RunSettings


class ConfigError(Exception):
    """Raised when the configuration file or environment cannot be loaded."""


class ProbeConfig(BaseModel):
    """Defaults for one probe run; CHECKS file settings override the checks_* values."""

    # Pre-parse defaults for WAIT / TIMEOUT / ATTEMPTS
    checks_wait: int = Field(default=5, ge=0, description="Seconds to wait before each attempt")
    checks_timeout: int = Field(default=30, ge=1, description="Seconds allowed per check request")
    checks_attempts: int = Field(default=5, ge=1, description="Attempts before giving up")

    # Liveness fallback
    default_checks_wait: int = Field(default=10, ge=0, description="Seconds to wait before the liveness check")

    checks_path: str = Field(default="/app/CHECKS", description="Location of the CHECKS file inside the container")
    web_process_types: list[str] = Field(default_factory=lambda: ["web"], description="Process types that read CHECKS")
    skip_all_checks: bool = Field(default=False, description="Skip every check and report success")
    skipped_process_types: list[str] = Field(default_factory=list, description="Process types whose checks are skipped")
    verify_tls: bool = Field(default=False, description="Verify TLS certificates on https checks")

    # Container runtime
    docker_socket_path: str = Field(default="/var/run/docker.sock", description="Docker Engine API socket")
    docker_timeout_seconds: float = Field(default=5.0, gt=0, description="Timeout for Docker Engine API calls")
    app_state_root: str = Field(default="/var/lib/deploy-checks/apps", description="Persisted per-app state")
    log_tail_lines: int = Field(default=100, ge=0, description="Container log lines shown after a failure")

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("web_process_types", "skipped_process_types", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def run_settings(self) -> RunSettings:
        return RunSettings(wait=self.checks_wait, timeout=self.checks_timeout, attempts=self.checks_attempts)


ENV_OVERRIDES = {
    "checks_wait": "CHECKS_WAIT",
    "checks_timeout": "CHECKS_TIMEOUT",
    "checks_attempts": "CHECKS_ATTEMPTS",
    "default_checks_wait": "DEFAULT_CHECKS_WAIT",
    "checks_path": "CHECKS_PATH",
    "skip_all_checks": "SKIP_ALL_CHECKS",
    "skipped_process_types": "CHECKS_SKIPPED",
    "verify_tls": "CHECKS_VERIFY_TLS",
    "docker_socket_path": "DOCKER_SOCKET",
    "app_state_root": "APP_STATE_ROOT",
    "log_level": "LOG_LEVEL",
}

_BOOL_FIELDS = {"skip_all_checks", "verify_tls"}


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config YAML must be a mapping: {path}")
    return data


def load_config(config_path: str | os.PathLike[str] | None = None, env: Mapping[str, str] | None = None) -> ProbeConfig:
    """Load configuration from an optional YAML file, then apply environment overrides."""
    env = os.environ if env is None else env
    if config_path is None:
        config_path = env.get("DEPLOY_CHECKS_CONFIG") or None

    config_data: dict[str, Any] = {}
    if config_path is not None:
        config_data = _read_yaml(Path(config_path))

    for key, var in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        if key in _BOOL_FIELDS:
            config_data[key] = value.strip().lower() in ("true", "1", "yes")
        else:
            config_data[key] = value

    try:
        return ProbeConfig(**config_data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

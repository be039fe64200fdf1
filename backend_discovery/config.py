"""Frozen dataclasses for configuration and YAML loader with env-var interpolation."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .translator import is_valid_backend_name

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class BackendConfig:
    name: str = ""
    type: str = "static"  # opaque tag: kubernetes, openstack, vmware, static, ...


@dataclass(frozen=True)
class KubernetesConfig:
    base_url: str = "https://kubernetes.default.svc"
    token: str = ""
    token_file: str = f"{SERVICE_ACCOUNT_DIR}/token"
    ca_file: str = f"{SERVICE_ACCOUNT_DIR}/ca.crt"
    verify_ssl: bool = True
    timeout: float = 5.0


@dataclass(frozen=True)
class SyncConfig:
    workers: int = 2
    max_retries: int = 3
    base_delay_seconds: float = 0.005
    max_delay_seconds: float = 60.0
    qps: float = 5.0
    burst: int = 10


@dataclass(frozen=True)
class PollingConfig:
    interval_seconds: float = 30


@dataclass(frozen=True)
class InventoryConfig:
    path: str = ""
    watch_interval_seconds: float = 2.0  # 0 disables watching between passes


@dataclass(frozen=True)
class MetricsConfig:
    listen_port: int = 0  # 0 disables the exposition endpoint


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    backend: BackendConfig = field(default_factory=BackendConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = eval(ft, globals(), {cls.__name__: cls})  # noqa: S307
        if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__") and isinstance(value, dict):
            kwargs[key] = _build_nested(ft, value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    config = _build_nested(AppConfig, raw)
    _validate(config)
    return config


def _validate(config: AppConfig) -> None:
    """Validate configuration values."""
    if not config.backend.name:
        raise ConfigError("backend.name is required")

    if not is_valid_backend_name(config.backend.name):
        raise ConfigError(
            f"backend.name '{config.backend.name}' must be a DNS-1035 label "
            "(lowercase alphanumerics and '-', starting with a letter, at most 63 characters)"
        )

    if not config.inventory.path:
        raise ConfigError("inventory.path is required")

    if config.inventory.watch_interval_seconds < 0:
        raise ConfigError("inventory.watch_interval_seconds must be >= 0")

    if config.polling.interval_seconds < 1:
        raise ConfigError("polling.interval_seconds must be >= 1")

    if config.sync.workers < 1:
        raise ConfigError("sync.workers must be >= 1")

    if config.sync.max_retries < 1:
        raise ConfigError("sync.max_retries must be >= 1")

    if config.sync.qps <= 0 or config.sync.burst < 1:
        raise ConfigError("sync.qps must be > 0 and sync.burst must be >= 1")

    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")

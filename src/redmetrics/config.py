"""Configuration for redmetrics.

Configuration is plain dataclasses that can be built directly, from
environment variables, or from a YAML/JSON file.

Example:
    >>> config = MetricsConfig.from_environment()
    >>> config = MetricsConfig.from_file("metrics.yaml")
    >>> storage = RedisStorage(config.redis)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from redmetrics.core import MetricsError


DEFAULT_PREFIX = "PROMETHEUS_"
DEFAULT_PUSH_GATEWAY_URL = "http://127.0.0.1:9091/metrics/job"


class ConfigError(MetricsError):
    """Invalid or unreadable configuration."""


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in ("true", "yes", "1", "on")


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    return value if value else None


def _env_number(name: str, default: Any, cast: type) -> Any:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e


# =============================================================================
# Redis Configuration
# =============================================================================


@dataclass
class RedisConfig:
    """Connection settings for the Redis storage adapter.

    Attributes:
        host: Redis host.
        port: Redis port.
        connect_timeout: Seconds to wait for a connection.
        read_timeout: Seconds to wait for a reply.
        password: Optional password.
        database: Optional logical database index.
        persistent_connections: Reuse one pooled client across operations.
        prefix: Key prefix namespacing this application's metrics.
    """

    host: str = "127.0.0.1"
    port: int = 6379
    connect_timeout: float = 0.1
    read_timeout: float = 10.0
    password: str | None = None
    database: int | None = None
    persistent_connections: bool = False
    prefix: str = DEFAULT_PREFIX

    def __post_init__(self) -> None:
        self.port = int(self.port)
        if not 0 < self.port < 65536:
            raise ConfigError(f"Redis port out of range: {self.port}")
        if self.connect_timeout < 0 or self.read_timeout < 0:
            raise ConfigError("Redis timeouts must not be negative")
        if self.database is not None:
            self.database = int(self.database)
        if not self.prefix:
            raise ConfigError("Redis key prefix must not be empty")

    @classmethod
    def from_environment(cls) -> "RedisConfig":
        """Load from environment variables."""
        return cls(
            host=os.getenv("REDIS_HOST") or "127.0.0.1",
            port=_env_number("REDIS_PORT", 6379, int),
            connect_timeout=_env_number("REDIS_CONNECT_TIMEOUT", 0.1, float),
            read_timeout=_env_number("REDIS_READ_TIMEOUT", 10.0, float),
            password=_env_optional("REDIS_PASSWORD"),
            database=_env_number("REDIS_DATABASE", None, int),
            persistent_connections=_env_bool("REDIS_PERSISTENT", False),
            prefix=os.getenv("METRICS_REDIS_PREFIX") or DEFAULT_PREFIX,
        )


# =============================================================================
# Metrics Configuration
# =============================================================================


@dataclass
class MetricsConfig:
    """Application-level metrics configuration.

    Example:
        >>> config = MetricsConfig(
        ...     app_name="billing",
        ...     redis=RedisConfig(host="redis"),
        ...     push_gateway_url="http://pushgateway:9091/metrics/job",
        ... )
        >>> config.redis.prefix
        'billing_METRICS'
    """

    app_name: str = ""
    redis: RedisConfig = field(default_factory=RedisConfig)

    # Push gateway
    push_gateway_url: str = DEFAULT_PUSH_GATEWAY_URL
    push_job: str = "active_push_metrics"
    push_connect_timeout: float = 10.0
    push_read_timeout: float = 20.0

    # Pull endpoint
    http_host: str = "0.0.0.0"
    http_port: int = 9090
    http_path: str = "/metrics"

    # Default label injected by the facade
    app_label: str = "app_name"

    def __post_init__(self) -> None:
        if isinstance(self.redis, dict):
            self.redis = RedisConfig(**self.redis)
        if self.app_name and self.redis.prefix == DEFAULT_PREFIX:
            self.redis = replace(self.redis, prefix=f"{self.app_name}_METRICS")
        if not self.http_path.startswith("/"):
            raise ConfigError(f"HTTP path must start with '/': {self.http_path}")

    @classmethod
    def from_environment(cls) -> "MetricsConfig":
        """Load from environment variables."""
        return cls(
            app_name=os.getenv("METRICS_APP_NAME", ""),
            redis=RedisConfig.from_environment(),
            push_gateway_url=os.getenv("METRICS_PUSH_GATEWAY_URL") or DEFAULT_PUSH_GATEWAY_URL,
            push_job=os.getenv("METRICS_PUSH_JOB") or "active_push_metrics",
            http_host=os.getenv("METRICS_HOST") or "0.0.0.0",
            http_port=_env_number("METRICS_PORT", 9090, int),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetricsConfig":
        """Build from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")
        redis_data = data.get("redis") or {}
        if not isinstance(redis_data, dict):
            raise ConfigError("'redis' must be a mapping")
        redis_known = {f.name for f in fields(RedisConfig)}
        redis_unknown = set(redis_data) - redis_known
        if redis_unknown:
            raise ConfigError(f"Unknown redis configuration keys: {sorted(redis_unknown)}")
        values = dict(data)
        values["redis"] = RedisConfig(**redis_data)
        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path) -> "MetricsConfig":
        """Load from a YAML or JSON file.

        Args:
            path: Path to a ``.yaml``, ``.yml`` or ``.json`` file.

        Raises:
            ConfigError: If the file is missing, malformed or unsupported.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        content = path.read_text(encoding="utf-8")
        suffix = path.suffix.lower()
        try:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif suffix == ".json":
                data = json.loads(content)
            else:
                raise ConfigError(f"Unsupported file format: {suffix}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to parse {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")
        return cls.from_dict(data)

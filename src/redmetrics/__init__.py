"""redmetrics - Prometheus counters and gauges shared across processes.

Many independent processes record counters and gauges into one Redis
store through atomic server-side scripts; any process can then collect a
deterministic snapshot and expose it for scraping or push it to a
Prometheus Pushgateway.

Architecture:
    CollectorRegistry
        │
        ├── Counter / Gauge (descriptors, no local values)
        │       │
        │       └── StorageAdapter (Redis, Memory)
        │
        └── collect() ──> render() ──> MetricsServer / PushGateway

Usage:
    >>> from redmetrics import (
    ...     CollectorRegistry, RedisStorage, RedisConfig,
    ...     PushGateway, render,
    ... )
    >>>
    >>> registry = CollectorRegistry(RedisStorage(RedisConfig(host="redis")))
    >>> requests = registry.get_or_register_counter(
    ...     "", "requests_total", "Handled requests", ["method"],
    ... )
    >>> requests.inc(label_values=["GET"])
    >>>
    >>> print(render(registry.collect()))
    >>> PushGateway("http://pushgateway:9091/metrics/job").push(registry, "worker")
"""

import logging

from redmetrics.config import ConfigError, MetricsConfig, RedisConfig
from redmetrics.core import (
    AlreadyRegistered,
    CorruptMetadata,
    InvalidCommand,
    LabelCardinalityMismatch,
    LabelSchemaMismatch,
    MetricFamilySamples,
    MetricNotFound,
    MetricsError,
    MetricType,
    MetricUpdate,
    PushGatewayError,
    RegistryError,
    Sample,
    StorageAdapter,
    StorageError,
    StorageUnavailable,
    UpdateCommand,
)
from redmetrics.exposition import CONTENT_TYPE_LATEST, generate_latest, render
from redmetrics.facade import Metrics, configure_metrics, get_metrics, reset_metrics
from redmetrics.metrics import Counter, Gauge, LabeledCounter, LabeledGauge
from redmetrics.push import PushGateway
from redmetrics.registry import CollectorRegistry
from redmetrics.server import MetricsServer
from redmetrics.storage import MemoryStorage, RedisStorage, create_storage

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Core types
    "MetricType",
    "UpdateCommand",
    "MetricUpdate",
    "Sample",
    "MetricFamilySamples",
    "StorageAdapter",
    # Exceptions
    "MetricsError",
    "StorageError",
    "StorageUnavailable",
    "CorruptMetadata",
    "InvalidCommand",
    "RegistryError",
    "AlreadyRegistered",
    "MetricNotFound",
    "LabelSchemaMismatch",
    "LabelCardinalityMismatch",
    "PushGatewayError",
    "ConfigError",
    # Configuration
    "RedisConfig",
    "MetricsConfig",
    # Storage
    "RedisStorage",
    "MemoryStorage",
    "create_storage",
    # Metrics
    "Counter",
    "Gauge",
    "LabeledCounter",
    "LabeledGauge",
    "CollectorRegistry",
    # Exposition and transport
    "CONTENT_TYPE_LATEST",
    "render",
    "generate_latest",
    "PushGateway",
    "MetricsServer",
    # Facade
    "Metrics",
    "configure_metrics",
    "get_metrics",
    "reset_metrics",
]

"""Collector registry.

The registry is a per-process, write-side cache of metric descriptors in
front of a storage adapter. Reads are not filtered by what was registered
locally: ``collect`` returns everything live in shared storage, including
series written only by other processes.
"""

from __future__ import annotations

import logging
import threading
from typing import Sequence, TypeVar

from redmetrics.core import (
    AlreadyRegistered,
    LabelSchemaMismatch,
    MetricFamilySamples,
    MetricNotFound,
    StorageAdapter,
)
from redmetrics.metrics import Counter, Gauge, Metric

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Metric)


def metric_identifier(namespace: str, name: str) -> str:
    return f"{namespace}:{name}"


class CollectorRegistry:
    """Registry of counters and gauges backed by one storage adapter.

    Ensures unique metric identities and provides collection. Registration
    is local bookkeeping only and performs no storage I/O.

    Example:
        >>> registry = CollectorRegistry(RedisStorage(RedisConfig(host="redis")))
        >>> jobs = registry.get_or_register_counter(
        ...     "worker", "jobs_total", "Handled jobs", ["queue"],
        ... )
        >>> jobs.inc(label_values=["default"])
        >>> families = registry.collect()
    """

    def __init__(self, storage: StorageAdapter) -> None:
        """Initialize registry.

        Args:
            storage: Adapter shared by every metric of this registry.
        """
        self._storage = storage
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        self._lock = threading.Lock()

    @property
    def storage(self) -> StorageAdapter:
        """Get the storage adapter."""
        return self._storage

    def collect(self) -> list[MetricFamilySamples]:
        """Collect every family live in shared storage."""
        return self._storage.collect()

    # -------------------------------------------------------------------------
    # Gauges
    # -------------------------------------------------------------------------

    def register_gauge(
        self,
        namespace: str,
        name: str,
        help: str,
        label_names: Sequence[str] = (),
    ) -> Gauge:
        """Register a new gauge.

        Args:
            namespace: e.g. ``"cms"``.
            name: e.g. ``"duration_seconds"``.
            help: e.g. ``"The duration something took in seconds."``.
            label_names: e.g. ``["controller", "action"]``.

        Raises:
            AlreadyRegistered: If the identity is already registered.
        """
        return self._register(self._gauges, Gauge, namespace, name, help, label_names)

    def get_gauge(self, namespace: str, name: str) -> Gauge:
        """Get a registered gauge.

        Raises:
            MetricNotFound: If no gauge has this identity.
        """
        return self._get(self._gauges, namespace, name)

    def get_or_register_gauge(
        self,
        namespace: str,
        name: str,
        help: str,
        label_names: Sequence[str] = (),
    ) -> Gauge:
        """Get a gauge, registering it on first use.

        Raises:
            LabelSchemaMismatch: If the gauge exists with other label names.
        """
        return self._get_or_register(
            self._gauges, Gauge, namespace, name, help, label_names
        )

    # -------------------------------------------------------------------------
    # Counters
    # -------------------------------------------------------------------------

    def register_counter(
        self,
        namespace: str,
        name: str,
        help: str,
        label_names: Sequence[str] = (),
    ) -> Counter:
        """Register a new counter.

        Args:
            namespace: e.g. ``"cms"``.
            name: e.g. ``"requests"``.
            help: e.g. ``"The number of requests made."``.
            label_names: e.g. ``["controller", "action"]``.

        Raises:
            AlreadyRegistered: If the identity is already registered.
        """
        return self._register(self._counters, Counter, namespace, name, help, label_names)

    def get_counter(self, namespace: str, name: str) -> Counter:
        """Get a registered counter.

        Raises:
            MetricNotFound: If no counter has this identity.
        """
        return self._get(self._counters, namespace, name)

    def get_or_register_counter(
        self,
        namespace: str,
        name: str,
        help: str,
        label_names: Sequence[str] = (),
    ) -> Counter:
        """Get a counter, registering it on first use.

        Raises:
            LabelSchemaMismatch: If the counter exists with other label names.
        """
        return self._get_or_register(
            self._counters, Counter, namespace, name, help, label_names
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _add(self, metrics: dict[str, M], identifier: str, metric: M) -> M:
        # Caller holds the lock. Identities are unique across both types.
        if identifier in self._counters or identifier in self._gauges:
            raise AlreadyRegistered(f"Metric already registered: {identifier}")
        metrics[identifier] = metric
        logger.debug("Registered %r", metric)
        return metric

    def _register(
        self,
        metrics: dict[str, M],
        metric_class: type[M],
        namespace: str,
        name: str,
        help: str,
        label_names: Sequence[str],
    ) -> M:
        identifier = metric_identifier(namespace, name)
        metric = metric_class(self._storage, namespace, name, help, label_names)
        with self._lock:
            return self._add(metrics, identifier, metric)

    def _get(self, metrics: dict[str, M], namespace: str, name: str) -> M:
        identifier = metric_identifier(namespace, name)
        with self._lock:
            metric = metrics.get(identifier)
        if metric is None:
            raise MetricNotFound(f"Metric not found: {identifier}")
        return metric

    def _get_or_register(
        self,
        metrics: dict[str, M],
        metric_class: type[M],
        namespace: str,
        name: str,
        help: str,
        label_names: Sequence[str],
    ) -> M:
        identifier = metric_identifier(namespace, name)
        with self._lock:
            metric = metrics.get(identifier)
            if metric is None:
                metric = self._add(
                    metrics,
                    identifier,
                    metric_class(self._storage, namespace, name, help, label_names),
                )

        if metric.label_names != tuple(label_names):
            raise LabelSchemaMismatch(
                f"Metric {metric.name} registered with labels "
                f"{list(metric.label_names)}, requested {list(label_names)}"
            )
        return metric

"""Application-level convenience API.

``Metrics`` wraps a registry with friendly calls that tag every series
with the application name, plus helpers for common HTTP-server metrics.

Usage:
    >>> from redmetrics import configure_metrics, get_metrics, MetricsConfig
    >>>
    >>> configure_metrics(MetricsConfig(app_name="billing"))
    >>> metrics = get_metrics()
    >>> metrics.counter("handle_jobs_total", {"script": "/one_time"})
    >>> metrics.gauge("cpu_usage_rate", {"ip": "127.0.0.1"}, 0.67)
    >>> metrics.push()
    >>>
    >>> reset_metrics()
"""

from __future__ import annotations

import threading
from typing import Mapping

from redmetrics.config import MetricsConfig
from redmetrics.core import MetricsError, Number
from redmetrics.exposition import generate_latest
from redmetrics.push import PushGateway
from redmetrics.registry import CollectorRegistry
from redmetrics.storage import RedisStorage

METRICS_NAMESPACE = ""


class Metrics:
    """Friendly metric calls bound to one application.

    Example:
        >>> metrics = Metrics(registry, app_name="billing")
        >>> metrics.counter("invoices_total", {"status": "paid"})
        >>> metrics.gauge_inc("queue_depth", {"queue": "default"})
        >>> print(metrics.export())
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        *,
        app_name: str,
        app_label: str = "app_name",
        gateway: PushGateway | None = None,
        push_job: str = "active_push_metrics",
    ) -> None:
        """Initialize facade.

        Args:
            registry: Registry receiving every metric.
            app_name: Value of the application label on every series.
            app_label: Name of the application label.
            gateway: Push gateway used by ``push``.
            push_job: Job name used by ``push``.
        """
        if not app_name:
            raise ValueError("Unknown application name")
        self._registry = registry
        self._app_name = app_name
        self._app_label = app_label
        self._gateway = gateway or PushGateway()
        self._push_job = push_job
        self._inprogress: dict[tuple[str, str], tuple[str, ...]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: MetricsConfig) -> "Metrics":
        """Build a facade with Redis storage from configuration."""
        registry = CollectorRegistry(RedisStorage(config.redis))
        gateway = PushGateway(
            config.push_gateway_url,
            connect_timeout=config.push_connect_timeout,
            read_timeout=config.push_read_timeout,
        )
        return cls(
            registry,
            app_name=config.app_name,
            app_label=config.app_label,
            gateway=gateway,
            push_job=config.push_job,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    @property
    def app_name(self) -> str:
        return self._app_name

    def _with_app_label(self, labels: Mapping[str, object] | None) -> dict[str, object]:
        merged = dict(labels or {})
        merged[self._app_label] = self._app_name
        return merged

    def counter(
        self,
        name: str,
        labels: Mapping[str, object] | None = None,
        count: Number = 1,
        help: str = "",
    ) -> None:
        """Increment a counter, e.g. ``counter("http_requests_total", {"path": "/"})``."""
        labels = self._with_app_label(labels)
        counter = self._registry.get_or_register_counter(
            METRICS_NAMESPACE, name, help, list(labels)
        )
        counter.inc(count, list(labels.values()))

    def gauge(
        self,
        name: str,
        labels: Mapping[str, object] | None = None,
        value: Number = 1,
        help: str = "",
    ) -> None:
        """Set a gauge."""
        labels = self._with_app_label(labels)
        gauge = self._registry.get_or_register_gauge(
            METRICS_NAMESPACE, name, help, list(labels)
        )
        gauge.set(value, list(labels.values()))

    def gauge_inc(
        self,
        name: str,
        labels: Mapping[str, object] | None = None,
        value: Number = 1,
        help: str = "",
    ) -> None:
        """Increment a gauge."""
        labels = self._with_app_label(labels)
        gauge = self._registry.get_or_register_gauge(
            METRICS_NAMESPACE, name, help, list(labels)
        )
        gauge.inc(value, list(labels.values()))

    def gauge_dec(
        self,
        name: str,
        labels: Mapping[str, object] | None = None,
        value: Number = 1,
        help: str = "",
    ) -> None:
        """Decrement a gauge."""
        labels = self._with_app_label(labels)
        gauge = self._registry.get_or_register_gauge(
            METRICS_NAMESPACE, name, help, list(labels)
        )
        gauge.dec(value, list(labels.values()))

    def export(self) -> str:
        """Render every stored metric for a scrape endpoint."""
        return generate_latest(self._registry)

    def push(self) -> None:
        """Push-add every metric under this application's instance."""
        self._gateway.push_add(
            self._registry, self._push_job, {"instance": self._app_name}
        )

    def flush(self) -> None:
        """Delete every stored metric."""
        self._registry.storage.flush()

    # -------------------------------------------------------------------------
    # HTTP server helpers
    # -------------------------------------------------------------------------

    def http_requests_total(
        self,
        path: str,
        method: str,
        status: str = "success",
        ext_labels: Mapping[str, object] | None = None,
    ) -> None:
        """Count one handled HTTP request. Call after the response is sent."""
        names = [self._app_label, "path", "method", "status"]
        values: list[object] = [self._app_name, path, method, status]
        if ext_labels:
            names.extend(ext_labels)
            values.extend(ext_labels.values())
        counter = self._registry.get_or_register_counter(
            METRICS_NAMESPACE, "http_requests_total", "http_requests_total", names
        )
        counter.inc(1, values)

    def http_inprogress_requests(self, path: str, method: str, state: bool = True) -> None:
        """Track in-flight requests: ``state=True`` on start, ``False`` on finish.

        Repeated starts (or finishes) for the same path and method within
        this process are counted once.
        """
        names = [self._app_label, "path", "method"]
        values = (self._app_name, path, method)
        gauge = self._registry.get_or_register_gauge(
            METRICS_NAMESPACE,
            "http_inprogress_requests",
            "http_inprogress_requests",
            names,
        )
        key = (method, path)
        with self._lock:
            if state:
                if key in self._inprogress:
                    return
                self._inprogress[key] = values
            else:
                if self._inprogress.pop(key, None) is None:
                    return

        if state:
            gauge.inc(1, values)
        else:
            gauge.dec(1, values)


# =============================================================================
# Default Handle
# =============================================================================

_default: Metrics | None = None
_lock = threading.Lock()


def configure_metrics(config: MetricsConfig | Metrics) -> Metrics:
    """Install the process-wide default facade.

    Args:
        config: Configuration to build from, or a ready facade.

    Returns:
        The installed facade.

    Raises:
        MetricsError: If a default facade is already configured.
    """
    global _default

    with _lock:
        if _default is not None:
            raise MetricsError("Metrics already configured; call reset_metrics() first")
        if isinstance(config, Metrics):
            _default = config
        else:
            _default = Metrics.from_config(config)
        return _default


def get_metrics() -> Metrics:
    """Get the default facade.

    Raises:
        MetricsError: If ``configure_metrics`` has not been called.
    """
    with _lock:
        if _default is None:
            raise MetricsError("Metrics not configured; call configure_metrics() first")
        return _default


def reset_metrics() -> None:
    """Tear down the default facade."""
    global _default

    with _lock:
        _default = None

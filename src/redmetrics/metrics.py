"""Counter and gauge metric descriptors.

Metric Types:
    - Counter: Monotonically increasing value (e.g., request count)
    - Gauge: Point-in-time value (e.g., in-flight requests)

A descriptor holds only its identity and label schema. Every operation is
translated into exactly one storage update; the stored value is the only
source of truth, so many processes can share the same series.
"""

from __future__ import annotations

import math
import re
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Sequence

from redmetrics.core import (
    LabelCardinalityMismatch,
    MetricType,
    MetricUpdate,
    Number,
    StorageAdapter,
    UpdateCommand,
)

METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def full_name(namespace: str, name: str) -> str:
    """Exposed metric name for a (namespace, name) identity."""
    return f"{namespace}_{name}" if namespace else name


# =============================================================================
# Metric Base Class
# =============================================================================


class Metric(ABC):
    """Abstract base class for storage-backed metrics."""

    def __init__(
        self,
        storage: StorageAdapter,
        namespace: str,
        name: str,
        help: str = "",
        label_names: Sequence[str] = (),
    ) -> None:
        """Initialize metric.

        Args:
            storage: Adapter receiving the updates.
            namespace: Metric namespace, prefixed to the name when set.
            name: Metric name (lowercase with underscores).
            help: Human-readable description.
            label_names: Ordered label names of this metric.

        Raises:
            ValueError: If the metric or a label name is invalid.
        """
        self._storage = storage
        self._namespace = namespace
        self._name = full_name(namespace, name)
        self._help = help
        self._label_names = tuple(label_names)

        if not METRIC_NAME_RE.match(self._name):
            raise ValueError(f"Invalid metric name: '{self._name}'")
        for label in self._label_names:
            if not LABEL_NAME_RE.match(label) or label.startswith("__"):
                raise ValueError(f"Invalid label name '{label}' for '{self._name}'")
        if len(set(self._label_names)) != len(self._label_names):
            raise ValueError(f"Duplicate label names for '{self._name}'")

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def name(self) -> str:
        """Get exposed metric name."""
        return self._name

    @property
    def help(self) -> str:
        return self._help

    @property
    def label_names(self) -> tuple[str, ...]:
        return self._label_names

    @property
    @abstractmethod
    def type(self) -> MetricType:
        """Get metric type."""
        pass

    def _validate_labels(self, label_values: Sequence[object]) -> tuple[str, ...]:
        """Check arity and convert label values to strings."""
        if isinstance(label_values, str):
            label_values = (label_values,)
        if len(label_values) != len(self._label_names):
            raise LabelCardinalityMismatch(
                self._name, len(self._label_names), len(label_values)
            )
        return tuple(str(v) for v in label_values)

    def _resolve_labels(
        self,
        values: Sequence[object],
        named: dict[str, object],
    ) -> tuple[str, ...]:
        if values and named:
            raise ValueError("Use either positional or keyword label values, not both")
        if named:
            if set(named) != set(self._label_names):
                raise LabelCardinalityMismatch(
                    self._name, len(self._label_names), len(named)
                )
            values = [named[label] for label in self._label_names]
        return self._validate_labels(values)

    def _apply(
        self,
        command: UpdateCommand,
        value: Number,
        label_values: Sequence[object],
    ) -> None:
        labels = self._validate_labels(label_values)
        self._storage.update(
            MetricUpdate(
                type=self.type,
                name=self._name,
                help=self._help,
                label_names=self._label_names,
                label_values=labels,
                command=command,
                value=value,
            )
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r}, labels={list(self._label_names)})"


# =============================================================================
# Counter
# =============================================================================


class Counter(Metric):
    """Monotonically increasing counter.

    Use for: request counts, errors, completed jobs.

    Example:
        >>> requests = registry.register_counter("app", "requests_total", "Requests", ["method"])
        >>> requests.inc(label_values=["GET"])
        >>> requests.inc(5, ["POST"])
        >>> requests.labels("GET").inc()
    """

    @property
    def type(self) -> MetricType:
        return MetricType.COUNTER

    def inc(self, amount: Number = 1, label_values: Sequence[object] = ()) -> None:
        """Increment counter.

        Args:
            amount: Amount to increment (finite, not negative).
            label_values: Values aligned to the label names.
        """
        if not math.isfinite(amount):
            raise ValueError(f"Counter increment must be finite, got {amount}")
        if amount < 0:
            raise ValueError("Counter can only be incremented")
        if isinstance(amount, int) or float(amount).is_integer():
            self._apply(UpdateCommand.INCREMENT_INTEGER, int(amount), label_values)
        else:
            self._apply(UpdateCommand.INCREMENT_FLOAT, amount, label_values)

    def labels(self, *values: object, **named: object) -> "LabeledCounter":
        """Get counter bound to specific label values."""
        return LabeledCounter(self, self._resolve_labels(values, named))


class LabeledCounter:
    """Counter with pre-set labels."""

    def __init__(self, counter: Counter, label_values: tuple[str, ...]) -> None:
        self._counter = counter
        self._label_values = label_values

    def inc(self, amount: Number = 1) -> None:
        """Increment counter."""
        self._counter.inc(amount, self._label_values)


# =============================================================================
# Gauge
# =============================================================================


class Gauge(Metric):
    """Point-in-time value that can go up or down.

    Use for: queue size, in-flight requests, CPU usage.

    Example:
        >>> cpu = registry.register_gauge("", "cpu_usage", "CPU usage", ["host"])
        >>> cpu.set(0.67, ["h1"])
        >>> cpu.inc(0.1, ["h1"])
        >>> cpu.dec(0.1, ["h1"])
    """

    @property
    def type(self) -> MetricType:
        return MetricType.GAUGE

    def set(self, value: Number, label_values: Sequence[object] = ()) -> None:
        """Set gauge value.

        Args:
            value: New value.
            label_values: Values aligned to the label names.
        """
        self._apply(UpdateCommand.SET, value, label_values)

    def inc(self, amount: Number = 1, label_values: Sequence[object] = ()) -> None:
        """Increment gauge.

        Args:
            amount: Amount to increment.
            label_values: Values aligned to the label names.
        """
        self._apply(UpdateCommand.INCREMENT_FLOAT, amount, label_values)

    def dec(self, amount: Number = 1, label_values: Sequence[object] = ()) -> None:
        """Decrement gauge.

        Args:
            amount: Amount to decrement.
            label_values: Values aligned to the label names.
        """
        self.inc(-amount, label_values)

    def labels(self, *values: object, **named: object) -> "LabeledGauge":
        """Get gauge bound to specific label values."""
        return LabeledGauge(self, self._resolve_labels(values, named))

    @contextmanager
    def track_inprogress(self, label_values: Sequence[object] = ()) -> Iterator[None]:
        """Track in-progress operations.

        Increments on entry, decrements on exit.
        """
        self.inc(1, label_values)
        try:
            yield
        finally:
            self.dec(1, label_values)

    def set_to_current_time(self, label_values: Sequence[object] = ()) -> None:
        """Set gauge to current Unix timestamp."""
        self.set(time.time(), label_values)


class LabeledGauge:
    """Gauge with pre-set labels."""

    def __init__(self, gauge: Gauge, label_values: tuple[str, ...]) -> None:
        self._gauge = gauge
        self._label_values = label_values

    def set(self, value: Number) -> None:
        """Set gauge value."""
        self._gauge.set(value, self._label_values)

    def inc(self, amount: Number = 1) -> None:
        """Increment gauge."""
        self._gauge.inc(amount, self._label_values)

    def dec(self, amount: Number = 1) -> None:
        """Decrement gauge."""
        self._gauge.dec(amount, self._label_values)

"""Core types, exceptions, and the storage adapter interface.

This module provides the foundational types shared by every other part of
redmetrics: metric kinds, update commands, collected samples, the exception
hierarchy, and the abstract storage adapter.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

Number = Union[int, float]


# =============================================================================
# Enums
# =============================================================================


class MetricType(Enum):
    """Types of metrics."""

    COUNTER = "counter"
    GAUGE = "gauge"


class UpdateCommand(Enum):
    """Field-level operation applied to one series by a storage update."""

    INCREMENT_INTEGER = 1
    INCREMENT_FLOAT = 2
    SET = 3


# =============================================================================
# Update and Sample Types
# =============================================================================


def serialize_label_values(label_values: tuple[str, ...] | list[str]) -> str:
    """Canonical series key: a compact JSON array of the label values."""
    return json.dumps(list(label_values), separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class MetricUpdate:
    """A single atomic update request for one series.

    Attributes:
        type: Metric kind owning the series.
        name: Exposed metric name (namespace already applied).
        help: Help text written with the metadata on first write.
        label_names: Ordered label-name schema of the metric.
        label_values: Label values aligned to ``label_names``.
        command: Field operation to apply.
        value: Operand of the command.
    """

    type: MetricType
    name: str
    help: str
    label_names: tuple[str, ...]
    label_values: tuple[str, ...]
    command: UpdateCommand
    value: Number

    @property
    def series_key(self) -> str:
        return serialize_label_values(self.label_values)

    def metadata(self) -> dict[str, Any]:
        """Metadata stored alongside the series values."""
        return {
            "name": self.name,
            "help": self.help,
            "type": self.type.value,
            "labelNames": list(self.label_names),
        }


@dataclass(frozen=True)
class Sample:
    """One collected time series point."""

    name: str
    label_names: tuple[str, ...]
    label_values: tuple[str, ...]
    value: Number

    @property
    def labels(self) -> dict[str, str]:
        return dict(zip(self.label_names, self.label_values))


@dataclass
class MetricFamilySamples:
    """All series of one metric at collection time.

    Samples are expected in collection order (see ``sort_samples``).
    """

    name: str
    type: MetricType
    help: str
    label_names: tuple[str, ...] = ()
    samples: list[Sample] = field(default_factory=list)


def sort_samples(samples: list[Sample]) -> list[Sample]:
    """Order samples by their concatenated label values.

    Ties (e.g. ``("a", "bc")`` against ``("ab", "c")``) fall back to the
    serialized tuple so the order never depends on storage iteration order.
    """
    return sorted(
        samples,
        key=lambda s: ("".join(s.label_values), serialize_label_values(s.label_values)),
    )


def parse_number(raw: str | bytes) -> Number:
    """Decode a stored numeric value, keeping integers as ``int``."""
    text = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
    try:
        return int(text)
    except ValueError:
        return float(text)


# =============================================================================
# Exceptions
# =============================================================================


class MetricsError(Exception):
    """Base exception for redmetrics errors."""


class StorageError(MetricsError):
    """Shared storage rejected or failed an operation."""


class StorageUnavailable(StorageError):
    """Shared storage could not be reached or authenticated."""


class CorruptMetadata(StorageError):
    """A stored metric carries missing or undecodable metadata."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupt metadata in '{key}': {reason}")
        self.key = key


class InvalidCommand(MetricsError, ValueError):
    """Unrecognized update command."""


class RegistryError(MetricsError):
    """Base exception for registry misuse."""


class AlreadyRegistered(RegistryError):
    """Metric identity already registered in this registry."""


class MetricNotFound(RegistryError):
    """Metric identity not registered in this registry."""


class LabelSchemaMismatch(RegistryError):
    """A lookup asked for an existing metric with a different label schema."""


class LabelCardinalityMismatch(MetricsError, ValueError):
    """Wrong number of label values for a metric's label schema."""

    def __init__(self, name: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Label mismatch for '{name}': expected {expected} values, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class PushGatewayError(MetricsError):
    """Push gateway answered with an unexpected status or was unreachable.

    ``status`` is ``None`` when no response was received.
    """

    def __init__(
        self,
        verb: str,
        url: str,
        status: int | None,
        message: str = "",
    ) -> None:
        detail = message or (
            f"unexpected status code {status}" if status is not None else "no response"
        )
        super().__init__(f"{verb} {url} failed: {detail}")
        self.verb = verb
        self.url = url
        self.status = status


# =============================================================================
# Abstract Interfaces
# =============================================================================


class StorageAdapter(ABC):
    """Abstract base class for shared metric storage.

    Implementations must apply every update atomically with respect to
    concurrent writers, including writers in other processes.
    """

    @abstractmethod
    def update(self, update: MetricUpdate) -> None:
        """Apply one counter or gauge update.

        Args:
            update: The update to apply.

        Raises:
            StorageUnavailable: If the store cannot be reached.
            InvalidCommand: If the update command is not recognized.
        """
        pass

    @abstractmethod
    def collect(self) -> list[MetricFamilySamples]:
        """Collect every stored metric family.

        Returns:
            Gauge families followed by counter families, each group ordered
            by storage key, samples ordered by ``sort_samples``.
        """
        pass

    @abstractmethod
    def flush(self) -> None:
        """Remove every stored series."""
        pass

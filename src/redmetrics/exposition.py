"""Prometheus text exposition format.

Example output:
    # HELP http_requests_total Total HTTP requests
    # TYPE http_requests_total counter
    http_requests_total{method="GET",status="200"} 1234

Rendering is pure and keeps the input order: families and samples arrive
already sorted from storage.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Iterable

from redmetrics.core import MetricFamilySamples, Number, Sample

if TYPE_CHECKING:
    from redmetrics.registry import CollectorRegistry

CONTENT_TYPE_LATEST = "text/plain; version=0.0.4; charset=utf-8"


def escape_label_value(value: str) -> str:
    """Escape backslash, double quote and newline in a label value."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def escape_help(text: str) -> str:
    """Escape backslash and newline in help text."""
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def format_value(value: Number) -> str:
    """Format a sample value.

    Integral values never use an exponent; other floats use the shortest
    decimal that round-trips.
    """
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def format_labels(sample: Sample) -> str:
    if not sample.label_names:
        return ""
    parts = [
        f'{name}="{escape_label_value(value)}"'
        for name, value in zip(sample.label_names, sample.label_values)
    ]
    return "{" + ",".join(parts) + "}"


def render(families: Iterable[MetricFamilySamples]) -> str:
    """Render metric families in the text exposition format.

    Args:
        families: Families in the order they should appear.

    Returns:
        Exposition text ending with a newline, or ``""`` for no families.
    """
    lines = []
    for family in families:
        lines.append(f"# HELP {family.name} {escape_help(family.help)}")
        lines.append(f"# TYPE {family.name} {family.type.value}")
        for sample in family.samples:
            lines.append(f"{sample.name}{format_labels(sample)} {format_value(sample.value)}")

    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def generate_latest(registry: "CollectorRegistry") -> str:
    """Collect a registry and render it."""
    return render(registry.collect())

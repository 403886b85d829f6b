"""Tests for core types and the exception hierarchy."""

import pytest

from redmetrics.core import (
    AlreadyRegistered,
    CorruptMetadata,
    InvalidCommand,
    LabelCardinalityMismatch,
    LabelSchemaMismatch,
    MetricNotFound,
    MetricsError,
    MetricType,
    MetricUpdate,
    PushGatewayError,
    RegistryError,
    Sample,
    StorageError,
    StorageUnavailable,
    UpdateCommand,
    parse_number,
    serialize_label_values,
    sort_samples,
)


class TestSerializeLabelValues:
    """Tests for the canonical series key."""

    def test_compact_json_array(self):
        assert serialize_label_values(("GET", "200")) == '["GET","200"]'

    def test_empty(self):
        assert serialize_label_values(()) == "[]"

    def test_escapes_quotes(self):
        """Test values with quotes stay decodable."""
        assert serialize_label_values(['say "hi"']) == '["say \\"hi\\""]'

    def test_keeps_unicode(self):
        assert serialize_label_values(["café"]) == '["café"]'


class TestMetricUpdate:
    """Tests for MetricUpdate."""

    def test_metadata(self):
        update = MetricUpdate(
            type=MetricType.COUNTER,
            name="requests_total",
            help="Requests",
            label_names=("method",),
            label_values=("GET",),
            command=UpdateCommand.INCREMENT_INTEGER,
            value=1,
        )

        assert update.series_key == '["GET"]'
        assert update.metadata() == {
            "name": "requests_total",
            "help": "Requests",
            "type": "counter",
            "labelNames": ["method"],
        }

    def test_command_values(self):
        assert UpdateCommand.INCREMENT_INTEGER.value == 1
        assert UpdateCommand.INCREMENT_FLOAT.value == 2
        assert UpdateCommand.SET.value == 3


class TestSortSamples:
    """Tests for sample ordering."""

    def _sample(self, *values):
        return Sample("m", ("a", "b")[: len(values)], tuple(values), 1)

    def test_sorted_by_concatenated_values(self):
        samples = [self._sample("b", "x"), self._sample("a", "z"), self._sample("a", "y")]

        ordered = sort_samples(samples)

        assert [s.label_values for s in ordered] == [("a", "y"), ("a", "z"), ("b", "x")]

    def test_ties_are_deterministic(self):
        """Test equal concatenations order the same regardless of input order."""
        first = self._sample("a", "bc")
        second = self._sample("ab", "c")

        assert sort_samples([first, second]) == sort_samples([second, first])

    def test_sample_labels(self):
        sample = Sample("m", ("a", "b"), ("1", "2"), 3)
        assert sample.labels == {"a": "1", "b": "2"}


class TestParseNumber:
    """Tests for stored value decoding."""

    def test_integer(self):
        value = parse_number("42")
        assert value == 42
        assert isinstance(value, int)

    def test_float(self):
        assert parse_number("0.67") == 0.67

    def test_bytes(self):
        assert parse_number(b"-3") == -3

    def test_exponent(self):
        assert parse_number("1e3") == 1000.0


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_storage_errors(self):
        assert issubclass(StorageUnavailable, StorageError)
        assert issubclass(CorruptMetadata, StorageError)
        assert issubclass(StorageError, MetricsError)

    def test_registry_errors(self):
        for exc in (AlreadyRegistered, MetricNotFound, LabelSchemaMismatch):
            assert issubclass(exc, RegistryError)
        assert issubclass(RegistryError, MetricsError)

    def test_value_errors(self):
        assert issubclass(InvalidCommand, ValueError)
        assert issubclass(LabelCardinalityMismatch, ValueError)

    def test_cardinality_details(self):
        error = LabelCardinalityMismatch("requests_total", 1, 2)

        assert error.expected == 1
        assert error.actual == 2
        assert "requests_total" in str(error)

    def test_corrupt_metadata_key(self):
        error = CorruptMetadata("PROMETHEUS_:gauge:x", "metadata field missing")
        assert error.key == "PROMETHEUS_:gauge:x"
        assert "metadata field missing" in str(error)

    def test_push_gateway_error(self):
        error = PushGatewayError("PUT", "http://gw/metrics/job/x", 500)

        assert error.status == 500
        assert error.verb == "PUT"
        assert "unexpected status code 500" in str(error)

    def test_push_gateway_error_without_response(self):
        error = PushGatewayError("DELETE", "http://gw/metrics/job/x", None, "refused")

        assert error.status is None
        assert "refused" in str(error)

    def test_all_catchable_as_metrics_error(self):
        with pytest.raises(MetricsError):
            raise PushGatewayError("POST", "http://gw", 400)

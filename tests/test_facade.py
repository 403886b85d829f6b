"""Tests for the application facade and default handle."""

from unittest.mock import MagicMock

import pytest

from redmetrics import (
    Metrics,
    MetricsConfig,
    MetricsError,
    PushGateway,
    RedisStorage,
    configure_metrics,
    get_metrics,
    reset_metrics,
)


@pytest.fixture
def gateway():
    return MagicMock(spec=PushGateway)


@pytest.fixture
def metrics(registry, gateway):
    return Metrics(registry, app_name="billing", gateway=gateway)


def samples(metrics, name):
    for family in metrics.registry.collect():
        if family.name == name:
            return {s.label_values: s.value for s in family.samples}
    return {}


class TestMetrics:
    """Tests for the Metrics facade."""

    def test_requires_app_name(self, registry):
        with pytest.raises(ValueError, match="Unknown application name"):
            Metrics(registry, app_name="")

    def test_counter_adds_app_label(self, metrics):
        metrics.counter("handle_jobs_total", {"script": "/one_time"})
        metrics.counter("handle_jobs_total", {"script": "/one_time"}, 2)

        [family] = metrics.registry.collect()
        assert family.label_names == ("script", "app_name")
        assert samples(metrics, "handle_jobs_total") == {("/one_time", "billing"): 3}

    def test_gauge(self, metrics):
        metrics.gauge("cpu_usage_rate", {"ip": "127.0.0.1"}, 0.67)
        metrics.gauge_inc("queue_depth", {"queue": "default"}, 3)
        metrics.gauge_dec("queue_depth", {"queue": "default"})

        assert samples(metrics, "cpu_usage_rate") == {("127.0.0.1", "billing"): 0.67}
        assert samples(metrics, "queue_depth") == {("default", "billing"): 2}

    def test_custom_app_label(self, registry, gateway):
        metrics = Metrics(registry, app_name="billing", app_label="service", gateway=gateway)
        metrics.counter("jobs_total")

        [family] = registry.collect()
        assert family.label_names == ("service",)

    def test_export(self, metrics):
        metrics.counter("jobs_total", help="Jobs")

        assert metrics.export() == (
            "# HELP jobs_total Jobs\n"
            "# TYPE jobs_total counter\n"
            'jobs_total{app_name="billing"} 1\n'
        )

    def test_push(self, metrics, gateway):
        metrics.push()

        gateway.push_add.assert_called_once_with(
            metrics.registry, "active_push_metrics", {"instance": "billing"}
        )

    def test_flush(self, metrics):
        metrics.counter("jobs_total")
        metrics.flush()

        assert metrics.registry.collect() == []

    def test_http_requests_total(self, metrics):
        metrics.http_requests_total("/orders", "GET")
        metrics.http_requests_total("/orders", "GET")
        metrics.http_requests_total("/orders", "POST", "error")

        assert samples(metrics, "http_requests_total") == {
            ("billing", "/orders", "GET", "success"): 2,
            ("billing", "/orders", "POST", "error"): 1,
        }

    def test_http_requests_total_ext_labels(self, metrics):
        metrics.http_requests_total("/", "GET", ext_labels={"region": "eu"})

        [family] = metrics.registry.collect()
        assert family.label_names == ("app_name", "path", "method", "status", "region")

    def test_http_inprogress_requests(self, metrics):
        metrics.http_inprogress_requests("/orders", "GET")
        metrics.http_inprogress_requests("/orders", "GET")
        assert samples(metrics, "http_inprogress_requests") == {
            ("billing", "/orders", "GET"): 1
        }

        metrics.http_inprogress_requests("/orders", "GET", state=False)
        metrics.http_inprogress_requests("/orders", "GET", state=False)
        assert samples(metrics, "http_inprogress_requests") == {
            ("billing", "/orders", "GET"): 0
        }

    def test_from_config(self):
        config = MetricsConfig(app_name="billing", push_job="nightly")

        metrics = Metrics.from_config(config)

        assert metrics.app_name == "billing"
        assert isinstance(metrics.registry.storage, RedisStorage)
        assert metrics.registry.storage.prefix == "billing_METRICS"


class TestDefaultHandle:
    """Tests for the process-wide default facade."""

    def test_not_configured(self):
        with pytest.raises(MetricsError, match="not configured"):
            get_metrics()

    def test_configure_with_facade(self, metrics):
        assert configure_metrics(metrics) is metrics
        assert get_metrics() is metrics

    def test_configure_from_config(self):
        installed = configure_metrics(MetricsConfig(app_name="billing"))

        assert get_metrics() is installed
        assert installed.app_name == "billing"

    def test_configure_twice(self, metrics):
        configure_metrics(metrics)

        with pytest.raises(MetricsError, match="already configured"):
            configure_metrics(metrics)

    def test_reset(self, metrics):
        configure_metrics(metrics)
        reset_metrics()

        with pytest.raises(MetricsError):
            get_metrics()

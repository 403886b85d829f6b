"""Tests for the command-line interface."""

from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from redmetrics import StorageUnavailable
from redmetrics.cli import app, parse_grouping

runner = CliRunner()


@pytest.fixture
def cli_registry(memory_registry, monkeypatch):
    """Route every command to an in-memory registry."""
    monkeypatch.setattr("redmetrics.cli.build_registry", lambda config: memory_registry)
    counter = memory_registry.get_or_register_counter("", "jobs_total", "Jobs", ["queue"])
    counter.inc(label_values=["default"])
    return memory_registry


def ok(status):
    response = MagicMock()
    response.status_code = status
    return response


class TestShow:
    """Tests for the show command."""

    def test_show(self, cli_registry):
        result = runner.invoke(app, ["show"])

        assert result.exit_code == 0
        assert 'jobs_total{queue="default"} 1' in result.output

    def test_storage_failure(self, monkeypatch):
        registry = MagicMock()
        registry.collect.side_effect = StorageUnavailable("Can't connect to Redis server")
        monkeypatch.setattr("redmetrics.cli.build_registry", lambda config: registry)

        result = runner.invoke(app, ["show"])

        assert result.exit_code == 1
        assert "Can't connect" in result.output

    def test_bad_config_file(self, tmp_path):
        result = runner.invoke(app, ["show", "--config", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 2
        assert "not found" in result.output


class TestFamilies:
    """Tests for the families command."""

    def test_table(self, cli_registry):
        result = runner.invoke(app, ["families"])

        assert result.exit_code == 0
        assert "jobs_total" in result.output
        assert "counter" in result.output

    def test_empty(self, memory_registry, monkeypatch):
        monkeypatch.setattr("redmetrics.cli.build_registry", lambda config: memory_registry)

        result = runner.invoke(app, ["families"])

        assert result.exit_code == 0
        assert "No metrics stored" in result.output


class TestPushCommands:
    """Tests for push gateway commands."""

    def test_push(self, cli_registry):
        with patch("redmetrics.push.requests.request", return_value=ok(200)) as request:
            result = runner.invoke(
                app,
                ["push", "--job", "nightly", "--group", "instance=h1",
                 "--gateway", "http://gw:9091/metrics/job"],
            )

        assert result.exit_code == 0
        assert "Pushed to job nightly" in result.output
        method, url = request.call_args.args
        assert method == "PUT"
        assert url == "http://gw:9091/metrics/job/nightly/instance/h1"

    def test_push_add_default_job(self, cli_registry):
        with patch("redmetrics.push.requests.request", return_value=ok(200)) as request:
            result = runner.invoke(app, ["push-add"])

        assert result.exit_code == 0
        method, url = request.call_args.args
        assert method == "POST"
        assert url.endswith("/active_push_metrics")

    def test_delete(self):
        with patch("redmetrics.push.requests.request", return_value=ok(202)) as request:
            result = runner.invoke(app, ["delete", "--job", "nightly"])

        assert result.exit_code == 0
        assert "Deleted job nightly" in result.output
        assert request.call_args.args[0] == "DELETE"

    def test_gateway_failure(self, cli_registry):
        with patch("redmetrics.push.requests.request", return_value=ok(500)):
            result = runner.invoke(app, ["push"])

        assert result.exit_code == 1
        assert "unexpected status code 500" in result.output

    def test_bad_grouping(self, cli_registry):
        result = runner.invoke(app, ["push", "--group", "novalue"])

        assert result.exit_code != 0


class TestFlush:
    """Tests for the flush command."""

    def test_flush_with_yes(self, cli_registry):
        result = runner.invoke(app, ["flush", "--yes"])

        assert result.exit_code == 0
        assert cli_registry.collect() == []

    def test_flush_confirmed(self, cli_registry):
        result = runner.invoke(app, ["flush"], input="y\n")

        assert result.exit_code == 0
        assert cli_registry.collect() == []

    def test_flush_aborted(self, cli_registry):
        result = runner.invoke(app, ["flush"], input="n\n")

        assert result.exit_code == 1
        assert len(cli_registry.collect()) == 1


class TestParseGrouping:
    """Tests for grouping option parsing."""

    def test_pairs_keep_order(self):
        assert list(parse_grouping(["b=2", "a=1"]).items()) == [("b", "2"), ("a", "1")]

    def test_value_may_contain_equals(self):
        assert parse_grouping(["q=a=b"]) == {"q": "a=b"}

    def test_none(self):
        assert parse_grouping(None) == {}

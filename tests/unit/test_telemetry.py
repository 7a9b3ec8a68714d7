import logging

import pytest

from authorforge.telemetry import SimpleReporter, TelemetryContext, TelemetryReporter

pytestmark = pytest.mark.unit


class _BrokenReporter:
    def record_timing(self, scope, duration, **metadata):
        raise RuntimeError("disk full")

    def record_metric(self, scope, value, **metadata):
        raise RuntimeError("disk full")


def test_disabled_by_default_even_with_reporters():
    reporter = SimpleReporter()
    tele = TelemetryContext(reporter)

    with tele("dispatch") as scope:
        scope.count("tokens", 10)

    assert tele.enabled is False
    assert reporter.timings == {}
    assert reporter.metrics == {}


def test_noop_context_is_shared():
    assert TelemetryContext() is TelemetryContext(SimpleReporter())


@pytest.mark.parametrize("var", ["AUTHORFORGE_TELEMETRY", "DEBUG"])
def test_enabled_by_environment(monkeypatch, var):
    monkeypatch.setenv(var, "1")
    assert TelemetryContext(SimpleReporter()).enabled is True


def test_enabled_requires_reporters(monkeypatch):
    monkeypatch.setenv("AUTHORFORGE_TELEMETRY", "1")
    assert TelemetryContext().enabled is False


def test_nested_scopes_record_paths_and_metadata(monkeypatch):
    monkeypatch.setenv("AUTHORFORGE_TELEMETRY", "1")
    reporter = SimpleReporter()
    tele = TelemetryContext(reporter)

    with tele("batch.run", batches=2):
        with tele("dispatch", provider="remote-cloud") as inner:
            inner.count("tokens", 7)
            inner.count("tokens", 5)

    assert set(reporter.timings) == {"batch.run", "batch.run.dispatch"}
    (_, inner_meta), = reporter.timings["batch.run.dispatch"]
    assert inner_meta["depth"] == 1
    assert inner_meta["parent_scope"] == "batch.run"
    assert inner_meta["provider"] == "remote-cloud"
    (_, outer_meta), = reporter.timings["batch.run"]
    assert outer_meta["parent_scope"] is None
    assert reporter.total("batch.run.dispatch.tokens") == 12
    assert reporter.metrics["batch.run.dispatch.tokens"][0][1]["metric_type"] == "counter"


def test_timing_recorded_when_scope_raises(monkeypatch):
    monkeypatch.setenv("AUTHORFORGE_TELEMETRY", "1")
    reporter = SimpleReporter()
    tele = TelemetryContext(reporter)

    with pytest.raises(KeyError), tele("dispatch"):
        raise KeyError("boom")

    assert len(reporter.timings["dispatch"]) == 1


def test_scope_name_must_be_non_empty(monkeypatch):
    monkeypatch.setenv("AUTHORFORGE_TELEMETRY", "1")
    tele = TelemetryContext(SimpleReporter())
    with pytest.raises(ValueError), tele(""):
        pass


def test_failing_reporter_is_logged_not_raised(monkeypatch, caplog):
    monkeypatch.setenv("AUTHORFORGE_TELEMETRY", "1")
    good = SimpleReporter()
    tele = TelemetryContext(_BrokenReporter(), good)

    with caplog.at_level(logging.ERROR, logger="authorforge.telemetry"), tele("dispatch"):
        pass

    assert "Telemetry reporter '_BrokenReporter' failed" in caplog.text
    assert len(good.timings["dispatch"]) == 1


def test_reporter_protocol_and_report():
    reporter = SimpleReporter()
    assert isinstance(reporter, TelemetryReporter)

    reporter.record_timing("dispatch", 0.5)
    reporter.record_metric("dispatch.tokens", 40)
    report = reporter.get_report()

    assert report.startswith("=== Telemetry Report ===")
    assert "dispatch" in report
    assert "Total: 40" in report

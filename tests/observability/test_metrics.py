from __future__ import annotations

import pytest

from app.observability.metrics import MetricsReporter


class RecordingStatsClient:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, float]] = []

    def incr(self, name: str, value: float, rate: float = 1.0) -> None:
        self.sent.append(("incr", name, value))

    def timing(self, name: str, value: float, rate: float = 1.0) -> None:
        self.sent.append(("timing", name, value))

    def gauge(self, name: str, value: float) -> None:
        self.sent.append(("gauge", name, value))


class BrokenStatsClient(RecordingStatsClient):
    def incr(self, name: str, value: float, rate: float = 1.0) -> None:
        raise OSError("socket closed")


def _reporter(client, **overrides) -> MetricsReporter:
    options = {"backend": "statsd", "namespace": "deals", "sample_rate": 1.0, "disabled": False}
    options.update(overrides)
    return MetricsReporter(statsd_client=client, **options)


def test_tags_are_folded_into_statsd_names():
    client = RecordingStatsClient()
    reporter = _reporter(client)

    reporter.increment("agent.calls", tags={"operation": "discovery", "code": "502_AGENT_UPSTREAM"})
    reporter.gauge("deals.pipeline.size", 12)

    assert client.sent == [
        ("incr", "deals.agent.calls.code_502_AGENT_UPSTREAM.operation_discovery", 1.0),
        ("gauge", "deals.pipeline.size", 12),
    ]


def test_record_batch_skips_empty_failure_counter():
    client = RecordingStatsClient()
    reporter = _reporter(client)

    reporter.record_batch("discovery.candidates", succeeded=3, failed=0)
    reporter.record_batch("pipeline.import", succeeded=1, failed=2)

    assert client.sent == [
        ("incr", "deals.discovery.candidates.succeeded", 3),
        ("incr", "deals.pipeline.import.succeeded", 1),
        ("incr", "deals.pipeline.import.failed", 2),
    ]


def test_timer_emits_even_when_block_raises():
    client = RecordingStatsClient()
    reporter = _reporter(client)

    with pytest.raises(RuntimeError):
        with reporter.timer("storage.latency_ms", tags={"operation": "upload"}):
            raise RuntimeError("boom")

    assert [(kind, name) for kind, name, _ in client.sent] == [
        ("timing", "deals.storage.latency_ms.operation_upload")
    ]
    assert client.sent[0][2] >= 0


def test_disabled_reporter_sends_nothing():
    client = RecordingStatsClient()
    reporter = _reporter(client, disabled=True)

    reporter.increment("agent.calls")
    reporter.record_batch("pipeline.import", succeeded=1, failed=1)

    assert client.sent == []


def test_backend_errors_are_logged_not_raised(caplog):
    reporter = _reporter(BrokenStatsClient())

    with caplog.at_level("WARNING", logger="app.metrics"):
        reporter.increment("agent.calls")

    assert any(record.message == "metrics.backend_error" for record in caplog.records)

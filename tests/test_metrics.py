import pytest

from gallery_api.services.metrics import ErrorLog, MetricsRegistry


def test_metrics_accumulate(clock):
    registry = MetricsRegistry(clock=clock)

    registry.record("cases", 0.2)
    registry.record("cases", 0.4)
    registry.record_error("cases")

    stats = registry.snapshot()["cases"]
    assert stats["count"] == 2
    assert stats["avg_time"] == pytest.approx(0.3)
    assert stats["min_time"] == pytest.approx(0.2)
    assert stats["max_time"] == pytest.approx(0.4)
    assert stats["error_count"] == 1
    assert stats["last_request_at"]


def test_error_only_endpoint_reports_zero_min(clock):
    registry = MetricsRegistry(clock=clock)
    registry.record_error("sidebar")

    assert registry.snapshot()["sidebar"]["min_time"] == 0.0


def test_snapshot_is_a_copy(clock):
    registry = MetricsRegistry(clock=clock)
    registry.record("cases", 0.1)

    registry.snapshot()["cases"]["count"] = 99

    assert registry.snapshot()["cases"]["count"] == 1


def test_error_log_keeps_newest_entries(clock):
    log = ErrorLog(max_entries=100, clock=clock)

    for i in range(150):
        log.append("cases", f"error {i}", {"i": i})

    entries = log.entries()
    assert len(entries) == 100
    assert entries[0].message == "error 50"
    assert entries[-1].message == "error 149"
    assert entries[-1].context == {"i": 149}

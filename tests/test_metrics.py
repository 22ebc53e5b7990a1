"""Tests for in-process metrics."""

import threading

from secretcache.metrics import MetricsCollector


def test_record_dispatch_and_refresh():
    """MetricsCollector counts dispatch and refresh outcomes."""
    collector = MetricsCollector()

    collector.record_dispatch("dispatch")
    collector.record_dispatch("dispatch")
    collector.record_dispatch("ignored")
    collector.record_refresh("ok")
    collector.record_refresh("not_found")
    collector.record_bootstrap(12, 340.5)

    snapshot = collector.get_snapshot()
    assert snapshot["dispatch_counts"] == {"dispatch": 2, "ignored": 1}
    assert snapshot["refresh_outcomes"] == {"ok": 1, "not_found": 1}
    assert snapshot["bootstrap"] == {"secret_count": 12, "duration_ms": 340.5}


def test_snapshot_is_a_copy():
    collector = MetricsCollector()
    collector.record_dispatch("dispatch")

    snapshot = collector.get_snapshot()
    collector.record_dispatch("dispatch")

    assert snapshot["dispatch_counts"] == {"dispatch": 1}


def test_reset():
    collector = MetricsCollector()
    collector.record_dispatch("dispatch")
    collector.record_bootstrap(1, 1.0)

    collector.reset()

    assert collector.get_snapshot() == {
        "dispatch_counts": {},
        "refresh_outcomes": {},
        "bootstrap": {"secret_count": None, "duration_ms": None},
    }


def test_thread_safety():
    """Concurrent increments are not lost."""
    collector = MetricsCollector()

    def record():
        for _ in range(1000):
            collector.record_refresh("ok")

    threads = [threading.Thread(target=record) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert collector.get_snapshot()["refresh_outcomes"] == {"ok": 8000}

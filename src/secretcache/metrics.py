"""Lightweight in-process metrics for the secret cache.

Counters are best-effort in multi-worker environments (each worker process
keeps its own mirror and its own counters).
"""

import threading
from dataclasses import dataclass, field
from typing import Any


@dataclass
class MetricsCollector:
    """Thread-safe counters for dispatch and refresh outcomes."""

    # Counters per dispatch decision (validated, dispatch, ignored, ...)
    dispatch_counts: dict[str, int] = field(default_factory=dict)

    # Counters per refresh outcome (ok, not_found, transient_error)
    refresh_outcomes: dict[str, int] = field(default_factory=dict)

    bootstrap_duration_ms: float | None = None
    bootstrap_secret_count: int | None = None

    _lock: threading.Lock = field(default_factory=threading.Lock)

    def record_dispatch(self, decision: str) -> None:
        """Record one classified webhook element.

        Args:
            decision: Decision kind (e.g., "dispatch", "ignored", "malformed")
        """
        with self._lock:
            self.dispatch_counts[decision] = self.dispatch_counts.get(decision, 0) + 1

    def record_refresh(self, outcome: str) -> None:
        """Record the outcome of one background refresh."""
        with self._lock:
            self.refresh_outcomes[outcome] = self.refresh_outcomes.get(outcome, 0) + 1

    def record_bootstrap(self, secret_count: int, duration_ms: float) -> None:
        """Record a completed bootstrap."""
        with self._lock:
            self.bootstrap_secret_count = secret_count
            self.bootstrap_duration_ms = duration_ms

    def get_snapshot(self) -> dict[str, Any]:
        """Get a snapshot of current metrics."""
        with self._lock:
            return {
                "dispatch_counts": dict(self.dispatch_counts),
                "refresh_outcomes": dict(self.refresh_outcomes),
                "bootstrap": {
                    "secret_count": self.bootstrap_secret_count,
                    "duration_ms": self.bootstrap_duration_ms,
                },
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self.dispatch_counts.clear()
            self.refresh_outcomes.clear()
            self.bootstrap_duration_ms = None
            self.bootstrap_secret_count = None

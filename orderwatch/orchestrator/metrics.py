"""Cumulative lifetime statistics for the order watcher.

:class:`LifetimeStats` accumulates counters across every order check, cycle
restart and monitor verdict of one process generation.  Two output paths:

1. **Log summary** — :meth:`LifetimeStats.format_summary`.
2. **JSON stats file** — :func:`write_stats_file` writes
   :meth:`LifetimeStats.as_dict` to ``/tmp/orderwatch_stats.json``
   (override with ``ORDERWATCH_STATS_PATH``) for on-demand inspection.

Write errors are logged at WARNING and never propagated.

Typical usage::

    stats = LifetimeStats()
    stats.record_check(result)
    write_stats_file(stats)
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

from orderwatch.core.models import HealthVerdict
from orderwatch.orchestrator.poller import PollResult

__all__ = ["STATS_PATH", "LifetimeStats", "write_stats_file"]

logger = logging.getLogger(__name__)

#: Destination for the JSON stats snapshot.
STATS_PATH: str = os.environ.get("ORDERWATCH_STATS_PATH", "/tmp/orderwatch_stats.json")


@dataclass
class LifetimeStats:
    """Counters accumulated since process start.

    Attributes:
        checks_run: Completed order checks (successful ones only).
        checks_skipped: Checks skipped because another was in flight.
        failed_checks: Checks that raised.
        total_orders_seen: Sum of order-list lengths.
        total_pending: Sum of pending counts.
        notifications_sent: Checks that delivered a notification.
        restarts: Cycle restarts, any cause.
        last_error: Text of the most recent check failure.
    """

    checks_run: int = 0
    checks_skipped: int = 0
    failed_checks: int = 0
    total_orders_seen: int = 0
    total_pending: int = 0
    notifications_sent: int = 0
    restarts: int = 0
    last_error: str = ""

    _start_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _started_at: datetime = field(default_factory=lambda: datetime.now(UTC), repr=False)
    _monitors: dict[str, HealthVerdict] = field(default_factory=dict, repr=False)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self._start_monotonic

    def record_check(self, result: PollResult) -> None:
        if result.skipped:
            self.checks_skipped += 1
            return
        self.checks_run += 1
        self.total_orders_seen += result.total
        self.total_pending += result.pending
        if result.notified:
            self.notifications_sent += 1

    def record_failure(self, error: BaseException) -> None:
        self.failed_checks += 1
        self.last_error = f"{type(error).__name__}: {error}"

    def record_restart(self) -> None:
        self.restarts += 1

    def record_verdict(self, monitor: str, verdict: HealthVerdict) -> None:
        self._monitors[monitor] = verdict

    def format_summary(self) -> str:
        """Return a one-line lifetime summary for logging.

        Example output::

            lifetime stats — uptime: 0h14m22s | checks=40 skipped=1 failed=2
            pending=3 notified=2 restarts=3
        """
        hours, rem = divmod(int(self.uptime_s), 3600)
        minutes, seconds = divmod(rem, 60)
        return (
            f"lifetime stats — uptime: {hours}h{minutes:02d}m{seconds:02d}s | "
            f"checks={self.checks_run} skipped={self.checks_skipped} "
            f"failed={self.failed_checks} pending={self.total_pending} "
            f"notified={self.notifications_sent} restarts={self.restarts}"
        )

    def as_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable snapshot.  ``started_at`` is ISO-8601 UTC."""
        return {
            "started_at": self._started_at.isoformat(),
            "uptime_s": round(self.uptime_s, 1),
            "checks_run": self.checks_run,
            "checks_skipped": self.checks_skipped,
            "failed_checks": self.failed_checks,
            "total_orders_seen": self.total_orders_seen,
            "total_pending": self.total_pending,
            "notifications_sent": self.notifications_sent,
            "restarts": self.restarts,
            "last_error": self.last_error,
            "monitors": {name: v.as_dict() for name, v in sorted(self._monitors.items())},
        }


def write_stats_file(stats: LifetimeStats, path: str = STATS_PATH) -> None:
    """Write a JSON snapshot of *stats* to *path*; failures are only logged."""
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(stats.as_dict(), fh, indent=2)
    except OSError:
        logger.warning("Failed to write stats file '%s'.", path, exc_info=True)

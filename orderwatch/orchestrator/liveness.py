"""Liveness monitors: independent periodic self-checks that trigger recovery.

Every monitor is a :class:`LivenessMonitor`: a ``period`` plus an async
``check()`` returning a :class:`~orderwatch.core.models.HealthVerdict`.
:class:`LivenessSupervisor` runs each monitor on its own asyncio task and,
for any non-healthy verdict, invokes the restart callback supplied by the
orchestrator.  Monitors never talk to each other; they share only read
access to the session and the restart callback.

Monitor kinds
~~~~~~~~~~~~~
=====================  ==========================================  =========
monitor                verdict logic                               escalates
=====================  ==========================================  =========
HeartbeatMonitor       token present?  if not: login, DEGRADED     yes
WatchdogMonitor        no poll progress for period × factor        yes
HealthProbeMonitor     authenticated Verify with a short timeout   yes
KeepAliveMonitor       POST to an external liveness URL            no
WakeHintMonitor        optional host "stay awake" hint             no
=====================  ==========================================  =========

Non-escalating monitors exist to discourage host-level suspension; their
failures are logged and nothing else.

Liveness signals
~~~~~~~~~~~~~~~~
Every successful order check records the ``poll`` progress signal through
:class:`LivenessSignals` in the durable store, so the watchdog's staleness
check survives a restart of the process itself.  Healthy verdicts from
detecting monitors are recorded under their own name only.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import ClassVar, Protocol, runtime_checkable

from orderwatch.api.backend import OrderBackend
from orderwatch.core import events
from orderwatch.core.exceptions import AuthError, StorageError, TransportError
from orderwatch.core.models import HealthVerdict
from orderwatch.session.manager import SessionManager
from orderwatch.storage.store import LIVENESS_LAST_KEY, LIVENESS_PREFIX, PersistentStore

__all__ = [
    "LivenessSignals",
    "LivenessMonitor",
    "HeartbeatMonitor",
    "WatchdogMonitor",
    "HealthProbeMonitor",
    "KeepAliveMonitor",
    "WakeHinter",
    "NullWakeHinter",
    "WakeHintMonitor",
    "LivenessSupervisor",
]

logger = logging.getLogger(__name__)

RestartCallback = Callable[[str, HealthVerdict], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Persisted liveness signals
# ---------------------------------------------------------------------------


class LivenessSignals:
    """Last-observed-good timestamps, one per signal name, in the store.

    Each :meth:`record` writes ``liveness:<name>``.  Progress signals (a
    completed order check) also move the aggregate ``liveness:last`` key the
    watchdog reads; monitor signals do not, so a monitor that is merely
    alive cannot hide a stalled cycle.  The two writes are not atomic; a
    reader seeing only one of them still gets a usable (slightly older)
    answer.
    """

    def __init__(self, store: PersistentStore, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    async def record(self, name: str, *, progress: bool = True) -> datetime:
        now = self._clock()
        raw = now.isoformat().encode()
        await self._store.put(f"{LIVENESS_PREFIX}{name}", raw)
        if progress:
            await self._store.put(LIVENESS_LAST_KEY, raw)
        return now

    async def last(self, name: str | None = None) -> datetime | None:
        """Return the last signal for *name*, or for any name if ``None``."""
        key = LIVENESS_LAST_KEY if name is None else f"{LIVENESS_PREFIX}{name}"
        raw = await self._store.get(key)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw.decode())
        except ValueError:
            logger.warning("Ignoring unparsable liveness timestamp under %s.", key)
            return None


# ---------------------------------------------------------------------------
# Monitor contract
# ---------------------------------------------------------------------------


class LivenessMonitor(ABC):
    """A periodic self-check.

    Attributes:
        name: Stable identifier, also the liveness-signal name.
        escalates: Whether a non-healthy verdict requests a cycle restart.
        records_signal: Whether a healthy verdict is recorded as a signal.
    """

    name: ClassVar[str]
    escalates: ClassVar[bool] = True
    records_signal: ClassVar[bool] = True

    def __init__(self, period: float) -> None:
        if period <= 0:
            raise ValueError(f"{type(self).__name__} period must be > 0, got {period!r}.")
        self.period = period

    @abstractmethod
    async def check(self) -> HealthVerdict:
        """Return the current verdict.  Exceptions are mapped to DEGRADED."""


class HeartbeatMonitor(LivenessMonitor):
    """Confirms a token is held; re-authenticates when it is not."""

    name = "heartbeat"

    def __init__(self, period: float, session: SessionManager) -> None:
        super().__init__(period)
        self._session = session

    async def check(self) -> HealthVerdict:
        if self._session.token:
            return HealthVerdict.healthy()
        logger.info("Heartbeat found no token — logging in.")
        try:
            await self._session.login()
        except (AuthError, TransportError) as exc:
            return HealthVerdict.unreachable(f"no token and login failed: {exc}")
        return HealthVerdict.degraded("token was missing; re-authenticated")


class WatchdogMonitor(LivenessMonitor):
    """Declares the engine unreachable when progress signals went stale.

    The reference point is the latest persisted progress signal, including
    one left by a previous process generation.  Only when none was ever
    recorded does the watchdog measure from its own start.

    Args:
        period: Seconds between checks.
        signals: Shared :class:`LivenessSignals`.
        safety_factor: Staleness threshold as a multiple of ``period``.
        clock: Aware-datetime "now" provider.
    """

    name = "watchdog"
    records_signal = False

    def __init__(
        self,
        period: float,
        signals: LivenessSignals,
        *,
        safety_factor: float = 3.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(period)
        if safety_factor < 1:
            raise ValueError(f"safety_factor must be ≥ 1, got {safety_factor!r}.")
        self._signals = signals
        self._clock = clock
        self.threshold = period * safety_factor
        self._started_at = clock()

    async def check(self) -> HealthVerdict:
        last = await self._signals.last()
        reference = last or self._started_at
        gap = (self._clock() - reference).total_seconds()
        if gap > self.threshold:
            return HealthVerdict.unreachable(
                f"no liveness signal for {gap:.0f} s (threshold {self.threshold:.0f} s)"
            )
        return HealthVerdict.healthy()


class HealthProbeMonitor(LivenessMonitor):
    """Lightweight authenticated probe with a short timeout.

    Without a token there is nothing to probe and the verdict is healthy.
    """

    name = "health_probe"

    def __init__(
        self,
        period: float,
        backend: OrderBackend,
        session: SessionManager,
        *,
        timeout: float = 5.0,
    ) -> None:
        super().__init__(period)
        self._backend = backend
        self._session = session
        self._timeout = timeout

    async def check(self) -> HealthVerdict:
        token = self._session.token
        if not token:
            # A missing token is the heartbeat's concern.
            logger.debug("Health probe skipped: no token held.")
            return HealthVerdict.healthy()
        try:
            ok = await self._backend.verify(token, timeout=self._timeout)
        except TransportError as exc:
            return HealthVerdict.degraded(f"probe failed: {exc}")
        if not ok:
            return HealthVerdict.degraded("probe rejected by backend")
        return HealthVerdict.healthy()


class KeepAliveMonitor(LivenessMonitor):
    """Fire-and-forget ping to an external liveness endpoint."""

    name = "keepalive"
    escalates = False
    records_signal = False

    def __init__(
        self,
        period: float,
        backend: OrderBackend,
        url: str,
        *,
        timeout: float = 5.0,
    ) -> None:
        super().__init__(period)
        self._backend = backend
        self._url = url
        self._timeout = timeout

    async def check(self) -> HealthVerdict:
        try:
            status = await self._backend.ping(self._url, timeout=self._timeout)
        except TransportError as exc:
            logger.info("Keep-alive ping failed: %s", exc, extra={"event": events.KEEPALIVE_FAILED})
            return HealthVerdict.degraded(str(exc))
        if status >= 400:
            logger.info(
                "Keep-alive ping answered HTTP %d.", status, extra={"event": events.KEEPALIVE_FAILED}
            )
            return HealthVerdict.degraded(f"HTTP {status}")
        return HealthVerdict.healthy()


@runtime_checkable
class WakeHinter(Protocol):
    """Optional host capability that discourages suspension."""

    async def hint(self) -> None: ...


class NullWakeHinter:
    """Default :class:`WakeHinter` for hosts without such a capability."""

    async def hint(self) -> None:
        logger.debug("Wake hint requested (no-op on this host).")


class WakeHintMonitor(LivenessMonitor):
    """Periodically nudges the host's wake capability.  Never escalates."""

    name = "wake"
    escalates = False
    records_signal = False

    def __init__(self, period: float, hinter: WakeHinter | None = None) -> None:
        super().__init__(period)
        self._hinter = hinter or NullWakeHinter()

    async def check(self) -> HealthVerdict:
        await self._hinter.hint()
        return HealthVerdict.healthy()


# ---------------------------------------------------------------------------
# Supervisor
# ---------------------------------------------------------------------------


class LivenessSupervisor:
    """Runs every registered monitor on its own periodic asyncio task.

    Args:
        signals: Where healthy verdicts are recorded.
        on_unhealthy: Awaited with ``(monitor_name, verdict)`` for every
            non-healthy verdict of an escalating monitor.
    """

    def __init__(self, signals: LivenessSignals, on_unhealthy: RestartCallback) -> None:
        self._signals = signals
        self._on_unhealthy = on_unhealthy
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self.last_verdicts: dict[str, HealthVerdict] = {}

    def start(self, monitor: LivenessMonitor) -> None:
        """Schedule *monitor*; a second start of the same name is ignored."""
        existing = self._tasks.get(monitor.name)
        if existing is not None and not existing.done():
            logger.debug("Monitor %s already running.", monitor.name)
            return
        self._tasks[monitor.name] = asyncio.create_task(
            self._run(monitor),
            name=f"orderwatch-monitor-{monitor.name}",
        )
        logger.info("Monitor %s started (period %.0f s).", monitor.name, monitor.period)

    def is_running(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    async def run_once(self, monitor: LivenessMonitor) -> HealthVerdict:
        """Execute one check of *monitor* and act on its verdict."""
        try:
            verdict = await monitor.check()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Monitor %s check raised.", monitor.name, exc_info=True)
            verdict = HealthVerdict.degraded(f"check raised {type(exc).__name__}: {exc}")

        self.last_verdicts[monitor.name] = verdict

        if verdict.is_healthy:
            if monitor.records_signal:
                try:
                    await self._signals.record(monitor.name, progress=False)
                except StorageError:
                    logger.warning("Could not record liveness signal %s.", monitor.name, exc_info=True)
            return verdict

        if not monitor.escalates:
            logger.debug("Monitor %s: %s (%s) — not escalated.", monitor.name, verdict.status, verdict.reason)
            return verdict

        logger.warning(
            "Monitor %s reported %s: %s — requesting cycle restart.",
            monitor.name,
            verdict.status,
            verdict.reason,
            extra={"event": events.MONITOR_UNHEALTHY},
        )
        try:
            await self._on_unhealthy(monitor.name, verdict)
        except Exception:
            logger.exception("Restart callback failed for monitor %s.", monitor.name)
        return verdict

    async def stop(self) -> None:
        """Cancel every monitor task and wait for them to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run(self, monitor: LivenessMonitor) -> None:
        while True:
            await asyncio.sleep(monitor.period)
            await self.run_once(monitor)

"""Top-level coordinator of the order-polling engine.

:class:`Orchestrator` owns the single periodic *cycle task* that calls
:meth:`OrderPoller.check_for_new_orders`, the liveness supervisor, and the
recovery policy that ties them together.

Cycle
~~~~~
The cycle task runs one check immediately, then one every
``poll_interval`` seconds.  A failed check increments
:attr:`PollCycleState.retry_count` and the next check is delayed by
:func:`restart_delay`; any success resets the counter.  The fatal ceiling
counts consecutive failed checks separately, since a restart resets only
the backoff.  Once that tally exceeds ``max_restart_attempts`` the cycle
stops and :class:`~orderwatch.core.exceptions.FatalRestartError` is
delivered through :meth:`Orchestrator.wait_fatal` so the process
supervisor can restart the whole process.

Refused credentials (4xx from Authenticate) and missing credentials stop
the cycle the same way: :meth:`Orchestrator.wait_fatal` raises the
:class:`~orderwatch.core.exceptions.AuthError`, since no retry can help.

Restart
~~~~~~~
:meth:`Orchestrator.restart_cycle` cancels a cycle task parked between
checks and creates its replacement without an intervening ``await``, so
there is never more than one cycle task, however many monitors request a
restart at the same moment.  A check already in flight is never aborted.

Connectivity
~~~~~~~~~~~~
While the host reports it is offline, the cycle is stopped and restart
requests are ignored.  Coming back online restarts the cycle immediately.

Typical usage::

    orchestrator = Orchestrator(session, poller, state, signals, monitors=[...])
    await orchestrator.on_credentials_provided(credentials, security_key)
    await orchestrator.wait_fatal()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import NoReturn

from orderwatch.core import events
from orderwatch.core.exceptions import (
    AuthError,
    AuthRejectedError,
    FatalRestartError,
    MissingCredentialsError,
    OrderwatchError,
    TransportError,
)
from orderwatch.core.models import Credentials, HealthVerdict, PollCycleState
from orderwatch.orchestrator.liveness import LivenessMonitor, LivenessSignals, LivenessSupervisor
from orderwatch.orchestrator.metrics import LifetimeStats
from orderwatch.orchestrator.poller import OrderPoller
from orderwatch.session.manager import SessionManager

__all__ = ["Orchestrator", "restart_delay"]

logger = logging.getLogger(__name__)


def restart_delay(retry_count: int, base_delay: float, max_delay: float) -> float:
    """Return the backoff before the next check after *retry_count* failures.

    ``min(base_delay * 2**retry_count, max_delay)``, monotone
    non-decreasing in ``retry_count`` and never above ``max_delay``.

    >>> [restart_delay(n, 5.0, 300.0) for n in (0, 1, 2, 6, 7)]
    [5.0, 10.0, 20.0, 300.0, 300.0]
    """
    return min(base_delay * (2.0**retry_count), max_delay)


class Orchestrator:
    """Drives the poll cycle, the liveness monitors and recovery.

    Args:
        session: Session manager shared with poller and monitors.
        poller: Performs individual checks.
        state: The :class:`PollCycleState` the poller also mutates.
        signals: Liveness recorder handed to the supervisor.
        monitors: Monitors started once credentials are accepted.
        poll_interval: Seconds between successful checks.
        restart_base_delay: Backoff base after a failed check.
        restart_max_delay: Backoff cap.
        max_restart_attempts: Consecutive failures tolerated before the
            cycle escalates with :class:`FatalRestartError`.
        stats: Lifetime counters; a fresh instance if omitted.
        after_tick: Called after every cycle tick with its success flag.
            The scheduler uses it for heartbeat and stats files.
    """

    def __init__(
        self,
        session: SessionManager,
        poller: OrderPoller,
        state: PollCycleState,
        signals: LivenessSignals,
        *,
        monitors: Sequence[LivenessMonitor] = (),
        poll_interval: float = 20.0,
        restart_base_delay: float = 5.0,
        restart_max_delay: float = 300.0,
        max_restart_attempts: int = 10,
        stats: LifetimeStats | None = None,
        after_tick: Callable[[bool], None] | None = None,
    ) -> None:
        self._session = session
        self._poller = poller
        self._state = state
        self._monitors = list(monitors)
        self._poll_interval = poll_interval
        self._restart_base_delay = restart_base_delay
        self._restart_max_delay = restart_max_delay
        self._max_restart_attempts = max_restart_attempts
        self.stats = stats or LifetimeStats()
        self._after_tick = after_tick
        self.supervisor = LivenessSupervisor(signals, self._on_monitor_unhealthy)

        self._cycle_task: asyncio.Task[None] | None = None
        self._started = False
        self._online = True
        self._fatal_event = asyncio.Event()
        self._fatal_error: FatalRestartError | AuthError | None = None
        self._consecutive_failures = 0
        self._checking = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        """``True`` once credentials have been accepted."""
        return self._started

    @property
    def online(self) -> bool:
        return self._online

    @property
    def cycle_task(self) -> asyncio.Task[None] | None:
        return self._cycle_task

    @property
    def is_cycling(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def on_credentials_provided(self, credentials: Credentials, security_key: str) -> None:
        """Accept credentials, log in, start the monitors and the cycle.

        Raises:
            AuthError: Login rejected or credentials incomplete.
            TransportError: Backend unreachable after retries.
        """
        self._session.set_credentials(credentials, security_key)
        try:
            await self._session.login()
        except (AuthError, TransportError) as exc:
            logger.error("Credentials were not accepted: %s", exc)
            raise

        self._started = True
        for monitor in self._monitors:
            self.supervisor.start(monitor)
        await self.restart_cycle("credentials provided")

    async def restart_cycle(self, reason: str = "requested") -> None:
        """Replace a parked cycle with a fresh one that checks immediately.

        A check already in flight is left to finish; only the backoff
        counter is reset.  Ignored before credentials are accepted, while
        offline, and after the cycle stopped for good.
        """
        if not self._started:
            logger.debug("Restart (%s) ignored — no credentials yet.", reason)
            return
        if not self._online:
            logger.info("Restart (%s) ignored — host is offline.", reason)
            return
        if self._fatal_error is not None:
            logger.debug("Restart (%s) ignored — already escalated.", reason)
            return

        self._state.retry_count = 0
        if self.is_cycling and self._checking:
            logger.info("Restart (%s): check in flight, backoff reset only.", reason)
            return

        self._cancel_cycle()
        self._cycle_task = asyncio.create_task(self._run_cycle(), name="orderwatch-poll-cycle")
        self.stats.record_restart()
        logger.info("Poll cycle (re)started: %s", reason, extra={"event": events.CYCLE_RESTART})

    async def on_connectivity_lost(self) -> None:
        """Stop polling until connectivity returns."""
        self._online = False
        self._cancel_cycle()
        logger.warning("Connectivity lost — polling paused.", extra={"event": events.CONNECTIVITY_LOST})

    async def on_connectivity_restored(self) -> None:
        """Resume polling immediately."""
        self._online = True
        logger.info("Connectivity restored.", extra={"event": events.CONNECTIVITY_RESTORED})
        await self.restart_cycle("connectivity restored")

    async def force_check(self) -> bool:
        """Run one check right now, outside the schedule.

        Returns:
            ``True`` if the check completed (or was skipped because one was
            already running), ``False`` if it failed or could not start.
        """
        if not self._started:
            logger.warning("Force check ignored — no credentials yet.")
            return False
        if self._fatal_error is not None:
            logger.warning("Force check ignored — poll cycle has stopped.")
            return False
        logger.info("Force check requested.")
        return await self._tick()

    async def wait_fatal(self) -> NoReturn:
        """Block until the cycle stops for good, then raise the reason.

        Raises:
            FatalRestartError: Once ``max_restart_attempts`` is exceeded.
            AuthError: Credentials were refused or are missing.
        """
        await self._fatal_event.wait()
        assert self._fatal_error is not None  # noqa: S101
        raise self._fatal_error

    async def stop(self) -> None:
        """Cancel the cycle and every monitor."""
        task = self._cycle_task
        self._cancel_cycle()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        await self.supervisor.stop()
        logger.info("%s", self.stats.format_summary())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_cycle(self) -> None:
        if self._cycle_task is not None and not self._cycle_task.done():
            self._cycle_task.cancel()
        self._cycle_task = None

    async def _on_monitor_unhealthy(self, name: str, verdict: HealthVerdict) -> None:
        self.stats.record_verdict(name, verdict)
        await self.restart_cycle(f"monitor {name}: {verdict.reason}")

    async def _run_cycle(self) -> None:
        delay = 0.0
        while True:
            if delay:
                await asyncio.sleep(delay)
            self._checking = True
            try:
                ok = await self._tick()
            finally:
                self._checking = False
            if self._fatal_error is not None:
                return
            if ok:
                delay = self._poll_interval
                continue

            self._state.retry_count += 1
            if self._consecutive_failures > self._max_restart_attempts:
                self._escalate(FatalRestartError(self._consecutive_failures))
                return
            delay = restart_delay(
                self._state.retry_count, self._restart_base_delay, self._restart_max_delay
            )
            logger.warning(
                "Check failed %d time(s) in a row — next attempt in %.0f s.",
                self._consecutive_failures,
                delay,
                extra={"event": events.CYCLE_BACKOFF},
            )

    async def _tick(self) -> bool:
        ok = False
        try:
            await self._session.verify()
            result = await self._poller.check_for_new_orders(self._session)
        except AuthError as exc:
            self.stats.record_failure(exc)
            if _is_terminal(exc):
                self._escalate(exc)
            else:
                logger.warning("Order check did not complete: %s", exc)
        except OrderwatchError as exc:
            logger.warning("Order check did not complete: %s", exc)
            self.stats.record_failure(exc)
        except Exception as exc:
            logger.exception("Unhandled exception in order check.")
            self.stats.record_failure(exc)
        else:
            self.stats.record_check(result)
            ok = True

        if ok:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
        for name, verdict in self.supervisor.last_verdicts.items():
            self.stats.record_verdict(name, verdict)
        if self._after_tick is not None:
            self._after_tick(ok)
        return ok

    def _escalate(self, error: FatalRestartError | AuthError) -> None:
        if self._fatal_error is not None:
            return
        self._fatal_error = error
        task = self._cycle_task
        self._cycle_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        if isinstance(error, FatalRestartError):
            logger.critical(
                "Giving up after %d consecutive failed checks — process restart required.",
                error.retry_count,
                extra={"event": events.CYCLE_FATAL},
            )
        else:
            logger.critical(
                "Credentials are no longer accepted (%s) — poll cycle stopped.",
                error,
                extra={"event": events.CYCLE_FATAL},
            )
        self._fatal_event.set()


def _is_terminal(exc: AuthError) -> bool:
    if isinstance(exc, MissingCredentialsError):
        return True
    return isinstance(exc, AuthRejectedError) and exc.credentials_refused

"""Continuous-mode entry-point.

:func:`run_continuous` opens every resource, assembles the engine, replays
the host lifecycle (install → activate → CREDENTIALS) and then blocks until
the orchestrator escalates with
:class:`~orderwatch.core.exceptions.FatalRestartError` or the process is
asked to stop.

Signals
~~~~~~~
* ``SIGTERM`` — graceful shutdown: the wait is cancelled, monitors and the
  cycle task are stopped, resources are closed.
* ``SIGUSR1`` — force an immediate order check (the ``FORCE_CHECK``
  message).
* ``SIGINT`` — default asyncio behaviour (``KeyboardInterrupt``).

Heartbeat file
~~~~~~~~~~~~~~
After every cycle tick (success *and* failure) the current epoch time is
written to :data:`HEARTBEAT_PATH` so an external health check can tell a
live-but-failing process from a hung one.  The lifetime stats snapshot is
refreshed at the same time.

Typical usage::

    import asyncio
    from orderwatch.core.run_context import RunContext
    from orderwatch.orchestrator.scheduler import run_continuous

    asyncio.run(run_continuous(RunContext()))
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from contextlib import AsyncExitStack
from typing import NoReturn

from orderwatch.core.run_context import RunContext
from orderwatch.core.settings import Settings
from orderwatch.orchestrator.host import MessageKind
from orderwatch.orchestrator.metrics import LifetimeStats, write_stats_file
from orderwatch.orchestrator.runner import (
    build_engine,
    credentials_payload,
    open_resources,
    require_notification_config,
)

__all__ = ["HEARTBEAT_PATH", "run_continuous"]

logger = logging.getLogger(__name__)

#: Heartbeat file rewritten after each cycle tick.
HEARTBEAT_PATH: str = os.environ.get("ORDERWATCH_HEARTBEAT_PATH", "/tmp/orderwatch_heartbeat")


def _write_heartbeat(path: str = HEARTBEAT_PATH) -> None:
    """Write the current epoch timestamp to *path*; failures are only logged."""
    try:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(str(time.time()))
    except OSError:
        logger.warning("Failed to write heartbeat file '%s'.", path, exc_info=True)


async def run_continuous(
    ctx: RunContext,
    settings: Settings | None = None,
) -> NoReturn:
    """Run the order watcher until fatal escalation or shutdown.

    Args:
        ctx: Runtime operating-mode flags.
        settings: Application settings.  Loaded from environment if ``None``.

    Raises:
        ConfigError: Missing credentials, or live mode without Telegram.
        AuthError: The configured credentials were rejected, at startup or
            by a later re-login.
        FatalRestartError: The poll cycle exhausted its restart budget.
        asyncio.CancelledError: Normal shutdown via ``SIGTERM``.
    """
    if settings is None:
        settings = Settings()
    require_notification_config(ctx, settings)
    payload = credentials_payload(settings)

    logger.info(
        "Orderwatch entering continuous mode — mode=%s poll interval=%.0f s.",
        ctx.mode_label,
        settings.poll_interval,
    )

    stats = LifetimeStats()

    def _after_tick(_ok: bool) -> None:
        _write_heartbeat()
        write_stats_file(stats)

    loop = asyncio.get_running_loop()
    _shutdown_signal: list[str] = []
    _background: set[asyncio.Task[None]] = set()

    async with AsyncExitStack() as stack:
        store, http, telegram = await open_resources(stack, ctx, settings)
        engine = build_engine(
            settings, ctx, store, http, telegram, stats=stats, after_tick=_after_tick
        )
        stack.push_async_callback(engine.orchestrator.stop)

        host = engine.host
        await host.on_install()
        await host.on_activate()
        await engine.session.restore()
        await host.on_message(MessageKind.CREDENTIALS, payload)

        fatal_wait = asyncio.create_task(
            engine.orchestrator.wait_fatal(),
            name="orderwatch-fatal-wait",
        )

        def _request_graceful_shutdown(signame: str) -> None:
            if not _shutdown_signal:
                _shutdown_signal.append(signame)
                logger.info("Received %s — graceful shutdown requested.", signame)
            fatal_wait.cancel()

        def _request_force_check() -> None:
            task = asyncio.create_task(host.on_message(MessageKind.FORCE_CHECK))
            _background.add(task)
            task.add_done_callback(_background.discard)

        loop.add_signal_handler(signal.SIGTERM, lambda: _request_graceful_shutdown("SIGTERM"))
        loop.add_signal_handler(signal.SIGUSR1, _request_force_check)

        try:
            await fatal_wait
        except (asyncio.CancelledError, KeyboardInterrupt):
            if _shutdown_signal:
                logger.info("Graceful shutdown complete (signal: %s).", _shutdown_signal[0])
            else:
                logger.info("Continuous mode cancelled — stopping.")
            raise
        finally:
            for sig in (signal.SIGTERM, signal.SIGUSR1):
                with contextlib.suppress(Exception):
                    loop.remove_signal_handler(sig)
            for task in _background:
                task.cancel()

    raise RuntimeError("run_continuous exited unexpectedly — this is a bug")

"""Component wiring and the single-check entry-point.

:func:`build_engine` assembles every runtime component from
:class:`~orderwatch.core.settings.Settings` around an already-open store,
HTTP transport and (optional) Telegram client.  Both entry-points use it:

* :func:`run_once` — log in, run one order check, exit (``--once``).
* :func:`~orderwatch.orchestrator.scheduler.run_continuous` — the default
  long-running mode.

Telegram / dry-run behaviour
-----------------------------
In **live mode** Telegram credentials must be configured, or
:func:`require_notification_config` raises
:exc:`~orderwatch.core.exceptions.ConfigError` before any network I/O.
In **dry-run** mode no Telegram client is opened at all.

Typical usage::

    import asyncio
    from orderwatch.core.run_context import RunContext
    from orderwatch.orchestrator.runner import run_once

    result = asyncio.run(run_once(RunContext(dry_run=True)))
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass

from orderwatch.api.backend import OrderBackend
from orderwatch.api.http_client import ApiHttpClient
from orderwatch.core.exceptions import ConfigError, PollServerError, TransportError
from orderwatch.core.models import Credentials, PollCycleState
from orderwatch.core.retry import RetryPolicy
from orderwatch.core.run_context import RunContext
from orderwatch.core.settings import Settings
from orderwatch.notifiers.notifier import Notifier
from orderwatch.notifiers.telegram import TelegramClient
from orderwatch.orchestrator.engine import Orchestrator
from orderwatch.orchestrator.host import ServiceHost
from orderwatch.orchestrator.liveness import (
    HealthProbeMonitor,
    HeartbeatMonitor,
    KeepAliveMonitor,
    LivenessMonitor,
    LivenessSignals,
    WakeHinter,
    WakeHintMonitor,
    WatchdogMonitor,
)
from orderwatch.orchestrator.metrics import LifetimeStats
from orderwatch.orchestrator.poller import OrderPoller, PollResult
from orderwatch.session.manager import SessionManager
from orderwatch.storage.database import open_db
from orderwatch.storage.store import PersistentStore, SqliteStore

__all__ = [
    "Engine",
    "build_engine",
    "credentials_payload",
    "open_resources",
    "require_notification_config",
    "run_once",
]

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Every long-lived component of one process generation."""

    session: SessionManager
    poller: OrderPoller
    orchestrator: Orchestrator
    host: ServiceHost
    signals: LivenessSignals


def require_notification_config(ctx: RunContext, settings: Settings) -> None:
    """Raise :class:`ConfigError` if live mode lacks Telegram credentials."""
    if ctx.should_notify and not settings.telegram_configured:
        raise ConfigError(
            "Live mode requires Telegram credentials. "
            "Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID in .env (or env vars), "
            "or pass --dry-run."
        )


def credentials_payload(settings: Settings) -> dict[str, str]:
    """Return the CREDENTIALS message body built from *settings*.

    Raises:
        ConfigError: If user name, password or security key is missing.
    """
    if not settings.credentials_configured:
        raise ConfigError("USERNAME, PASSWORD and SECURITY_KEY must all be set.")
    return {
        "username": settings.username,
        "password": settings.password,
        "security_key": settings.security_key,
    }


def build_engine(
    settings: Settings,
    ctx: RunContext,
    store: PersistentStore,
    http: ApiHttpClient,
    telegram: TelegramClient | None,
    *,
    wake_hinter: WakeHinter | None = None,
    stats: LifetimeStats | None = None,
    after_tick: Callable[[bool], None] | None = None,
) -> Engine:
    """Assemble the engine.  Nothing is started; no I/O happens here."""
    backend = OrderBackend(
        http,
        referer=settings.api_referer,
        request_timeout=settings.request_timeout,
    )
    session = SessionManager(
        backend,
        store,
        RetryPolicy(
            settings.retry_max_attempts,
            settings.retry_base_delay,
            jitter_ratio=settings.retry_jitter_ratio,
            retry_on=(TransportError,),
        ),
    )
    signals = LivenessSignals(store)
    state = PollCycleState()
    poller = OrderPoller(
        backend,
        Notifier(client=telegram, ctx=ctx),
        state,
        RetryPolicy(
            settings.retry_max_attempts,
            settings.retry_base_delay,
            jitter_ratio=settings.retry_jitter_ratio,
            retry_on=(TransportError, PollServerError),
        ),
        signals=signals,
        title=settings.notification_title,
        body_template=settings.notification_body,
        order_list_url=settings.order_list_url,
    )

    session_monitors: list[LivenessMonitor] = [
        HeartbeatMonitor(settings.heartbeat_interval, session),
        HealthProbeMonitor(
            settings.health_probe_interval,
            backend,
            session,
            timeout=settings.probe_timeout,
        ),
        WatchdogMonitor(
            settings.watchdog_interval,
            signals,
            safety_factor=settings.watchdog_safety_factor,
        ),
    ]
    orchestrator = Orchestrator(
        session,
        poller,
        state,
        signals,
        monitors=session_monitors,
        poll_interval=settings.poll_interval,
        restart_base_delay=settings.restart_base_delay,
        restart_max_delay=settings.restart_max_delay,
        max_restart_attempts=settings.max_restart_attempts,
        stats=stats,
        after_tick=after_tick,
    )

    always_on: list[LivenessMonitor] = [WakeHintMonitor(settings.wake_interval, wake_hinter)]
    if settings.keepalive_url:
        always_on.append(
            KeepAliveMonitor(
                settings.keepalive_interval,
                backend,
                settings.keepalive_url,
                timeout=settings.probe_timeout,
            )
        )
    else:
        logger.info("Keep-alive ping disabled — set KEEPALIVE_URL to enable.")

    host = ServiceHost(
        orchestrator,
        always_on_monitors=always_on,
        default_security_key=settings.security_key,
    )
    return Engine(session=session, poller=poller, orchestrator=orchestrator, host=host, signals=signals)


async def open_resources(
    stack: AsyncExitStack,
    ctx: RunContext,
    settings: Settings,
) -> tuple[PersistentStore, ApiHttpClient, TelegramClient | None]:
    """Open the store, the API transport and Telegram on *stack*."""
    conn = await open_db(settings.store_path_resolved)
    stack.push_async_callback(conn.close)
    http = await stack.enter_async_context(
        ApiHttpClient(base_url=settings.api_base_url, default_timeout=settings.request_timeout)
    )
    telegram: TelegramClient | None = None
    if ctx.should_notify:
        telegram = await stack.enter_async_context(
            TelegramClient(token=settings.telegram_bot_token, chat_id=settings.telegram_chat_id)
        )
    return SqliteStore(conn), http, telegram


async def run_once(ctx: RunContext, settings: Settings | None = None) -> PollResult:
    """Log in and execute exactly one order check.

    Raises:
        ConfigError: Missing credentials, or live mode without Telegram.
        AuthError: The backend rejected the credentials.
        OrderwatchError: The check itself failed.
    """
    if settings is None:
        settings = Settings()
    require_notification_config(ctx, settings)
    payload = credentials_payload(settings)

    logger.info("run_once starting — mode=%s store=%s", ctx.mode_label, settings.store_path)

    async with AsyncExitStack() as stack:
        store, http, telegram = await open_resources(stack, ctx, settings)
        engine = build_engine(settings, ctx, store, http, telegram)
        await engine.session.restore()
        engine.session.set_credentials(
            Credentials(username=payload["username"], password=payload["password"]),
            payload["security_key"],
        )
        await engine.session.verify()
        result = await engine.poller.check_for_new_orders(engine.session)

    logger.info("run_once complete — total=%d pending=%d", result.total, result.pending)
    return result

"""Structured log event name constants.

Every key transition in the engine emits a log record with an ``event``
field (passed via ``extra={"event": events.X}``).  In ``LOG_FORMAT=json``
mode the value surfaces as ``extra.event``; in text mode the message is
self-describing and the event is not interpolated.

Usage example::

    import logging
    from orderwatch.core import events

    logger = logging.getLogger(__name__)

    logger.info("Check started", extra={"event": events.CHECK_START})
"""

from __future__ import annotations

__all__ = [
    # Session
    "LOGIN_OK",
    "LOGIN_FAILED",
    "VERIFY_OK",
    "VERIFY_FAILED",
    "TOKEN_INVALIDATED",
    # Poll
    "CHECK_START",
    "CHECK_SKIPPED_BUSY",
    "CHECK_OK",
    "CHECK_FAILED",
    "ORDERS_PENDING",
    # Cycle
    "CYCLE_RESTART",
    "CYCLE_BACKOFF",
    "CYCLE_FATAL",
    "CONNECTIVITY_LOST",
    "CONNECTIVITY_RESTORED",
    # Liveness
    "MONITOR_UNHEALTHY",
    "KEEPALIVE_FAILED",
]

# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

#: Authenticate returned a token; persisted to the store.
LOGIN_OK: str = "LOGIN_OK"

#: Authenticate failed (rejected, missing credentials, or retries exhausted).
LOGIN_FAILED: str = "LOGIN_FAILED"

#: Verify confirmed the current token.
VERIFY_OK: str = "VERIFY_OK"

#: Verify rejected the token or was unreachable; a fresh login follows.
VERIFY_FAILED: str = "VERIFY_FAILED"

#: The cached token was dropped from memory and the store (fail-closed).
TOKEN_INVALIDATED: str = "TOKEN_INVALIDATED"

# ---------------------------------------------------------------------------
# Poll
# ---------------------------------------------------------------------------

#: A check_for_new_orders body began executing.
CHECK_START: str = "CHECK_START"

#: A check was requested while another was in flight; no-op.
CHECK_SKIPPED_BUSY: str = "CHECK_SKIPPED_BUSY"

#: A check completed successfully.
CHECK_OK: str = "CHECK_OK"

#: A check failed unrecoverably; the token was invalidated.
CHECK_FAILED: str = "CHECK_FAILED"

#: At least one pending order was found and the dispatcher was called.
ORDERS_PENDING: str = "ORDERS_PENDING"

# ---------------------------------------------------------------------------
# Cycle
# ---------------------------------------------------------------------------

#: The primary cycle was (re)started.
CYCLE_RESTART: str = "CYCLE_RESTART"

#: A failed check pushed the next attempt out by a backoff delay.
CYCLE_BACKOFF: str = "CYCLE_BACKOFF"

#: The retry ceiling was exceeded; a process restart is requested.
CYCLE_FATAL: str = "CYCLE_FATAL"

#: The host reported loss of connectivity; the cycle is paused.
CONNECTIVITY_LOST: str = "CONNECTIVITY_LOST"

#: The host reported connectivity again; the cycle restarts immediately.
CONNECTIVITY_RESTORED: str = "CONNECTIVITY_RESTORED"

# ---------------------------------------------------------------------------
# Liveness
# ---------------------------------------------------------------------------

#: A monitor returned a non-healthy verdict and requested a restart.
MONITOR_UNHEALTHY: str = "MONITOR_UNHEALTHY"

#: The best-effort keep-alive ping failed (logged, never escalated).
KEEPALIVE_FAILED: str = "KEEPALIVE_FAILED"

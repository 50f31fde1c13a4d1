"""Smoke tests — verify the test harness itself is wired up correctly.

These tests assert nothing about business logic.  Their sole purpose is to
confirm:

1. pytest discovers and runs tests in this suite.
2. pytest-asyncio's ``asyncio_mode = "auto"`` setting works (async tests
   run without any decorator).
3. Core orderwatch modules import without errors.
4. ``configure_logging()`` executes without raising.
5. The exception taxonomy is importable and the hierarchy is intact.
"""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from orderwatch.core import (
    AuthError,
    AuthRejectedError,
    ConfigError,
    FatalRestartError,
    JsonFormatter,
    MissingCredentialsError,
    NotificationError,
    OrchestratorError,
    OrderwatchError,
    PollError,
    PollServerError,
    PollUnauthorizedError,
    StorageError,
    TelegramError,
    TransportError,
    configure_logging,
)
from orderwatch.core.logging_config import CHECK_ID_CTX, CheckContextFilter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Import & startup smoke
# ---------------------------------------------------------------------------


def test_package_imports_succeed() -> None:
    import orderwatch.__main__  # noqa: F401, PLC0415
    import orderwatch.orchestrator  # noqa: F401, PLC0415

    assert configure_logging is not None
    assert JsonFormatter is not None


def test_configure_logging_text() -> None:
    configure_logging(level="INFO", fmt="text", force=True)


def test_configure_logging_json() -> None:
    configure_logging(level="DEBUG", fmt="json", force=True)
    configure_logging(level="DEBUG", fmt="text", force=True)


def test_configure_logging_invalid_level() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
        configure_logging(level="VERBOSE", force=True)


def test_configure_logging_invalid_format() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
        configure_logging(fmt="xml", force=True)


async def test_async_mode_auto_works() -> None:
    await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------


def test_check_context_filter_injects_current_check_id() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    token = CHECK_ID_CTX.set("abcd1234")
    try:
        assert CheckContextFilter().filter(record) is True
    finally:
        CHECK_ID_CTX.reset(token)
    assert record.check_id == "abcd1234"


def test_check_context_filter_defaults_to_dash() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    CheckContextFilter().filter(record)
    assert record.check_id == "-"


def test_json_formatter_emits_event_in_extra() -> None:
    record = logging.LogRecord("orderwatch.x", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.event = "LOGIN_OK"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["extra"]["event"] == "LOGIN_OK"


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("exc_type", "parent"),
    [
        (ConfigError, OrderwatchError),
        (StorageError, OrderwatchError),
        (TransportError, OrderwatchError),
        (AuthError, OrderwatchError),
        (MissingCredentialsError, AuthError),
        (AuthRejectedError, AuthError),
        (PollError, OrderwatchError),
        (PollUnauthorizedError, PollError),
        (PollServerError, PollError),
        (NotificationError, OrderwatchError),
        (TelegramError, NotificationError),
        (OrchestratorError, OrderwatchError),
        (FatalRestartError, OrchestratorError),
    ],
)
def test_exception_hierarchy(exc_type: type[Exception], parent: type[Exception]) -> None:
    assert issubclass(exc_type, parent)


def test_exception_messages_carry_context() -> None:
    assert "HTTP 403" in str(AuthRejectedError(403))
    assert "HTTP 502" in str(PollServerError(502))
    assert "GET /x failed: boom" == str(TransportError("GET", "/x", "boom"))
    err = FatalRestartError(11)
    assert err.retry_count == 11
    assert "11" in str(err)

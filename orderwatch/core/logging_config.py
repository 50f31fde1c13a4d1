"""Orderwatch logging configuration.

:func:`configure_logging` is called once at process startup by
``__main__``; every other module only does::

    logger = logging.getLogger(__name__)

Level and format come from the arguments, else from ``LOG_LEVEL``
(``DEBUG|INFO|WARNING|ERROR|CRITICAL``, default ``INFO``) and
``LOG_FORMAT`` (``text|json``, default ``text``), read at call time.

Every record carries a ``check_id`` attribute: the correlation ID of the
order check it was emitted from, or ``"-"``.  Text output shows it in
brackets; JSON output carries it in ``extra`` next to the ``event`` name.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = ["configure_logging", "JsonFormatter", "CHECK_ID_CTX", "CheckContextFilter"]

#: Correlation ID of the order check running in the current context.
#: :meth:`~orderwatch.orchestrator.poller.OrderPoller.check_for_new_orders`
#: binds ``uuid4().hex[:8]`` for its duration.
CHECK_ID_CTX: ContextVar[str] = ContextVar("check_id", default="-")

logger = logging.getLogger(__name__)

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS = ("text", "json")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(check_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

#: Libraries whose INFO chatter is hidden unless running at DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite")


class CheckContextFilter(logging.Filter):
    """Copy :data:`CHECK_ID_CTX` onto each record as ``check_id``.

    Attached to the handler so it also sees records propagated from child
    loggers.  Never drops a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.check_id = CHECK_ID_CTX.get()
        return True


def _resolve(value: str | None, env: str, default: str, allowed: tuple[str, ...]) -> str:
    raw = value or os.environ.get(env, default)
    for candidate in allowed:
        if candidate.lower() == raw.lower():
            return candidate
    raise ValueError(f"Unknown {env} {raw!r}. Must be one of: {', '.join(allowed)}")


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install a single stderr handler on the root logger.

    A second call only adjusts the level unless *force* is set, in which
    case existing root handlers are replaced.

    Raises:
        ValueError: If the level or format is not recognised.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(CheckContextFilter())
    handler.setFormatter(
        JsonFormatter()
        if resolved_fmt == "json"
        else logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT)
    )
    root.handlers.clear()
    root.addHandler(handler)

    quiet_level = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Shape::

        {"ts": "2026-03-01T12:00:00.123Z", "level": "INFO",
         "logger": "orderwatch.session.manager", "message": "Login succeeded.",
         "extra": {"event": "LOGIN_OK", "check_id": "-"}}

    Any attribute not present on a bare :class:`logging.LogRecord` lands in
    ``extra``.  ``exc_info`` and ``stack_info`` keys appear only when set.
    """

    _STANDARD_ATTRS: frozenset[str] = frozenset(logging.makeLogRecord({}).__dict__) | {
        "message",
        "asctime",
    }

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "extra": {
                key: value
                for key, value in record.__dict__.items()
                if key not in self._STANDARD_ATTRS
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(payload, default=str)

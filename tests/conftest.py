"""Shared pytest fixtures and configuration for the Orderwatch test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
from pydantic_settings import SettingsConfigDict

from orderwatch.core import configure_logging
from orderwatch.core.settings import Settings
from orderwatch.storage.database import MEMORY_DB, open_db
from orderwatch.storage.store import SqliteStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every env var Settings reads and disable ``.env`` loading."""
    sensitive_prefixes = (
        "API_",
        "SECURITY_KEY",
        "USERNAME",
        "PASSWORD",
        "TELEGRAM_",
        "RETRY_",
        "RESTART_",
        "POLL_",
        "KEEPALIVE_",
        "WATCHDOG_",
        "STORE_",
        "DRY_RUN",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in sensitive_prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@pytest.fixture()
async def store() -> AsyncGenerator[SqliteStore, None]:
    """An empty in-memory :class:`SqliteStore`."""
    conn = await open_db(MEMORY_DB)
    try:
        yield SqliteStore(conn)
    finally:
        await conn.close()


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced aware-datetime clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")

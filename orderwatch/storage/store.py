"""Durable key → bytes store.

:class:`PersistentStore` is the contract every engine component depends on:
``get`` / ``put`` / ``delete`` of raw bytes, each an ``await`` point.  There
is no atomicity across keys: readers must tolerate seeing one key updated
without its companion.

:class:`SqliteStore` implements the contract on top of the ``kv_store``
table created by :func:`~orderwatch.storage.database.open_db`.

Well-known keys are defined here so that every writer and reader agrees on
spelling.

Typical usage::

    conn = await open_db(settings.store_path_resolved)
    store = SqliteStore(conn)
    await store.put(TOKEN_KEY, b"T1")
    assert await store.get(TOKEN_KEY) == b"T1"
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

import aiosqlite

from orderwatch.core.exceptions import StorageError

__all__ = [
    "TOKEN_KEY",
    "TOKEN_OBTAINED_AT_KEY",
    "RESTAURANT_INFO_KEY",
    "LIVENESS_PREFIX",
    "LIVENESS_LAST_KEY",
    "PersistentStore",
    "SqliteStore",
]

logger = logging.getLogger(__name__)

TOKEN_KEY: str = "auth-token"
TOKEN_OBTAINED_AT_KEY: str = "auth-token-obtained-at"
RESTAURANT_INFO_KEY: str = "restaurant-info"
LIVENESS_PREFIX: str = "liveness:"
LIVENESS_LAST_KEY: str = "liveness:last"


@runtime_checkable
class PersistentStore(Protocol):
    """Async key → bytes store that survives process restarts."""

    async def get(self, key: str) -> bytes | None: ...

    async def put(self, key: str, value: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...


class SqliteStore:
    """:class:`PersistentStore` backed by a single SQLite table.

    Every ``put`` / ``delete`` commits immediately, so a process killed
    between two writes leaves each key individually consistent.

    Args:
        conn: Open connection from
            :func:`~orderwatch.storage.database.open_db`.  The store does
            not own its lifecycle.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get(self, key: str) -> bytes | None:
        try:
            cursor = await self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ? LIMIT 1",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"get({key!r}) failed: {exc}") from exc
        return bytes(row[0]) if row is not None else None

    async def put(self, key: str, value: bytes) -> None:
        now = datetime.now(UTC).isoformat()
        try:
            await self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"put({key!r}) failed: {exc}") from exc
        logger.debug("Store put %s (%d bytes)", key, len(value))

    async def delete(self, key: str) -> None:
        try:
            await self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"delete({key!r}) failed: {exc}") from exc
        logger.debug("Store delete %s", key)

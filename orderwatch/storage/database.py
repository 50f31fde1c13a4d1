"""SQLite database initialisation for Orderwatch.

:func:`open_db` creates the parent directory if needed, switches the file to
WAL journalling and runs the single ``CREATE TABLE IF NOT EXISTS`` for the
key-value table on every open.

Typical usage::

    from orderwatch.storage.database import open_db

    conn = await open_db(Path("data/orderwatch.db"))
    # ... pass conn to SqliteStore ...
    await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("orderwatch.db")

#: Special path for a throwaway in-memory database (tests, ``--once`` runs).
MEMORY_DB: str = ":memory:"

#: ``kv_store`` is the durable key → bytes map.
#:
#: key         Logical key, e.g. ``auth-token`` or ``liveness:heartbeat``.
#: value       Raw bytes; the store never interprets them.
#: updated_at  ISO-8601 UTC timestamp of the last write, for inspection only.
_DDL_KV_STORE = """\
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT  NOT NULL PRIMARY KEY,
    value       BLOB  NOT NULL,
    updated_at  TEXT  NOT NULL
)"""


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Open (or create) the SQLite database and bootstrap the schema.

    Args:
        path: Filesystem path for the SQLite file, or :data:`MEMORY_DB`.
            Defaults to :data:`DEFAULT_DB_PATH`.

    Returns:
        An open, configured :class:`aiosqlite.Connection`.  The caller is
        responsible for closing it.

    Raises:
        aiosqlite.OperationalError: If the file cannot be opened or created.
    """
    if path == MEMORY_DB:
        target: str | Path = MEMORY_DB
    else:
        target = Path(path or DEFAULT_DB_PATH)
        target.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", target)

    conn: aiosqlite.Connection = await aiosqlite.connect(target)
    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite store ready at %s", target)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create the ``kv_store`` table if it does not already exist."""
    await conn.execute(_DDL_KV_STORE)
    await conn.commit()
    logger.debug("Schema bootstrap complete (kv_store table verified)")


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Enable WAL so a crashed writer never leaves the file half-written."""
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.debug("SQLite journal_mode is %r (expected for in-memory databases).", mode)

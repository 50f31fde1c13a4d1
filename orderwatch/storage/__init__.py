"""SQLite-backed durable key-value store for tokens and liveness signals."""

from orderwatch.storage.database import DEFAULT_DB_PATH, MEMORY_DB, create_schema, open_db
from orderwatch.storage.store import (
    LIVENESS_LAST_KEY,
    LIVENESS_PREFIX,
    RESTAURANT_INFO_KEY,
    TOKEN_KEY,
    TOKEN_OBTAINED_AT_KEY,
    PersistentStore,
    SqliteStore,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "open_db",
    "create_schema",
    "PersistentStore",
    "SqliteStore",
    "TOKEN_KEY",
    "TOKEN_OBTAINED_AT_KEY",
    "RESTAURANT_INFO_KEY",
    "LIVENESS_PREFIX",
    "LIVENESS_LAST_KEY",
]

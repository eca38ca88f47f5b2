"""ragtrust persistence layer."""

from ragtrust.db.connection import Database
from ragtrust.db.migrations import MIGRATIONS, run_migrations
from ragtrust.db.store import KeyValueStore, MemoryStore, SqliteStore

__all__ = [
    "Database",
    "run_migrations",
    "MIGRATIONS",
    "KeyValueStore",
    "MemoryStore",
    "SqliteStore",
]

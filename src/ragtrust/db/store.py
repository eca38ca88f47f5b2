"""Persistence port: a small key-value store the registry writes through to.

The core only ever calls ``load``, ``save`` and ``delete``; values are plain
JSON-compatible data. ``SqliteStore`` is the on-disk implementation used by
the CLI, ``MemoryStore`` serves embedded hosts and tests.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from ragtrust.db.connection import Database
from ragtrust.db.migrations import run_migrations
from ragtrust.errors import PersistenceWriteFailed

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Storage capability supplied by the host."""

    def load(self, key: str) -> Any | None:
        """Return the value stored under *key*, or None if absent."""

    def save(self, key: str, value: Any) -> None:
        """Durably store *value* under *key*; raise PersistenceWriteFailed on error."""

    def delete(self, key: str) -> None:
        """Remove *key*; a missing key is not an error."""


class MemoryStore:
    """In-process store. Values are deep-copied so callers cannot alias them."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> Any | None:
        with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value)

    def save(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class SqliteStore:
    """Key-value store backed by the ``kv_store`` table of a SQLite file.

    Every ``save`` commits before returning. A locked or unwritable database
    surfaces as PersistenceWriteFailed once the connection timeout expires.
    """

    def __init__(self, db_path: Path | str, timeout: float = 5.0) -> None:
        self._db = Database(db_path, timeout=timeout)
        self._lock = threading.Lock()
        try:
            self._conn = self._db.connect()
        except sqlite3.Error as exc:
            logger.error("Failed to open %s: %s", self.path, exc)
            raise PersistenceWriteFailed(f"Could not open {self.path}: {exc}") from exc
        try:
            run_migrations(self._conn)
        except sqlite3.Error as exc:
            self._conn.close()
            logger.error("Failed to migrate %s: %s", self.path, exc)
            raise PersistenceWriteFailed(f"Could not migrate {self.path}: {exc}") from exc

    @property
    def path(self) -> Path:
        return self._db.db_path

    def load(self, key: str) -> Any | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return json.loads(row["value"]) if row else None

    def save(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO kv_store (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = datetime('now')
                    """,
                    (key, payload),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                logger.error("Failed to persist '%s' to %s: %s", key, self.path, exc)
                raise PersistenceWriteFailed(
                    f"Could not write '{key}' to {self.path}: {exc}"
                ) from exc

    def delete(self, key: str) -> None:
        with self._lock:
            try:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise PersistenceWriteFailed(
                    f"Could not delete '{key}' from {self.path}: {exc}"
                ) from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> SqliteStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

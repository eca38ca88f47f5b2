"""Tests for the forward-only migration runner."""

from __future__ import annotations

from ragtrust.db.connection import Database
from ragtrust.db.migrations import CURRENT_VERSION, MIGRATIONS, run_migrations, schema_version


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    db = Database(tmp_path / "test.db")
    return db.connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone() is not None


# --- Bootstrap ---

def test_run_migrations_creates_schema_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "schema_version")
    conn.close()


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert schema_version(conn) == CURRENT_VERSION == MIGRATIONS[-1][0]
    conn.close()


def test_schema_version_of_fresh_database_is_zero(tmp_path):
    conn = _fresh_conn(tmp_path)
    conn.execute(
        "CREATE TABLE schema_version (version INTEGER NOT NULL, applied_at DATETIME)"
    )
    assert schema_version(conn) == 0
    conn.close()


# --- Idempotency ---

def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


# --- Tables created ---

def test_run_migrations_creates_kv_store(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "kv_store")
    columns = {row["name"] for row in conn.execute("PRAGMA table_info(kv_store)")}
    assert columns == {"key", "value", "updated_at"}
    conn.close()


def test_kv_store_key_is_unique(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    conn.execute("INSERT INTO kv_store (key, value) VALUES ('k', '1')")
    conn.execute("INSERT OR REPLACE INTO kv_store (key, value) VALUES ('k', '2')")
    rows = conn.execute("SELECT value FROM kv_store WHERE key = 'k'").fetchall()
    assert [r["value"] for r in rows] == ["2"]
    conn.close()

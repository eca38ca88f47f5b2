"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from helpers import FailingStore, FakeClock
from ragtrust.db.store import MemoryStore, SqliteStore
from ragtrust.rag.index import VectorIndex
from ragtrust.sources.registry import SourceRegistry


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's global config and RAGTRUST_* env vars out of every test."""
    monkeypatch.setattr(
        "ragtrust.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml"
    )
    monkeypatch.delenv("RAGTRUST_DB", raising=False)
    monkeypatch.delenv("RAGTRUST_LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def index() -> VectorIndex:
    return VectorIndex()


@pytest.fixture
def registry(store: MemoryStore, index: VectorIndex, clock: FakeClock) -> SourceRegistry:
    return SourceRegistry(store, index, clock=clock)


@pytest.fixture
def sqlite_store(tmp_path: Path):
    """File-based store in tmp_path, closed after the test."""
    s = SqliteStore(tmp_path / ".ragtrust.db")
    yield s
    s.close()

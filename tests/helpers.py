"""Builders and test doubles shared by the unit tests."""

from __future__ import annotations

from pathlib import Path

from ragtrust.config import SECONDS_PER_DAY, RagtrustConfig, StorageCfg
from ragtrust.db.store import MemoryStore
from ragtrust.errors import PersistenceWriteFailed
from ragtrust.models import Chunk, ChunkMetadata, Source, SourceType
from ragtrust.service import RagTrust

T0 = 1_750_000_000.0


class FakeClock:
    """Manually advanced clock returning POSIX seconds."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, days: float = 0.0, seconds: float = 0.0) -> None:
        self.now += days * SECONDS_PER_DAY + seconds


class FixedRng:
    """Stands in for random.Random with a fixed draw (< 0.5 picks config A)."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class FailingStore(MemoryStore):
    """MemoryStore whose writes can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False
        self.writes = 0

    def save(self, key, value) -> None:
        if self.fail:
            raise PersistenceWriteFailed(f"store unavailable writing '{key}'")
        self.writes += 1
        super().save(key, value)


def make_source(
    source_id: str = "pdf_1",
    name: str = "manual.pdf",
    priority: int = 3,
    added_at: float = T0,
    source_type: SourceType = SourceType.PDF,
    chunk_count: int = 3,
) -> Source:
    return Source(
        id=source_id,
        name=name,
        type=source_type,
        chunk_count=chunk_count,
        added_at=added_at,
        priority=priority,
    )


def make_chunk(
    chunk_id: str,
    source: str,
    embedding: list[float] | None,
    priority: int | None = None,
    index: int = 0,
) -> Chunk:
    return Chunk(
        id=chunk_id,
        content=f"content of {chunk_id}",
        metadata=ChunkMetadata(
            source=source,
            source_type=SourceType.TEXT,
            chunk_index=index,
            total_chunks=1,
            priority=priority,
        ),
        embedding=embedding,
    )


def open_db(path: Path, rng: FixedRng | None = None) -> RagTrust:
    """Open a SQLite-backed RagTrust on *path*, as the CLI does."""
    return RagTrust.open(RagtrustConfig(storage=StorageCfg(path=str(path))), rng=rng)

"""Host wiring: one object that owns the index, registry, experiments and
recommendations and exposes the ingest / query / feedback entry points.

Components are built once and shared by reference; nothing in ragtrust keeps
global state.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Callable, Iterable, Sequence

from ragtrust.config import RagtrustConfig
from ragtrust.db.store import KeyValueStore, MemoryStore, SqliteStore
from ragtrust.errors import PersistenceWriteFailed
from ragtrust.experiments.manager import ExperimentManager
from ragtrust.models import (
    NEUTRAL_PRIORITY,
    Chunk,
    Recommendation,
    SearchResult,
    Source,
    SourceType,
)
from ragtrust.rag.index import PriorityWeighting, VectorIndex
from ragtrust.snapshot import ImportResult, dump_snapshot, parse_snapshot
from ragtrust.sources.recommendations import RecommendationEngine
from ragtrust.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)


class RagTrust:
    """Retrieval core with feedback-learned source priorities.

    Args:
        config: Merged configuration; defaults apply when omitted.
        store: Key-value store for sources and experiment state. An in-memory
            store is used when omitted.
        clock: Returns the current time in POSIX seconds.
        rng: Random source for experiment assignment.
    """

    def __init__(
        self,
        config: RagtrustConfig | None = None,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RagtrustConfig()
        self.store = store if store is not None else MemoryStore()
        self._clock = clock

        self.index = VectorIndex(weighting=PriorityWeighting.from_config(self.config.retrieval))
        self.registry = SourceRegistry(self.store, self.index, self.config.learning, clock)
        self.experiments = ExperimentManager(
            self.registry, self.store, self.config.experiment, rng, clock
        )
        self.recommender = RecommendationEngine(
            self.registry, self.config.recommendations, clock
        )

    @classmethod
    def open(cls, config: RagtrustConfig, **kwargs) -> RagTrust:
        """Build a RagTrust persisted to the SQLite file named by *config*."""
        store = SqliteStore(config.storage.path, timeout=config.storage.timeout)
        return cls(config, store, **kwargs)

    def close(self) -> None:
        close = getattr(self.store, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> RagTrust:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def add_source(
        self,
        name: str,
        source_type: SourceType,
        chunk_count: int = 0,
        priority: int = NEUTRAL_PRIORITY,
        source_id: str | None = None,
    ) -> Source:
        """Register source metadata without indexing any chunks."""
        source = Source(
            id=source_id or f"{source_type.value}_{uuid.uuid4().hex[:12]}",
            name=name,
            type=source_type,
            chunk_count=chunk_count,
            added_at=self._clock(),
            priority=priority,
        )
        return self.registry.register(source)

    def ingest(
        self,
        source_name: str,
        source_type: SourceType,
        chunks: Sequence[Chunk],
        source_id: str | None = None,
        priority: int = NEUTRAL_PRIORITY,
    ) -> Source:
        """Index *chunks* and register the source they came from.

        The chunks are indexed first, so a dimension mismatch leaves the
        registry untouched; if registering fails, the chunks are taken out
        of the index again.

        Raises:
            DimensionMismatch: If a chunk embedding has the wrong dimension.
            InvalidPriority: If *priority* or a chunk override is outside 1..5.
            PersistenceWriteFailed: If the store rejects the new source.
        """
        self.index.add_many(chunks)
        try:
            return self.add_source(
                source_name, source_type, len(chunks), priority, source_id=source_id
            )
        except BaseException:
            self.index.discard(c.id for c in chunks)
            raise

    # ------------------------------------------------------------------
    # Query and feedback
    # ------------------------------------------------------------------

    def query(self, embedding: Sequence[float], top_k: int | None = None) -> list[SearchResult]:
        """Rank indexed chunks for *embedding* using the current source priorities."""
        k = self.config.retrieval.top_k if top_k is None else top_k
        return self.index.search_weighted(embedding, k, self.registry.priority_map())

    def record_usage(self, source_ids: Iterable[str]) -> None:
        self.registry.record_usage(source_ids)

    def record_feedback(self, source_ids: Iterable[str], is_positive: bool) -> list[Source]:
        return self.registry.record_feedback(source_ids, is_positive)

    # ------------------------------------------------------------------
    # Source management
    # ------------------------------------------------------------------

    def sources(self) -> list[Source]:
        return self.registry.list_sources()

    def remove_source(self, source_id: str) -> int:
        """Remove a source and its chunks; return the number of chunks removed."""
        return self.registry.remove(source_id)

    def update_priority(self, source_id: str, priority: int) -> Source:
        return self.registry.update_priority(source_id, priority)

    def recommendations(self) -> list[Recommendation]:
        return self.recommender.generate()

    def apply_recommendation(self, recommendation: Recommendation) -> bool:
        return self.recommender.apply(recommendation)

    def chunk_count(self) -> int:
        return self.index.size()

    def clear(self) -> None:
        """Drop every chunk, source and experiment."""
        with self.registry.lock:
            self.experiments.replace(None)
            self.registry.clear()
        logger.info("Cleared all sources and chunks")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export_snapshot(self) -> str:
        """Return a JSON snapshot of source metadata and the current A/B test."""
        with self.registry.lock:
            return dump_snapshot(self.sources(), self.experiments.active, self._clock())

    def import_snapshot(self, text: str) -> ImportResult:
        """Replace sources (and the A/B test, if the snapshot has one) from *text*.

        Indexed chunks are left alone; embeddings are not part of a snapshot.

        Raises:
            SnapshotError: If *text* is not a valid snapshot (nothing changes).
            PersistenceWriteFailed: If the store rejects the import; the
                previous sources are restored.
        """
        snapshot = parse_snapshot(text)
        result = ImportResult(sources_imported=len(snapshot.sources))

        with self.registry.lock:
            previous = self.registry.list_sources()
            self.registry.replace_all(snapshot.sources)
            if snapshot.active_ab_test is not None:
                try:
                    self.experiments.replace(snapshot.active_ab_test)
                except PersistenceWriteFailed:
                    self.registry.replace_all(previous)
                    raise
                result.experiment_imported = True

        result.warnings.append(
            f"Imported {result.sources_imported} source(s). Vector embeddings are not "
            "included; re-ingest the documents to make them searchable."
        )
        logger.info("Imported snapshot with %d sources", result.sources_imported)
        return result

"""In-memory exact vector index with source-priority weighting.

Ranking:
  base(d)     = cos(query, d)                       (0 when either norm is 0)
  weighted(d) = base(d) * (base + priority * step)  defaults 0.5 / 0.2

Priority resolution per chunk: chunk-level override → caller's map keyed by
source name → default (3). Both rankings use a stable sort, so ties keep
insertion order.

Writers build a new mapping under a lock and swap it in; readers scan the
mapping they picked up, so a search never sees a half-applied add or remove.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass

from ragtrust.config import RetrievalCfg
from ragtrust.errors import DimensionMismatch, UnknownChunk
from ragtrust.models import Chunk, SearchResult, validate_priority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriorityWeighting:
    """Maps a source priority to a score multiplier."""

    base: float = 0.5
    step: float = 0.2
    default_priority: int = 3

    @classmethod
    def from_config(cls, cfg: RetrievalCfg) -> PriorityWeighting:
        return cls(
            base=cfg.priority_base,
            step=cfg.priority_step,
            default_priority=cfg.default_priority,
        )

    def multiplier(self, priority: int) -> float:
        return self.base + priority * self.step


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return dot(a, b) / (|a| * |b|), or 0.0 if either vector has zero norm.

    Raises:
        DimensionMismatch: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    magnitude = math.sqrt(norm_a) * math.sqrt(norm_b)
    return 0.0 if magnitude == 0 else dot / magnitude


class VectorIndex:
    """Chunk records plus embeddings, searchable by cosine similarity.

    Args:
        dimension: Embedding dimension. When None, the first embedded chunk
            fixes it (and ``clear()`` releases it again).
        weighting: Priority multiplier used by ``search_weighted``.
    """

    def __init__(
        self,
        dimension: int | None = None,
        weighting: PriorityWeighting | None = None,
    ) -> None:
        if dimension is not None and dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {dimension}")
        self._fixed_dimension = dimension
        self._weighting = weighting or PriorityWeighting()
        # (chunks, dimension) published together so readers see one consistent pair
        self._snapshot: tuple[dict[str, Chunk], int | None] = ({}, dimension)
        self._write_lock = threading.Lock()

    @property
    def dimension(self) -> int | None:
        return self._snapshot[1]

    @property
    def weighting(self) -> PriorityWeighting:
        return self._weighting

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, chunk: Chunk) -> None:
        """Insert *chunk*, replacing any chunk with the same id in place."""
        self.add_many([chunk])

    def add_many(self, chunks: Iterable[Chunk]) -> None:
        """Insert all *chunks* or none of them.

        Raises:
            DimensionMismatch: If an embedding disagrees with the index dimension.
            InvalidPriority: If a chunk carries a priority override outside 1..5.
        """
        batch = list(chunks)
        with self._write_lock:
            current, dimension = self._snapshot
            for chunk in batch:
                if chunk.metadata.priority is not None:
                    validate_priority(chunk.metadata.priority)
                if chunk.embedding is None:
                    logger.warning("Adding chunk without embedding: %s", chunk.id)
                    continue
                if dimension is None:
                    dimension = len(chunk.embedding)
                elif len(chunk.embedding) != dimension:
                    raise DimensionMismatch(dimension, len(chunk.embedding))

            updated = dict(current)
            for chunk in batch:
                updated[chunk.id] = chunk
            self._snapshot = (updated, dimension)

    def remove(self, predicate: Callable[[str], bool]) -> int:
        """Remove every chunk whose source name satisfies *predicate*.

        Returns:
            Number of chunks removed.
        """
        with self._write_lock:
            current, dimension = self._snapshot
            kept = {
                cid: c for cid, c in current.items() if not predicate(c.metadata.source)
            }
            removed = len(current) - len(kept)
            if removed:
                self._snapshot = (kept, dimension)
        return removed

    def remove_by_source(self, source: str) -> int:
        """Remove all chunks of the source named *source*; return the count."""
        return self.remove(lambda name: name == source)

    def discard(self, chunk_ids: Iterable[str]) -> int:
        """Remove the chunks with the given ids; unknown ids are ignored."""
        doomed = set(chunk_ids)
        with self._write_lock:
            current, dimension = self._snapshot
            kept = {cid: c for cid, c in current.items() if cid not in doomed}
            removed = len(current) - len(kept)
            if removed:
                self._snapshot = (kept, dimension)
        return removed

    def clear(self) -> None:
        with self._write_lock:
            self._snapshot = ({}, self._fixed_dimension)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, chunk_id: str) -> Chunk:
        """Return the chunk with *chunk_id*.

        Raises:
            UnknownChunk: If no such chunk exists.
        """
        chunk = self._snapshot[0].get(chunk_id)
        if chunk is None:
            raise UnknownChunk(chunk_id)
        return chunk

    def get_all(self) -> list[Chunk]:
        return list(self._snapshot[0].values())

    def get_by_source(self, source: str) -> list[Chunk]:
        return [c for c in self._snapshot[0].values() if c.metadata.source == source]

    def size(self) -> int:
        return len(self._snapshot[0])

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._snapshot[0]

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: Sequence[float], k: int = 5) -> list[SearchResult]:
        """Return the *k* chunks most similar to *query*, best first.

        Raises:
            DimensionMismatch: If *query* does not match the index dimension.
        """
        scored = self._score(query)
        scored.sort(key=lambda r: r.base_score, reverse=True)
        return scored[: max(k, 0)]

    def search_weighted(
        self,
        query: Sequence[float],
        k: int = 5,
        priorities: Mapping[str, int] | None = None,
    ) -> list[SearchResult]:
        """Return the *k* best chunks by priority-weighted similarity.

        Args:
            query: Query embedding.
            k: Maximum number of results.
            priorities: Source name → priority; sources missing from the map
                (and chunks without an override) use the default priority.

        Raises:
            DimensionMismatch: If *query* does not match the index dimension.
        """
        priorities = priorities or {}
        weighting = self._weighting
        scored = self._score(query)
        for result in scored:
            meta = result.chunk.metadata
            if meta.priority is not None:
                priority = meta.priority
            else:
                priority = priorities.get(meta.source, weighting.default_priority)
            result.weighted_score = result.base_score * weighting.multiplier(priority)

        scored.sort(key=lambda r: r.weighted_score, reverse=True)
        return scored[: max(k, 0)]

    def _score(self, query: Sequence[float]) -> list[SearchResult]:
        chunks, dimension = self._snapshot
        if dimension is None:
            return []
        if len(query) != dimension:
            raise DimensionMismatch(dimension, len(query))

        return [
            SearchResult(chunk=chunk, base_score=cosine_similarity(query, chunk.embedding))
            for chunk in chunks.values()
            if chunk.embedding is not None
        ]

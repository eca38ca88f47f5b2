"""Source registry: metadata, priority and feedback history per source.

Every mutation is write-through: the new state is saved to the key-value
store before the call returns, and if the store rejects the write the
in-memory state is put back exactly as it was before the call. Mutations are
serialised on one re-entrant lock because feedback recomputation reads a
source's whole history.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager

from ragtrust.config import LearningCfg
from ragtrust.db.store import KeyValueStore
from ragtrust.errors import PersistenceWriteFailed, UnknownSource
from ragtrust.models import FeedbackEvent, Source, validate_priority
from ragtrust.rag.index import VectorIndex
from ragtrust.sources.learner import apply_decay, recommend_priority

logger = logging.getLogger(__name__)

STORE_KEY = "sources"

# Called with (source_ids, is_positive) after feedback has been committed.
FeedbackListener = Callable[[list[str], bool], None]


class SourceRegistry:
    """Owns every registered Source and keeps the store in sync with it.

    Args:
        store: Key-value store the registry writes through to.
        index: Vector index whose chunks are removed when a source is removed.
        learning: Decay, interval and auto-adjust parameters.
        clock: Returns the current time in POSIX seconds.
    """

    def __init__(
        self,
        store: KeyValueStore,
        index: VectorIndex | None = None,
        learning: LearningCfg | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._index = index
        self._learning = learning or LearningCfg()
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: list[FeedbackListener] = []
        self._sources: dict[str, Source] = {}
        self._load()

    @property
    def lock(self) -> threading.RLock:
        """The registry's mutation lock, shared with the experiment manager."""
        return self._lock

    @property
    def learning(self) -> LearningCfg:
        return self._learning

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        raw = self._store.load(STORE_KEY) or []
        self._sources = {}
        for item in raw:
            source = Source.from_dict(item)
            self._sources[source.id] = source

    def _persist(self) -> None:
        self._store.save(STORE_KEY, [s.to_dict() for s in self._sources.values()])

    @contextmanager
    def _transaction(self, source_ids: Iterable[str] | None = None) -> Iterator[None]:
        """Run a mutation, persist it, and restore the prior state on failure.

        Only the sources named in *source_ids* are snapshotted; None means
        the mutation may touch any source.
        """
        with self._lock:
            membership = dict(self._sources)
            if source_ids is None:
                backup = copy.deepcopy(self._sources)
            else:
                backup = {
                    sid: copy.deepcopy(self._sources[sid])
                    for sid in source_ids
                    if sid in self._sources
                }
            try:
                yield
                self._persist()
            except BaseException:
                membership.update(backup)
                self._sources = membership
                raise

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: FeedbackListener) -> None:
        """Register *listener* to run after each committed feedback call."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, source_id: str) -> Source:
        """Return the source with *source_id*.

        Raises:
            UnknownSource: If no such source is registered.
        """
        source = self._sources.get(source_id)
        if source is None:
            raise UnknownSource(source_id)
        return source

    def find_by_name(self, name: str) -> Source | None:
        for source in self._sources.values():
            if source.name == name:
                return source
        return None

    def list_sources(self) -> list[Source]:
        """Return all sources, newest first."""
        return sorted(self._sources.values(), key=lambda s: s.added_at, reverse=True)

    def priority_map(self) -> dict[str, int]:
        """Source name → priority, the shape ``VectorIndex.search_weighted`` takes."""
        return {s.name: s.priority for s in self._sources.values()}

    def priorities(self) -> dict[str, int]:
        """Source id → priority."""
        return {s.id: s.priority for s in self._sources.values()}

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register(self, source: Source) -> Source:
        """Add *source* (replacing a source with the same id)."""
        validate_priority(source.priority)
        with self._transaction([source.id]):
            self._sources[source.id] = source
        logger.info(
            "Registered source '%s' (%s, %d chunks)", source.name, source.id, source.chunk_count
        )
        return source

    def update_priority(self, source_id: str, priority: int) -> Source:
        """Set the priority of *source_id*.

        Raises:
            InvalidPriority: If *priority* is outside 1..5 (nothing is changed).
            UnknownSource: If the source is not registered.
        """
        validate_priority(priority)
        with self._transaction([source_id]):
            source = self.get(source_id)
            source.priority = priority
        return source

    def apply_priorities(self, priorities: Mapping[str, int]) -> list[str]:
        """Set many priorities at once; ids that are no longer registered are skipped.

        Returns:
            Ids whose priority was applied.
        """
        for priority in priorities.values():
            validate_priority(priority)
        applied: list[str] = []
        with self._transaction(priorities.keys()):
            for source_id, priority in priorities.items():
                source = self._sources.get(source_id)
                if source is None:
                    logger.debug("Skipping priority for removed source %s", source_id)
                    continue
                source.priority = priority
                applied.append(source_id)
        return applied

    def remove(self, source_id: str) -> int:
        """Remove *source_id* and every indexed chunk of its source name.

        Returns:
            Number of chunks removed from the index.

        Raises:
            UnknownSource: If the source is not registered.
        """
        with self._lock:
            with self._transaction([source_id]):
                source = self.get(source_id)
                del self._sources[source_id]
            removed = self._index.remove_by_source(source.name) if self._index is not None else 0
        logger.info("Removed source '%s' (%s) and %d chunks", source.name, source_id, removed)
        return removed

    def replace_all(self, sources: Iterable[Source]) -> None:
        """Replace the whole registry with *sources* (used by snapshot import)."""
        incoming = list(sources)
        for source in incoming:
            validate_priority(source.priority)
        with self._transaction():
            self._sources = {s.id: s for s in incoming}

    def clear(self) -> None:
        """Remove every source and, with them, every indexed chunk."""
        with self._transaction():
            self._sources = {}
        if self._index is not None:
            self._index.clear()

    def record_usage(self, source_ids: Iterable[str]) -> None:
        """Count one answer citation for each of *source_ids*.

        Raises:
            UnknownSource: If any id is unknown (no source is touched).
        """
        ids = list(source_ids)
        with self._lock:
            for source_id in ids:
                self.get(source_id)
            now = self._clock()
            with self._transaction(ids):
                for source_id in ids:
                    stats = self._sources[source_id].usage_stats
                    stats.times_used += 1
                    stats.last_used = now

    def record_feedback(self, source_ids: Iterable[str], is_positive: bool) -> list[Source]:
        """Record one judgment against every source cited by an answer.

        Each source gets a fresh FeedbackEvent, its raw counter bumped, its
        score and interval recomputed over the whole decayed history, and,
        once it has enough ratings, a chance to auto-adjust its priority.

        Returns:
            The updated sources, in the order given.

        Raises:
            UnknownSource: If any id is unknown (no source is touched).
            PersistenceWriteFailed: If the store rejects the write; the
                feedback is rolled back in memory.
        """
        ids = list(dict.fromkeys(source_ids))
        if not ids:
            return []

        cfg = self._learning
        with self._lock:
            for source_id in ids:
                self.get(source_id)
            now = self._clock()
            backup = {sid: copy.deepcopy(self._sources[sid]) for sid in ids}
            with self._transaction(ids):
                for source_id in ids:
                    source = self._sources[source_id]
                    stats = source.usage_stats
                    stats.feedback_history.append(
                        FeedbackEvent(timestamp=now, is_positive=is_positive, weight=1.0)
                    )
                    if is_positive:
                        stats.positive_ratings += 1
                    else:
                        stats.negative_ratings += 1

                    apply_decay(stats, now, cfg.half_life_seconds, cfg.z)

                    if stats.total_ratings >= cfg.auto_adjust_threshold:
                        self._auto_adjust(source)

            try:
                for listener in self._listeners:
                    listener(ids, is_positive)
            except PersistenceWriteFailed as exc:
                self._sources.update(backup)
                self._persist_after_rollback(exc)
                raise
            return [self._sources[source_id] for source_id in ids]

    def _persist_after_rollback(self, cause: PersistenceWriteFailed) -> None:
        """Save the rolled-back sources, or fail with both errors.

        When this save fails too, the store still holds the feedback that was
        rolled back in memory; the raised error says so.
        """
        try:
            self._persist()
        except PersistenceWriteFailed as exc:
            logger.error("Could not persist rolled-back registry state: %s", exc)
            raise PersistenceWriteFailed(
                f"{cause}; restoring the previous registry state also failed "
                f"({exc}), so the store still holds the rejected feedback"
            ) from exc

    def _auto_adjust(self, source: Source) -> None:
        stats = source.usage_stats
        width = stats.confidence_width
        new_priority = recommend_priority(
            stats.learning_score,
            width,
            source.priority,
            max_width=self._learning.auto_adjust_max_width,
            thresholds=self._learning.thresholds,
        )
        if new_priority is None:
            if width >= self._learning.auto_adjust_max_width:
                logger.debug(
                    "Skipping auto-adjust for '%s': interval width %.3f too wide",
                    source.name,
                    width,
                )
            return

        logger.info(
            "Auto-adjusted priority for '%s' from %d to %d (score %.2f, width %.3f)",
            source.name,
            source.priority,
            new_priority,
            stats.learning_score,
            width,
        )
        source.priority = new_priority

"""A/B testing of two source-priority configurations under live feedback.

Lifecycle:

  no test --start()--> running --end()--> ended --apply_winner() | clear()--> no test

  switch_config() toggles the applied side while running.

Configuration A is the control: the registry's priorities at ``start()``.
Configuration B is supplied by the caller. While a test runs, every feedback
call recorded by the registry is attributed to the active configuration.
"""

from __future__ import annotations

import copy
import logging
import random
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager

from ragtrust.config import ExperimentCfg
from ragtrust.db.store import KeyValueStore
from ragtrust.errors import (
    ExperimentAlreadyEnded,
    ExperimentAlreadyRunning,
    InconclusiveExperiment,
    NoActiveExperiment,
    PersistenceWriteFailed,
    UnknownSource,
)
from ragtrust.experiments.stats import INCONCLUSIVE, decide_winner, two_proportion_p_value
from ragtrust.models import ABTest, SourceConfiguration, validate_priority
from ragtrust.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)

STORE_KEY = "ab_test"
CONTROL_NAME = "Control (Current)"


class ExperimentManager:
    """Runs at most one A/B test at a time against a SourceRegistry.

    Args:
        registry: Registry whose priorities the configurations are applied to.
            The manager subscribes to its feedback.
        store: Key-value store for the test state.
        experiment: Winner / p-value decision thresholds.
        rng: Source of the 50/50 initial assignment.
        clock: Returns the current time in POSIX seconds; defaults to the
            registry's clock.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        store: KeyValueStore,
        experiment: ExperimentCfg | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._cfg = experiment or ExperimentCfg()
        self._rng = rng or random.Random()
        self._clock = clock or registry.now
        self._test: ABTest | None = None
        self.load()
        registry.subscribe(self.record_feedback)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def active(self) -> ABTest | None:
        """The current test (running or ended but not yet cleared), if any."""
        return self._test

    @property
    def is_running(self) -> bool:
        return self._test is not None and self._test.is_running

    def load(self) -> None:
        raw = self._store.load(STORE_KEY)
        self._test = ABTest.from_dict(raw) if raw else None

    def _save(self) -> None:
        if self._test is None:
            self._store.delete(STORE_KEY)
        else:
            self._store.save(STORE_KEY, self._test.to_dict())

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Mutate the test, persist it, and undo both test and priorities on failure."""
        with self._registry.lock:
            previous_test = copy.deepcopy(self._test)
            previous_priorities = self._registry.priorities()
            try:
                yield
                self._save()
            except BaseException:
                self._test = previous_test
                if self._registry.priorities() != previous_priorities:
                    try:
                        self._registry.apply_priorities(previous_priorities)
                    except PersistenceWriteFailed as exc:
                        logger.error("Could not restore priorities after failure: %s", exc)
                raise

    def _apply(self, config: str) -> None:
        assert self._test is not None
        self._registry.apply_priorities(self._test.config_for(config).source_priorities)

    def _require_running(self) -> ABTest:
        if self._test is None or not self._test.is_running:
            raise NoActiveExperiment("No A/B test is running.")
        return self._test

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        name: str,
        description: str,
        config_b: SourceConfiguration | Mapping[str, int],
    ) -> ABTest:
        """Start a test of *config_b* against the current priorities.

        An ended test that was never cleared is replaced.

        Raises:
            ExperimentAlreadyRunning: If a test is running.
            InvalidPriority: If *config_b* holds a priority outside 1..5.
            UnknownSource: If *config_b* names an unregistered source.
        """
        if not isinstance(config_b, SourceConfiguration):
            config_b = SourceConfiguration(name=name, source_priorities=dict(config_b))

        with self._registry.lock:
            if self.is_running:
                raise ExperimentAlreadyRunning(
                    f"A/B test '{self._test.name}' is already running; end it first."
                )
            for source_id, priority in config_b.source_priorities.items():
                validate_priority(priority)
                if source_id not in self._registry:
                    raise UnknownSource(source_id)

            config_a = SourceConfiguration(
                name=CONTROL_NAME, source_priorities=self._registry.priorities()
            )
            with self._transaction():
                self._test = ABTest(
                    id=f"ab_{uuid.uuid4().hex[:12]}",
                    name=name,
                    description=description,
                    started_at=self._clock(),
                    config_a=config_a,
                    config_b=copy.deepcopy(config_b),
                    active_config="A" if self._rng.random() < 0.5 else "B",
                )
                self._apply(self._test.active_config)

        logger.info("Started A/B test '%s' (active config: %s)", name, self._test.active_config)
        return self._test

    def switch_config(self) -> str:
        """Toggle the active configuration and apply it; return the new one.

        Raises:
            NoActiveExperiment: If no test is running.
        """
        with self._registry.lock:
            test = self._require_running()
            with self._transaction():
                test.active_config = "B" if test.active_config == "A" else "A"
                self._apply(test.active_config)
        logger.info("Switched A/B test '%s' to config %s", test.name, test.active_config)
        return test.active_config

    def record_feedback(self, source_ids: list[str], is_positive: bool) -> None:
        """Attribute one judgment to the active configuration of a running test.

        Does nothing when no test is running.
        """
        with self._registry.lock:
            if not self.is_running:
                return
            test = self._test
            with self._transaction():
                stats = test.results.stats_for(test.active_config)
                stats.questions_answered += 1
                if is_positive:
                    stats.positive_ratings += 1
                else:
                    stats.negative_ratings += 1

                sources = self._registry.list_sources()
                if sources:
                    mean_width = sum(s.usage_stats.confidence_width for s in sources) / len(
                        sources
                    )
                    stats.avg_confidence = 1 - mean_width

    def end(self) -> ABTest:
        """Stop the test and freeze its winner and p-value.

        Raises:
            NoActiveExperiment: If there is no test.
            ExperimentAlreadyEnded: If the test has already ended; its
                results are left as they were.
        """
        with self._registry.lock:
            test = self._test
            if test is None:
                raise NoActiveExperiment("No A/B test to end.")
            if not test.is_running:
                raise ExperimentAlreadyEnded(f"A/B test '{test.name}' has already ended.")

            with self._transaction():
                a = test.results.config_a_stats
                b = test.results.config_b_stats
                test.ended_at = self._clock()
                test.results.winner = decide_winner(a, b, self._cfg)
                test.results.p_value = two_proportion_p_value(a, b, self._cfg)

        logger.info(
            "Ended A/B test '%s': winner=%s p=%s",
            test.name,
            test.results.winner,
            test.results.p_value,
        )
        return test

    def apply_winner(self) -> str:
        """Apply the winning configuration and clear the test; return "A" or "B".

        Raises:
            NoActiveExperiment: If there is no ended test.
            InconclusiveExperiment: If the test ended without a winner.
        """
        with self._registry.lock:
            test = self._test
            if test is None or test.is_running:
                raise NoActiveExperiment("End the A/B test before applying its winner.")
            winner = test.results.winner
            if winner is None or winner == INCONCLUSIVE:
                raise InconclusiveExperiment(
                    f"A/B test '{test.name}' was inconclusive; nothing to apply."
                )
            with self._transaction():
                self._apply(winner)
                self._test = None

        logger.info("Applied winning config %s of A/B test '%s'", winner, test.name)
        return winner

    def clear(self) -> None:
        """Discard the current test and restore the control priorities.

        Does nothing when there is no test.
        """
        with self._registry.lock:
            if self._test is None:
                return
            test = self._test
            with self._transaction():
                self._apply("A")
                self._test = None
        logger.info("Cleared A/B test '%s'", test.name)

    def replace(self, test: ABTest | None) -> None:
        """Install *test* as the current state without touching priorities."""
        with self._registry.lock:
            with self._transaction():
                self._test = test

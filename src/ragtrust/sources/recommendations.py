"""Priority-change recommendations derived from learned source quality.

Rules, per source (first match within a band):

  ratings < min_ratings                      keep_current        low / low
  width < 0.2 (high confidence band)
    score >= 0.85 and priority < 5           +1                  high / high
    score >= 0.7 and priority <= 2           → 3                 high / medium
    score <= 0.3 and ratings >= 10           remove              high / high
    score <= 0.3 and priority > 1            -1                  medium / medium
    score < 0.5 and priority >= 4            → 3                 high / medium
  width < 0.4 (medium confidence band)
    score >= 0.75 and priority < 4           +1                  medium / medium
    score <= 0.25 and ratings >= 5           -1                  medium / medium
  independently: unused for > 30 days and used < 5 times
                                             remove              medium / low

Scores and intervals are read as last stored on the source; nothing is
re-decayed here, so generating recommendations never mutates the registry.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ragtrust.config import SECONDS_PER_DAY, RecommendationCfg
from ragtrust.models import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    NEUTRAL_PRIORITY,
    Level,
    Recommendation,
    RecommendationMetrics,
    RecommendationType,
    Source,
)
from ragtrust.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)


def _pct(rate: float) -> str:
    return f"{rate * 100:.0f}%"


class RecommendationEngine:
    """Read-only pass over a SourceRegistry that suggests priority changes."""

    def __init__(
        self,
        registry: SourceRegistry,
        recommendations: RecommendationCfg | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._cfg = recommendations or RecommendationCfg()
        self._clock = clock

    def generate(self) -> list[Recommendation]:
        """Return recommendations for every source, most impactful first.

        Ordered by impact, then confidence (high before low); sources keep
        registry order within a level.
        """
        now = self._clock()
        recs: list[Recommendation] = []
        for source in self._registry.list_sources():
            recs.extend(self._for_source(source, now))
        recs.sort(key=lambda r: (r.impact.rank, r.confidence.rank))
        return recs

    def _for_source(self, source: Source, now: float) -> list[Recommendation]:
        cfg = self._cfg
        stats = source.usage_stats
        total = stats.total_ratings
        rate = stats.positive_rate
        score = stats.learning_score
        width = stats.confidence_width
        priority = source.priority

        days_idle = None
        if stats.last_used is not None:
            days_idle = (now - stats.last_used) / SECONDS_PER_DAY

        metrics = RecommendationMetrics(
            learning_score=score,
            confidence_interval=stats.confidence_interval,
            total_ratings=total,
            positive_rate=rate,
            times_used=stats.times_used,
            days_since_last_use=days_idle,
        )

        def make(
            rec_type: RecommendationType,
            reason: str,
            confidence: Level,
            impact: Level,
            suggested: int | None = None,
        ) -> Recommendation:
            return Recommendation(
                source_id=source.id,
                source_name=source.name,
                type=rec_type,
                current_priority=priority,
                reason=reason,
                confidence=confidence,
                impact=impact,
                metrics=metrics,
                suggested_priority=suggested,
            )

        if total < cfg.min_ratings:
            return [
                make(
                    RecommendationType.KEEP_CURRENT,
                    "Insufficient feedback data. Continue using to gather performance metrics.",
                    Level.LOW,
                    Level.LOW,
                )
            ]

        recs: list[Recommendation] = []
        if width < cfg.high_confidence_width:
            if score >= 0.85 and priority < MAX_PRIORITY:
                recs.append(
                    make(
                        RecommendationType.INCREASE_PRIORITY,
                        f"Excellent performance with {_pct(rate)} positive feedback. "
                        "High confidence in quality.",
                        Level.HIGH,
                        Level.HIGH,
                        min(MAX_PRIORITY, priority + 1),
                    )
                )
            elif score >= 0.7 and priority <= 2:
                recs.append(
                    make(
                        RecommendationType.INCREASE_PRIORITY,
                        f"Strong positive feedback ({_pct(rate)}) suggests this source "
                        "deserves higher priority.",
                        Level.HIGH,
                        Level.MEDIUM,
                        NEUTRAL_PRIORITY,
                    )
                )
            elif score <= 0.3:
                if total >= 10:
                    recs.append(
                        make(
                            RecommendationType.REMOVE,
                            f"Consistently poor performance with only {_pct(rate)} positive "
                            f"feedback across {total} ratings. Consider removing.",
                            Level.HIGH,
                            Level.HIGH,
                        )
                    )
                elif priority > MIN_PRIORITY:
                    recs.append(
                        make(
                            RecommendationType.DECREASE_PRIORITY,
                            f"Low performance ({_pct(rate)} positive). Reduce priority or "
                            "gather more feedback.",
                            Level.MEDIUM,
                            Level.MEDIUM,
                            max(MIN_PRIORITY, priority - 1),
                        )
                    )
            elif score < 0.5 and priority >= 4:
                recs.append(
                    make(
                        RecommendationType.DECREASE_PRIORITY,
                        f"Average performance ({_pct(rate)} positive) doesn't justify "
                        "high priority.",
                        Level.HIGH,
                        Level.MEDIUM,
                        NEUTRAL_PRIORITY,
                    )
                )
        elif width < cfg.medium_confidence_width:
            if score >= 0.75 and priority < 4:
                recs.append(
                    make(
                        RecommendationType.INCREASE_PRIORITY,
                        f"Good early results ({_pct(rate)} positive). Consider increasing "
                        "priority as more data confirms performance.",
                        Level.MEDIUM,
                        Level.MEDIUM,
                        min(MAX_PRIORITY, priority + 1),
                    )
                )
            elif score <= 0.25 and total >= 5:
                recs.append(
                    make(
                        RecommendationType.DECREASE_PRIORITY,
                        f"Concerning trend with {_pct(rate)} positive feedback. Monitor "
                        "closely or reduce priority.",
                        Level.MEDIUM,
                        Level.MEDIUM,
                        max(MIN_PRIORITY, priority - 1),
                    )
                )

        if (
            days_idle is not None
            and days_idle > cfg.stale_days
            and stats.times_used < cfg.stale_max_uses
        ):
            recs.append(
                make(
                    RecommendationType.REMOVE,
                    f"Not used in {int(days_idle)} days and rarely referenced. "
                    "Consider removing to reduce noise.",
                    Level.MEDIUM,
                    Level.LOW,
                )
            )
        return recs

    def apply(self, recommendation: Recommendation) -> bool:
        """Carry out *recommendation* against the registry.

        Returns:
            True if the registry changed. Applying the same recommendation a
            second time, or one for a source that is gone, returns False.

        Raises:
            PersistenceWriteFailed: If the store rejects the change.
        """
        source_id = recommendation.source_id
        with self._registry.lock:
            return self._apply_locked(recommendation, source_id)

    def _apply_locked(self, recommendation: Recommendation, source_id: str) -> bool:
        if source_id not in self._registry:
            logger.debug("Recommendation for missing source %s ignored", source_id)
            return False

        if recommendation.type is RecommendationType.REMOVE:
            self._registry.remove(source_id)
            logger.info("Applied recommendation: removed '%s'", recommendation.source_name)
            return True

        if recommendation.type in (
            RecommendationType.INCREASE_PRIORITY,
            RecommendationType.DECREASE_PRIORITY,
        ):
            suggested = recommendation.suggested_priority
            if suggested is None or self._registry.get(source_id).priority == suggested:
                return False
            self._registry.update_priority(source_id, suggested)
            logger.info(
                "Applied recommendation: '%s' priority %d -> %d",
                recommendation.source_name,
                recommendation.current_priority,
                suggested,
            )
            return True

        return False

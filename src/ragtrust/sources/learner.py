"""Time-decayed feedback learning: score, confidence interval, priority.

Each judgment decays exponentially with a 30-day half-life by default:

  weight(e)      = exp(-age(e) / H * ln 2)
  learning_score = (Σ positive weights + 1) / (Σ weights + 2)     Laplace
  interval       = Wilson score interval at z over p = wp / wt, n = wt

No feedback at all gives score 0.5 and the uninformative band [0.3, 0.7].
Everything here is a pure function of the history and the clock value passed
in; weights are re-derived from timestamps on every call, never accumulated.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from ragtrust.config import SECONDS_PER_DAY, ScoreThresholds
from ragtrust.models import DEFAULT_CONFIDENCE_INTERVAL, FeedbackEvent, UsageStats

DEFAULT_HALF_LIFE = 30 * SECONDS_PER_DAY
DEFAULT_Z = 1.96
DEFAULT_MAX_WIDTH = 0.3


@dataclass(frozen=True)
class LearningResult:
    """Outcome of scoring one feedback history.

    Attributes:
        learning_score: Laplace-smoothed, decay-weighted positive rate in [0, 1].
        confidence_interval: Wilson bounds (lower, upper), clamped to [0, 1].
        weights: Decay weight of each event, aligned with the input history.
    """

    learning_score: float
    confidence_interval: tuple[float, float]
    weights: tuple[float, ...] = ()

    @property
    def confidence_width(self) -> float:
        lower, upper = self.confidence_interval
        return upper - lower


def decay_weight(age: float, half_life: float = DEFAULT_HALF_LIFE) -> float:
    """Return the weight of a judgment *age* seconds old (1.0 at age 0)."""
    return math.exp((-age / half_life) * math.log(2))


def wilson_interval(
    positive: float, total: float, z: float = DEFAULT_Z
) -> tuple[float, float]:
    """Wilson score interval for *positive* successes out of *total* trials.

    Weighted (fractional) counts are accepted. ``total == 0`` returns the
    default band.
    """
    if total <= 0:
        return DEFAULT_CONFIDENCE_INTERVAL

    n = total
    p = positive / total
    z2 = z * z
    denominator = 1 + z2 / n
    center = (p + z2 / (2 * n)) / denominator
    margin = (z / denominator) * math.sqrt(p * (1 - p) / n + z2 / (4 * n * n))
    return (max(0.0, center - margin), min(1.0, center + margin))


def compute_score(
    history: Sequence[FeedbackEvent],
    now: float,
    half_life: float = DEFAULT_HALF_LIFE,
    z: float = DEFAULT_Z,
) -> LearningResult:
    """Score *history* as seen at time *now* (POSIX seconds)."""
    if not history:
        return LearningResult(0.5, DEFAULT_CONFIDENCE_INTERVAL)

    weights = tuple(decay_weight(now - event.timestamp, half_life) for event in history)
    weighted_total = sum(weights)
    weighted_positive = sum(w for w, e in zip(weights, history) if e.is_positive)

    if weighted_total <= 0:
        return LearningResult(0.5, DEFAULT_CONFIDENCE_INTERVAL, weights)

    score = (weighted_positive + 1) / (weighted_total + 2)
    interval = wilson_interval(weighted_positive, weighted_total, z)
    return LearningResult(score, interval, weights)


def apply_decay(
    stats: UsageStats,
    now: float,
    half_life: float = DEFAULT_HALF_LIFE,
    z: float = DEFAULT_Z,
) -> LearningResult:
    """Recompute *stats* in place from its full history and return the result."""
    result = compute_score(stats.feedback_history, now, half_life, z)
    for event, weight in zip(stats.feedback_history, result.weights):
        event.weight = weight
    stats.learning_score = result.learning_score
    stats.confidence_interval = result.confidence_interval
    return result


def priority_for_score(score: float, thresholds: ScoreThresholds | None = None) -> int:
    """Map a learning score onto the 1..5 priority scale."""
    t = thresholds or ScoreThresholds()
    if score >= t.very_high:
        return 5
    if score >= t.high:
        return 4
    if score >= t.normal:
        return 3
    if score >= t.low:
        return 2
    return 1


def recommend_priority(
    score: float,
    confidence_width: float,
    current: int | None = None,
    *,
    max_width: float = DEFAULT_MAX_WIDTH,
    thresholds: ScoreThresholds | None = None,
) -> int | None:
    """Return the priority auto-adjustment should move to, or None.

    None means "leave it": the interval is still too wide to act on, or the
    mapped priority already equals *current*.
    """
    if confidence_width >= max_width:
        return None
    suggested = priority_for_score(score, thresholds)
    if suggested == current:
        return None
    return suggested

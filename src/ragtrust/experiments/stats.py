"""A/B decision statistics.

The p-value comes from a two-proportion z-test with a pooled rate, and the
normal CDF uses the closed-form approximation

  Φ(z) ≈ 0.5 * (1 + sign(z) * sqrt(1 - exp(-2 z² / π)))

rather than the exact error function, so results stay comparable with
experiments decided before.
"""

from __future__ import annotations

import math

from ragtrust.config import ExperimentCfg
from ragtrust.models import ConfigStats

WINNER_A = "A"
WINNER_B = "B"
INCONCLUSIVE = "inconclusive"


def normal_cdf(z: float) -> float:
    """Approximate standard normal CDF."""
    sign = (z > 0) - (z < 0)
    return 0.5 * (1 + sign * math.sqrt(1 - math.exp(-2 * z * z / math.pi)))


def decide_winner(a: ConfigStats, b: ConfigStats, cfg: ExperimentCfg | None = None) -> str:
    """Return "A", "B" or "inconclusive".

    Inconclusive when the positive rates differ by less than
    ``min_rate_difference`` or either side answered fewer than
    ``min_questions`` questions.
    """
    cfg = cfg or ExperimentCfg()
    rate_a = a.positive_rate
    rate_b = b.positive_rate
    if (
        abs(rate_a - rate_b) < cfg.min_rate_difference
        or a.questions_answered < cfg.min_questions
        or b.questions_answered < cfg.min_questions
    ):
        return INCONCLUSIVE
    return WINNER_A if rate_a > rate_b else WINNER_B


def two_proportion_p_value(
    a: ConfigStats, b: ConfigStats, cfg: ExperimentCfg | None = None
) -> float | None:
    """Two-sided p-value for the difference in positive rates, or None.

    None when the combined sample does not exceed ``min_total_for_p_value``.
    A side with no questions, or a pooled rate of exactly 0 or 1, carries no
    evidence of a difference and yields 1.0.
    """
    cfg = cfg or ExperimentCfg()
    n_a = a.questions_answered
    n_b = b.questions_answered
    n = n_a + n_b
    if n <= cfg.min_total_for_p_value:
        return None
    if n_a == 0 or n_b == 0:
        return 1.0

    pooled = (a.positive_ratings + b.positive_ratings) / n
    se = math.sqrt(pooled * (1 - pooled) * (1 / n_a + 1 / n_b))
    if se == 0:
        return 1.0
    z = abs(a.positive_rate - b.positive_rate) / se
    return 2 * (1 - normal_cdf(z))

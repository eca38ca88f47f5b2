"""A/B experiments over source-priority configurations."""

from ragtrust.experiments.manager import ExperimentManager
from ragtrust.experiments.stats import decide_winner, normal_cdf, two_proportion_p_value

__all__ = ["ExperimentManager", "decide_winner", "normal_cdf", "two_proportion_p_value"]

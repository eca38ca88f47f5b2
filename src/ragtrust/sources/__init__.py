"""Source registry, feedback learning and recommendations."""

from ragtrust.sources.learner import LearningResult, compute_score, recommend_priority
from ragtrust.sources.recommendations import RecommendationEngine
from ragtrust.sources.registry import SourceRegistry

__all__ = [
    "LearningResult",
    "compute_score",
    "recommend_priority",
    "RecommendationEngine",
    "SourceRegistry",
]

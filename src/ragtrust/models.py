"""Domain models for chunks, sources, feedback, experiments and recommendations.

Timestamps are POSIX seconds. Every persisted model round-trips through
``to_dict()`` / ``from_dict()`` so the key-value store only ever sees plain
JSON-compatible data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ragtrust.errors import InvalidPriority

MIN_PRIORITY = 1
MAX_PRIORITY = 5
NEUTRAL_PRIORITY = 3

DEFAULT_CONFIDENCE_INTERVAL: tuple[float, float] = (0.3, 0.7)


def validate_priority(priority: Any) -> int:
    """Return *priority* if it is an int in 1..5, else raise InvalidPriority."""
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise InvalidPriority(priority)
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise InvalidPriority(priority)
    return priority


class SourceType(str, Enum):
    PDF = "pdf"
    URL = "url"
    TEXT = "text"
    OFFICE = "office"
    IMAGE = "image"


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------


@dataclass
class ChunkMetadata:
    source: str
    source_type: SourceType
    chunk_index: int
    total_chunks: int
    page_number: int | None = None
    priority: int | None = None  # chunk-level override of the source priority


@dataclass
class Chunk:
    id: str
    content: str
    metadata: ChunkMetadata
    embedding: list[float] | None = None  # None: listed, never scored


@dataclass
class SearchResult:
    """A ranked chunk with its raw similarity and priority-weighted score."""

    chunk: Chunk
    base_score: float
    weighted_score: float | None = None  # None for unweighted search


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


@dataclass
class FeedbackEvent:
    timestamp: float
    is_positive: bool
    weight: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "is_positive": self.is_positive,
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeedbackEvent:
        return cls(
            timestamp=float(data["timestamp"]),
            is_positive=bool(data["is_positive"]),
            weight=float(data.get("weight", 1.0)),
        )


@dataclass
class UsageStats:
    """Usage counters and the learned quality estimate of one source."""

    times_used: int = 0
    positive_ratings: int = 0
    negative_ratings: int = 0
    last_used: float | None = None
    learning_score: float = 0.5
    confidence_interval: tuple[float, float] = DEFAULT_CONFIDENCE_INTERVAL
    feedback_history: list[FeedbackEvent] = field(default_factory=list)

    @property
    def total_ratings(self) -> int:
        return self.positive_ratings + self.negative_ratings

    @property
    def positive_rate(self) -> float:
        total = self.total_ratings
        return self.positive_ratings / total if total > 0 else 0.0

    @property
    def confidence_width(self) -> float:
        lower, upper = self.confidence_interval
        return upper - lower

    def to_dict(self) -> dict[str, Any]:
        return {
            "times_used": self.times_used,
            "positive_ratings": self.positive_ratings,
            "negative_ratings": self.negative_ratings,
            "last_used": self.last_used,
            "learning_score": self.learning_score,
            "confidence_interval": list(self.confidence_interval),
            "feedback_history": [e.to_dict() for e in self.feedback_history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UsageStats:
        lower, upper = data.get("confidence_interval", DEFAULT_CONFIDENCE_INTERVAL)
        last_used = data.get("last_used")
        return cls(
            times_used=int(data.get("times_used", 0)),
            positive_ratings=int(data.get("positive_ratings", 0)),
            negative_ratings=int(data.get("negative_ratings", 0)),
            last_used=float(last_used) if last_used is not None else None,
            learning_score=float(data.get("learning_score", 0.5)),
            confidence_interval=(float(lower), float(upper)),
            feedback_history=[
                FeedbackEvent.from_dict(e) for e in data.get("feedback_history", [])
            ],
        )


@dataclass
class Source:
    id: str
    name: str
    type: SourceType
    chunk_count: int
    added_at: float
    priority: int = NEUTRAL_PRIORITY
    usage_stats: UsageStats = field(default_factory=UsageStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "chunk_count": self.chunk_count,
            "priority": self.priority,
            "added_at": self.added_at,
            "usage_stats": self.usage_stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Source:
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            type=SourceType(data["type"]),
            chunk_count=int(data.get("chunk_count", 0)),
            priority=validate_priority(data.get("priority", NEUTRAL_PRIORITY)),
            added_at=float(data["added_at"]),
            usage_stats=UsageStats.from_dict(data.get("usage_stats", {})),
        )


# ---------------------------------------------------------------------------
# A/B experiments
# ---------------------------------------------------------------------------


@dataclass
class SourceConfiguration:
    name: str
    source_priorities: dict[str, int] = field(default_factory=dict)  # source id -> priority

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "source_priorities": dict(self.source_priorities)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceConfiguration:
        return cls(
            name=str(data.get("name", "")),
            source_priorities={
                str(k): validate_priority(v)
                for k, v in data.get("source_priorities", {}).items()
            },
        )


@dataclass
class ConfigStats:
    questions_answered: int = 0
    positive_ratings: int = 0
    negative_ratings: int = 0
    avg_confidence: float = 0.0

    @property
    def positive_rate(self) -> float:
        if self.questions_answered == 0:
            return 0.0
        return self.positive_ratings / self.questions_answered

    def to_dict(self) -> dict[str, Any]:
        return {
            "questions_answered": self.questions_answered,
            "positive_ratings": self.positive_ratings,
            "negative_ratings": self.negative_ratings,
            "avg_confidence": self.avg_confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigStats:
        return cls(
            questions_answered=int(data.get("questions_answered", 0)),
            positive_ratings=int(data.get("positive_ratings", 0)),
            negative_ratings=int(data.get("negative_ratings", 0)),
            avg_confidence=float(data.get("avg_confidence", 0.0)),
        )


@dataclass
class ABTestResults:
    config_a_stats: ConfigStats = field(default_factory=ConfigStats)
    config_b_stats: ConfigStats = field(default_factory=ConfigStats)
    winner: str | None = None  # "A" | "B" | "inconclusive"
    p_value: float | None = None

    def stats_for(self, config: str) -> ConfigStats:
        return self.config_a_stats if config == "A" else self.config_b_stats

    def to_dict(self) -> dict[str, Any]:
        return {
            "config_a_stats": self.config_a_stats.to_dict(),
            "config_b_stats": self.config_b_stats.to_dict(),
            "winner": self.winner,
            "p_value": self.p_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ABTestResults:
        p_value = data.get("p_value")
        return cls(
            config_a_stats=ConfigStats.from_dict(data.get("config_a_stats", {})),
            config_b_stats=ConfigStats.from_dict(data.get("config_b_stats", {})),
            winner=data.get("winner"),
            p_value=float(p_value) if p_value is not None else None,
        )


@dataclass
class ABTest:
    """A controlled comparison of two source-priority configurations.

    Attributes:
        config_a: The control, i.e. registry priorities snapshotted at start.
        config_b: Experimental configuration supplied by the caller.
        active_config: "A" or "B"; the configuration currently applied.
        ended_at: Set once by ``ExperimentManager.end()``; results are frozen
            from then on.
    """

    id: str
    name: str
    description: str
    started_at: float
    config_a: SourceConfiguration
    config_b: SourceConfiguration
    active_config: str
    results: ABTestResults = field(default_factory=ABTestResults)
    ended_at: float | None = None

    @property
    def is_running(self) -> bool:
        return self.ended_at is None

    def config_for(self, config: str) -> SourceConfiguration:
        return self.config_a if config == "A" else self.config_b

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "config_a": self.config_a.to_dict(),
            "config_b": self.config_b.to_dict(),
            "active_config": self.active_config,
            "results": self.results.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ABTest:
        active = data.get("active_config", "A")
        if active not in ("A", "B"):
            raise ValueError(f"active_config must be 'A' or 'B', got {active!r}")
        ended_at = data.get("ended_at")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            started_at=float(data["started_at"]),
            ended_at=float(ended_at) if ended_at is not None else None,
            config_a=SourceConfiguration.from_dict(data["config_a"]),
            config_b=SourceConfiguration.from_dict(data["config_b"]),
            active_config=active,
            results=ABTestResults.from_dict(data.get("results", {})),
        )


# ---------------------------------------------------------------------------
# Recommendations (derived, never persisted)
# ---------------------------------------------------------------------------


class RecommendationType(str, Enum):
    INCREASE_PRIORITY = "increase_priority"
    DECREASE_PRIORITY = "decrease_priority"
    REMOVE = "remove"
    KEEP_CURRENT = "keep_current"


class Level(str, Enum):
    """Confidence / impact level of a recommendation."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


@dataclass
class RecommendationMetrics:
    learning_score: float
    confidence_interval: tuple[float, float]
    total_ratings: int
    positive_rate: float
    times_used: int
    days_since_last_use: float | None = None


@dataclass
class Recommendation:
    source_id: str
    source_name: str
    type: RecommendationType
    current_priority: int
    reason: str
    confidence: Level
    impact: Level
    metrics: RecommendationMetrics
    suggested_priority: int | None = None

"""Tests for domain model helpers and their persisted shape."""

from __future__ import annotations

import pytest

from helpers import T0, make_source
from ragtrust.errors import InvalidPriority
from ragtrust.models import (
    ABTest,
    ConfigStats,
    FeedbackEvent,
    Level,
    Source,
    SourceConfiguration,
    UsageStats,
    validate_priority,
)


@pytest.mark.parametrize("priority", [1, 3, 5])
def test_validate_priority_accepts_range(priority: int) -> None:
    assert validate_priority(priority) == priority


@pytest.mark.parametrize("priority", [0, 6, -1, 2.5, "3", None, True])
def test_validate_priority_rejects(priority: object) -> None:
    with pytest.raises(InvalidPriority):
        validate_priority(priority)


def test_invalid_priority_is_a_value_error() -> None:
    with pytest.raises(ValueError, match="1..5"):
        validate_priority(9)


def test_usage_stats_derived_values() -> None:
    stats = UsageStats(positive_ratings=3, negative_ratings=1, confidence_interval=(0.4, 0.9))
    assert stats.total_ratings == 4
    assert stats.positive_rate == 0.75
    assert stats.confidence_width == pytest.approx(0.5)
    assert UsageStats().positive_rate == 0.0


def test_config_stats_rate_without_questions() -> None:
    assert ConfigStats().positive_rate == 0.0
    assert ConfigStats(questions_answered=4, positive_ratings=1).positive_rate == 0.25


def test_source_dict_keeps_history_and_interval() -> None:
    source = make_source(priority=4)
    source.usage_stats.feedback_history.append(FeedbackEvent(T0, True, 0.5))
    source.usage_stats.confidence_interval = (0.2, 0.6)
    source.usage_stats.last_used = T0

    data = source.to_dict()
    assert data["type"] == "pdf"
    assert data["usage_stats"]["confidence_interval"] == [0.2, 0.6]

    restored = Source.from_dict(data)
    assert restored == source


def test_source_from_dict_fills_defaults() -> None:
    restored = Source.from_dict(
        {"id": "url_1", "name": "https://example.com", "type": "url", "added_at": T0}
    )
    assert restored.priority == 3
    assert restored.chunk_count == 0
    assert restored.usage_stats.confidence_interval == (0.3, 0.7)
    assert restored.usage_stats.last_used is None


def test_source_from_dict_rejects_bad_priority() -> None:
    data = make_source().to_dict()
    data["priority"] = 9
    with pytest.raises(InvalidPriority):
        Source.from_dict(data)


def _ab_dict(**overrides) -> dict:
    test = ABTest(
        id="ab_1",
        name="t",
        description="",
        started_at=T0,
        config_a=SourceConfiguration("Control (Current)", {"a": 3}),
        config_b=SourceConfiguration("boost", {"a": 5}),
        active_config="B",
    )
    data = test.to_dict()
    data.update(overrides)
    return data


def test_ab_test_from_dict() -> None:
    test = ABTest.from_dict(_ab_dict(ended_at=T0 + 10))
    assert test.config_b.source_priorities == {"a": 5}
    assert test.ended_at == T0 + 10
    assert not test.is_running
    assert test.config_for("A").name == "Control (Current)"


def test_ab_test_rejects_unknown_active_config() -> None:
    with pytest.raises(ValueError, match="active_config"):
        ABTest.from_dict(_ab_dict(active_config="C"))


def test_level_rank_orders_high_first() -> None:
    assert sorted([Level.LOW, Level.HIGH, Level.MEDIUM], key=lambda lv: lv.rank) == [
        Level.HIGH,
        Level.MEDIUM,
        Level.LOW,
    ]

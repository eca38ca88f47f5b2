"""Tests for snapshot export documents and import validation."""

from __future__ import annotations

import json

import pytest

from helpers import T0, make_source
from ragtrust.errors import SnapshotError
from ragtrust.models import ABTest, FeedbackEvent, SourceConfiguration
from ragtrust.snapshot import SNAPSHOT_VERSION, dump_snapshot, parse_snapshot


def _test() -> ABTest:
    return ABTest(
        id="ab_1",
        name="boost manual",
        description="",
        started_at=T0,
        config_a=SourceConfiguration("Control (Current)", {"pdf_1": 3}),
        config_b=SourceConfiguration("boost manual", {"pdf_1": 5}),
        active_config="A",
    )


def _doc(**overrides) -> str:
    data = json.loads(dump_snapshot([make_source()], None, T0))
    data.update(overrides)
    return json.dumps(data)


# ---------------------------------------------------------------------------
# dump_snapshot
# ---------------------------------------------------------------------------


def test_dump_has_documented_shape() -> None:
    source = make_source()
    source.usage_stats.feedback_history.append(FeedbackEvent(T0, True))
    data = json.loads(dump_snapshot([source], _test(), T0))

    assert set(data) == {"version", "exported_at", "sources", "active_ab_test"}
    assert data["version"] == SNAPSHOT_VERSION
    assert data["exported_at"].startswith("2025-06-15T")
    assert data["exported_at"].endswith("+00:00")
    assert data["sources"][0]["id"] == "pdf_1"
    assert data["sources"][0]["usage_stats"]["feedback_history"][0]["is_positive"] is True
    assert data["active_ab_test"]["name"] == "boost manual"


def test_dump_without_test_writes_null() -> None:
    text = dump_snapshot([], None, T0)
    assert json.loads(text)["active_ab_test"] is None
    assert "\n  " in text  # pretty-printed


def test_parse_restores_sources_and_test() -> None:
    source = make_source(priority=5)
    source.usage_stats.positive_ratings = 4
    snapshot = parse_snapshot(dump_snapshot([source], _test(), T0))

    assert snapshot.version == "1.0"
    assert snapshot.sources == [source]
    assert snapshot.active_ab_test == _test()


# ---------------------------------------------------------------------------
# parse_snapshot rejections
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "text, message",
    [
        ("{not json", "not valid JSON"),
        ("[1, 2]", "JSON object"),
        (json.dumps({"sources": []}), "missing version"),
        (json.dumps({"version": "9.9", "sources": []}), "Unsupported snapshot version"),
        (json.dumps({"version": "1.0", "sources": {"a": 1}}), "must be a list"),
    ],
)
def test_parse_rejects_bad_documents(text: str, message: str) -> None:
    with pytest.raises(SnapshotError, match=message):
        parse_snapshot(text)


def test_parse_rejects_source_without_id() -> None:
    bad = make_source().to_dict()
    del bad["id"]
    with pytest.raises(SnapshotError, match="Invalid source entry"):
        parse_snapshot(_doc(sources=[bad]))


def test_parse_rejects_out_of_range_priority() -> None:
    bad = make_source().to_dict()
    bad["priority"] = 0
    with pytest.raises(SnapshotError, match="Invalid source entry"):
        parse_snapshot(_doc(sources=[bad]))


def test_parse_rejects_duplicate_ids() -> None:
    entry = make_source().to_dict()
    with pytest.raises(SnapshotError, match="duplicate"):
        parse_snapshot(_doc(sources=[entry, entry]))


def test_parse_rejects_broken_test() -> None:
    broken = _test().to_dict()
    broken["active_config"] = "Z"
    with pytest.raises(SnapshotError, match="Invalid A/B test"):
        parse_snapshot(_doc(active_ab_test=broken))


def _source_with(**fields) -> dict:
    entry = make_source().to_dict()
    entry.update(fields)
    return entry


def _test_with(**fields) -> dict:
    entry = _test().to_dict()
    entry.update(fields)
    return entry


@pytest.mark.parametrize(
    "text, message",
    [
        (_doc(version=["1.0"]), "Unsupported snapshot version"),
        (_doc(version={"v": "1.0"}), "Unsupported snapshot version"),
        (_doc(sources=["pdf_1"]), "Invalid source entry"),
        (_doc(sources=[_source_with(usage_stats=[])]), "Invalid source entry"),
        (
            _doc(sources=[_source_with(usage_stats={"feedback_history": [1]})]),
            "Invalid source entry",
        ),
        (_doc(active_ab_test=_test_with(config_a=[])), "Invalid A/B test"),
        (_doc(active_ab_test=_test_with(results=["x"])), "Invalid A/B test"),
    ],
)
def test_parse_rejects_malformed_nested_values(text: str, message: str) -> None:
    with pytest.raises(SnapshotError, match=message):
        parse_snapshot(text)


def test_parse_accepts_empty_sources() -> None:
    snapshot = parse_snapshot(json.dumps({"version": "1.0", "sources": None}))
    assert snapshot.sources == []
    assert snapshot.active_ab_test is None

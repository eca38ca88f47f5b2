"""End-to-end tests of the RagTrust host wiring."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from helpers import FailingStore, FakeClock, FixedRng, make_chunk
from ragtrust.config import RagtrustConfig, StorageCfg
from ragtrust.db.store import MemoryStore
from ragtrust.errors import (
    DimensionMismatch,
    PersistenceWriteFailed,
    SnapshotError,
    UnknownSource,
)
from ragtrust.models import SourceType
from ragtrust.service import RagTrust


@pytest.fixture
def rt(store: MemoryStore, clock: FakeClock) -> RagTrust:
    return RagTrust(store=store, clock=clock, rng=FixedRng(0.9))


def _ingest_pair(rt: RagTrust):
    manual = rt.ingest(
        "manual.pdf",
        SourceType.PDF,
        [make_chunk("m1", "manual.pdf", [1.0, 0.0]), make_chunk("m2", "manual.pdf", [0.6, 0.8])],
        source_id="pdf_manual",
    )
    wiki = rt.ingest(
        "https://wiki.example.com",
        SourceType.URL,
        [make_chunk("w1", "https://wiki.example.com", [0.9, 0.1])],
        source_id="url_wiki",
    )
    return manual, wiki


# ---------------------------------------------------------------------------
# Ingest and query
# ---------------------------------------------------------------------------


def test_ingest_registers_and_indexes(rt: RagTrust) -> None:
    manual, wiki = _ingest_pair(rt)
    assert manual.chunk_count == 2
    assert wiki.type is SourceType.URL
    assert rt.chunk_count() == 3
    assert {s.id for s in rt.sources()} == {"pdf_manual", "url_wiki"}


def test_generated_source_ids_carry_type(rt: RagTrust) -> None:
    source = rt.add_source("notes.txt", SourceType.TEXT)
    assert source.id.startswith("text_")
    assert source.chunk_count == 0


def test_query_follows_priorities(rt: RagTrust) -> None:
    _ingest_pair(rt)
    assert rt.query([1.0, 0.0], top_k=1)[0].chunk.id == "m1"

    rt.update_priority("pdf_manual", 1)
    rt.update_priority("url_wiki", 5)
    results = rt.query([1.0, 0.0], top_k=2)
    assert [r.chunk.id for r in results] == ["w1", "m1"]
    assert results[1].weighted_score == pytest.approx(0.7)


def test_query_default_top_k_from_config(store: MemoryStore, clock: FakeClock) -> None:
    cfg = RagtrustConfig()
    cfg.retrieval.top_k = 2
    rt = RagTrust(cfg, store, clock)
    _ingest_pair(rt)
    assert len(rt.query([1.0, 0.0])) == 2


def test_ingest_dimension_mismatch_registers_nothing(rt: RagTrust) -> None:
    _ingest_pair(rt)
    with pytest.raises(DimensionMismatch):
        rt.ingest("bad.txt", SourceType.TEXT, [make_chunk("b1", "bad.txt", [1.0, 0.0, 0.0])])
    assert len(rt.sources()) == 2
    assert "b1" not in rt.index


def test_ingest_store_failure_unindexes_chunks(failing_store: FailingStore, clock) -> None:
    rt = RagTrust(store=failing_store, clock=clock)
    failing_store.fail = True
    with pytest.raises(PersistenceWriteFailed):
        rt.ingest("a.txt", SourceType.TEXT, [make_chunk("a1", "a.txt", [1.0, 0.0])])
    assert rt.chunk_count() == 0
    assert rt.sources() == []


# ---------------------------------------------------------------------------
# Feedback, experiments, management
# ---------------------------------------------------------------------------


def test_feedback_reaches_running_experiment(rt: RagTrust) -> None:
    _ingest_pair(rt)
    rt.experiments.start("boost wiki", "", {"url_wiki": 5})
    rt.record_usage(["url_wiki"])
    rt.record_feedback(["url_wiki"], True)

    stats = rt.experiments.active.results.config_b_stats
    assert stats.questions_answered == 1
    assert rt.registry.get("url_wiki").usage_stats.times_used == 1


def test_unknown_feedback_id_is_rejected(rt: RagTrust) -> None:
    _ingest_pair(rt)
    with pytest.raises(UnknownSource):
        rt.record_feedback(["pdf_manual", "nope"], True)
    assert rt.registry.get("pdf_manual").usage_stats.total_ratings == 0


def test_remove_source_drops_chunks(rt: RagTrust) -> None:
    _ingest_pair(rt)
    assert rt.remove_source("pdf_manual") == 2
    assert rt.chunk_count() == 1


def test_recommendations_round_trip(rt: RagTrust) -> None:
    _ingest_pair(rt)
    for _ in range(20):
        rt.record_feedback(["pdf_manual"], False)
    recs = [r for r in rt.recommendations() if r.source_id == "pdf_manual"]
    assert recs[0].type.value == "remove"
    assert rt.apply_recommendation(recs[0]) is True
    assert "pdf_manual" not in rt.registry


def test_clear_drops_everything(rt: RagTrust, store: MemoryStore) -> None:
    _ingest_pair(rt)
    rt.experiments.start("t", "", {"url_wiki": 5})
    rt.clear()
    assert rt.sources() == []
    assert rt.chunk_count() == 0
    assert rt.experiments.active is None
    assert store.load("ab_test") is None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def test_snapshot_round_trip_into_fresh_instance(rt: RagTrust, clock: FakeClock) -> None:
    _ingest_pair(rt)
    rt.record_feedback(["pdf_manual"], True)
    rt.experiments.start("boost wiki", "why not", {"url_wiki": 5})
    text = rt.export_snapshot()

    other = RagTrust(clock=clock)
    result = other.import_snapshot(text)

    assert result.sources_imported == 2
    assert result.experiment_imported is True
    assert any("re-ingest" in w for w in result.warnings)
    assert other.registry.get("pdf_manual").usage_stats.positive_ratings == 1
    assert other.registry.get("url_wiki").priority == 5
    assert other.experiments.active.name == "boost wiki"
    assert other.chunk_count() == 0


def test_import_without_test_keeps_current_test(rt: RagTrust, clock: FakeClock) -> None:
    _ingest_pair(rt)
    text = rt.export_snapshot()
    rt.experiments.start("t", "", {"url_wiki": 4})

    result = rt.import_snapshot(text)
    assert result.experiment_imported is False
    assert rt.experiments.active.name == "t"


def test_invalid_import_changes_nothing(rt: RagTrust) -> None:
    _ingest_pair(rt)
    with pytest.raises(SnapshotError):
        rt.import_snapshot(json.dumps({"version": "2.0", "sources": []}))
    assert len(rt.sources()) == 2


def test_import_rolls_back_when_test_cannot_be_saved(clock: FakeClock) -> None:
    class TestStoreDown(MemoryStore):
        down = False

        def save(self, key, value) -> None:
            if self.down and key == "ab_test":
                raise PersistenceWriteFailed("ab_test unavailable")
            super().save(key, value)

    source_rt = RagTrust(clock=clock, rng=FixedRng(0.1))
    source_rt.add_source("new.pdf", SourceType.PDF, source_id="pdf_new")
    source_rt.experiments.start("t", "", {"pdf_new": 4})
    text = source_rt.export_snapshot()

    store = TestStoreDown()
    target = RagTrust(store=store, clock=clock)
    target.add_source("old.pdf", SourceType.PDF, source_id="pdf_old")
    store.down = True

    with pytest.raises(PersistenceWriteFailed):
        target.import_snapshot(text)
    assert [s.id for s in target.sources()] == ["pdf_old"]
    assert target.experiments.active is None


# ---------------------------------------------------------------------------
# SQLite-backed instances
# ---------------------------------------------------------------------------


def test_open_persists_across_instances(tmp_path: Path, clock: FakeClock) -> None:
    cfg = RagtrustConfig(storage=StorageCfg(path=str(tmp_path / "state.db")))
    with RagTrust.open(cfg, clock=clock, rng=FixedRng(0.9)) as first:
        first.add_source("manual.pdf", SourceType.PDF, priority=4, source_id="pdf_1")
        first.record_feedback(["pdf_1"], True)
        first.experiments.start("t", "", {"pdf_1": 2})

    with RagTrust.open(cfg, clock=clock) as second:
        source = second.registry.get("pdf_1")
        assert source.priority == 2
        assert source.usage_stats.positive_ratings == 1
        assert second.experiments.is_running

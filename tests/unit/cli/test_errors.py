"""Tests for ragtrust rich error messages."""

from __future__ import annotations

import pytest

from ragtrust.cli.errors import (
    err_bad_assignment,
    err_config,
    err_database_open,
    err_experiment_ended,
    err_experiment_running,
    err_inconclusive,
    err_invalid_priority,
    err_invalid_snapshot,
    err_no_assignments,
    err_no_experiment,
    err_persistence,
    err_snapshot_file_missing,
    err_source_not_found,
    warn_reembed,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _has_what_and_action(msg: str) -> bool:
    """Every error must contain a cause AND an actionable instruction."""
    lower = msg.lower()
    return any(
        kw in lower
        for kw in ["run:", "example:", "fix ", "retry", "create one", "re-ingest", "1 = lowest"]
    )


# ---------------------------------------------------------------------------
# All messages carry an action
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "msg",
    [
        err_config("retrieval.top_k must be >= 1"),
        err_source_not_found("pdf_1"),
        err_invalid_priority(9),
        err_bad_assignment("pdf_1"),
        err_no_assignments(),
        err_experiment_running("trial"),
        err_no_experiment("nothing has been started."),
        err_experiment_ended("trial"),
        err_inconclusive("trial"),
        err_persistence("database is locked"),
        err_database_open("unable to open database file"),
        err_snapshot_file_missing("backup.json"),
        err_invalid_snapshot("backup.json", "missing version"),
        warn_reembed(),
    ],
)
def test_message_has_action(msg: str) -> None:
    assert _has_what_and_action(msg)
    assert "\n" in msg


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


def test_source_not_found_names_id() -> None:
    msg = err_source_not_found("pdf_1a2b")
    assert "pdf_1a2b" in msg
    assert "ragtrust sources" in msg


def test_invalid_priority_shows_value() -> None:
    assert "'high'" in err_invalid_priority("high")


def test_bad_assignment_shows_expected_form() -> None:
    msg = err_bad_assignment("pdf_1:5")
    assert "pdf_1:5" in msg
    assert "SOURCE_ID=PRIORITY" in msg


def test_running_and_ended_name_the_test() -> None:
    assert "'trial'" in err_experiment_running("trial")
    assert "experiment end" in err_experiment_running("trial")
    assert "experiment apply" in err_experiment_ended("trial")


def test_persistence_says_nothing_changed() -> None:
    msg = err_persistence("database is locked")
    assert "database is locked" in msg
    assert "Nothing was changed" in msg


def test_snapshot_errors_point_to_export() -> None:
    assert "ragtrust export" in err_snapshot_file_missing("x.json")
    assert "missing version" in err_invalid_snapshot("x.json", "missing version")

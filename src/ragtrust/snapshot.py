"""Configuration snapshots for backup and restore.

A snapshot is a JSON document holding source metadata (priorities, usage
statistics, feedback history) and the current A/B test, if any:

  {
    "version": "1.0",
    "exported_at": "2026-01-01T00:00:00+00:00",
    "sources": [...],
    "active_ab_test": {...} | null
  }

Embeddings are never exported, so documents must be re-ingested after a
restore. Snapshots are not meant for syncing two live instances.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ragtrust.errors import SnapshotError
from ragtrust.models import ABTest, Source

SNAPSHOT_VERSION = "1.0"
_SUPPORTED_VERSIONS: frozenset[str] = frozenset([SNAPSHOT_VERSION])


@dataclass
class Snapshot:
    version: str
    exported_at: str
    sources: list[Source] = field(default_factory=list)
    active_ab_test: ABTest | None = None


@dataclass
class ImportResult:
    sources_imported: int
    experiment_imported: bool = False
    warnings: list[str] = field(default_factory=list)


def dump_snapshot(sources: list[Source], ab_test: ABTest | None, now: float) -> str:
    """Serialise *sources* and *ab_test* as a pretty-printed snapshot document."""
    doc: dict[str, Any] = {
        "version": SNAPSHOT_VERSION,
        "exported_at": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
        "sources": [s.to_dict() for s in sources],
        "active_ab_test": ab_test.to_dict() if ab_test is not None else None,
    }
    return json.dumps(doc, indent=2)


def parse_snapshot(text: str) -> Snapshot:
    """Parse and validate a snapshot document.

    The whole document is validated before anything is returned, so a caller
    can apply it without ending up half-imported.

    Raises:
        SnapshotError: On invalid JSON, a missing or unsupported version, or
            a malformed source / experiment entry.
    """
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Snapshot is not valid JSON: {exc}") from exc

    if not isinstance(doc, dict):
        raise SnapshotError("Snapshot must be a JSON object.")

    version = doc.get("version")
    if not version:
        raise SnapshotError("Invalid snapshot: missing version.")
    if not isinstance(version, str) or version not in _SUPPORTED_VERSIONS:
        raise SnapshotError(f"Unsupported snapshot version '{version}'.")

    raw_sources = doc.get("sources") or []
    if not isinstance(raw_sources, list):
        raise SnapshotError("Snapshot 'sources' must be a list.")

    try:
        sources = [Source.from_dict(item) for item in raw_sources]
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise SnapshotError(f"Invalid source entry in snapshot: {exc}") from exc

    ids = [s.id for s in sources]
    if len(ids) != len(set(ids)):
        raise SnapshotError("Snapshot contains duplicate source ids.")

    raw_test = doc.get("active_ab_test")
    ab_test = None
    if raw_test:
        try:
            ab_test = ABTest.from_dict(raw_test)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"Invalid A/B test in snapshot: {exc}") from exc

    return Snapshot(
        version=version,
        exported_at=str(doc.get("exported_at", "")),
        sources=sources,
        active_ab_test=ab_test,
    )

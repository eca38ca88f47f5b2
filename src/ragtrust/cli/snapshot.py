"""ragtrust export / import — configuration backup and restore.

Usage:
  ragtrust export --output backup.json
  ragtrust export > backup.json
  ragtrust import backup.json
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ragtrust.cli.common import console, open_service, reported_errors
from ragtrust.cli.errors import err_invalid_snapshot, err_snapshot_file_missing, warn_reembed
from ragtrust.errors import SnapshotError

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the ragtrust database (default: storage.path)."),
]


def export_cmd(
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the snapshot here instead of stdout."),
    ] = None,
    db: _DbOption = None,
) -> None:
    """Export source metadata and the current A/B test as JSON."""
    with open_service(db) as service:
        text = service.export_snapshot()
        count = len(service.sources())

    if output is None:
        typer.echo(text)
        return

    output.write_text(text + "\n", encoding="utf-8")
    console.print(f"[green]✓[/] Exported {count} source(s) to {output}")


def import_cmd(
    file: Annotated[Path, typer.Argument(help="Snapshot file written by ragtrust export.")],
    db: _DbOption = None,
) -> None:
    """Replace sources (and the A/B test) with the contents of a snapshot."""
    if not file.exists():
        console.print(err_snapshot_file_missing(str(file)))
        raise typer.Exit(1)

    text = file.read_text(encoding="utf-8")
    with open_service(db) as service, reported_errors():
        try:
            result = service.import_snapshot(text)
        except SnapshotError as exc:
            console.print(err_invalid_snapshot(str(file), str(exc)))
            raise typer.Exit(1)

    console.print(f"[green]✓[/] Imported {result.sources_imported} source(s) from {file}")
    if result.experiment_imported:
        console.print("  A/B test restored.")
    console.print(f"\n{warn_reembed()}")

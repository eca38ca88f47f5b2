"""ragtrust source commands.

Commands:
  ragtrust sources                          — table of sources with learned quality
  ragtrust add <name> --type pdf --chunks N — register source metadata
  ragtrust priority <source_id> <1-5>       — set a priority by hand
  ragtrust remove <source_id> [--yes]       — remove a source and its chunks
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from ragtrust.cli.common import console, format_interval, open_service, reported_errors
from ragtrust.cli.errors import err_source_not_found
from ragtrust.errors import UnknownSource
from ragtrust.models import NEUTRAL_PRIORITY, SourceType

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the ragtrust database (default: storage.path)."),
]


def sources_cmd(db: _DbOption = None) -> None:
    """List registered sources, newest first."""
    with open_service(db) as service:
        sources = service.sources()
        running = service.experiments.active

    if not sources:
        console.print(
            "[yellow]No sources registered.[/]\n"
            "  Run:  ragtrust add <name> --type text --chunks <n>"
        )
        raise typer.Exit(0)

    table = Table(title="Sources", show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Priority", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("95% CI")
    table.add_column("+/-", justify="right")
    table.add_column("Uses", justify="right")

    for source in sources:
        stats = source.usage_stats
        table.add_row(
            source.id,
            source.name,
            source.type.value,
            str(source.priority),
            f"{stats.learning_score:.2f}",
            format_interval(stats.confidence_interval),
            f"{stats.positive_ratings}/{stats.negative_ratings}",
            str(stats.times_used),
        )

    console.print(table)
    console.print(f"\n  {len(sources)} source(s)")
    if running is not None and running.is_running:
        console.print(
            f"  [dim]A/B test '{running.name}' is running "
            f"(config {running.active_config} applied).[/]"
        )


def add_cmd(
    name: Annotated[str, typer.Argument(help="Source name, e.g. the document file name.")],
    source_type: Annotated[
        SourceType,
        typer.Option("--type", "-t", help="Kind of document."),
    ] = SourceType.TEXT,
    chunks: Annotated[
        int,
        typer.Option("--chunks", "-c", min=0, help="Number of chunks the document produced."),
    ] = 0,
    priority: Annotated[
        int,
        typer.Option("--priority", "-p", help="Initial priority, 1..5."),
    ] = NEUTRAL_PRIORITY,
    db: _DbOption = None,
) -> None:
    """Register a source without indexing any chunks."""
    with open_service(db) as service, reported_errors():
        source = service.add_source(name, source_type, chunk_count=chunks, priority=priority)

    console.print(
        f"[green]✓[/] Added: {source.name}  (id: {source.id}, priority {source.priority})"
    )


def priority_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id (see: ragtrust sources).")],
    priority: Annotated[int, typer.Argument(help="New priority, 1..5.")],
    db: _DbOption = None,
) -> None:
    """Set the priority of a source."""
    with open_service(db) as service, reported_errors():
        before = service.registry.get(source_id).priority
        source = service.update_priority(source_id, priority)

    console.print(f"[green]✓[/] {source.name}: priority {before} → {source.priority}")


def remove_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id to remove.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    db: _DbOption = None,
) -> None:
    """Remove a source, its feedback history and its chunks."""
    with open_service(db) as service:
        try:
            existing = service.registry.get(source_id)
        except UnknownSource:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(0)

        stats = existing.usage_stats
        console.print(f"\nRemove source: [bold]{existing.name}[/]  ({existing.id})")
        console.print(
            f"  Chunks: {existing.chunk_count}  |  "
            f"Ratings: {stats.total_ratings}  |  "
            f"Uses: {stats.times_used}"
        )

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        with reported_errors():
            service.remove_source(source_id)

    console.print(f"\n[green]✓[/] Removed: {existing.name}")

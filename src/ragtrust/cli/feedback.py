"""ragtrust feedback and recommendation commands.

Commands:
  ragtrust feedback <source_id>... --positive|--negative — rate an answer
  ragtrust recommend [--apply]                           — suggest priority changes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from ragtrust.cli.common import console, format_interval, open_service, reported_errors
from ragtrust.models import Recommendation, RecommendationType

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the ragtrust database (default: storage.path)."),
]

_LEVEL_STYLE = {"high": "green", "medium": "yellow", "low": "dim"}


def feedback_cmd(
    source_ids: Annotated[
        list[str],
        typer.Argument(help="Ids of the sources cited by the rated answer."),
    ],
    positive: Annotated[
        bool | None,
        typer.Option("--positive/--negative", help="Whether the answer was helpful."),
    ] = None,
    db: _DbOption = None,
) -> None:
    """Record one helpful / unhelpful judgment against the cited sources."""
    if positive is None:
        console.print(
            "[red]Error:[/] Say whether the answer was helpful.\n"
            "  Add:  --positive  or  --negative"
        )
        raise typer.Exit(1)

    with open_service(db) as service, reported_errors():
        before = {sid: service.registry.get(sid).priority for sid in source_ids}
        updated = service.record_feedback(source_ids, positive)
        test = service.experiments.active

    label = "[green]positive[/]" if positive else "[red]negative[/]"
    console.print(f"[green]✓[/] Recorded {label} feedback for {len(updated)} source(s)")
    for source in updated:
        stats = source.usage_stats
        console.print(
            f"  {source.name}: score {stats.learning_score:.2f}  "
            f"CI {format_interval(stats.confidence_interval)}  "
            f"({stats.total_ratings} ratings)"
        )
        if source.priority != before[source.id]:
            console.print(
                f"    [bold]Priority auto-adjusted[/] {before[source.id]} → {source.priority}"
            )
    if test is not None and test.is_running:
        console.print(
            f"  [dim]Counted toward A/B test '{test.name}' (config {test.active_config})[/]"
        )


def _priority_change(rec: Recommendation) -> str:
    if rec.suggested_priority is None:
        return str(rec.current_priority)
    return f"{rec.current_priority} → {rec.suggested_priority}"


def recommend_cmd(
    apply: Annotated[
        bool,
        typer.Option("--apply", help="Apply every actionable recommendation."),
    ] = False,
    db: _DbOption = None,
) -> None:
    """Suggest priority changes from the feedback gathered so far."""
    with open_service(db) as service:
        recs = service.recommendations()

        if not recs:
            console.print(
                "[yellow]No sources registered.[/]\n"
                "  Run:  ragtrust add <name> --type text --chunks <n>"
            )
            raise typer.Exit(0)

        table = Table(title="Recommendations", show_header=True, header_style="bold")
        table.add_column("Source", style="bold")
        table.add_column("Action")
        table.add_column("Priority")
        table.add_column("Confidence")
        table.add_column("Impact")
        table.add_column("Reason")

        for rec in recs:
            conf = _LEVEL_STYLE[rec.confidence.value]
            impact = _LEVEL_STYLE[rec.impact.value]
            table.add_row(
                rec.source_name,
                rec.type.value.replace("_", " "),
                _priority_change(rec),
                f"[{conf}]{rec.confidence.value}[/]",
                f"[{impact}]{rec.impact.value}[/]",
                rec.reason,
            )
        console.print(table)

        actionable = [r for r in recs if r.type is not RecommendationType.KEEP_CURRENT]
        if not apply:
            if actionable:
                console.print(
                    f"\n  {len(actionable)} actionable. Run:  ragtrust recommend --apply"
                )
            else:
                console.print("\n  Nothing to change yet.")
            return

        applied = 0
        with reported_errors():
            for rec in actionable:
                if service.apply_recommendation(rec):
                    applied += 1

    console.print(f"\n[green]✓[/] Applied {applied} of {len(actionable)} recommendation(s)")

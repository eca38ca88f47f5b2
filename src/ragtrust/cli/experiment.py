"""ragtrust experiment CLI commands.

Commands:
  ragtrust experiment start <name> --set ID=P ...  — start an A/B test
  ragtrust experiment show                         — current test and its results
  ragtrust experiment switch                       — apply the other configuration
  ragtrust experiment end                          — stop and decide the winner
  ragtrust experiment apply                        — apply the winner, clear the test
  ragtrust experiment clear                        — discard the test, restore control
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Group
from rich.panel import Panel
from rich.table import Table

from ragtrust.cli.common import console, open_service, reported_errors
from ragtrust.cli.errors import err_bad_assignment, err_no_assignments, err_no_experiment
from ragtrust.models import ABTest
from ragtrust.service import RagTrust

experiment_app = typer.Typer(
    name="experiment",
    help="Run A/B tests of source-priority configurations.",
    add_completion=False,
)

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the ragtrust database (default: storage.path)."),
]


def _parse_assignments(assignments: list[str]) -> dict[str, int]:
    """Parse repeated ``SOURCE_ID=PRIORITY`` values."""
    priorities: dict[str, int] = {}
    for text in assignments:
        source_id, sep, value = text.partition("=")
        if not sep or not source_id.strip():
            console.print(err_bad_assignment(text))
            raise typer.Exit(1)
        try:
            priorities[source_id.strip()] = int(value)
        except ValueError:
            console.print(err_bad_assignment(text))
            raise typer.Exit(1)
    return priorities


def _current_name(service: RagTrust) -> str:
    test = service.experiments.active
    return test.name if test is not None else ""


@experiment_app.command("start")
def experiment_start_cmd(
    name: Annotated[str, typer.Argument(help="Name of the test.")],
    assignments: Annotated[
        list[str] | None,
        typer.Option(
            "--set", "-s", help="Configuration B priority as SOURCE_ID=PRIORITY (repeatable)."
        ),
    ] = None,
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="What the test is meant to find out."),
    ] = "",
    db: _DbOption = None,
) -> None:
    """Start an A/B test of new priorities against the current ones."""
    if not assignments:
        console.print(err_no_assignments())
        raise typer.Exit(1)
    config_b = _parse_assignments(assignments)

    with open_service(db) as service, reported_errors(_current_name(service)):
        test = service.experiments.start(name, description, config_b)

    console.print(f"[green]✓[/] Started A/B test '{test.name}'")
    console.print(f"  Active configuration: [bold]{test.active_config}[/]")
    console.print("  Record feedback as usual; switch sides with:  ragtrust experiment switch")


@experiment_app.command("show")
def experiment_show_cmd(db: _DbOption = None) -> None:
    """Show the current A/B test and its results so far."""
    with open_service(db) as service:
        test = service.experiments.active
        names = {s.id: s.name for s in service.sources()}

    if test is None:
        console.print(err_no_experiment("nothing has been started."))
        raise typer.Exit(0)

    console.print(_render_test(test, names))


@experiment_app.command("switch")
def experiment_switch_cmd(db: _DbOption = None) -> None:
    """Apply the other configuration of the running test."""
    with open_service(db) as service, reported_errors(_current_name(service)):
        active = service.experiments.switch_config()

    console.print(f"[green]✓[/] Now using configuration [bold]{active}[/]")


@experiment_app.command("end")
def experiment_end_cmd(db: _DbOption = None) -> None:
    """Stop the running test and decide the winner."""
    with open_service(db) as service, reported_errors(_current_name(service)):
        test = service.experiments.end()

    results = test.results
    console.print(f"[green]✓[/] Ended A/B test '{test.name}'")
    console.print(f"  Winner:  [bold]{results.winner}[/]")
    if results.p_value is not None:
        console.print(f"  p-value: {results.p_value:.4f}")
    else:
        console.print("  p-value: [dim]not enough answers[/]")
    if results.winner in ("A", "B"):
        console.print("  Run:  ragtrust experiment apply")
    else:
        console.print("  Run:  ragtrust experiment clear")


@experiment_app.command("apply")
def experiment_apply_cmd(db: _DbOption = None) -> None:
    """Apply the winning configuration of an ended test and clear it."""
    with open_service(db) as service, reported_errors(_current_name(service)):
        winner = service.experiments.apply_winner()

    console.print(f"[green]✓[/] Applied configuration [bold]{winner}[/]")


@experiment_app.command("clear")
def experiment_clear_cmd(db: _DbOption = None) -> None:
    """Discard the current test and restore the control priorities."""
    with open_service(db) as service, reported_errors():
        test = service.experiments.active
        if test is None:
            console.print("[dim]No A/B test to clear.[/]")
            raise typer.Exit(0)
        service.experiments.clear()

    console.print(f"[green]✓[/] Cleared A/B test '{test.name}'; control priorities restored")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _render_test(test: ABTest, names: dict[str, str]) -> Panel:
    status = "[green]running[/]" if test.is_running else "[yellow]ended[/]"
    lines = [f"Status:  {status}  |  Active: [bold]{test.active_config}[/]"]
    if test.description:
        lines.append(f"About:   {test.description}")

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Config")
    table.add_column("Answers", justify="right")
    table.add_column("+/-", justify="right")
    table.add_column("Positive", justify="right")
    table.add_column("Confidence", justify="right")
    for label in ("A", "B"):
        stats = test.results.stats_for(label)
        table.add_row(
            f"{label}: {test.config_for(label).name}",
            str(stats.questions_answered),
            f"{stats.positive_ratings}/{stats.negative_ratings}",
            f"{stats.positive_rate:.0%}",
            f"{stats.avg_confidence:.2f}",
        )

    changes = []
    for source_id, priority in sorted(test.config_b.source_priorities.items()):
        control = test.config_a.source_priorities.get(source_id, "?")
        changes.append(f"  {names.get(source_id, source_id)}: {control} → {priority}")

    body = "\n".join(lines)
    body += "\n\n" + "Configuration B changes:\n" + "\n".join(changes)
    if not test.is_running:
        p = test.results.p_value
        body += f"\n\nWinner: [bold]{test.results.winner}[/]"
        body += f"  |  p-value: {p:.4f}" if p is not None else "  |  p-value: n/a"

    return Panel.fit(
        Group(body, table),
        title=f"[bold]A/B test: {test.name}[/]",
    )

"""ragtrust CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from ragtrust.cli.experiment import experiment_app
from ragtrust.cli.feedback import feedback_cmd, recommend_cmd
from ragtrust.cli.snapshot import export_cmd, import_cmd
from ragtrust.cli.sources import add_cmd, priority_cmd, remove_cmd, sources_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("ragtrust")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ragtrust {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="ragtrust",
    help=(
        "ragtrust — source priorities that learn from feedback.\n\n"
        "  ragtrust feedback   Rate an answer; sources learn a score and confidence.\n"
        "  ragtrust recommend  Turn what was learned into priority changes.\n"
        "  ragtrust experiment A/B test two priority configurations."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """ragtrust — source priorities that learn from feedback."""


app.command("sources")(sources_cmd)
app.command("add")(add_cmd)
app.command("priority")(priority_cmd)
app.command("remove")(remove_cmd)
app.command("feedback")(feedback_cmd)
app.command("recommend")(recommend_cmd)
app.command("export")(export_cmd)
app.command("import")(import_cmd)
app.add_typer(experiment_app, name="experiment")


@app.command("version")
def version_cmd() -> None:
    """Show the installed ragtrust version."""
    typer.echo(f"ragtrust {_installed_version()}")


if __name__ == "__main__":
    app()

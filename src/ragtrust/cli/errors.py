"""ragtrust rich error messages.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from ragtrust.cli.errors import err_source_not_found
    console.print(err_source_not_found("pdf_1a2b3c"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_config(message: str) -> str:
    """Config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix ragtrust.yaml (or ~/.ragtrust/config.yaml) and retry."
    )


def err_source_not_found(source_id: str) -> str:
    """Source id not in the registry."""
    return (
        f"[yellow]Source not found:[/] '{source_id}' is not registered.\n"
        "  Run:  ragtrust sources  to see all source ids."
    )


def err_invalid_priority(value: object) -> str:
    return (
        f"[red]Error:[/] Priority must be an integer from 1 to 5, got {value!r}.\n"
        "  1 = lowest boost, 3 = neutral, 5 = highest boost."
    )


def err_bad_assignment(text: str) -> str:
    """--set value is not SOURCE_ID=PRIORITY."""
    return (
        f"[red]Error:[/] Cannot parse '{text}'; expected SOURCE_ID=PRIORITY.\n"
        "  Example:  ragtrust experiment start trial --set pdf_1a2b3c=5"
    )


def err_no_assignments() -> str:
    return (
        "[red]Error:[/] Configuration B needs at least one priority.\n"
        "  Example:  ragtrust experiment start trial --set pdf_1a2b3c=5"
    )


def err_experiment_running(name: str) -> str:
    return (
        f"[red]Error:[/] A/B test '{name}' is already running.\n"
        "  Run:  ragtrust experiment end"
    )


def err_no_experiment(detail: str) -> str:
    return (
        f"[yellow]No A/B test:[/] {detail}\n"
        "  Run:  ragtrust experiment start <name> --set <source_id>=<priority>"
    )


def err_experiment_ended(name: str) -> str:
    return (
        f"[yellow]Already ended:[/] A/B test '{name}' has already ended.\n"
        "  Run:  ragtrust experiment apply  or  ragtrust experiment clear"
    )


def err_inconclusive(name: str) -> str:
    return (
        f"[yellow]Inconclusive:[/] A/B test '{name}' has no winner to apply.\n"
        "  Run:  ragtrust experiment clear  to restore the control priorities."
    )


def err_persistence(message: str) -> str:
    """Store rejected a write; nothing was changed."""
    return (
        f"[red]Error:[/] Could not save changes: {message}\n"
        "  Nothing was changed. Check that the database is writable and not locked, "
        "then retry."
    )


def err_database_open(message: str) -> str:
    """Database file could not be opened or migrated."""
    return (
        f"[red]Error:[/] Could not open the ragtrust database: {message}\n"
        "  Check that the directory exists and is writable, or retry with:  --db <file>"
    )


def err_snapshot_file_missing(path: str) -> str:
    return (
        f"[red]Error:[/] Snapshot file not found: '{path}'\n"
        "  Create one with:  ragtrust export --output <file>"
    )


def err_invalid_snapshot(path: str, message: str) -> str:
    return (
        f"[red]Error:[/] '{path}' is not a valid snapshot: {message}\n"
        "  Create one with:  ragtrust export --output <file>"
    )


def warn_reembed() -> str:
    """Shown after an import: snapshots carry no embeddings."""
    return (
        "[yellow]⚠[/] Snapshots do not include embeddings.\n"
        "  Re-ingest the documents to make them searchable again."
    )

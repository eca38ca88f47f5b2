"""Shared plumbing for ragtrust commands: opening the store and reporting errors."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from ragtrust.cli.errors import (
    err_config,
    err_database_open,
    err_experiment_ended,
    err_experiment_running,
    err_inconclusive,
    err_invalid_priority,
    err_no_experiment,
    err_persistence,
    err_source_not_found,
)
from ragtrust.config import ConfigError, load_config
from ragtrust.errors import (
    ExperimentAlreadyEnded,
    ExperimentAlreadyRunning,
    InconclusiveExperiment,
    InvalidPriority,
    NoActiveExperiment,
    PersistenceWriteFailed,
    UnknownSource,
)
from ragtrust.service import RagTrust

console = Console()


def setup_logging(level: str) -> None:
    """Route library logs through Rich on stderr; a no-op if logging is configured."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@contextmanager
def open_service(db: Path | None) -> Iterator[RagTrust]:
    """Load config, apply the --db override and yield an open RagTrust."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    if db is not None:
        cfg.storage.path = str(db)
    setup_logging(cfg.logging.level)

    try:
        service = RagTrust.open(cfg)
    except PersistenceWriteFailed as exc:
        console.print(err_database_open(str(exc)))
        raise typer.Exit(1)
    try:
        yield service
    finally:
        service.close()


@contextmanager
def reported_errors(test_name: str = "") -> Iterator[None]:
    """Turn core errors into actionable messages and a non-zero exit."""
    try:
        yield
    except UnknownSource as exc:
        console.print(err_source_not_found(exc.key))
        raise typer.Exit(1)
    except InvalidPriority as exc:
        console.print(err_invalid_priority(exc.priority))
        raise typer.Exit(1)
    except ExperimentAlreadyRunning:
        console.print(err_experiment_running(test_name))
        raise typer.Exit(1)
    except ExperimentAlreadyEnded:
        console.print(err_experiment_ended(test_name))
        raise typer.Exit(1)
    except InconclusiveExperiment:
        console.print(err_inconclusive(test_name))
        raise typer.Exit(1)
    except NoActiveExperiment as exc:
        console.print(err_no_experiment(str(exc)))
        raise typer.Exit(1)
    except PersistenceWriteFailed as exc:
        console.print(err_persistence(str(exc)))
        raise typer.Exit(1)


def format_interval(interval: tuple[float, float]) -> str:
    lower, upper = interval
    return f"{lower:.2f}–{upper:.2f}"

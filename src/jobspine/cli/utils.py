"""
CLI utility helpers - output formatting and store access.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from jobspine.core.errors import JobspineError
from jobspine.core.settings import get_settings
from jobspine.scheduling.store import SQLiteJobStore

console = Console()
err_console = Console(stderr=True)

DEFAULT_DATABASE = Path.home() / ".jobspine" / "jobs.db"


# ── Store helper ─────────────────────────────────────────────────────────


def resolve_database(database: str | None = None) -> Path:
    """Pick the database: ``--database``, then settings, then ``~/.jobspine/jobs.db``."""
    if database:
        return Path(database)
    return get_settings().database_path or DEFAULT_DATABASE


def open_cli_store(database: str | None = None) -> SQLiteJobStore:
    """Open the SQLite job store the CLI operates on."""
    try:
        return SQLiteJobStore.open(resolve_database(database))
    except JobspineError as e:
        fail(e)


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: JobspineError | str) -> None:
    """Print an error and exit with status 1."""
    if isinstance(error, JobspineError):
        err_console.print(f"[bold red]Error[/bold red] ({error.__class__.__name__}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


def output_rows(rows: list[dict[str, Any]], *, as_json: bool = False, title: str = "") -> None:
    """Render a list of records as JSON or a Rich table."""
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    _print_table(rows, title=title)


def output_record(record: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a single record as JSON or key-value pairs."""
    if as_json:
        console.print_json(json.dumps(record, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in record.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)

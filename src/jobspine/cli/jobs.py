"""
CLI: ``jobspine jobs`` - inspect and control job state in the store.

The commands work on the database directly, so they also steer a
scheduler running in another process: it re-reads the enabled flag on
every fire.
"""

from __future__ import annotations

from datetime import timedelta

import typer

from jobspine.cli.utils import console, fail, open_cli_store, output_record, output_rows
from jobspine.core.errors import JobNotFoundError
from jobspine.core.timestamps import utc_now

app = typer.Typer(no_args_is_help=True)

DatabaseOption = typer.Option(None, "--database", "-d", help="SQLite job database")
JsonOption = typer.Option(False, "--json", help="Output JSON")


@app.command("list")
def list_jobs(
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """List every job with its status and next run."""
    store = open_cli_store(database)
    try:
        rows = [job.to_dict() for job in store.list_jobs()]
    finally:
        store.close()
    output_rows(rows, as_json=json_out, title="Jobs")


@app.command("logs")
def job_logs(
    name: str = typer.Argument(..., help="Job name"),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of executions"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Show the most recent executions of a job."""
    store = open_cli_store(database)
    try:
        if store.get_job(name) is None and store.count_logs(name) == 0:
            fail(JobNotFoundError(name))
        logs = store.list_logs(name, limit)
    finally:
        store.close()
    rows = [
        {
            "started_at": log.to_dict()["started_at"],
            "status": log.status.value,
            "trigger": log.trigger.value,
            "attempts": log.attempts,
            "duration_ms": log.duration_ms,
            "error_message": log.error_message,
        }
        for log in logs
    ]
    if json_out:
        rows = [log.to_dict() for log in logs]
    output_rows(rows, as_json=json_out, title=f"Executions: {name}")


def _set_enabled(name: str, enabled: bool, database: str | None, json_out: bool) -> None:
    store = open_cli_store(database)
    try:
        job = store.get_job(name)
        if job is None:
            fail(JobNotFoundError(name))
        job = store.save_job(job.evolve(is_enabled=enabled))
    finally:
        store.close()
    output_record(job.to_dict(), as_json=json_out, title="Job Enabled" if enabled else "Job Disabled")


@app.command("enable")
def enable_job(
    name: str = typer.Argument(..., help="Job name"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Let future fires of a job run."""
    _set_enabled(name, True, database, json_out)


@app.command("disable")
def disable_job(
    name: str = typer.Argument(..., help="Job name"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Skip future fires of a job."""
    _set_enabled(name, False, database, json_out)


@app.command("prune")
def prune_logs(
    days: int = typer.Option(30, "--days", min=0, help="Keep this many days of history"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Delete execution logs older than ``--days``."""
    cutoff = utc_now() - timedelta(days=days)
    store = open_cli_store(database)
    try:
        removed = store.prune_logs(cutoff)
    finally:
        store.close()
    if json_out:
        output_record({"removed": removed, "before": cutoff.isoformat()}, as_json=True)
    else:
        console.print(f"Removed [bold]{removed}[/bold] log row(s) older than {days} day(s).")

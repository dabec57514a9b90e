"""
Root Typer application for the jobspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from jobspine import __version__

app = Typer(
    name="jobspine",
    help="jobspine - recurring job scheduler with resilient execution.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"jobspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobspine CLI - inspect jobs, manage history, run the scheduler."""


# ── Sub-command registration ─────────────────────────────────────────────

from jobspine.cli.jobs import app as jobs_app  # noqa: E402
from jobspine.cli.serve import serve  # noqa: E402

app.add_typer(jobs_app, name="jobs", help="Job state and execution history.")
app.command("serve")(serve)

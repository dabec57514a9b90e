"""
CLI: ``jobspine serve`` - run the scheduler behind the HTTP API.
"""

from __future__ import annotations

import importlib

import typer

from jobspine.cli.utils import console, fail, resolve_database
from jobspine.core.errors import ConfigError, JobspineError
from jobspine.core.logging import configure_logging
from jobspine.core.settings import get_settings
from jobspine.scheduling.registry import JobRegistry


def load_registry(target: str) -> JobRegistry:
    """Resolve ``module:attribute`` to a registry.

    The attribute may be a :class:`JobRegistry` or a zero-argument
    callable returning one.
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Registry target must look like 'module:attribute', got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import {module_name!r}: {e}", cause=e) from e
    try:
        obj = getattr(module, attr)
    except AttributeError as e:
        raise ConfigError(f"{module_name!r} has no attribute {attr!r}", cause=e) from e

    registry = obj() if callable(obj) else obj
    if not isinstance(registry, JobRegistry):
        raise ConfigError(f"{target!r} did not produce a JobRegistry")
    return registry


def serve(
    registry_target: str = typer.Argument(..., metavar="MODULE:ATTR", help="JobRegistry or factory"),
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite job database"),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """Start the scheduler and its REST API."""
    import uvicorn

    from jobspine.api.app import create_app
    from jobspine.scheduling.engine import JobScheduler
    from jobspine.scheduling.store import SQLiteJobStore

    settings = get_settings()
    level = (log_level or settings.log_level).upper()
    configure_logging(level=level, json_format=settings.json_logs)

    try:
        registry = load_registry(registry_target)
        store = SQLiteJobStore.open(resolve_database(database))
    except JobspineError as e:
        fail(e)

    scheduler = JobScheduler.from_settings(registry, store, settings)
    app = create_app(scheduler, settings)

    host = host or settings.host
    port = port or settings.port
    state = "enabled" if settings.enable_jobs else "disabled"
    console.print(f"[bold green]Starting jobspine[/bold green] on {host}:{port} (scheduling {state})")
    try:
        uvicorn.run(app, host=host, port=port, log_level=level.lower())
    finally:
        store.close()

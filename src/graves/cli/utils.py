"""
CLI utility helpers: settings, backend lifecycle and output formatting.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from graves.core.adapters.base import BackendProfile
from graves.core.adapters.registry import get_profile
from graves.core.errors import GravesError
from graves.core.logging import configure_logging
from graves.core.pool import ConnectionPool
from graves.core.settings import StorageSettings

console = Console()
err_console = Console(stderr=True)


# ── Settings / backend helpers ───────────────────────────────────────────


def load_settings(backend: str | None = None, data_dir: Path | None = None) -> StorageSettings:
    """Settings from the environment, with command-line overrides applied."""
    overrides: dict[str, Any] = {}
    if backend:
        overrides["backend"] = backend
    if data_dir:
        overrides["data_dir"] = data_dir
    settings = StorageSettings(**overrides)
    configure_logging(
        level="DEBUG" if settings.debug else settings.log_level,
        json_format=settings.log_format == "json",
    )
    return settings


@contextmanager
def open_backend(
    settings: StorageSettings,
    *,
    connectivity_test: bool | None = None,
) -> Iterator[tuple[BackendProfile, ConnectionPool]]:
    """Resolve the profile, run its checks and yield an open pool."""
    profile = get_profile(settings.backend, settings)
    profile.prepare()
    run_test = profile.requires_connectivity_test if connectivity_test is None else connectivity_test
    if run_test:
        profile.test_connection()
    pool = ConnectionPool(profile).open()
    try:
        yield profile, pool
    finally:
        pool.close()


def fail(error: GravesError) -> None:
    """Print a storage error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {error.message}")
    context = error.context.to_dict()
    if context:
        for key, value in context.items():
            err_console.print(f"  [dim]{key}[/dim]: {value}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_result(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dict, dataclass or list of them to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def _print_table(items: list, *, title: str = "") -> None:
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")

"""
CLI: ``graves-storage db``: backend version and health checks.
"""

from __future__ import annotations

from pathlib import Path

import typer

from graves.cli.utils import fail, load_settings, open_backend, output_result
from graves.core.errors import GravesError
from graves.core.repository import GraveRepository
from graves.core.schema import ErrorClass
from graves.core.watchdog import LockRecoveryWatchdog

app = typer.Typer(no_args_is_help=True)


@app.command()
def version(
    backend: str | None = typer.Option(None, "--backend", "-b", help="Backend identifier"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory for embedded stores"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Print the backend server version."""
    settings = load_settings(backend, data_dir)
    try:
        with open_backend(settings) as (profile, pool):
            server_version = GraveRepository(pool, profile).database_version()
    except GravesError as e:
        fail(e)
        return
    output_result(
        {"type": profile.display_name, "version": server_version},
        as_json=json_out,
        title="Database Version",
    )


@app.command()
def check(
    backend: str | None = typer.Option(None, "--backend", "-b", help="Backend identifier"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory for embedded stores"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Run the connectivity probe, a lock check and a leak check."""
    settings = load_settings(backend, data_dir)
    try:
        with open_backend(settings, connectivity_test=True) as (profile, pool):
            watchdog = LockRecoveryWatchdog(pool, profile, settings.watchdog_interval_seconds)
            outcome = watchdog.tick()
            status = pool.status()
    except GravesError as e:
        fail(e)
        return

    output_result(
        {
            "backend": profile.display_name,
            "target": profile.describe(),
            "probe": outcome.value,
            "recovery_attempted": watchdog.recoveries > 0,
            "pool_max_size": status["max_size"],
        },
        as_json=json_out,
        title="Database Check",
    )
    if outcome is not ErrorClass.SUCCESS:
        raise typer.Exit(code=1)

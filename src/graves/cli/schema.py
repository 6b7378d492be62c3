"""
CLI: ``graves-storage schema``: schema setup and legacy migration.
"""

from __future__ import annotations

from pathlib import Path

import typer

from graves.cli.utils import console, fail, load_settings, open_backend, output_result
from graves.core.errors import GravesError
from graves.core.migrations.legacy import LegacyMigrator
from graves.core.models import EntityKind
from graves.core.schema import SchemaManager

app = typer.Typer(no_args_is_help=True)


@app.command()
def setup(
    backend: str | None = typer.Option(None, "--backend", "-b", help="Backend identifier"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory for embedded stores"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create missing tables and columns (safe to run repeatedly)."""
    settings = load_settings(backend, data_dir)
    try:
        with open_backend(settings) as (profile, pool):
            entity_tables = [kind.table for kind in EntityKind.entity_kinds(settings.integrations)]
            report = SchemaManager(pool, profile, entity_tables).setup_tables()
    except GravesError as e:
        fail(e)
        return
    output_result(
        {
            "backend": profile.display_name,
            "created_tables": ", ".join(report.created_tables) or "-",
            "added_columns": ", ".join(report.added_columns) or "-",
            "changed": report.changed,
        },
        as_json=json_out,
        title="Schema Setup",
    )


@app.command()
def migrate(
    backend: str | None = typer.Option(None, "--backend", "-b", help="Target backend identifier"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory holding data/data.db"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Copy the legacy SQLite store into the configured backend."""
    settings = load_settings(backend, data_dir)
    try:
        with open_backend(settings) as (profile, pool):
            migrator = LegacyMigrator(settings, pool, profile)
            if not migrator.needs_migration():
                console.print("[dim]Nothing to migrate.[/dim]")
                return
            report = migrator.migrate()
    except GravesError as e:
        fail(e)
        return

    output_result(report.tables, as_json=json_out, title="Legacy Migration")
    if not report.success:
        console.print("[bold red]Migration incomplete[/bold red]; the legacy store was left in place.")
        raise typer.Exit(code=1)
    if report.renamed_to is not None:
        console.print(f"[green]Legacy store renamed to[/green] {report.renamed_to}")

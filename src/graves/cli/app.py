"""
Root Typer application for the graves-storage CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="graves-storage",
    help="graves-storage: operator tooling for the grave persistence layer.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from graves import __version__

        typer.echo(f"graves-storage {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """graves-storage CLI: schema setup, legacy migration and backend checks."""


# ── Sub-command registration ─────────────────────────────────────────────

from graves.cli.db import app as db_app  # noqa: E402
from graves.cli.schema import app as schema_app  # noqa: E402

app.add_typer(schema_app, name="schema", help="Schema setup and legacy migration.")
app.add_typer(db_app, name="db", help="Backend version and health checks.")


if __name__ == "__main__":
    app()

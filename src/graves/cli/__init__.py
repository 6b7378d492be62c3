"""
CLI layer for graves-storage.

Provides a Typer application with operator commands for the storage
subsystem: schema setup, legacy migration and backend checks. All storage
logic lives in ``graves.core``; this package only parses arguments and
renders output.

Entry point::

    graves-storage --help
"""

from graves.cli.app import app

__all__ = ["app"]

"""
Migration feature package.

Registers the ``migrate`` CLI group on the Flask app and exposes the engine
entry points used by the commands.
"""

from __future__ import annotations

from flask import Flask

from .cli import migration_cli
from .kinds import MAPPING_MODELS, MIGRATION_UNITS, RunOptions

MIGRATION_EXTENSION_KEY = "migration"

__all__ = ["init_migration", "MIGRATION_EXTENSION_KEY", "MIGRATION_UNITS", "MAPPING_MODELS", "RunOptions"]


def _set_cli(app: Flask) -> None:
    """Register the migrate CLI group, replacing any earlier registration."""
    command_name = migration_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)
    app.cli.add_command(migration_cli)


def init_migration(app: Flask) -> None:
    """Record migration state on ``app.extensions`` and mount the CLI."""
    app.extensions[MIGRATION_EXTENSION_KEY] = {
        "units": tuple(MIGRATION_UNITS),
        "mapping_kinds": tuple(MAPPING_MODELS),
        "extended_api_enabled": bool(app.config.get("REDMINE_EXTENDED_API_ENABLED", False)),
    }
    _set_cli(app)
    app.logger.info("Migration units registered: %s", ", ".join(MIGRATION_UNITS))

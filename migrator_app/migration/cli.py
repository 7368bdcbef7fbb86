"""
Click commands for running migrations.

Every migration unit gets a subcommand (``flask migrate trackers ...``) that
accepts the same phase selection and push gating options. Failures surface
as ``click.ClickException`` so the process exits 1 with the message on
stderr.
"""

from __future__ import annotations

import json
from typing import Iterable, Optional

import click
from flask import current_app
from flask.cli import ScriptInfo, with_appcontext
from sqlalchemy import select

from migrator_app import __version__
from migrator_app.errors import MigrationError
from migrator_app.models import TERMINAL_STATUSES, MigrationStatus, db

from .clients import ClientFactory
from .kinds import MAPPING_MODELS, MIGRATION_UNITS, RunOptions, TrackerMigration
from .metrics import write_metrics_textfile
from .pipeline import PushSummary, ReconciliationSummary, parse_phase_list, status_breakdown

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(name="migrate", context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, "-V", "--version", prog_name="jira-redmine-migrator")
def migration_cli():
    """
    Jira to Redmine migration commands.

    Each unit runs its phases in a fixed order; use --phases and --skip to
    narrow the selection.
    """


def _summary_payload(result: object) -> object:
    if isinstance(result, (ReconciliationSummary, PushSummary)):
        return result.to_dict()
    if isinstance(result, tuple):
        return [_summary_payload(item) for item in result]
    if isinstance(result, list):
        return [_summary_payload(item) for item in result]
    if hasattr(result, "table") and hasattr(result, "rows"):
        return {"table": result.table, "rows": result.rows}
    return result


def run_unit_command(
    unit_name: str,
    *,
    phases: Optional[str],
    skip: Optional[str],
    confirm_push: bool,
    dry_run: bool,
    use_extended_api: bool,
    summary_json: bool,
) -> dict[str, object]:
    app = current_app
    unit_cls = MIGRATION_UNITS[unit_name]
    options = RunOptions(
        confirm_push=confirm_push,
        dry_run=dry_run,
        use_extended_api=True if use_extended_api else None,
    )
    unit = unit_cls(app.config, ClientFactory(app.config), options)
    try:
        results = unit.run(parse_phase_list(phases), parse_phase_list(skip))
    except MigrationError as exc:
        db.session.rollback()
        app.logger.error(
            "Migration unit '%s' failed: %s",
            unit_name,
            exc,
            extra={"migration_unit": unit_name, "error_type": type(exc).__name__},
        )
        raise click.ClickException(str(exc)) from exc
    finally:
        write_metrics_textfile(app.config.get("METRICS_TEXTFILE_PATH"))

    if summary_json:
        payload = {phase: _summary_payload(result) for phase, result in results.items()}
        click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))
    return results


def _make_unit_command(unit_name: str) -> click.Command:
    unit_cls = MIGRATION_UNITS[unit_name]
    phase_help = "\n\n".join(unit_cls.plan.describe())

    def command(phases, skip, confirm_push, dry_run, summary_json, use_extended_api=False):
        run_unit_command(
            unit_name,
            phases=phases,
            skip=skip,
            confirm_push=confirm_push,
            dry_run=dry_run,
            use_extended_api=use_extended_api,
            summary_json=summary_json,
        )

    params = [
        click.Option(["--phases"], default=None, help="Comma-separated phases to run (default: all)."),
        click.Option(["--skip"], default=None, help="Comma-separated phases to skip."),
        click.Option(["--confirm-push"], is_flag=True, default=False, help="Apply the push phase to Redmine."),
        click.Option(["--dry-run"], is_flag=True, default=False, help="Preview the push phase without changes."),
        click.Option(["--summary-json"], is_flag=True, default=False, help="Emit phase summaries as JSON."),
    ]
    if unit_cls is TrackerMigration:
        params.append(
            click.Option(
                ["--use-extended-api"],
                is_flag=True,
                default=False,
                help="Create trackers through the Redmine extended API plugin.",
            )
        )
    return click.Command(
        name=unit_name,
        callback=with_appcontext(command),
        params=params,
        help=f"Migrate {unit_name} from Jira to Redmine.\n\nPhases:\n\n{phase_help}",
        context_settings=CONTEXT_SETTINGS,
    )


for _unit_name in MIGRATION_UNITS:
    migration_cli.add_command(_make_unit_command(_unit_name))


def _resolve_model(kind: str) -> type:
    try:
        return MAPPING_MODELS[kind]
    except KeyError as exc:
        raise click.BadParameter(
            f"Unknown mapping kind '{kind}'. Choose from: {', '.join(MAPPING_MODELS)}.",
            param_hint="KIND",
        ) from exc


@migration_cli.command("status", context_settings=CONTEXT_SETTINGS)
@click.argument("kind", type=click.Choice(sorted(MAPPING_MODELS)))
@with_appcontext
def status_command(kind: str):
    """Show how many mapping rows of KIND sit in each migration status."""

    counts = status_breakdown(_resolve_model(kind))
    if not counts:
        click.echo(f"No {kind} mappings recorded.")
        return
    click.echo(f"{kind} mappings by status:")
    for status, count in counts.items():
        click.echo(f"  {status}: {count}")


def _parse_status(value: str) -> MigrationStatus:
    try:
        return MigrationStatus.coerce(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--status") from exc


@migration_cli.command("reset", context_settings=CONTEXT_SETTINGS)
@click.argument("kind", type=click.Choice(sorted(MAPPING_MODELS)))
@click.option("--status", "status_value", required=True, help="Terminal status whose rows should be re-queued.")
@click.option("--mapping-id", "mapping_ids", type=int, multiple=True, help="Limit the reset to these mapping ids.")
@click.option("--confirm", is_flag=True, default=False, help="Apply the reset (otherwise only list rows).")
@with_appcontext
def reset_command(kind: str, status_value: str, mapping_ids: Iterable[int], confirm: bool):
    """
    Return rows of KIND in a terminal status to PENDING_ANALYSIS.

    The automation hash is cleared so the next transform phase re-evaluates
    the rows from scratch.
    """

    model = _resolve_model(kind)
    status = _parse_status(status_value)
    if status not in TERMINAL_STATUSES:
        allowed = ", ".join(sorted(item.value for item in TERMINAL_STATUSES))
        raise click.ClickException(f"Only terminal statuses can be reset ({allowed}).")

    stmt = select(model).filter(model.migration_status == status).order_by(model.mapping_id)
    mapping_ids = tuple(mapping_ids)
    if mapping_ids:
        stmt = stmt.filter(model.mapping_id.in_(mapping_ids))
    rows = db.session.scalars(stmt).all()
    if not rows:
        click.echo(f"No {kind} mappings in status {status.value}.")
        return

    if not confirm:
        click.echo(f"{len(rows)} {kind} mapping(s) in status {status.value} would be reset:")
        for row in rows:
            click.echo(f"  - #{row.mapping_id}: {row.notes}" if row.notes else f"  - #{row.mapping_id}")
        click.echo("Re-run with --confirm to reset them.")
        return

    for row in rows:
        row.migration_status = MigrationStatus.PENDING_ANALYSIS
        row.automation_hash = None
    db.session.commit()
    current_app.logger.info(
        "Reset %d %s mappings from %s",
        len(rows),
        kind,
        status.value,
        extra={"migration_kind": kind, "reset_count": len(rows)},
    )
    click.echo(f"Reset {len(rows)} {kind} mapping(s) to {MigrationStatus.PENDING_ANALYSIS.value}.")


def main(argv=None):
    """Console-script entry point: ``jira-redmine-migrate <unit> [options]``."""

    def _load_application():
        from app import app as flask_app

        return flask_app

    return migration_cli.main(
        args=argv,
        prog_name="jira-redmine-migrate",
        obj=ScriptInfo(create_app=_load_application),
    )

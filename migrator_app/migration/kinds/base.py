"""
Shared plumbing for migration units: run options, snapshot ingestion and
mapping synchronization.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Iterable, Mapping, Sequence

import click
from sqlalchemy import delete, select

from config.validation import require_settings
from migrator_app.errors import DataIntegrityError, TransportError
from migrator_app.models import MigrationStatus, db

from ..clients import ClientFactory
from ..pipeline import (
    Phase,
    PhasePlan,
    PushExecutor,
    PushSummary,
    Reconciler,
    ReconciliationSummary,
    format_push_summary,
    format_reconciliation_summary,
    run_phases,
)

logger = logging.getLogger(__name__)

EXTRACT_PHASE_SETTINGS = {"jira": "jira", "redmine": "redmine"}


@dataclass(frozen=True)
class RunOptions:
    confirm_push: bool = False
    dry_run: bool = False
    use_extended_api: bool | None = None


@dataclass(frozen=True)
class SnapshotSummary:
    table: str
    rows: int


def require_fields(record: Mapping[str, Any], fields: Sequence[str], *, entity: str) -> None:
    """Raise DataIntegrityError when any required field is absent or blank."""

    missing = [name for name in fields if record.get(name) is None or str(record.get(name)).strip() == ""]
    if missing:
        identifier = record.get("id") or record.get("groupId") or record.get("key") or "?"
        raise DataIntegrityError(
            f"{entity} record {identifier} is missing required field(s): {', '.join(missing)}."
        )


def replace_snapshots(snapshots: Sequence[tuple[type, Iterable[Mapping[str, Any]]]]) -> list[SnapshotSummary]:
    """
    Replace the contents of one or more staging tables in one transaction.

    Any failure, including a DataIntegrityError raised while a rows iterator
    is consumed, rolls every table back to its previous state.
    """

    summaries: list[SnapshotSummary] = []
    try:
        for model, rows in snapshots:
            db.session.execute(delete(model))
            count = 0
            for values in rows:
                db.session.add(model(**values))
                count += 1
            db.session.flush()
            summaries.append(SnapshotSummary(table=model.__tablename__, rows=count))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    for summary in summaries:
        logger.info(
            "Staged %d rows into %s",
            summary.rows,
            summary.table,
            extra={"staging_table": summary.table, "staging_rows": summary.rows},
        )
    return summaries


def replace_snapshot(model: type, rows: Iterable[Mapping[str, Any]]) -> SnapshotSummary:
    """Replace one staging table; see :func:`replace_snapshots`."""

    return replace_snapshots([(model, rows)])[0]


@dataclass(frozen=True)
class MappingSyncSummary:
    created: int
    refreshed: int


def sync_mapping_rows(
    model: type,
    key_fields: Sequence[str],
    records: Iterable[Mapping[str, Any]],
) -> MappingSyncSummary:
    """
    Upsert one mapping row per source record.

    New rows start in PENDING_ANALYSIS; existing rows only get their source
    snapshot columns refreshed, which leaves the automation hash valid.
    """

    existing = {tuple(getattr(row, name) for name in key_fields): row for row in db.session.scalars(select(model))}
    created = refreshed = 0
    try:
        for record in records:
            key = tuple(record[name] for name in key_fields)
            row = existing.get(key)
            if row is None:
                row = model(**record, migration_status=MigrationStatus.PENDING_ANALYSIS)
                db.session.add(row)
                existing[key] = row
                created += 1
                continue
            dirty = False
            for attr, value in record.items():
                if getattr(row, attr) != value:
                    setattr(row, attr, value)
                    dirty = True
            if dirty:
                refreshed += 1
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return MappingSyncSummary(created=created, refreshed=refreshed)


class MigrationUnit:
    """
    One selectable migration command (projects, groups, trackers, ...).

    Subclasses define ``plan`` and a ``run_<phase>`` method per phase.
    """

    name: ClassVar[str]
    plan: ClassVar[PhasePlan]

    def __init__(
        self,
        config: Mapping[str, Any],
        clients: ClientFactory,
        options: RunOptions | None = None,
        *,
        echo: Callable[[str], None] = click.echo,
    ) -> None:
        self.config = config
        self.clients = clients
        self.options = options or RunOptions()
        self.echo = echo

    def handlers(self) -> dict[str, Callable[[], object]]:
        return {phase.name: getattr(self, f"run_{phase.name}") for phase in self.plan.phases}

    def required_sections(self, phases: Sequence[Phase]) -> list[str]:
        sections: list[str] = []
        for phase in phases:
            section = EXTRACT_PHASE_SETTINGS.get(phase.name)
            if phase.name == "push" and self.options.confirm_push and not self.options.dry_run:
                section = "redmine"
            if section and section not in sections:
                sections.append(section)
        return sections

    def run(self, selected: Sequence[str] | None = None, skipped: Sequence[str] | None = None) -> dict[str, object]:
        phases = self.plan.select(selected, skipped)
        for section in self.required_sections(phases):
            require_settings(self.config, section)
        self.echo(f"Running {self.name} phases: {', '.join(phase.name for phase in phases)}")
        return run_phases(self.plan, phases, self.handlers())

    def reconcile(self, kind) -> ReconciliationSummary:
        summary = Reconciler(kind).run()
        for line in format_reconciliation_summary(summary):
            self.echo(line)
        return summary

    def push(self, kind, *, extended_api_prefix: str | None = None) -> PushSummary:
        executor = PushExecutor(
            kind,
            self.clients.redmine,
            confirm=self.options.confirm_push,
            dry_run=self.options.dry_run,
            extended_api_prefix=extended_api_prefix,
            echo=self.echo,
        )
        summary = executor.run()
        for line in format_push_summary(summary):
            self.echo(line)
        return summary

    def report_snapshot(self, summary: SnapshotSummary) -> SnapshotSummary:
        self.echo(f"Staged {summary.rows} row(s) into {summary.table}.")
        return summary


def created_id(response: Mapping[str, Any], resource: str) -> int:
    """Extract the id of a created resource from ``{resource: {id}}`` or ``{id}``."""

    payload = response.get(resource) if isinstance(response, Mapping) else None
    created = payload.get("id") if isinstance(payload, Mapping) else None
    if created is None and isinstance(response, Mapping):
        created = response.get("id")
    if created is None:
        raise TransportError(f"Redmine did not return the new {resource} id.")
    if isinstance(created, bool):
        raise TransportError(f"Redmine returned a non-numeric {resource} id: {created!r}.")
    try:
        return int(created)
    except (TypeError, ValueError) as exc:
        raise TransportError(f"Redmine returned a non-numeric {resource} id: {created!r}.") from exc

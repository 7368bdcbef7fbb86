"""
Push executor: create or assign ready mappings on Redmine.

Two gates control mutation. ``dry_run`` always previews; without
``confirm`` nothing is sent either. Only ``confirm`` without ``dry_run``
performs the external calls, one row at a time, committing each row's outcome
before moving on so an interrupted batch leaves accurate state behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Literal

import click
import requests
from sqlalchemy import select

from migrator_app.errors import MigrationError
from migrator_app.models import MigrationStatus, db

from ..clients import RedmineClient, summarize_error
from ..metrics import record_push_result
from .automation_hash import stamp_automation_hash

logger = logging.getLogger(__name__)


class PushableKind:
    """Push-side configuration for an entity kind."""

    name: ClassVar[str]
    model: ClassVar[type]
    hash_fields: ClassVar[tuple[str, ...]]
    ready_status: ClassVar[MigrationStatus | None]
    success_status: ClassVar[MigrationStatus] = MigrationStatus.CREATION_SUCCESS
    failure_status: ClassVar[MigrationStatus] = MigrationStatus.CREATION_FAILED
    target_id_attr: ClassVar[str | None] = None
    extended_api_resource: ClassVar[str | None] = None

    def describe(self, row: Any) -> str:
        raise NotImplementedError

    def push(self, row: Any, client: RedmineClient) -> int | None:
        """Perform the Redmine call for one row and return the new Redmine id."""
        raise NotImplementedError


@dataclass(frozen=True)
class PushResult:
    mapping_id: int
    description: str
    result: Literal["success", "failure"]
    target_id: int | None = None
    error: str | None = None


@dataclass
class PushSummary:
    """
    Outcome of a push phase.

    `mode` values:
    - ``nothing_ready``: no rows in the ready status.
    - ``unconfirmed``: rows were listed but --confirm-push was not given.
    - ``dry_run``: rows were listed as a preview.
    - ``manual``: the kind cannot be pushed automatically; a checklist was printed.
    - ``executed``: calls were made for every ready row.
    """

    kind: str
    mode: Literal["nothing_ready", "unconfirmed", "dry_run", "manual", "executed"]
    planned: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[PushResult] = field(default_factory=list)

    def add(self, result: PushResult) -> None:
        self.results.append(result)
        if result.result == "success":
            self.succeeded += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "mode": self.mode,
            "planned": self.planned,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": [
                {"mapping_id": item.mapping_id, "error": item.error}
                for item in self.results
                if item.result == "failure"
            ],
        }


def load_ready_rows(kind: PushableKind) -> list[Any]:
    model = kind.model
    stmt = select(model).filter(model.migration_status == kind.ready_status).order_by(model.mapping_id)
    return list(db.session.scalars(stmt).all())


class PushExecutor:
    """Execute (or preview) the push phase for one entity kind."""

    def __init__(
        self,
        kind: PushableKind,
        client_provider: Callable[[], RedmineClient],
        *,
        confirm: bool,
        dry_run: bool,
        extended_api_prefix: str | None = None,
        echo: Callable[[str], None] = click.echo,
    ) -> None:
        self.kind = kind
        self.client_provider = client_provider
        self.confirm = confirm
        self.dry_run = dry_run
        self.extended_api_prefix = extended_api_prefix
        self.echo = echo

    def _print_plan(self, rows: list[Any]) -> None:
        for row in rows:
            self.echo(f"  - {self.kind.describe(row)}")

    def run(self) -> PushSummary:
        kind = self.kind
        rows = load_ready_rows(kind)
        summary = PushSummary(kind=kind.name, mode="nothing_ready", planned=len(rows))
        if not rows:
            self.echo(f"No {kind.name} mappings are ready for push.")
            return summary

        if self.dry_run:
            summary.mode = "dry_run"
            self.echo(f"[dry-run] {len(rows)} {kind.name} mapping(s) would be pushed:")
            self._print_plan(rows)
            return summary

        if not self.confirm:
            summary.mode = "unconfirmed"
            self.echo(f"{len(rows)} {kind.name} mapping(s) are ready for push:")
            self._print_plan(rows)
            self.echo("Push confirmation not provided; re-run with --confirm-push to apply these changes.")
            return summary

        client = self.client_provider()
        if kind.extended_api_resource:
            client.verify_extended_api(self.extended_api_prefix or "", kind.extended_api_resource)

        summary.mode = "executed"
        for row in rows:
            result = self.push_row(row, client)
            summary.add(result)
            record_push_result(kind.name, result.result)
            if result.result == "success" and result.target_id is not None:
                self.echo(f"  [ok] {result.description} -> Redmine #{result.target_id}")
            elif result.result == "success":
                self.echo(f"  [ok] {result.description}")
            else:
                self.echo(f"  [failed] {result.description}: {result.error}")
        return summary

    def push_row(self, row: Any, client: RedmineClient) -> PushResult:
        kind = self.kind
        description = kind.describe(row)
        try:
            target_id = kind.push(row, client)
        except (MigrationError, requests.RequestException) as exc:
            return self._record_failure(row, description, exc)
        except Exception as exc:
            # Unexpected response shapes fail this row only; the batch continues.
            logger.exception(
                "Unexpected error pushing %s mapping #%s",
                kind.name,
                row.mapping_id,
                extra={"migration_kind": kind.name, "mapping_id": row.mapping_id},
            )
            return self._record_failure(row, description, exc)

        if kind.target_id_attr and target_id is not None:
            setattr(row, kind.target_id_attr, target_id)
        row.migration_status = kind.success_status
        row.notes = None
        stamp_automation_hash(row, kind.hash_fields)
        db.session.commit()
        logger.info(
            "Pushed %s mapping #%s",
            kind.name,
            row.mapping_id,
            extra={"migration_kind": kind.name, "mapping_id": row.mapping_id, "redmine_id": target_id},
        )
        return PushResult(row.mapping_id, description, "success", target_id=target_id)

    def _record_failure(self, row: Any, description: str, exc: BaseException) -> PushResult:
        kind = self.kind
        error = summarize_error(exc)
        row.migration_status = kind.failure_status
        row.notes = error
        stamp_automation_hash(row, kind.hash_fields)
        db.session.commit()
        logger.warning(
            "Push failed for %s mapping #%s: %s",
            kind.name,
            row.mapping_id,
            error,
            extra={"migration_kind": kind.name, "mapping_id": row.mapping_id},
        )
        return PushResult(row.mapping_id, description, "failure", error=error)


def format_push_summary(summary: PushSummary) -> list[str]:
    lines = [f"Push summary ({summary.kind}): mode={summary.mode}, planned={summary.planned}"]
    if summary.mode == "executed":
        lines.append(f"  succeeded: {summary.succeeded}")
        lines.append(f"  failed: {summary.failed}")
    return lines

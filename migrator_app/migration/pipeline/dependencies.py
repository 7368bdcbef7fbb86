"""
Dependency resolution for mappings that reference other mapping tables.

An assignment can only be pushed once the project, group and role it refers
to are resolved on the Redmine side. Each resolver checks one such reference
and reports why it is unmet when it is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Mapping

from sqlalchemy import select

from migrator_app.models import RESOLVED_STATUSES, MigrationStatus, db


@dataclass(frozen=True)
class Resolved:
    kind: str
    target_id: int
    mapping: object


@dataclass(frozen=True)
class Unmet:
    """
    First unmet dependency of a row.

    `reason` values:
    - ``missing``: no mapping row exists for the referenced source entity.
    - ``not_ready``: the mapping row exists but is not resolved on Redmine yet.
    """

    kind: str
    reason: Literal["missing", "not_ready"]
    awaiting_status: MigrationStatus
    message: str
    mapping: object | None = None


@dataclass(frozen=True)
class DependencyResolver:
    """
    Resolve one reference from a mapping row to another mapping table.

    ``source_key`` returns the column filters identifying the referenced row,
    ``target_attr`` names the Redmine id column on the referenced model and
    ``ready_statuses`` lists the statuses accepted as resolved (``None``
    accepts any status as long as the Redmine id is populated).
    """

    kind: str
    model: type
    source_key: Callable[[object], Mapping[str, object]]
    target_attr: str
    awaiting_status: MigrationStatus
    ready_statuses: frozenset | None = RESOLVED_STATUSES
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.kind

    def lookup(self, row: object) -> object | None:
        filters = dict(self.source_key(row))
        if any(value is None or value == "" for value in filters.values()):
            return None
        stmt = select(self.model).filter_by(**filters).limit(1)
        return db.session.scalars(stmt).first()

    def resolve(self, row: object) -> Resolved | Unmet:
        name = self.display_name
        referenced = self.lookup(row)
        if referenced is None:
            return Unmet(
                kind=self.kind,
                reason="missing",
                awaiting_status=self.awaiting_status,
                message=f"Awaiting {name} migration: no Redmine {name} mapping available yet.",
            )

        status = getattr(referenced, "migration_status", None)
        if self.ready_statuses is not None and status not in self.ready_statuses:
            status_label = status.value if isinstance(status, MigrationStatus) else status
            return Unmet(
                kind=self.kind,
                reason="not_ready",
                awaiting_status=self.awaiting_status,
                message=f"{name.capitalize()} mapping is not ready (status: {status_label}).",
                mapping=referenced,
            )

        target_id = getattr(referenced, self.target_attr, None)
        if target_id is None:
            return Unmet(
                kind=self.kind,
                reason="not_ready",
                awaiting_status=self.awaiting_status,
                message=f"{name.capitalize()} mapping has no Redmine id yet.",
                mapping=referenced,
            )
        return Resolved(kind=self.kind, target_id=int(target_id), mapping=referenced)


def resolve_dependencies(
    resolvers: Iterable[DependencyResolver],
    row: object,
) -> tuple[Unmet | None, dict[str, Resolved]]:
    """
    Evaluate resolvers in order and stop at the first unmet dependency.

    Returns the unmet dependency (or None) and the dependencies resolved
    before it, keyed by kind.
    """

    resolved: dict[str, Resolved] = {}
    for resolver in resolvers:
        outcome = resolver.resolve(row)
        if isinstance(outcome, Unmet):
            return outcome, resolved
        resolved[outcome.kind] = outcome
    return None, resolved

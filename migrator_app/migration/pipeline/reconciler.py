"""
Generic reconciliation of mapping rows against freshly staged snapshots.

One ``Reconciler`` drives every entity kind. The kind supplies the model, the
statuses it may re-enter, the automatable fields covered by the hash, the
ordered dependency resolvers and the proposal logic; the reconciler owns the
per-row state machine, the hash guard and the per-row commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Sequence

from sqlalchemy import func, select

from migrator_app.models import MigrationStatus, db

from ..metrics import record_reconcile_outcome
from .automation_hash import has_manual_override, stamp_automation_hash
from .dependencies import DependencyResolver, Resolved, Unmet, resolve_dependencies
from .matcher import AmbiguousMatch, EntityMatcher, NoMatch, OneMatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Proposal:
    """
    Engine decision for one row.

    ``fields`` holds the column updates (Redmine ids and proposed values);
    ``outcome`` names the summary counter the decision is reported under.
    """

    status: MigrationStatus
    outcome: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    notes: str | None = None

    def with_status(self, status: MigrationStatus, outcome: str, notes: str | None) -> "Proposal":
        return Proposal(status=status, outcome=outcome, fields=self.fields, notes=notes)


@dataclass(frozen=True)
class RowResult:
    mapping_id: int
    outcome: str
    status: MigrationStatus
    changed: bool


@dataclass
class ReconciliationSummary:
    """Counters reported after reconciling one entity kind."""

    kind: str
    processed: int = 0
    matched: int = 0
    ready_for_creation: int = 0
    ready_for_assignment: int = 0
    ready_for_push: int = 0
    already_recorded: int = 0
    manual_review: int = 0
    ignored: int = 0
    manual_overrides: int = 0
    skipped: int = 0
    unchanged: int = 0
    updated: int = 0
    awaiting: dict[str, int] = field(default_factory=dict)
    status_counts: dict[str, int] = field(default_factory=dict)

    def record(self, result: RowResult) -> None:
        self.processed += 1
        if result.outcome == "skipped":
            self.skipped += 1
            return
        if result.outcome == "manual_override":
            self.manual_overrides += 1
            self.skipped += 1
            return
        if result.outcome.startswith("awaiting_"):
            dependency = result.outcome[len("awaiting_") :]
            self.awaiting[dependency] = self.awaiting.get(dependency, 0) + 1
        elif hasattr(self, result.outcome):
            setattr(self, result.outcome, getattr(self, result.outcome) + 1)
        if result.changed:
            self.updated += 1
        else:
            self.unchanged += 1

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "kind": self.kind,
            "processed": self.processed,
            "matched": self.matched,
            "ready_for_creation": self.ready_for_creation,
            "ready_for_assignment": self.ready_for_assignment,
            "ready_for_push": self.ready_for_push,
            "already_recorded": self.already_recorded,
            "manual_review": self.manual_review,
            "ignored": self.ignored,
            "manual_overrides": self.manual_overrides,
            "skipped": self.skipped,
            "unchanged": self.unchanged,
            "updated": self.updated,
        }
        for dependency, count in sorted(self.awaiting.items()):
            payload[f"awaiting_{dependency}"] = count
        payload["status_counts"] = dict(self.status_counts)
        return payload


class ReconcileKind:
    """
    Per-entity-kind configuration consumed by :class:`Reconciler`.

    Subclasses set the class attributes and implement :meth:`propose`. The
    optional hooks default to no-ops.
    """

    name: ClassVar[str]
    model: ClassVar[type]
    allowed_statuses: ClassVar[frozenset]
    hash_fields: ClassVar[tuple[str, ...]]
    ready_status: ClassVar[MigrationStatus | None] = None
    recorded_status: ClassVar[MigrationStatus | None] = None
    dependencies: ClassVar[tuple[DependencyResolver, ...]] = ()

    def prepare(self) -> None:
        """Load target lookups once before rows are reconciled."""

    def row_label(self, row: Any) -> str:
        return f"mapping #{row.mapping_id}"

    def precheck(self, row: Any) -> Proposal | None:
        """Short-circuit a row before dependency resolution."""
        return None

    def on_unmet(self, row: Any, unmet: Unmet, resolved: Mapping[str, Resolved]) -> Proposal:
        return Proposal(
            status=unmet.awaiting_status,
            outcome=f"awaiting_{unmet.kind}",
            fields=self.dependency_fields(resolved),
            notes=unmet.message,
        )

    def dependency_fields(self, resolved: Mapping[str, Resolved]) -> dict[str, Any]:
        return {}

    def propose(self, row: Any, resolved: Mapping[str, Resolved]) -> Proposal:
        raise NotImplementedError

    def missing_requirement(self, row: Any, proposal: Proposal) -> str | None:
        """Return a note when a required derived value cannot be determined."""
        return None

    def already_recorded(self, row: Any, proposal: Proposal) -> bool:
        return False


class MatchingKind(ReconcileKind):
    """
    Reconcile kind resolved by exact name against a staged Redmine snapshot.
    """

    target_label: ClassVar[str]

    def __init__(self) -> None:
        self.matcher: EntityMatcher = EntityMatcher((), key=lambda item: item)

    def build_matcher(self) -> EntityMatcher:
        raise NotImplementedError

    def prepare(self) -> None:
        self.matcher = self.build_matcher()

    def match_key(self, row: Any) -> object | None:
        raise NotImplementedError

    def missing_key_note(self, row: Any) -> str:
        return f"Missing Jira {self.target_label} name in the staging snapshot."

    def matched_proposal(self, row: Any, target: Any) -> Proposal:
        raise NotImplementedError

    def creation_proposal(self, row: Any) -> Proposal:
        raise NotImplementedError

    def ambiguous_note(self, row: Any, match: AmbiguousMatch) -> str:
        ids = ", ".join(f"#{getattr(candidate, 'id', '?')}" for candidate in match.candidates)
        return (
            f'Multiple Redmine {self.target_label}s share the normalized name "{match.key}" '
            f"({ids}); choose the correct target manually."
        )

    def propose(self, row: Any, resolved: Mapping[str, Resolved]) -> Proposal:
        key = self.match_key(row)
        match = self.matcher.match(key)
        if isinstance(match, NoMatch) and match.key is None:
            return Proposal(
                status=MigrationStatus.MANUAL_INTERVENTION_REQUIRED,
                outcome="manual_review",
                notes=self.missing_key_note(row),
            )
        if isinstance(match, OneMatch):
            return self.matched_proposal(row, match.target)
        if isinstance(match, AmbiguousMatch):
            return Proposal(
                status=MigrationStatus.MANUAL_INTERVENTION_REQUIRED,
                outcome="manual_review",
                notes=self.ambiguous_note(row, match),
            )
        return self.creation_proposal(row)


class Reconciler:
    """Apply the reconciliation state machine to every row of one kind."""

    def __init__(self, kind: ReconcileKind) -> None:
        self.kind = kind

    def run(self) -> ReconciliationSummary:
        kind = self.kind
        kind.prepare()
        summary = ReconciliationSummary(kind=kind.name)
        rows = db.session.scalars(select(kind.model).order_by(kind.model.mapping_id)).all()
        for row in rows:
            result = self.reconcile_row(row)
            summary.record(result)
            record_reconcile_outcome(kind.name, result.outcome)
        summary.status_counts = status_breakdown(kind.model)
        logger.info(
            "Reconciled %s mappings",
            kind.name,
            extra={"migration_kind": kind.name, "migration_summary": summary.to_dict()},
        )
        return summary

    def decide(self, row: Any) -> Proposal:
        kind = self.kind
        proposal = kind.precheck(row)
        if proposal is not None:
            return proposal

        unmet, resolved = resolve_dependencies(kind.dependencies, row)
        if unmet is not None:
            return kind.on_unmet(row, unmet, resolved)

        proposal = kind.propose(row, resolved)
        if proposal.status != MigrationStatus.MANUAL_INTERVENTION_REQUIRED:
            missing = kind.missing_requirement(row, proposal)
            if missing:
                return proposal.with_status(MigrationStatus.MANUAL_INTERVENTION_REQUIRED, "manual_review", missing)

        if (
            kind.ready_status is not None
            and kind.recorded_status is not None
            and proposal.status == kind.ready_status
            and kind.already_recorded(row, proposal)
        ):
            return proposal.with_status(kind.recorded_status, "already_recorded", None)
        return proposal

    def reconcile_row(self, row: Any) -> RowResult:
        kind = self.kind
        label = kind.row_label(row)
        if row.migration_status not in kind.allowed_statuses:
            return RowResult(row.mapping_id, "skipped", row.migration_status, changed=False)

        if has_manual_override(row, kind.hash_fields):
            logger.warning(
                "[preserved] %s %s has manual overrides; skipping automated update.",
                kind.name,
                label,
                extra={"migration_kind": kind.name, "mapping_id": row.mapping_id},
            )
            return RowResult(row.mapping_id, "manual_override", row.migration_status, changed=False)

        proposal = self.decide(row)
        changed = _apply_proposal(row, proposal)
        if changed:
            stamp_automation_hash(row, kind.hash_fields)
            db.session.commit()

        if proposal.status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED:
            logger.warning(
                "[manual] %s %s: %s",
                kind.name,
                label,
                proposal.notes,
                extra={"migration_kind": kind.name, "mapping_id": row.mapping_id},
            )
        elif proposal.outcome.startswith("awaiting_"):
            logger.warning(
                "[awaiting] %s %s: %s",
                kind.name,
                label,
                proposal.notes,
                extra={"migration_kind": kind.name, "mapping_id": row.mapping_id},
            )
        return RowResult(row.mapping_id, proposal.outcome, proposal.status, changed=changed)


def _apply_proposal(row: Any, proposal: Proposal) -> bool:
    changed = False
    updates: dict[str, Any] = dict(proposal.fields)
    updates["migration_status"] = proposal.status
    updates["notes"] = proposal.notes
    for attr, value in updates.items():
        if getattr(row, attr) != value:
            setattr(row, attr, value)
            changed = True
    return changed


def status_breakdown(model: type) -> dict[str, int]:
    """Count mapping rows per migration status."""

    stmt = select(model.migration_status, func.count()).group_by(model.migration_status)
    counts: dict[str, int] = {}
    for status, count in db.session.execute(stmt).all():
        key = status.value if isinstance(status, MigrationStatus) else str(status)
        counts[key] = int(count)
    return dict(sorted(counts.items()))


def format_reconciliation_summary(summary: ReconciliationSummary) -> Sequence[str]:
    lines = [
        f"Reconciliation summary ({summary.kind}):",
        f"  processed: {summary.processed}",
        f"  matched: {summary.matched}",
        f"  ready for creation: {summary.ready_for_creation}",
    ]
    if summary.ready_for_assignment:
        lines.append(f"  ready for assignment: {summary.ready_for_assignment}")
    if summary.ready_for_push:
        lines.append(f"  ready for push: {summary.ready_for_push}")
    if summary.already_recorded:
        lines.append(f"  already recorded: {summary.already_recorded}")
    if summary.ignored:
        lines.append(f"  ignored: {summary.ignored}")
    lines.extend(
        [
            f"  manual review: {summary.manual_review}",
            f"  manual overrides: {summary.manual_overrides}",
            f"  skipped: {summary.skipped}",
            f"  updated: {summary.updated}",
            f"  unchanged: {summary.unchanged}",
        ]
    )
    for dependency, count in sorted(summary.awaiting.items()):
        lines.append(f"  awaiting {dependency}: {count}")
    if summary.status_counts:
        lines.append("  status breakdown:")
        for status, count in summary.status_counts.items():
            lines.append(f"    {status}: {count}")
    return lines

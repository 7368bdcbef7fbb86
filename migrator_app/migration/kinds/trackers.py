"""
Tracker migration: Jira issue types to Redmine trackers.

Trackers are matched by name. Missing trackers can only be created through
the Redmine extended API plugin; without it the push phase prints a manual
checklist instead.
"""

from __future__ import annotations

from typing import Any, Iterator

from sqlalchemy import select

from migrator_app.models import (
    MigrationStatus,
    StagingJiraIssueType,
    StagingRedmineIssueStatus,
    StagingRedmineTracker,
    TrackerMapping,
    db,
)

from ..clients import RedmineClient
from ..pipeline import (
    AmbiguousMatch,
    EntityMatcher,
    MatchingKind,
    Phase,
    PhasePlan,
    Proposal,
    PushableKind,
    PushSummary,
    load_ready_rows,
)
from .base import MigrationUnit, created_id, replace_snapshot, require_fields, sync_mapping_rows

SUBTASK_READY_NOTE = "Jira issue type is a sub-task; confirm whether a separate Redmine tracker is required."
SUBTASK_MANUAL_SUFFIX = " (Jira issue type is a sub-task.)"
MISSING_DEFAULT_STATUS_NOTE = "Unable to determine a default Redmine status for the tracker."


def determine_default_status_id(configured: int | None) -> int | None:
    """
    Pick the default status proposed for new trackers.

    The configured id wins; otherwise the first open Redmine status, then the
    first status of any kind.
    """

    if configured:
        return int(configured)
    statuses = db.session.scalars(select(StagingRedmineIssueStatus).order_by(StagingRedmineIssueStatus.id)).all()
    for status in statuses:
        if not status.is_closed:
            return status.id
    return statuses[0].id if statuses else None


class TrackerKind(MatchingKind, PushableKind):
    name = "trackers"
    target_label = "tracker"
    model = TrackerMapping
    allowed_statuses = frozenset(
        {
            MigrationStatus.PENDING_ANALYSIS,
            MigrationStatus.READY_FOR_CREATION,
            MigrationStatus.MATCH_FOUND,
        }
    )
    hash_fields = (
        "redmine_tracker_id",
        "migration_status",
        "proposed_redmine_name",
        "proposed_redmine_description",
        "proposed_default_status_id",
        "notes",
    )
    ready_status = MigrationStatus.READY_FOR_CREATION
    target_id_attr = "redmine_tracker_id"
    extended_api_resource = "trackers.json"

    def __init__(self, *, configured_default_status_id: int | None = None, extended_api_prefix: str = "") -> None:
        super().__init__()
        self.configured_default_status_id = configured_default_status_id
        self.extended_api_prefix = extended_api_prefix
        self.default_status_id: int | None = None

    def prepare(self) -> None:
        super().prepare()
        self.default_status_id = determine_default_status_id(self.configured_default_status_id)

    def build_matcher(self) -> EntityMatcher:
        targets = db.session.scalars(select(StagingRedmineTracker).order_by(StagingRedmineTracker.id)).all()
        return EntityMatcher(targets, key=lambda tracker: tracker.name)

    def row_label(self, row: TrackerMapping) -> str:
        return f'Jira issue type "{row.jira_issue_type_name or row.jira_issue_type_id}"'

    def match_key(self, row: TrackerMapping) -> str | None:
        return row.jira_issue_type_name

    @staticmethod
    def _manual_note(row: TrackerMapping, note: str) -> str:
        return note + SUBTASK_MANUAL_SUFFIX if row.jira_is_subtask else note

    def missing_key_note(self, row: TrackerMapping) -> str:
        return self._manual_note(row, "Missing Jira issue type name in the staging snapshot.")

    def ambiguous_note(self, row: TrackerMapping, match: AmbiguousMatch) -> str:
        return self._manual_note(row, super().ambiguous_note(row, match))

    def matched_proposal(self, row: TrackerMapping, target: StagingRedmineTracker) -> Proposal:
        return Proposal(
            status=MigrationStatus.MATCH_FOUND,
            outcome="matched",
            fields={
                "redmine_tracker_id": target.id,
                "proposed_redmine_name": target.name,
                "proposed_redmine_description": target.description,
                "proposed_default_status_id": target.default_status_id,
            },
        )

    def creation_proposal(self, row: TrackerMapping) -> Proposal:
        return Proposal(
            status=MigrationStatus.READY_FOR_CREATION,
            outcome="ready_for_creation",
            fields={
                "redmine_tracker_id": None,
                "proposed_redmine_name": row.jira_issue_type_name.strip(),
                "proposed_redmine_description": row.jira_issue_type_description,
                "proposed_default_status_id": self.default_status_id,
            },
            notes=SUBTASK_READY_NOTE if row.jira_is_subtask else None,
        )

    def missing_requirement(self, row: TrackerMapping, proposal: Proposal) -> str | None:
        if proposal.status == MigrationStatus.READY_FOR_CREATION and proposal.fields.get("proposed_default_status_id") is None:
            return self._manual_note(row, MISSING_DEFAULT_STATUS_NOTE)
        return None

    def describe(self, row: TrackerMapping) -> str:
        return f'tracker "{row.proposed_redmine_name}" (default status #{row.proposed_default_status_id})'

    def push(self, row: TrackerMapping, client: RedmineClient) -> int:
        tracker: dict[str, Any] = {"name": row.proposed_redmine_name}
        if row.proposed_redmine_description:
            tracker["description"] = row.proposed_redmine_description
        if row.proposed_default_status_id is not None:
            tracker["default_status_id"] = row.proposed_default_status_id
        path = client.extended_api_path(self.extended_api_prefix, self.extended_api_resource)
        response = client.post_json(path, {"tracker": tracker})
        return created_id(response, "tracker")


def _jira_issue_type_rows(issue_types) -> Iterator[dict[str, Any]]:
    seen: set[str] = set()
    for issue_type in issue_types:
        require_fields(issue_type, ("id",), entity="Jira issue type")
        issue_type_id = str(issue_type["id"])
        if issue_type_id in seen:
            continue
        seen.add(issue_type_id)
        name = issue_type.get("name")
        yield {
            "id": issue_type_id,
            "name": name.strip() if isinstance(name, str) and name.strip() else None,
            "description": issue_type.get("description") or None,
            "subtask": bool(issue_type.get("subtask")),
            "hierarchy_level": issue_type.get("hierarchyLevel"),
        }


def _redmine_tracker_rows(trackers) -> Iterator[dict[str, Any]]:
    for tracker in trackers:
        require_fields(tracker, ("id", "name"), entity="Redmine tracker")
        default_status = tracker.get("default_status") or {}
        yield {
            "id": int(tracker["id"]),
            "name": str(tracker["name"]),
            "description": tracker.get("description"),
            "default_status_id": default_status.get("id") if isinstance(default_status, dict) else None,
        }


def _redmine_status_rows(statuses) -> Iterator[dict[str, Any]]:
    for status in statuses:
        require_fields(status, ("id", "name"), entity="Redmine issue status")
        yield {"id": int(status["id"]), "name": str(status["name"]), "is_closed": bool(status.get("is_closed"))}


class TrackerMigration(MigrationUnit):
    name = "trackers"
    plan = PhasePlan(
        unit="trackers",
        phases=(
            Phase("jira", "Extract Jira issue types into the staging snapshot."),
            Phase("redmine", "Refresh the Redmine tracker and issue status snapshots."),
            Phase("transform", "Reconcile tracker mappings against the Redmine snapshot."),
            Phase("push", "Create missing trackers through the extended API (or print a manual checklist)."),
        ),
    )

    @property
    def extended_api_enabled(self) -> bool:
        if self.options.use_extended_api is not None:
            return bool(self.options.use_extended_api)
        return bool(self.config.get("REDMINE_EXTENDED_API_ENABLED"))

    def kind(self) -> TrackerKind:
        return TrackerKind(
            configured_default_status_id=self.config.get("MIGRATION_TRACKERS_DEFAULT_STATUS_ID"),
            extended_api_prefix=self.config.get("REDMINE_EXTENDED_API_PREFIX") or "",
        )

    def run_jira(self):
        issue_types = self.clients.jira().list_issue_types()
        return self.report_snapshot(replace_snapshot(StagingJiraIssueType, _jira_issue_type_rows(issue_types)))

    def run_redmine(self):
        redmine = self.clients.redmine()
        trackers = redmine.list_trackers()
        statuses = redmine.list_issue_statuses()
        tracker_summary = self.report_snapshot(replace_snapshot(StagingRedmineTracker, _redmine_tracker_rows(trackers)))
        status_summary = self.report_snapshot(
            replace_snapshot(StagingRedmineIssueStatus, _redmine_status_rows(statuses))
        )
        return tracker_summary, status_summary

    def run_transform(self):
        staged = db.session.scalars(select(StagingJiraIssueType).order_by(StagingJiraIssueType.id)).all()
        sync_mapping_rows(
            TrackerMapping,
            ("jira_issue_type_id",),
            (
                {
                    "jira_issue_type_id": issue_type.id,
                    "jira_issue_type_name": issue_type.name,
                    "jira_issue_type_description": issue_type.description,
                    "jira_is_subtask": bool(issue_type.subtask),
                }
                for issue_type in staged
            ),
        )
        return self.reconcile(self.kind())

    def run_push(self):
        kind = self.kind()
        if self.extended_api_enabled:
            return self.push(kind, extended_api_prefix=kind.extended_api_prefix)
        return self._print_manual_checklist(kind)

    def _print_manual_checklist(self, kind: TrackerKind) -> PushSummary:
        rows = load_ready_rows(kind)
        summary = PushSummary(kind=kind.name, mode="manual", planned=len(rows))
        if not rows:
            self.echo("No trackers are ready for creation.")
            return summary
        self.echo("The extended API is disabled; create these trackers manually in Redmine:")
        for row in rows:
            line = f"  - {row.proposed_redmine_name} (default status #{row.proposed_default_status_id})"
            if row.proposed_redmine_description:
                line += f": {row.proposed_redmine_description}"
            self.echo(line)
        self.echo("Re-run the redmine and transform phases after creating them to record the matches.")
        return summary

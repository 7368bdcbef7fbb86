"""
Checklist migration: Jira checklist custom-field items to the Redmine
checklists plugin.

Checklists hang off issues, so each row waits for its issue mapping. Pushing
replaces the Redmine issue's checklist with the staged items.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from sqlalchemy import select

from migrator_app.errors import TransportError
from migrator_app.models import (
    ChecklistMapping,
    IssueMapping,
    MigrationStatus,
    StagingJiraChecklistIssue,
    StagingJiraChecklistItem,
    db,
)

from ..clients import RedmineClient
from ..pipeline import DependencyResolver, Phase, PhasePlan, Proposal, PushableKind, ReconcileKind, Resolved, Unmet
from .base import MigrationUnit, replace_snapshots, require_fields, sync_mapping_rows

logger = logging.getLogger(__name__)

UNPARSED_TEXT_NOTE = (
    "Checklist field is stored as free text and could not be read as structured items; "
    "recreate the checklist manually."
)
_TEXT_KEYS = ("name", "text", "summary", "subject")
_DONE_STATUSES = {"done", "checked", "complete", "completed"}


def parse_checklist_items(value: Any) -> list[dict[str, Any]] | None:
    """
    Read structured checklist items from a Jira custom-field value.

    Returns a list of ``{"subject", "is_done"}`` dicts, or None when the value
    is free text that would need heuristic parsing.
    """

    if value is None:
        return []
    if isinstance(value, str):
        return None if value.strip() else []
    if isinstance(value, Mapping):
        value = value.get("items") or value.get("checklist") or []
    items: list[dict[str, Any]] = []
    for raw in value:
        if not isinstance(raw, Mapping):
            continue
        subject = next((str(raw[key]).strip() for key in _TEXT_KEYS if raw.get(key)), "")
        if not subject:
            continue
        status = str(raw.get("status") or "").strip().lower()
        is_done = bool(raw.get("checked") or raw.get("isChecked") or status in _DONE_STATUSES)
        items.append({"subject": subject, "is_done": is_done})
    return items


class ChecklistKind(ReconcileKind, PushableKind):
    name = "checklists"
    model = ChecklistMapping
    allowed_statuses = frozenset(
        {
            MigrationStatus.PENDING_ANALYSIS,
            MigrationStatus.AWAITING_ISSUE,
            MigrationStatus.READY_FOR_PUSH,
            MigrationStatus.IGNORED,
        }
    )
    hash_fields = ("redmine_issue_id", "proposed_payload", "migration_status", "notes")
    ready_status = MigrationStatus.READY_FOR_PUSH
    success_status = MigrationStatus.PUSH_SUCCESS
    failure_status = MigrationStatus.PUSH_FAILED
    dependencies = (
        DependencyResolver(
            kind="issue",
            model=IssueMapping,
            source_key=lambda row: {"jira_issue_id": row.jira_issue_id},
            target_attr="redmine_issue_id",
            awaiting_status=MigrationStatus.AWAITING_ISSUE,
            ready_statuses=None,
        ),
    )

    def __init__(self) -> None:
        self.payloads: dict[str, str] = {}

    def prepare(self) -> None:
        grouped: dict[str, list[dict[str, Any]]] = {}
        stmt = select(StagingJiraChecklistItem).order_by(
            StagingJiraChecklistItem.issue_id, StagingJiraChecklistItem.ordinal
        )
        for item in db.session.scalars(stmt):
            grouped.setdefault(item.issue_id, []).append({"subject": item.text, "is_done": bool(item.is_done)})
        self.payloads = {
            issue_id: json.dumps(items, ensure_ascii=False, separators=(",", ":")) for issue_id, items in grouped.items()
        }

    def row_label(self, row: ChecklistMapping) -> str:
        return f"Jira issue {row.jira_issue_key or row.jira_issue_id}"

    def precheck(self, row: ChecklistMapping) -> Proposal | None:
        if row.jira_has_unparsed_text:
            return Proposal(
                status=MigrationStatus.MANUAL_INTERVENTION_REQUIRED,
                outcome="manual_review",
                fields={"proposed_payload": None},
                notes=UNPARSED_TEXT_NOTE,
            )
        if row.jira_item_count == 0 or row.jira_issue_id not in self.payloads:
            return Proposal(status=MigrationStatus.IGNORED, outcome="ignored", fields={"proposed_payload": None})
        return None

    def on_unmet(self, row: ChecklistMapping, unmet: Unmet, resolved: Mapping[str, Resolved]) -> Proposal:
        return Proposal(
            status=unmet.awaiting_status,
            outcome=f"awaiting_{unmet.kind}",
            fields={"redmine_issue_id": None, "proposed_payload": self.payloads.get(row.jira_issue_id)},
            notes=unmet.message,
        )

    def propose(self, row: ChecklistMapping, resolved: Mapping[str, Resolved]) -> Proposal:
        return Proposal(
            status=MigrationStatus.READY_FOR_PUSH,
            outcome="ready_for_push",
            fields={
                "redmine_issue_id": resolved["issue"].target_id,
                "proposed_payload": self.payloads[row.jira_issue_id],
            },
        )

    @staticmethod
    def items_for(row: ChecklistMapping) -> list[dict[str, Any]]:
        try:
            items = json.loads(row.proposed_payload or "[]")
        except ValueError:
            return []
        return items if isinstance(items, list) else []

    def describe(self, row: ChecklistMapping) -> str:
        return (
            f"issue {row.jira_issue_key or row.jira_issue_id} -> Redmine issue #{row.redmine_issue_id}: "
            f"{len(self.items_for(row))} checklist item(s)"
        )

    def push(self, row: ChecklistMapping, client: RedmineClient) -> None:
        issue_id = row.redmine_issue_id
        items = self.items_for(row)
        for checklist_id in self._existing_checklist_ids(client, issue_id):
            client.delete(f"checklists/{checklist_id}.json")
        for item in items:
            client.post_json(
                f"issues/{issue_id}/checklists.json",
                {"checklist": {"subject": item.get("subject"), "is_done": bool(item.get("is_done"))}},
            )
        return None

    @staticmethod
    def _existing_checklist_ids(client: RedmineClient, issue_id: int | None) -> list[object]:
        payload = client.get_json(f"issues/{issue_id}/checklists.json")
        existing = payload.get("checklists") if isinstance(payload, Mapping) else None
        if existing is None:
            existing = []
        if not isinstance(existing, list):
            raise TransportError(f"Unexpected checklist listing for Redmine issue #{issue_id}.")
        ids = []
        for checklist in existing:
            checklist_id = checklist.get("id") if isinstance(checklist, Mapping) else None
            if checklist_id is None:
                raise TransportError(f"Checklist entry without an id on Redmine issue #{issue_id}.")
            ids.append(checklist_id)
        return ids


class ChecklistMigration(MigrationUnit):
    name = "checklists"
    plan = PhasePlan(
        unit="checklists",
        phases=(
            Phase("jira", "Extract checklist items from the configured Jira custom field."),
            Phase("transform", "Reconcile checklist mappings against issue mappings."),
            Phase("push", "Replace Redmine issue checklists with the staged items."),
        ),
    )

    def run_jira(self):
        field = self.config.get("MIGRATION_CHECKLIST_FIELD")
        jql = self.config.get("MIGRATION_CHECKLIST_JQL") or "ORDER BY key ASC"
        page_size = int(self.config.get("MIGRATION_PAGE_SIZE") or 50)
        issues: list[dict[str, Any]] = []
        items: list[dict[str, Any]] = []
        for issue in self.clients.jira().search_issues(jql, [field], page_size=page_size):
            require_fields(issue, ("id", "key"), entity="Jira issue")
            value = (issue.get("fields") or {}).get(field)
            parsed = parse_checklist_items(value)
            issue_id = str(issue["id"])
            issues.append(
                {
                    "issue_id": issue_id,
                    "issue_key": str(issue["key"]),
                    "unparsed_text": value if parsed is None else None,
                }
            )
            for ordinal, item in enumerate(parsed or [], start=1):
                items.append({"issue_id": issue_id, "ordinal": ordinal, "text": item["subject"], "is_done": item["is_done"]})
        summaries = replace_snapshots([(StagingJiraChecklistIssue, issues), (StagingJiraChecklistItem, items)])
        for summary in summaries:
            self.report_snapshot(summary)
        return summaries

    def run_transform(self):
        counts: dict[str, int] = {}
        for item in db.session.scalars(select(StagingJiraChecklistItem)):
            counts[item.issue_id] = counts.get(item.issue_id, 0) + 1
        staged = db.session.scalars(select(StagingJiraChecklistIssue).order_by(StagingJiraChecklistIssue.issue_id)).all()
        sync_mapping_rows(
            ChecklistMapping,
            ("jira_issue_id",),
            (
                {
                    "jira_issue_id": issue.issue_id,
                    "jira_issue_key": issue.issue_key,
                    "jira_item_count": counts.get(issue.issue_id, 0),
                    "jira_has_unparsed_text": issue.unparsed_text is not None,
                }
                for issue in staged
            ),
        )
        return self.reconcile(ChecklistKind())

    def run_push(self):
        return self.push(ChecklistKind())

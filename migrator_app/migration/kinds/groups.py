"""
Group migration: Jira groups to Redmine groups, matched by name.
"""

from __future__ import annotations

from typing import Any, Iterator

from sqlalchemy import select

from migrator_app.models import GroupMapping, MigrationStatus, StagingJiraGroup, StagingRedmineGroup, db

from ..clients import RedmineClient
from ..pipeline import EntityMatcher, MatchingKind, Phase, PhasePlan, Proposal, PushableKind
from .base import MigrationUnit, created_id, replace_snapshot, require_fields, sync_mapping_rows


class GroupKind(MatchingKind, PushableKind):
    name = "groups"
    target_label = "group"
    model = GroupMapping
    allowed_statuses = frozenset(
        {
            MigrationStatus.PENDING_ANALYSIS,
            MigrationStatus.READY_FOR_CREATION,
            MigrationStatus.MATCH_FOUND,
        }
    )
    hash_fields = ("redmine_group_id", "migration_status", "proposed_name", "notes")
    ready_status = MigrationStatus.READY_FOR_CREATION
    target_id_attr = "redmine_group_id"

    def build_matcher(self) -> EntityMatcher:
        targets = db.session.scalars(select(StagingRedmineGroup).order_by(StagingRedmineGroup.id)).all()
        return EntityMatcher(targets, key=lambda group: group.name)

    def row_label(self, row: GroupMapping) -> str:
        return f'Jira group "{row.jira_group_name or row.jira_group_id}"'

    def match_key(self, row: GroupMapping) -> str | None:
        return row.jira_group_name

    def matched_proposal(self, row: GroupMapping, target: StagingRedmineGroup) -> Proposal:
        return Proposal(
            status=MigrationStatus.MATCH_FOUND,
            outcome="matched",
            fields={"redmine_group_id": target.id, "proposed_name": target.name},
        )

    def creation_proposal(self, row: GroupMapping) -> Proposal:
        return Proposal(
            status=MigrationStatus.READY_FOR_CREATION,
            outcome="ready_for_creation",
            fields={"redmine_group_id": None, "proposed_name": row.jira_group_name.strip()},
        )

    def describe(self, row: GroupMapping) -> str:
        return f'group "{row.proposed_name}"'

    def push(self, row: GroupMapping, client: RedmineClient) -> int:
        response = client.post_json("groups.json", {"group": {"name": row.proposed_name}}, expected=(201,))
        return created_id(response, "group")


def _jira_group_rows(groups) -> Iterator[dict[str, Any]]:
    for group in groups:
        require_fields(group, ("groupId", "name"), entity="Jira group")
        yield {"group_id": str(group["groupId"]), "name": str(group["name"])}


def _redmine_group_rows(groups) -> Iterator[dict[str, Any]]:
    for group in groups:
        require_fields(group, ("id", "name"), entity="Redmine group")
        yield {"id": int(group["id"]), "name": str(group["name"])}


class GroupMigration(MigrationUnit):
    name = "groups"
    plan = PhasePlan(
        unit="groups",
        phases=(
            Phase("jira", "Extract Jira groups into the staging snapshot."),
            Phase("redmine", "Refresh the Redmine group snapshot."),
            Phase("transform", "Reconcile group mappings by name."),
            Phase("push", "Create missing groups in Redmine."),
        ),
    )

    def run_jira(self):
        groups = self.clients.jira().list_groups()
        return self.report_snapshot(replace_snapshot(StagingJiraGroup, _jira_group_rows(groups)))

    def run_redmine(self):
        groups = self.clients.redmine().list_groups()
        return self.report_snapshot(replace_snapshot(StagingRedmineGroup, _redmine_group_rows(groups)))

    def run_transform(self):
        staged = db.session.scalars(select(StagingJiraGroup).order_by(StagingJiraGroup.name)).all()
        sync_mapping_rows(
            GroupMapping,
            ("jira_group_id",),
            ({"jira_group_id": group.group_id, "jira_group_name": group.name} for group in staged),
        )
        return self.reconcile(GroupKind())

    def run_push(self):
        return self.push(GroupKind())

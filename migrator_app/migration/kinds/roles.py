"""
Role migration.

Jira project roles are matched to Redmine roles by name (Redmine has no API
to create roles, so an unmatched role needs an operator). Group actors of
each Jira project role become project-role-group assignments, pushed as
Redmine group memberships once their project, group and role are resolved.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping

from sqlalchemy import select

from migrator_app.errors import DataIntegrityError
from migrator_app.models import (
    GroupMapping,
    MigrationStatus,
    ProjectMapping,
    ProjectRoleGroupMapping,
    RoleMapping,
    StagingJiraProject,
    StagingJiraProjectRole,
    StagingJiraProjectRoleActor,
    StagingRedmineGroupProjectRole,
    StagingRedmineRole,
    db,
)

from ..clients import RedmineClient
from ..pipeline import (
    AmbiguousMatch,
    DependencyResolver,
    EntityMatcher,
    MatchingKind,
    Phase,
    PhasePlan,
    Proposal,
    PushableKind,
    ReconcileKind,
    Resolved,
    Unmet,
)
from .base import MigrationUnit, created_id, replace_snapshot, require_fields, sync_mapping_rows

logger = logging.getLogger(__name__)

NO_ROLE_MATCH_NOTE = (
    "No matching Redmine role found automatically. Set redmine_role_id manually or adjust the target role."
)
GROUP_ACTOR_TYPE = "atlassian-group-role-actor"


class RoleKind(MatchingKind):
    name = "roles"
    target_label = "role"
    model = RoleMapping
    allowed_statuses = frozenset({MigrationStatus.PENDING_ANALYSIS, MigrationStatus.MATCH_FOUND})
    hash_fields = ("redmine_role_id", "migration_status", "proposed_redmine_role_name", "notes")

    def build_matcher(self) -> EntityMatcher:
        targets = db.session.scalars(select(StagingRedmineRole).order_by(StagingRedmineRole.id)).all()
        return EntityMatcher(targets, key=lambda role: role.name)

    def row_label(self, row: RoleMapping) -> str:
        return f'Jira role "{row.jira_role_name or row.jira_role_id}"'

    def match_key(self, row: RoleMapping) -> str | None:
        return row.jira_role_name

    def ambiguous_note(self, row: RoleMapping, match: AmbiguousMatch) -> str:
        return f'Multiple Redmine roles share the normalized name "{match.key}".'

    def matched_proposal(self, row: RoleMapping, target: StagingRedmineRole) -> Proposal:
        return Proposal(
            status=MigrationStatus.MATCH_FOUND,
            outcome="matched",
            fields={"redmine_role_id": target.id, "proposed_redmine_role_name": target.name},
        )

    def creation_proposal(self, row: RoleMapping) -> Proposal:
        return Proposal(
            status=MigrationStatus.MANUAL_INTERVENTION_REQUIRED,
            outcome="manual_review",
            fields={"redmine_role_id": None, "proposed_redmine_role_name": row.jira_role_name},
            notes=NO_ROLE_MATCH_NOTE,
        )


class ProjectRoleGroupKind(ReconcileKind, PushableKind):
    name = "project_role_groups"
    model = ProjectRoleGroupMapping
    allowed_statuses = frozenset(
        {
            MigrationStatus.PENDING_ANALYSIS,
            MigrationStatus.READY_FOR_ASSIGNMENT,
            MigrationStatus.AWAITING_PROJECT,
            MigrationStatus.AWAITING_GROUP,
            MigrationStatus.AWAITING_ROLE,
        }
    )
    hash_fields = (
        "redmine_project_id",
        "redmine_group_id",
        "redmine_role_id",
        "proposed_redmine_role_id",
        "proposed_redmine_role_name",
        "redmine_membership_id",
        "migration_status",
        "notes",
    )
    ready_status = MigrationStatus.READY_FOR_ASSIGNMENT
    recorded_status = MigrationStatus.ASSIGNMENT_RECORDED
    success_status = MigrationStatus.ASSIGNMENT_RECORDED
    failure_status = MigrationStatus.ASSIGNMENT_FAILED
    target_id_attr = "redmine_membership_id"
    dependencies = (
        DependencyResolver(
            kind="project",
            model=ProjectMapping,
            source_key=lambda row: {"jira_project_id": row.jira_project_id},
            target_attr="redmine_project_id",
            awaiting_status=MigrationStatus.AWAITING_PROJECT,
        ),
        DependencyResolver(
            kind="group",
            model=GroupMapping,
            source_key=lambda row: {"jira_group_id": row.jira_group_id},
            target_attr="redmine_group_id",
            awaiting_status=MigrationStatus.AWAITING_GROUP,
        ),
        DependencyResolver(
            kind="role",
            model=RoleMapping,
            source_key=lambda row: {"jira_role_id": row.jira_role_id},
            target_attr="redmine_role_id",
            awaiting_status=MigrationStatus.AWAITING_ROLE,
        ),
    )

    def __init__(self, *, default_role_id: int | None = None) -> None:
        self.default_role_id = default_role_id
        self.role_names: dict[int, str] = {}
        self.existing_assignments: set[tuple[int, int, int]] = set()

    def prepare(self) -> None:
        self.role_names = {role.id: role.name for role in db.session.scalars(select(StagingRedmineRole))}
        self.existing_assignments = {
            (assignment.project_id, assignment.group_id, assignment.role_id)
            for assignment in db.session.scalars(select(StagingRedmineGroupProjectRole))
        }

    def row_label(self, row: ProjectRoleGroupMapping) -> str:
        group = row.jira_group_name or row.jira_group_id
        role = row.jira_role_name or row.jira_role_id
        return f'Jira project {row.jira_project_id} role "{role}" group "{group}"'

    def dependency_fields(self, resolved: Mapping[str, Resolved]) -> dict[str, Any]:
        def target(kind: str) -> int | None:
            dependency = resolved.get(kind)
            return dependency.target_id if dependency else None

        return {
            "redmine_project_id": target("project"),
            "redmine_group_id": target("group"),
            "redmine_role_id": target("role"),
            "proposed_redmine_role_id": None,
            "proposed_redmine_role_name": None,
        }

    def on_unmet(self, row: ProjectRoleGroupMapping, unmet: Unmet, resolved: Mapping[str, Resolved]) -> Proposal:
        proposal = super().on_unmet(row, unmet, resolved)
        if unmet.kind != "role" or not self.default_role_id:
            return proposal
        role_name = self.role_names.get(self.default_role_id)
        fields = dict(proposal.fields)
        fields["proposed_redmine_role_id"] = self.default_role_id
        fields["proposed_redmine_role_name"] = role_name
        note = (
            f"No direct role match found; defaulting to Redmine role #{self.default_role_id} "
            f"({role_name or 'unknown role'}). Review before assignment."
        )
        return Proposal(status=proposal.status, outcome=proposal.outcome, fields=fields, notes=note)

    def propose(self, row: ProjectRoleGroupMapping, resolved: Mapping[str, Resolved]) -> Proposal:
        fields = self.dependency_fields(resolved)
        role = resolved["role"]
        fields["proposed_redmine_role_id"] = role.target_id
        fields["proposed_redmine_role_name"] = getattr(role.mapping, "proposed_redmine_role_name", None) or (
            self.role_names.get(role.target_id)
        )
        return Proposal(status=MigrationStatus.READY_FOR_ASSIGNMENT, outcome="ready_for_assignment", fields=fields)

    def already_recorded(self, row: ProjectRoleGroupMapping, proposal: Proposal) -> bool:
        key = (
            proposal.fields.get("redmine_project_id"),
            proposal.fields.get("redmine_group_id"),
            proposal.fields.get("redmine_role_id"),
        )
        return key in self.existing_assignments

    def describe(self, row: ProjectRoleGroupMapping) -> str:
        return (
            f"group #{row.redmine_group_id} ({row.jira_group_name}) -> project #{row.redmine_project_id} "
            f"as role #{row.redmine_role_id} ({row.proposed_redmine_role_name})"
        )

    def push(self, row: ProjectRoleGroupMapping, client: RedmineClient) -> int:
        payload = {"membership": {"user_id": row.redmine_group_id, "role_ids": [row.redmine_role_id]}}
        response = client.post_json(
            f"projects/{row.redmine_project_id}/memberships.json",
            payload,
            expected=(201,),
        )
        return created_id(response, "membership")


def _jira_role_rows(roles) -> Iterator[dict[str, Any]]:
    for role in roles:
        require_fields(role, ("id", "name"), entity="Jira project role")
        yield {"id": str(role["id"]), "name": str(role["name"]), "description": role.get("description")}


def _jira_role_actor_rows(jira, projects, roles) -> Iterator[dict[str, Any]]:
    for project in projects:
        for role in roles:
            details = jira.get_project_role(project.id, role.id)
            seen: set[str] = set()
            for actor in details.get("actors") or []:
                if actor.get("type") != GROUP_ACTOR_TYPE:
                    continue
                group = actor.get("actorGroup") or {}
                group_id = group.get("groupId") or group.get("name")
                if not group_id:
                    raise DataIntegrityError(
                        f"Jira role actor {actor.get('id') or '?'} on project {project.id} role {role.id} "
                        "has no group id."
                    )
                if group_id in seen:
                    continue
                seen.add(group_id)
                yield {
                    "project_id": project.id,
                    "role_id": role.id,
                    "role_name": role.name,
                    "group_id": str(group_id),
                    "group_name": group.get("name") or group.get("displayName") or actor.get("displayName"),
                }


def _redmine_role_rows(roles) -> Iterator[dict[str, Any]]:
    for role in roles:
        require_fields(role, ("id", "name"), entity="Redmine role")
        yield {"id": int(role["id"]), "name": str(role["name"]), "assignable": role.get("assignable")}


def _redmine_group_membership_rows(redmine, project_ids) -> Iterator[dict[str, Any]]:
    seen: set[tuple[int, int, int]] = set()
    for project_id in project_ids:
        for membership in redmine.list_memberships(project_id):
            group = membership.get("group")
            if not group:
                continue
            for role in membership.get("roles") or []:
                if role.get("inherited"):
                    continue
                key = (int(group["id"]), int(project_id), int(role["id"]))
                if key in seen:
                    continue
                seen.add(key)
                yield {
                    "membership_id": membership.get("id"),
                    "group_id": key[0],
                    "project_id": key[1],
                    "role_id": key[2],
                }


class RoleMigration(MigrationUnit):
    name = "roles"
    plan = PhasePlan(
        unit="roles",
        phases=(
            Phase("jira", "Extract Jira project roles and their group actors."),
            Phase("redmine", "Refresh Redmine roles and existing group memberships."),
            Phase("transform", "Reconcile role mappings, then project-role-group assignments."),
            Phase("push", "Create Redmine group memberships for ready assignments."),
        ),
    )

    def assignment_kind(self) -> ProjectRoleGroupKind:
        return ProjectRoleGroupKind(default_role_id=self.config.get("MIGRATION_ROLES_DEFAULT_ROLE_ID"))

    def run_jira(self):
        jira = self.clients.jira()
        role_summary = self.report_snapshot(replace_snapshot(StagingJiraProjectRole, _jira_role_rows(jira.list_project_roles())))
        projects = db.session.scalars(select(StagingJiraProject).order_by(StagingJiraProject.id)).all()
        if not projects:
            self.echo("No Jira projects are staged; run the projects jira phase first to collect role actors.")
        roles = db.session.scalars(select(StagingJiraProjectRole).order_by(StagingJiraProjectRole.id)).all()
        actor_summary = self.report_snapshot(
            replace_snapshot(StagingJiraProjectRoleActor, _jira_role_actor_rows(jira, projects, roles))
        )
        return role_summary, actor_summary

    def run_redmine(self):
        redmine = self.clients.redmine()
        role_summary = self.report_snapshot(replace_snapshot(StagingRedmineRole, _redmine_role_rows(redmine.list_roles())))
        project_ids = db.session.scalars(
            select(ProjectMapping.redmine_project_id)
            .filter(ProjectMapping.redmine_project_id.is_not(None))
            .order_by(ProjectMapping.redmine_project_id)
        ).all()
        membership_summary = self.report_snapshot(
            replace_snapshot(StagingRedmineGroupProjectRole, _redmine_group_membership_rows(redmine, project_ids))
        )
        return role_summary, membership_summary

    def run_transform(self):
        roles = db.session.scalars(select(StagingJiraProjectRole).order_by(StagingJiraProjectRole.id)).all()
        sync_mapping_rows(
            RoleMapping,
            ("jira_role_id",),
            (
                {"jira_role_id": role.id, "jira_role_name": role.name, "jira_role_description": role.description}
                for role in roles
            ),
        )
        role_summary = self.reconcile(RoleKind())

        actors = db.session.scalars(
            select(StagingJiraProjectRoleActor).order_by(StagingJiraProjectRoleActor.id)
        ).all()
        sync_mapping_rows(
            ProjectRoleGroupMapping,
            ("jira_project_id", "jira_role_id", "jira_group_id"),
            (
                {
                    "jira_project_id": actor.project_id,
                    "jira_role_id": actor.role_id,
                    "jira_group_id": actor.group_id,
                    "jira_role_name": actor.role_name,
                    "jira_group_name": actor.group_name,
                }
                for actor in actors
            ),
        )
        assignment_summary = self.reconcile(self.assignment_kind())
        return role_summary, assignment_summary

    def run_push(self):
        return self.push(self.assignment_kind())

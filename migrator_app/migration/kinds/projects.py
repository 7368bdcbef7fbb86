"""
Project migration: Jira projects to Redmine projects, matched by identifier.
"""

from __future__ import annotations

import re
from typing import Any, Iterator

from sqlalchemy import select

from migrator_app.models import (
    MigrationStatus,
    ProjectMapping,
    StagingJiraProject,
    StagingRedmineProject,
    db,
)

from ..clients import RedmineClient
from ..pipeline import EntityMatcher, MatchingKind, Phase, PhasePlan, Proposal, PushableKind
from .base import MigrationUnit, created_id, replace_snapshot, require_fields, sync_mapping_rows

_INVALID_IDENTIFIER_CHARS = re.compile(r"[^a-z0-9\-_]+")
_REPEATED_SEPARATORS = re.compile(r"[-_]{2,}")
MAX_IDENTIFIER_LENGTH = 100


def sanitize_redmine_identifier(value: object | None) -> str | None:
    """
    Derive a Redmine project identifier from a Jira project key.

    Lower-cases, replaces anything outside ``[a-z0-9-_]`` with ``-``,
    collapses separator runs and trims separators from both ends.
    """

    if value is None:
        return None
    candidate = str(value).strip().lower()
    if not candidate:
        return None
    candidate = _INVALID_IDENTIFIER_CHARS.sub("-", candidate)
    candidate = _REPEATED_SEPARATORS.sub("-", candidate)
    candidate = candidate.strip("-_")
    return candidate or None


class ProjectKind(MatchingKind, PushableKind):
    name = "projects"
    target_label = "project"
    model = ProjectMapping
    allowed_statuses = frozenset(
        {
            MigrationStatus.PENDING_ANALYSIS,
            MigrationStatus.READY_FOR_CREATION,
            MigrationStatus.MATCH_FOUND,
        }
    )
    hash_fields = (
        "redmine_project_id",
        "migration_status",
        "proposed_identifier",
        "proposed_name",
        "proposed_description",
        "proposed_is_public",
        "notes",
    )
    ready_status = MigrationStatus.READY_FOR_CREATION
    target_id_attr = "redmine_project_id"

    def __init__(self, *, default_is_public: bool = False) -> None:
        super().__init__()
        self.default_is_public = default_is_public

    def build_matcher(self) -> EntityMatcher:
        targets = db.session.scalars(select(StagingRedmineProject).order_by(StagingRedmineProject.id)).all()
        return EntityMatcher(targets, key=lambda project: project.identifier)

    def row_label(self, row: ProjectMapping) -> str:
        return f"Jira project {row.jira_project_key or row.jira_project_id}"

    def match_key(self, row: ProjectMapping) -> str | None:
        return sanitize_redmine_identifier(row.jira_project_key)

    def missing_key_note(self, row: ProjectMapping) -> str:
        return f'Unable to derive a Redmine identifier from Jira project key "{row.jira_project_key or ""}".'

    def matched_proposal(self, row: ProjectMapping, target: StagingRedmineProject) -> Proposal:
        return Proposal(
            status=MigrationStatus.MATCH_FOUND,
            outcome="matched",
            fields={
                "redmine_project_id": target.id,
                "proposed_identifier": target.identifier,
                "proposed_name": target.name,
                "proposed_description": target.description,
                "proposed_is_public": target.is_public,
            },
        )

    def creation_proposal(self, row: ProjectMapping) -> Proposal:
        return Proposal(
            status=MigrationStatus.READY_FOR_CREATION,
            outcome="ready_for_creation",
            fields={
                "redmine_project_id": None,
                "proposed_identifier": self.match_key(row),
                "proposed_name": (row.jira_project_name or "").strip() or None,
                "proposed_description": row.jira_description,
                "proposed_is_public": self.default_is_public,
            },
        )

    def missing_requirement(self, row: ProjectMapping, proposal: Proposal) -> str | None:
        if proposal.status != MigrationStatus.READY_FOR_CREATION:
            return None
        if not proposal.fields.get("proposed_name"):
            return "Missing Jira project name in the staging snapshot."
        identifier = proposal.fields.get("proposed_identifier") or ""
        if len(identifier) > MAX_IDENTIFIER_LENGTH or not identifier[:1].isalpha():
            return (
                f'Derived Redmine identifier "{identifier}" is not valid (must start with a letter and be at '
                f"most {MAX_IDENTIFIER_LENGTH} characters); set proposed_identifier manually."
            )
        return None

    def describe(self, row: ProjectMapping) -> str:
        return f'project "{row.proposed_name}" (identifier {row.proposed_identifier})'

    def push(self, row: ProjectMapping, client: RedmineClient) -> int:
        project: dict[str, Any] = {
            "name": row.proposed_name,
            "identifier": row.proposed_identifier,
            "is_public": bool(row.proposed_is_public),
        }
        if row.proposed_description:
            project["description"] = row.proposed_description
        response = client.post_json("projects.json", {"project": project}, expected=(201,))
        return created_id(response, "project")


def _jira_project_rows(projects) -> Iterator[dict[str, Any]]:
    for project in projects:
        require_fields(project, ("id", "key", "name"), entity="Jira project")
        description = project.get("description")
        yield {
            "id": str(project["id"]),
            "project_key": str(project["key"]),
            "name": str(project["name"]),
            "description": description if isinstance(description, str) else None,
            "raw_payload": dict(project),
        }


def _redmine_project_rows(projects) -> Iterator[dict[str, Any]]:
    for project in projects:
        require_fields(project, ("id", "identifier", "name"), entity="Redmine project")
        yield {
            "id": int(project["id"]),
            "identifier": str(project["identifier"]),
            "name": str(project["name"]),
            "description": project.get("description"),
            "is_public": project.get("is_public"),
        }


class ProjectMigration(MigrationUnit):
    name = "projects"
    plan = PhasePlan(
        unit="projects",
        phases=(
            Phase("jira", "Extract Jira projects into the staging snapshot."),
            Phase("redmine", "Refresh the Redmine project snapshot."),
            Phase("transform", "Reconcile project mappings against the Redmine snapshot."),
            Phase("push", "Create missing projects in Redmine."),
        ),
    )

    def kind(self) -> ProjectKind:
        return ProjectKind(default_is_public=bool(self.config.get("MIGRATION_PROJECTS_DEFAULT_IS_PUBLIC")))

    def run_jira(self):
        projects = self.clients.jira().list_projects()
        return self.report_snapshot(replace_snapshot(StagingJiraProject, _jira_project_rows(projects)))

    def run_redmine(self):
        projects = self.clients.redmine().list_projects()
        return self.report_snapshot(replace_snapshot(StagingRedmineProject, _redmine_project_rows(projects)))

    def run_transform(self):
        staged = db.session.scalars(select(StagingJiraProject).order_by(StagingJiraProject.id)).all()
        sync_mapping_rows(
            ProjectMapping,
            ("jira_project_id",),
            (
                {
                    "jira_project_id": project.id,
                    "jira_project_key": project.project_key,
                    "jira_project_name": project.name,
                    "jira_description": project.description,
                }
                for project in staged
            ),
        )
        return self.reconcile(self.kind())

    def run_push(self):
        return self.push(self.kind())

"""
Snapshot tables holding the latest extraction from Jira and Redmine.

Each extraction replaces the previous snapshot of its table inside a single
transaction; the reconciliation engine only ever reads from these tables.
"""

from __future__ import annotations

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db


class StagingJiraProject(BaseModel):
    __tablename__ = "staging_jira_projects"

    id: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    project_key: Mapped[str] = mapped_column(db.String(64), nullable=False)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(db.Text)
    raw_payload: Mapped[dict | None] = mapped_column(db.JSON)


class StagingRedmineProject(BaseModel):
    __tablename__ = "staging_redmine_projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    identifier: Mapped[str] = mapped_column(db.String(100), nullable=False)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(db.Text)
    is_public: Mapped[bool | None] = mapped_column(db.Boolean)


class StagingJiraGroup(BaseModel):
    __tablename__ = "staging_jira_groups"

    group_id: Mapped[str] = mapped_column(db.String(128), primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)


class StagingRedmineGroup(BaseModel):
    __tablename__ = "staging_redmine_groups"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)


class StagingJiraIssueType(BaseModel):
    __tablename__ = "staging_jira_issue_types"

    id: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(db.String(255))
    description: Mapped[str | None] = mapped_column(db.Text)
    subtask: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    hierarchy_level: Mapped[int | None] = mapped_column(db.Integer)


class StagingRedmineTracker(BaseModel):
    __tablename__ = "staging_redmine_trackers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(db.Text)
    default_status_id: Mapped[int | None] = mapped_column(db.Integer)


class StagingRedmineIssueStatus(BaseModel):
    __tablename__ = "staging_redmine_issue_statuses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    is_closed: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)


class StagingJiraProjectRole(BaseModel):
    __tablename__ = "staging_jira_project_roles"

    id: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(db.Text)


class StagingJiraProjectRoleActor(BaseModel):
    """Group actors attached to a Jira project role."""

    __tablename__ = "staging_jira_project_role_actors"
    __table_args__ = (
        UniqueConstraint("project_id", "role_id", "group_id", name="uq_staging_jira_role_actor"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    role_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    role_name: Mapped[str | None] = mapped_column(db.String(255))
    group_id: Mapped[str] = mapped_column(db.String(128), nullable=False)
    group_name: Mapped[str | None] = mapped_column(db.String(255))


class StagingRedmineRole(BaseModel):
    __tablename__ = "staging_redmine_roles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    assignable: Mapped[bool | None] = mapped_column(db.Boolean)


class StagingRedmineGroupProjectRole(BaseModel):
    """Existing Redmine memberships granting a role to a group on a project."""

    __tablename__ = "staging_redmine_group_project_roles"
    __table_args__ = (
        UniqueConstraint("group_id", "project_id", "role_id", name="uq_staging_redmine_group_project_role"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    membership_id: Mapped[int | None] = mapped_column(db.Integer)
    group_id: Mapped[int] = mapped_column(db.Integer, nullable=False)
    project_id: Mapped[int] = mapped_column(db.Integer, nullable=False)
    role_id: Mapped[int] = mapped_column(db.Integer, nullable=False)


class StagingJiraChecklistIssue(BaseModel):
    """Jira issues inspected for checklist content, with or without items."""

    __tablename__ = "staging_jira_checklist_issues"

    issue_id: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    issue_key: Mapped[str] = mapped_column(db.String(64), nullable=False)
    unparsed_text: Mapped[str | None] = mapped_column(db.Text)


class StagingJiraChecklistItem(BaseModel):
    __tablename__ = "staging_jira_checklist_items"
    __table_args__ = (UniqueConstraint("issue_id", "ordinal", name="uq_staging_jira_checklist_item"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    issue_id: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    ordinal: Mapped[int] = mapped_column(db.Integer, nullable=False)
    text: Mapped[str] = mapped_column(db.Text, nullable=False)
    is_done: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)

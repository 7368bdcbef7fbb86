"""
Persisted mapping tables linking Jira entities to their Redmine counterparts.

Each table carries one row per Jira source key, the engine's current proposal,
the migration status, operator-facing notes and the automation hash used to
detect manual edits.
"""

from __future__ import annotations

import enum

from sqlalchemy import Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from .base import BaseModel, db


class MigrationStatus(str, enum.Enum):
    """State-machine states shared by every mapping table."""

    PENDING_ANALYSIS = "PENDING_ANALYSIS"
    MATCH_FOUND = "MATCH_FOUND"
    READY_FOR_CREATION = "READY_FOR_CREATION"
    READY_FOR_ASSIGNMENT = "READY_FOR_ASSIGNMENT"
    READY_FOR_PUSH = "READY_FOR_PUSH"
    CREATION_SUCCESS = "CREATION_SUCCESS"
    CREATION_FAILED = "CREATION_FAILED"
    ASSIGNMENT_RECORDED = "ASSIGNMENT_RECORDED"
    ASSIGNMENT_FAILED = "ASSIGNMENT_FAILED"
    PUSH_SUCCESS = "PUSH_SUCCESS"
    PUSH_FAILED = "PUSH_FAILED"
    AWAITING_PROJECT = "AWAITING_PROJECT"
    AWAITING_GROUP = "AWAITING_GROUP"
    AWAITING_ROLE = "AWAITING_ROLE"
    AWAITING_ISSUE = "AWAITING_ISSUE"
    MANUAL_INTERVENTION_REQUIRED = "MANUAL_INTERVENTION_REQUIRED"
    IGNORED = "IGNORED"

    @classmethod
    def coerce(cls, value: "MigrationStatus | str") -> "MigrationStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown migration status '{value}'. Valid statuses: {valid}") from exc


# Statuses that mark a referenced mapping as usable by dependent mappings.
RESOLVED_STATUSES = frozenset({MigrationStatus.MATCH_FOUND, MigrationStatus.CREATION_SUCCESS})

TERMINAL_STATUSES = frozenset(
    {
        MigrationStatus.CREATION_SUCCESS,
        MigrationStatus.CREATION_FAILED,
        MigrationStatus.ASSIGNMENT_RECORDED,
        MigrationStatus.ASSIGNMENT_FAILED,
        MigrationStatus.PUSH_SUCCESS,
        MigrationStatus.PUSH_FAILED,
        MigrationStatus.MANUAL_INTERVENTION_REQUIRED,
    }
)


class MappingRecordMixin:
    """Columns every mapping table shares with the reconciliation engine."""

    mapping_id: Mapped[int] = mapped_column(primary_key=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    automation_hash: Mapped[str | None] = mapped_column(db.String(64), nullable=True)

    @declared_attr
    def migration_status(cls) -> Mapped[MigrationStatus]:
        return mapped_column(
            Enum(MigrationStatus, name="migration_status_enum"),
            nullable=False,
            default=MigrationStatus.PENDING_ANALYSIS,
            index=True,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.mapping_id} {self.migration_status}>"


class ProjectMapping(MappingRecordMixin, BaseModel):
    __tablename__ = "migration_mapping_projects"

    jira_project_id: Mapped[str] = mapped_column(db.String(64), nullable=False, unique=True)
    jira_project_key: Mapped[str | None] = mapped_column(db.String(64))
    jira_project_name: Mapped[str | None] = mapped_column(db.String(255))
    jira_description: Mapped[str | None] = mapped_column(db.Text)
    redmine_project_id: Mapped[int | None] = mapped_column(db.Integer)
    proposed_identifier: Mapped[str | None] = mapped_column(db.String(100))
    proposed_name: Mapped[str | None] = mapped_column(db.String(255))
    proposed_description: Mapped[str | None] = mapped_column(db.Text)
    proposed_is_public: Mapped[bool | None] = mapped_column(db.Boolean)


class GroupMapping(MappingRecordMixin, BaseModel):
    __tablename__ = "migration_mapping_groups"

    jira_group_id: Mapped[str] = mapped_column(db.String(128), nullable=False, unique=True)
    jira_group_name: Mapped[str | None] = mapped_column(db.String(255))
    redmine_group_id: Mapped[int | None] = mapped_column(db.Integer)
    proposed_name: Mapped[str | None] = mapped_column(db.String(255))


class TrackerMapping(MappingRecordMixin, BaseModel):
    __tablename__ = "migration_mapping_trackers"

    jira_issue_type_id: Mapped[str] = mapped_column(db.String(64), nullable=False, unique=True)
    jira_issue_type_name: Mapped[str | None] = mapped_column(db.String(255))
    jira_issue_type_description: Mapped[str | None] = mapped_column(db.Text)
    jira_is_subtask: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    redmine_tracker_id: Mapped[int | None] = mapped_column(db.Integer)
    proposed_redmine_name: Mapped[str | None] = mapped_column(db.String(255))
    proposed_redmine_description: Mapped[str | None] = mapped_column(db.Text)
    proposed_default_status_id: Mapped[int | None] = mapped_column(db.Integer)


class RoleMapping(MappingRecordMixin, BaseModel):
    __tablename__ = "migration_mapping_roles"

    jira_role_id: Mapped[str] = mapped_column(db.String(64), nullable=False, unique=True)
    jira_role_name: Mapped[str | None] = mapped_column(db.String(255))
    jira_role_description: Mapped[str | None] = mapped_column(db.Text)
    redmine_role_id: Mapped[int | None] = mapped_column(db.Integer)
    proposed_redmine_role_name: Mapped[str | None] = mapped_column(db.String(255))


class ProjectRoleGroupMapping(MappingRecordMixin, BaseModel):
    """Assignment of a Jira group to a Jira project role, mirrored as a Redmine membership."""

    __tablename__ = "migration_mapping_project_role_groups"
    __table_args__ = (
        UniqueConstraint(
            "jira_project_id",
            "jira_role_id",
            "jira_group_id",
            name="uq_project_role_group_source",
        ),
    )

    jira_project_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    jira_role_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    jira_group_id: Mapped[str] = mapped_column(db.String(128), nullable=False)
    jira_role_name: Mapped[str | None] = mapped_column(db.String(255))
    jira_group_name: Mapped[str | None] = mapped_column(db.String(255))
    redmine_project_id: Mapped[int | None] = mapped_column(db.Integer)
    redmine_group_id: Mapped[int | None] = mapped_column(db.Integer)
    redmine_role_id: Mapped[int | None] = mapped_column(db.Integer)
    proposed_redmine_role_id: Mapped[int | None] = mapped_column(db.Integer)
    proposed_redmine_role_name: Mapped[str | None] = mapped_column(db.String(255))
    redmine_membership_id: Mapped[int | None] = mapped_column(db.Integer)


class IssueMapping(MappingRecordMixin, BaseModel):
    """Issue mappings maintained by the issue migration; read here as a dependency."""

    __tablename__ = "migration_mapping_issues"

    jira_issue_id: Mapped[str] = mapped_column(db.String(64), nullable=False, unique=True)
    jira_issue_key: Mapped[str | None] = mapped_column(db.String(64))
    redmine_issue_id: Mapped[int | None] = mapped_column(db.Integer)


class ChecklistMapping(MappingRecordMixin, BaseModel):
    __tablename__ = "migration_mapping_checklists"

    jira_issue_id: Mapped[str] = mapped_column(db.String(64), nullable=False, unique=True)
    jira_issue_key: Mapped[str | None] = mapped_column(db.String(64))
    jira_item_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    jira_has_unparsed_text: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    redmine_issue_id: Mapped[int | None] = mapped_column(db.Integer)
    proposed_payload: Mapped[str | None] = mapped_column(db.Text)

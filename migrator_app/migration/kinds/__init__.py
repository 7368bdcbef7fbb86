"""
Migration units and entity kinds.
"""

from __future__ import annotations

from migrator_app.models import (
    ChecklistMapping,
    GroupMapping,
    ProjectMapping,
    ProjectRoleGroupMapping,
    RoleMapping,
    TrackerMapping,
)

from .base import MigrationUnit, RunOptions
from .checklists import ChecklistKind, ChecklistMigration
from .groups import GroupKind, GroupMigration
from .projects import ProjectKind, ProjectMigration, sanitize_redmine_identifier
from .roles import ProjectRoleGroupKind, RoleKind, RoleMigration
from .trackers import TrackerKind, TrackerMigration

MIGRATION_UNITS: dict[str, type[MigrationUnit]] = {
    unit.name: unit
    for unit in (ProjectMigration, GroupMigration, TrackerMigration, RoleMigration, ChecklistMigration)
}

MAPPING_MODELS: dict[str, type] = {
    "projects": ProjectMapping,
    "groups": GroupMapping,
    "trackers": TrackerMapping,
    "roles": RoleMapping,
    "project-role-groups": ProjectRoleGroupMapping,
    "checklists": ChecklistMapping,
}

__all__ = [
    "ChecklistKind",
    "ChecklistMigration",
    "GroupKind",
    "GroupMigration",
    "MAPPING_MODELS",
    "MIGRATION_UNITS",
    "MigrationUnit",
    "ProjectKind",
    "ProjectMigration",
    "ProjectRoleGroupKind",
    "RoleKind",
    "RoleMigration",
    "RunOptions",
    "TrackerKind",
    "TrackerMigration",
    "sanitize_redmine_identifier",
]

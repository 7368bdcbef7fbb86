"""
Database models package
"""

from .base import BaseModel, db
from .mapping import (
    RESOLVED_STATUSES,
    TERMINAL_STATUSES,
    ChecklistMapping,
    GroupMapping,
    IssueMapping,
    MappingRecordMixin,
    MigrationStatus,
    ProjectMapping,
    ProjectRoleGroupMapping,
    RoleMapping,
    TrackerMapping,
)
from .staging import (
    StagingJiraChecklistIssue,
    StagingJiraChecklistItem,
    StagingJiraGroup,
    StagingJiraIssueType,
    StagingJiraProject,
    StagingJiraProjectRole,
    StagingJiraProjectRoleActor,
    StagingRedmineGroup,
    StagingRedmineGroupProjectRole,
    StagingRedmineIssueStatus,
    StagingRedmineProject,
    StagingRedmineRole,
    StagingRedmineTracker,
)

__all__ = [
    "db",
    "BaseModel",
    "MigrationStatus",
    "MappingRecordMixin",
    "RESOLVED_STATUSES",
    "TERMINAL_STATUSES",
    "ProjectMapping",
    "GroupMapping",
    "TrackerMapping",
    "RoleMapping",
    "ProjectRoleGroupMapping",
    "IssueMapping",
    "ChecklistMapping",
    "StagingJiraProject",
    "StagingRedmineProject",
    "StagingJiraGroup",
    "StagingRedmineGroup",
    "StagingJiraIssueType",
    "StagingRedmineTracker",
    "StagingRedmineIssueStatus",
    "StagingJiraProjectRole",
    "StagingJiraProjectRoleActor",
    "StagingRedmineRole",
    "StagingRedmineGroupProjectRole",
    "StagingJiraChecklistIssue",
    "StagingJiraChecklistItem",
]

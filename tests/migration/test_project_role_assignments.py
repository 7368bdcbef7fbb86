from __future__ import annotations

import pytest
from sqlalchemy import select

from migrator_app.migration.kinds.roles import NO_ROLE_MATCH_NOTE, ProjectRoleGroupKind, RoleKind
from migrator_app.migration.pipeline import Reconciler
from migrator_app.models import (
    GroupMapping,
    MigrationStatus,
    ProjectMapping,
    ProjectRoleGroupMapping,
    RoleMapping,
    StagingRedmineGroupProjectRole,
    StagingRedmineRole,
    db,
)


@pytest.fixture
def assignment(persist):
    return persist(
        ProjectRoleGroupMapping(
            jira_project_id="10100",
            jira_role_id="10002",
            jira_group_id="g-devs",
            jira_role_name="Developers",
            jira_group_name="devs",
            migration_status=MigrationStatus.PENDING_ANALYSIS,
        )
    )


@pytest.fixture
def resolved_project_and_group(persist):
    persist(
        ProjectMapping(
            jira_project_id="10100",
            jira_project_key="WEB",
            redmine_project_id=3,
            migration_status=MigrationStatus.MATCH_FOUND,
        ),
        GroupMapping(
            jira_group_id="g-devs",
            jira_group_name="devs",
            redmine_group_id=4,
            migration_status=MigrationStatus.CREATION_SUCCESS,
        ),
    )


def _reload(row):
    return db.session.get(ProjectRoleGroupMapping, row.mapping_id)


def test_project_is_awaited_before_anything_else(assignment):
    summary = Reconciler(ProjectRoleGroupKind()).run()

    row = _reload(assignment)
    assert row.migration_status == MigrationStatus.AWAITING_PROJECT
    assert row.notes == "Awaiting project migration: no Redmine project mapping available yet."
    assert summary.awaiting == {"project": 1}
    assert summary.to_dict()["awaiting_project"] == 1


def test_project_not_ready_reports_its_status(persist, assignment):
    persist(
        ProjectMapping(
            jira_project_id="10100",
            jira_project_key="WEB",
            migration_status=MigrationStatus.READY_FOR_CREATION,
        )
    )

    Reconciler(ProjectRoleGroupKind()).run()

    row = _reload(assignment)
    assert row.migration_status == MigrationStatus.AWAITING_PROJECT
    assert row.notes == "Project mapping is not ready (status: READY_FOR_CREATION)."


def test_group_awaited_once_project_resolves(persist, assignment):
    persist(
        ProjectMapping(
            jira_project_id="10100",
            jira_project_key="WEB",
            redmine_project_id=3,
            migration_status=MigrationStatus.MATCH_FOUND,
        )
    )

    summary = Reconciler(ProjectRoleGroupKind()).run()

    row = _reload(assignment)
    assert row.migration_status == MigrationStatus.AWAITING_GROUP
    assert row.redmine_project_id == 3
    assert summary.awaiting == {"group": 1}


def test_default_role_is_proposed_while_role_is_awaited(persist, assignment, resolved_project_and_group):
    persist(
        RoleMapping(
            jira_role_id="10002",
            jira_role_name="Developers",
            migration_status=MigrationStatus.MANUAL_INTERVENTION_REQUIRED,
        ),
        StagingRedmineRole(id=5, name="Reporter", assignable=True),
    )

    Reconciler(ProjectRoleGroupKind(default_role_id=5)).run()

    row = _reload(assignment)
    assert row.migration_status == MigrationStatus.AWAITING_ROLE
    assert row.redmine_project_id == 3
    assert row.redmine_group_id == 4
    assert row.redmine_role_id is None
    assert row.proposed_redmine_role_id == 5
    assert row.proposed_redmine_role_name == "Reporter"
    assert "defaulting to Redmine role #5 (Reporter)" in row.notes


def test_resolved_dependencies_make_assignment_ready(persist, assignment, resolved_project_and_group):
    persist(
        RoleMapping(
            jira_role_id="10002",
            jira_role_name="Developers",
            redmine_role_id=6,
            proposed_redmine_role_name="Developer",
            migration_status=MigrationStatus.MATCH_FOUND,
        )
    )

    summary = Reconciler(ProjectRoleGroupKind()).run()

    row = _reload(assignment)
    assert row.migration_status == MigrationStatus.READY_FOR_ASSIGNMENT
    assert (row.redmine_project_id, row.redmine_group_id, row.redmine_role_id) == (3, 4, 6)
    assert row.proposed_redmine_role_name == "Developer"
    assert row.notes is None
    assert summary.ready_for_assignment == 1


def test_existing_membership_short_circuits_to_recorded(persist, assignment, resolved_project_and_group):
    persist(
        RoleMapping(
            jira_role_id="10002",
            jira_role_name="Developers",
            redmine_role_id=6,
            migration_status=MigrationStatus.MATCH_FOUND,
        ),
        StagingRedmineGroupProjectRole(membership_id=77, group_id=4, project_id=3, role_id=6),
    )

    summary = Reconciler(ProjectRoleGroupKind()).run()

    row = _reload(assignment)
    assert row.migration_status == MigrationStatus.ASSIGNMENT_RECORDED
    assert summary.already_recorded == 1

    # Recorded assignments are terminal and never re-entered.
    summary = Reconciler(ProjectRoleGroupKind()).run()
    assert summary.skipped == 1


def test_role_matching(persist):
    persist(
        StagingRedmineRole(id=3, name="Manager"),
        StagingRedmineRole(id=4, name="Developer"),
        StagingRedmineRole(id=8, name="developer"),
        RoleMapping(jira_role_id="1", jira_role_name="Manager", migration_status=MigrationStatus.PENDING_ANALYSIS),
        RoleMapping(jira_role_id="2", jira_role_name="Developer", migration_status=MigrationStatus.PENDING_ANALYSIS),
        RoleMapping(jira_role_id="3", jira_role_name="Viewer", migration_status=MigrationStatus.PENDING_ANALYSIS),
    )

    summary = Reconciler(RoleKind()).run()

    rows = {row.jira_role_id: row for row in db.session.scalars(select(RoleMapping))}
    assert rows["1"].migration_status == MigrationStatus.MATCH_FOUND
    assert rows["1"].redmine_role_id == 3
    assert rows["2"].migration_status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED
    assert rows["2"].notes == 'Multiple Redmine roles share the normalized name "developer".'
    assert rows["3"].migration_status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED
    assert rows["3"].notes == NO_ROLE_MATCH_NOTE
    assert summary.matched == 1
    assert summary.manual_review == 2

from __future__ import annotations

import pytest
from sqlalchemy import select

from migrator_app.errors import DataIntegrityError
from migrator_app.migration.kinds import (
    GroupKind,
    GroupMigration,
    ProjectKind,
    ProjectMigration,
    RunOptions,
    sanitize_redmine_identifier,
)
from migrator_app.migration.kinds.base import replace_snapshot, sync_mapping_rows
from migrator_app.migration.pipeline import Reconciler
from migrator_app.models import (
    GroupMapping,
    MigrationStatus,
    ProjectMapping,
    StagingJiraGroup,
    StagingJiraProject,
    StagingRedmineGroup,
    StagingRedmineProject,
    db,
)

JIRA_PROJECTS_URL = "https://jira.example.com/rest/api/3/project/search"
JIRA_GROUPS_URL = "https://jira.example.com/rest/api/3/group/bulk"
REDMINE_PROJECTS_URL = "https://redmine.example.com/projects.json"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("WEB", "web"),
        ("My Project!", "my-project"),
        ("  Ops__Team  ", "ops-team"),
        ("---", None),
        (None, None),
    ],
)
def test_sanitize_redmine_identifier(raw, expected):
    assert sanitize_redmine_identifier(raw) == expected


def _project(project_id, key, name):
    return ProjectMapping(
        jira_project_id=project_id,
        jira_project_key=key,
        jira_project_name=name,
        migration_status=MigrationStatus.PENDING_ANALYSIS,
    )


def _project_row(project_id):
    return db.session.scalars(select(ProjectMapping).filter_by(jira_project_id=project_id)).one()


def test_project_reconciliation(persist):
    persist(
        StagingRedmineProject(id=3, identifier="web", name="Website", is_public=True),
        _project("10100", "WEB", "Web"),
        _project("10101", "NEW", "  New Project "),
        _project("10102", "123", "Numeric"),
    )

    summary = Reconciler(ProjectKind(default_is_public=False)).run()

    web = _project_row("10100")
    assert web.migration_status == MigrationStatus.MATCH_FOUND
    assert web.redmine_project_id == 3
    assert web.proposed_name == "Website"

    new = _project_row("10101")
    assert new.migration_status == MigrationStatus.READY_FOR_CREATION
    assert new.proposed_identifier == "new"
    assert new.proposed_name == "New Project"
    assert new.proposed_is_public is False

    numeric = _project_row("10102")
    assert numeric.migration_status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED
    assert 'identifier "123" is not valid' in numeric.notes
    assert (summary.matched, summary.ready_for_creation, summary.manual_review) == (1, 1, 1)


def test_project_push_payload(persist, client_factory, http_session, respond):
    row = persist(
        ProjectMapping(
            jira_project_id="10101",
            jira_project_key="NEW",
            proposed_identifier="new",
            proposed_name="New Project",
            proposed_description="Imported from Jira",
            proposed_is_public=False,
            migration_status=MigrationStatus.READY_FOR_CREATION,
        )
    )
    http_session.add("POST", REDMINE_PROJECTS_URL, respond(status_code=201, json_data={"project": {"id": 31}}))
    unit = ProjectMigration(client_factory.config, client_factory, RunOptions(confirm_push=True), echo=lambda line: None)

    unit.run(["push"])

    row = db.session.get(ProjectMapping, row.mapping_id)
    assert row.migration_status == MigrationStatus.CREATION_SUCCESS
    assert row.redmine_project_id == 31
    [post] = http_session.calls
    assert post.json == {
        "project": {
            "name": "New Project",
            "identifier": "new",
            "is_public": False,
            "description": "Imported from Jira",
        }
    }


def test_project_phases_stage_and_reconcile(client_factory, http_session, respond):
    http_session.add(
        "GET",
        JIRA_PROJECTS_URL,
        respond(
            json_data={
                "values": [{"id": "10100", "key": "WEB", "name": "Web", "description": "Public site"}],
                "isLast": True,
            }
        ),
    )
    http_session.add(
        "GET",
        REDMINE_PROJECTS_URL,
        respond(json_data={"projects": [{"id": 3, "identifier": "web", "name": "Website"}], "total_count": 1}),
    )
    unit = ProjectMigration(client_factory.config, client_factory, RunOptions(), echo=lambda line: None)

    results = unit.run(skipped=["push"])

    assert list(results) == ["jira", "redmine", "transform"]
    assert _project_row("10100").redmine_project_id == 3
    assert db.session.get(StagingJiraProject, "10100").raw_payload["key"] == "WEB"


def test_group_reconciliation(persist):
    persist(
        StagingRedmineGroup(id=4, name="Developers"),
        GroupMapping(jira_group_id="g-1", jira_group_name="developers", migration_status=MigrationStatus.PENDING_ANALYSIS),
        GroupMapping(jira_group_id="g-2", jira_group_name="qa", migration_status=MigrationStatus.PENDING_ANALYSIS),
    )

    Reconciler(GroupKind()).run()

    rows = {row.jira_group_id: row for row in db.session.scalars(select(GroupMapping))}
    assert rows["g-1"].migration_status == MigrationStatus.MATCH_FOUND
    assert rows["g-1"].redmine_group_id == 4
    assert rows["g-2"].migration_status == MigrationStatus.READY_FOR_CREATION
    assert rows["g-2"].proposed_name == "qa"


def test_group_jira_phase_rejects_incomplete_records(persist, client_factory, http_session, respond):
    persist(StagingJiraGroup(group_id="g-old", name="old"))
    http_session.add(
        "GET",
        JIRA_GROUPS_URL,
        respond(json_data={"values": [{"groupId": "g-1", "name": "devs"}, {"groupId": "g-2"}], "isLast": True}),
    )
    unit = GroupMigration(client_factory.config, client_factory, RunOptions(), echo=lambda line: None)

    with pytest.raises(DataIntegrityError, match="g-2 is missing required field"):
        unit.run(["jira"])

    # The previous snapshot survives the failed refresh.
    assert [group.group_id for group in db.session.scalars(select(StagingJiraGroup))] == ["g-old"]


def test_replace_snapshot_swaps_contents(persist):
    persist(StagingRedmineGroup(id=1, name="old"))

    summary = replace_snapshot(StagingRedmineGroup, [{"id": 2, "name": "new"}, {"id": 3, "name": "newer"}])

    assert summary.rows == 2
    assert summary.table == "staging_redmine_groups"
    assert sorted(group.id for group in db.session.scalars(select(StagingRedmineGroup))) == [2, 3]


def test_sync_mapping_rows_upserts_without_touching_state(persist):
    persist(
        GroupMapping(
            jira_group_id="g-1",
            jira_group_name="devs",
            redmine_group_id=4,
            automation_hash="a" * 64,
            migration_status=MigrationStatus.MATCH_FOUND,
        )
    )

    result = sync_mapping_rows(
        GroupMapping,
        ("jira_group_id",),
        [
            {"jira_group_id": "g-1", "jira_group_name": "developers"},
            {"jira_group_id": "g-2", "jira_group_name": "qa"},
        ],
    )

    assert (result.created, result.refreshed) == (1, 1)
    rows = {row.jira_group_id: row for row in db.session.scalars(select(GroupMapping))}
    assert rows["g-1"].jira_group_name == "developers"
    assert rows["g-1"].migration_status == MigrationStatus.MATCH_FOUND
    assert rows["g-1"].automation_hash == "a" * 64
    assert rows["g-2"].migration_status == MigrationStatus.PENDING_ANALYSIS

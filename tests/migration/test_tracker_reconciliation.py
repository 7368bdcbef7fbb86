from __future__ import annotations

import logging

import pytest
from sqlalchemy import select

from migrator_app.migration.kinds.trackers import (
    MISSING_DEFAULT_STATUS_NOTE,
    SUBTASK_MANUAL_SUFFIX,
    SUBTASK_READY_NOTE,
    TrackerKind,
    determine_default_status_id,
)
from migrator_app.migration.pipeline import Reconciler, compute_row_hash
from migrator_app.models import (
    MigrationStatus,
    StagingRedmineIssueStatus,
    StagingRedmineTracker,
    TrackerMapping,
    db,
)


def _tracker_row(issue_type_id, name, *, subtask=False, status=MigrationStatus.PENDING_ANALYSIS):
    return TrackerMapping(
        jira_issue_type_id=issue_type_id,
        jira_issue_type_name=name,
        jira_is_subtask=subtask,
        migration_status=status,
    )


def _by_type_id(issue_type_id):
    return db.session.scalars(
        select(TrackerMapping).filter(TrackerMapping.jira_issue_type_id == issue_type_id)
    ).one()


@pytest.fixture
def redmine_trackers(persist):
    persist(
        StagingRedmineTracker(id=7, name="Epic", description="Large body of work", default_status_id=1),
        StagingRedmineTracker(id=11, name="Support", default_status_id=1),
        StagingRedmineTracker(id=12, name=" support ", default_status_id=2),
        StagingRedmineIssueStatus(id=1, name="New", is_closed=False),
        StagingRedmineIssueStatus(id=5, name="Closed", is_closed=True),
    )


@pytest.fixture
def tracker_rows(persist, redmine_trackers):
    return persist(
        _tracker_row("10001", "Epic"),
        _tracker_row("10002", "Spike"),
        _tracker_row("10003", "Support"),
    )


def test_single_match_records_target_tracker(tracker_rows):
    summary = Reconciler(TrackerKind()).run()

    epic = _by_type_id("10001")
    assert epic.migration_status == MigrationStatus.MATCH_FOUND
    assert epic.redmine_tracker_id == 7
    assert epic.proposed_redmine_name == "Epic"
    assert epic.proposed_redmine_description == "Large body of work"
    assert epic.proposed_default_status_id == 1
    assert epic.notes is None
    assert summary.matched == 1


def test_unmatched_issue_type_is_ready_for_creation(tracker_rows):
    summary = Reconciler(TrackerKind()).run()

    spike = _by_type_id("10002")
    assert spike.migration_status == MigrationStatus.READY_FOR_CREATION
    assert spike.redmine_tracker_id is None
    assert spike.proposed_redmine_name == "Spike"
    assert spike.proposed_default_status_id == 1
    assert summary.ready_for_creation == 1


def test_ambiguous_name_requires_manual_intervention(tracker_rows):
    summary = Reconciler(TrackerKind()).run()

    support = _by_type_id("10003")
    assert support.migration_status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED
    assert support.redmine_tracker_id is None
    assert "support" in support.notes.lower()
    assert "#11" in support.notes and "#12" in support.notes
    assert summary.manual_review == 1
    assert summary.processed == 3
    assert summary.updated == 3


def test_every_automated_write_stamps_the_hash(tracker_rows):
    Reconciler(TrackerKind()).run()

    for row in db.session.scalars(select(TrackerMapping)):
        assert row.automation_hash == compute_row_hash(row, TrackerKind.hash_fields)


def test_second_run_with_same_snapshot_changes_nothing(tracker_rows):
    Reconciler(TrackerKind()).run()
    hashes = {row.jira_issue_type_id: row.automation_hash for row in db.session.scalars(select(TrackerMapping))}

    summary = Reconciler(TrackerKind()).run()

    assert summary.updated == 0
    assert summary.unchanged == 2
    # The ambiguous row is no longer in an allowed starting status.
    assert summary.skipped == 1
    assert {row.jira_issue_type_id: row.automation_hash for row in db.session.scalars(select(TrackerMapping))} == hashes


def test_manual_edit_is_preserved(tracker_rows, caplog):
    Reconciler(TrackerKind()).run()
    epic = _by_type_id("10001")
    epic.redmine_tracker_id = 99
    db.session.commit()

    with caplog.at_level(logging.WARNING):
        summary = Reconciler(TrackerKind()).run()

    epic = _by_type_id("10001")
    assert epic.redmine_tracker_id == 99
    assert epic.migration_status == MigrationStatus.MATCH_FOUND
    assert summary.manual_overrides == 1
    assert summary.skipped == 2
    assert any("[preserved]" in record.getMessage() for record in caplog.records)


def test_rows_in_terminal_status_are_skipped(persist, redmine_trackers):
    persist(_tracker_row("10004", "Story", status=MigrationStatus.CREATION_SUCCESS))

    summary = Reconciler(TrackerKind()).run()

    story = _by_type_id("10004")
    assert story.migration_status == MigrationStatus.CREATION_SUCCESS
    assert story.automation_hash is None
    assert summary.skipped == 1


def test_missing_default_status_forces_manual(persist):
    persist(StagingRedmineTracker(id=7, name="Epic"), _tracker_row("10002", "Spike"))

    summary = Reconciler(TrackerKind()).run()

    spike = _by_type_id("10002")
    assert spike.migration_status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED
    assert spike.notes == MISSING_DEFAULT_STATUS_NOTE
    assert summary.manual_review == 1


def test_configured_default_status_wins(persist, redmine_trackers):
    persist(_tracker_row("10002", "Spike"))

    Reconciler(TrackerKind(configured_default_status_id=5)).run()

    assert _by_type_id("10002").proposed_default_status_id == 5


def test_subtask_notes(persist, redmine_trackers):
    persist(_tracker_row("10005", "Sub-task", subtask=True), _tracker_row("10006", "Support", subtask=True))

    Reconciler(TrackerKind()).run()

    ready = _by_type_id("10005")
    assert ready.migration_status == MigrationStatus.READY_FOR_CREATION
    assert ready.notes == SUBTASK_READY_NOTE
    ambiguous = _by_type_id("10006")
    assert ambiguous.migration_status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED
    assert ambiguous.notes.endswith(SUBTASK_MANUAL_SUFFIX)


def test_blank_issue_type_name_requires_manual(persist, redmine_trackers):
    persist(_tracker_row("10007", None))

    Reconciler(TrackerKind()).run()

    row = _by_type_id("10007")
    assert row.migration_status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED
    assert "Missing Jira issue type name" in row.notes


def test_ready_row_picks_up_match_after_snapshot_refresh(persist, redmine_trackers):
    persist(_tracker_row("10002", "Spike"))
    Reconciler(TrackerKind()).run()
    assert _by_type_id("10002").migration_status == MigrationStatus.READY_FOR_CREATION

    persist(StagingRedmineTracker(id=20, name="Spike", default_status_id=1))
    Reconciler(TrackerKind()).run()

    spike = _by_type_id("10002")
    assert spike.migration_status == MigrationStatus.MATCH_FOUND
    assert spike.redmine_tracker_id == 20


def test_status_counts_reported(tracker_rows):
    summary = Reconciler(TrackerKind()).run()

    assert summary.status_counts == {
        "MANUAL_INTERVENTION_REQUIRED": 1,
        "MATCH_FOUND": 1,
        "READY_FOR_CREATION": 1,
    }
    assert summary.to_dict()["status_counts"] == summary.status_counts


def test_default_status_prefers_first_open_status(persist):
    persist(
        StagingRedmineIssueStatus(id=1, name="Closed", is_closed=True),
        StagingRedmineIssueStatus(id=3, name="New", is_closed=False),
    )
    assert determine_default_status_id(None) == 3
    assert determine_default_status_id(8) == 8


def test_default_status_falls_back_to_any_status(persist):
    assert determine_default_status_id(None) is None
    persist(StagingRedmineIssueStatus(id=4, name="Closed", is_closed=True))
    assert determine_default_status_id(None) == 4

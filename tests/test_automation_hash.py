from __future__ import annotations

from types import SimpleNamespace

from migrator_app.migration.pipeline import (
    compute_automation_hash,
    compute_row_hash,
    has_manual_override,
    normalize_stored_hash,
    stamp_automation_hash,
)
from migrator_app.models import MigrationStatus

FIELDS = ("target_id", "migration_status", "proposed_name", "notes")


def _row(**overrides):
    values = {
        "target_id": 7,
        "migration_status": MigrationStatus.MATCH_FOUND,
        "proposed_name": "Epic",
        "notes": None,
        "automation_hash": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_hash_is_deterministic_sha256_hex():
    digest = compute_automation_hash([7, "MATCH_FOUND", "Epic", None])

    assert digest == compute_automation_hash([7, "MATCH_FOUND", "Epic", None])
    assert len(digest) == 64
    assert int(digest, 16) >= 0


def test_enum_and_value_hash_identically():
    assert compute_automation_hash([MigrationStatus.MATCH_FOUND]) == compute_automation_hash(["MATCH_FOUND"])


def test_null_is_distinct_from_empty_string_and_literal_none():
    assert compute_automation_hash([None]) != compute_automation_hash([""])
    assert compute_automation_hash([None]) != compute_automation_hash(["None"])


def test_separators_inside_values_do_not_collide():
    assert compute_automation_hash(["a|b", "c"]) != compute_automation_hash(["a", "b|c"])
    assert compute_automation_hash(["a,b", "c"]) != compute_automation_hash(["a", "b,c"])


def test_row_without_stored_hash_is_safe_to_update():
    assert not has_manual_override(_row(), FIELDS)


def test_stamped_row_has_no_override_until_edited():
    row = _row()
    digest = stamp_automation_hash(row, FIELDS)

    assert row.automation_hash == digest == compute_row_hash(row, FIELDS)
    assert not has_manual_override(row, FIELDS)

    row.target_id = 99
    assert has_manual_override(row, FIELDS)


def test_fields_outside_the_tuple_do_not_count_as_edits():
    row = _row(jira_name="Epic")
    stamp_automation_hash(row, FIELDS)

    row.jira_name = "Epic (renamed)"

    assert not has_manual_override(row, FIELDS)


def test_malformed_stored_hash_is_ignored():
    assert normalize_stored_hash("not-a-hash") is None
    assert normalize_stored_hash("Z" * 64) is None
    assert normalize_stored_hash(" " + "AB" * 32 + " ") == "ab" * 32
    assert not has_manual_override(_row(automation_hash="garbage"), FIELDS)

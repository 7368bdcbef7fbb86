"""
Automation-hash guard for mapping rows.

The hash fingerprints the automatable fields of a mapping row as of the last
automated write. A stored hash that no longer matches the stored values means
an operator edited the row by hand, and the engine must leave it alone.
"""

from __future__ import annotations

import enum
import hashlib
import hmac
import json
from datetime import date, datetime
from typing import Any, Iterable, Sequence

_HASH_LENGTH = 64


def _normalize_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def compute_automation_hash(values: Sequence[Any]) -> str:
    """
    Return the SHA-256 digest of an ordered tuple of field values.

    The tuple is serialized as a JSON array so separators inside values can
    never make two different tuples collide; ``None`` is encoded as JSON null.
    """

    payload = json.dumps(
        [_normalize_value(value) for value in values],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def row_hash_values(row: object, fields: Iterable[str]) -> list[Any]:
    return [getattr(row, field) for field in fields]


def compute_row_hash(row: object, fields: Iterable[str]) -> str:
    """Hash the current values of ``fields`` on a mapping row."""

    return compute_automation_hash(row_hash_values(row, fields))


def normalize_stored_hash(value: object | None) -> str | None:
    """Return a stored hash as lower-case hex, or None when absent or malformed."""

    if value is None:
        return None
    token = str(value).strip().lower()
    if len(token) != _HASH_LENGTH:
        return None
    try:
        int(token, 16)
    except ValueError:
        return None
    return token


def has_manual_override(row: object, fields: Iterable[str]) -> bool:
    """
    Return True when the row's stored hash disagrees with its stored values.

    Rows without a (valid) stored hash are treated as safe to update.
    """

    stored = normalize_stored_hash(getattr(row, "automation_hash", None))
    if stored is None:
        return False
    return not hmac.compare_digest(stored, compute_row_hash(row, fields))


def stamp_automation_hash(row: object, fields: Iterable[str]) -> str:
    """Recompute and store the automation hash on ``row``."""

    digest = compute_row_hash(row, fields)
    setattr(row, "automation_hash", digest)
    return digest

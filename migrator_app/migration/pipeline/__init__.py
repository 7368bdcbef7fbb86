"""
Reconciliation engine: hash guard, matcher, dependency resolver, reconciler,
push executor and phase orchestration.
"""

from .automation_hash import (
    compute_automation_hash,
    compute_row_hash,
    has_manual_override,
    normalize_stored_hash,
    stamp_automation_hash,
)
from .dependencies import DependencyResolver, Resolved, Unmet, resolve_dependencies
from .matcher import AmbiguousMatch, EntityMatcher, MatchResult, NoMatch, OneMatch, normalize_name
from .phases import Phase, PhasePlan, parse_phase_list, run_phases
from .push import PushableKind, PushExecutor, PushResult, PushSummary, format_push_summary, load_ready_rows
from .reconciler import (
    MatchingKind,
    Proposal,
    ReconcileKind,
    Reconciler,
    ReconciliationSummary,
    RowResult,
    format_reconciliation_summary,
    status_breakdown,
)

__all__ = [
    "AmbiguousMatch",
    "DependencyResolver",
    "EntityMatcher",
    "MatchResult",
    "MatchingKind",
    "NoMatch",
    "OneMatch",
    "Phase",
    "PhasePlan",
    "Proposal",
    "PushExecutor",
    "PushResult",
    "PushSummary",
    "PushableKind",
    "ReconcileKind",
    "Reconciler",
    "ReconciliationSummary",
    "Resolved",
    "RowResult",
    "Unmet",
    "compute_automation_hash",
    "compute_row_hash",
    "format_push_summary",
    "format_reconciliation_summary",
    "has_manual_override",
    "normalize_name",
    "normalize_stored_hash",
    "load_ready_rows",
    "parse_phase_list",
    "resolve_dependencies",
    "run_phases",
    "stamp_automation_hash",
    "status_breakdown",
]

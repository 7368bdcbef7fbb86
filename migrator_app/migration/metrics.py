"""Prometheus metrics helpers for migration runs."""

from __future__ import annotations

from typing import Literal

from prometheus_client import CollectorRegistry, Counter, write_to_textfile

MIGRATION_REGISTRY = CollectorRegistry(auto_describe=True)

_reconcile_rows_counter = Counter(
    "migration_reconcile_rows_total",
    "Mapping rows evaluated by the reconciler, by entity kind and outcome.",
    ["kind", "outcome"],
    registry=MIGRATION_REGISTRY,
)
_push_rows_counter = Counter(
    "migration_push_rows_total",
    "Mapping rows pushed to Redmine, by entity kind and result.",
    ["kind", "result"],
    registry=MIGRATION_REGISTRY,
)
_phase_runs_counter = Counter(
    "migration_phase_runs_total",
    "Migration phases executed, by unit, phase and status.",
    ["unit", "phase", "status"],
    registry=MIGRATION_REGISTRY,
)


def record_reconcile_outcome(kind: str, outcome: str) -> None:
    """Increment the reconciliation counter for one row."""

    _reconcile_rows_counter.labels(kind=kind, outcome=outcome).inc()


def record_push_result(kind: str, result: Literal["success", "failure"]) -> None:
    """Increment the push counter for one row."""

    _push_rows_counter.labels(kind=kind, result=result).inc()


def record_phase_run(unit: str, phase: str, status: Literal["success", "failure"]) -> None:
    _phase_runs_counter.labels(unit=unit, phase=phase, status=status).inc()


def write_metrics_textfile(path: str | None) -> bool:
    """
    Write the migration registry for the node-exporter textfile collector.

    Returns False when no path is configured.
    """

    if not path:
        return False
    write_to_textfile(path, MIGRATION_REGISTRY)
    return True

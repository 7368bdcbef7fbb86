"""
Phase plans and phase selection for migration units.

Every unit runs a fixed sequence of phases (snapshot extraction, then
reconciliation, then push). Callers may narrow the sequence with --phases
and --skip, but never reorder it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

from migrator_app.errors import PhaseSelectionError

from ..metrics import record_phase_run

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Phase:
    name: str
    description: str


@dataclass(frozen=True)
class PhasePlan:
    """Ordered phases of one migration unit."""

    unit: str
    phases: tuple[Phase, ...]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(phase.name for phase in self.phases)

    def describe(self) -> list[str]:
        return [f"{index}. {phase.name}: {phase.description}" for index, phase in enumerate(self.phases, start=1)]

    def _validate(self, names: Iterable[str], option: str) -> None:
        unknown = [name for name in names if name not in self.names]
        if unknown:
            raise PhaseSelectionError(
                f"Unknown phase(s) for {option}: {', '.join(unknown)}. "
                f"Valid phases for {self.unit}: {', '.join(self.names)}."
            )

    def select(self, selected: Iterable[str] | None = None, skipped: Iterable[str] | None = None) -> tuple[Phase, ...]:
        """
        Return ``(all phases ∩ selected) - skipped`` in plan order.

        ``selected=None`` selects every phase. Raises PhaseSelectionError for
        unknown names or when nothing remains.
        """

        selected_names = tuple(selected) if selected is not None else None
        skipped_names = tuple(skipped or ())
        if selected_names is not None:
            self._validate(selected_names, "--phases")
        self._validate(skipped_names, "--skip")

        chosen = tuple(
            phase
            for phase in self.phases
            if (selected_names is None or phase.name in selected_names) and phase.name not in skipped_names
        )
        if not chosen:
            raise PhaseSelectionError("No phases selected after applying --phases and --skip filters.")
        return chosen


def parse_phase_list(value: str | None) -> tuple[str, ...] | None:
    """Parse a comma-separated phase list, keeping order and dropping duplicates."""

    if value is None:
        return None
    seen: list[str] = []
    for raw_item in value.split(","):
        item = raw_item.strip().lower()
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


def run_phases(
    plan: PhasePlan,
    phases: Iterable[Phase],
    handlers: Mapping[str, Callable[[], object]],
) -> dict[str, object]:
    """Execute the chosen phases in plan order, stopping at the first failure."""

    chosen = {phase.name for phase in phases}
    results: dict[str, object] = {}
    for phase in plan.phases:
        if phase.name not in chosen:
            continue
        logger.info(
            "Running %s phase '%s'",
            plan.unit,
            phase.name,
            extra={"migration_unit": plan.unit, "migration_phase": phase.name},
        )
        try:
            results[phase.name] = handlers[phase.name]()
        except Exception:
            record_phase_run(plan.unit, phase.name, "failure")
            raise
        record_phase_run(plan.unit, phase.name, "success")
    return results

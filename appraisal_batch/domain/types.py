"""
appraisal_batch.domain.types -- Pure frozen dataclasses for reconciler runs.

ZERO I/O.  Follows the pattern of appraisal_services.bulk_release: frozen
dataclasses with enum status fields and tuples for immutable collections.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID


class ReconcilerRunStatus(str, Enum):
    """Outcome of one reconciler run."""

    COMPLETED = "completed"  # Every step ran without error
    PARTIALLY_COMPLETED = "partially_completed"  # At least one error collected


class ReconcilerStep(str, Enum):
    """Steps of a run, in execution order."""

    ACTIVATE_CYCLES = "activate_cycles"
    COMPLETE_CYCLES = "complete_cycles"
    FLAG_OVERDUE = "flag_overdue"
    EXECUTE_DEFERRED_ACTIONS = "execute_deferred_actions"


@dataclass(frozen=True)
class ReconcilerSummary:
    """Immutable result of ``Reconciler.run()``.

    ``errors`` holds one ``"<step>: <message>"`` entry per failure; a
    failure never stops the remaining steps.
    """

    run_id: UUID
    run_date: date
    activated: int = 0
    completed: int = 0
    overdue_participants: int = 0
    actions_executed: int = 0
    errors: tuple[str, ...] = ()
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def status(self) -> ReconcilerRunStatus:
        if self.errors:
            return ReconcilerRunStatus.PARTIALLY_COMPLETED
        return ReconcilerRunStatus.COMPLETED

    @property
    def changed_anything(self) -> bool:
        return bool(
            self.activated
            or self.completed
            or self.overdue_participants
            or self.actions_executed
        )

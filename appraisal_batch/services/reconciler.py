"""
Reconciler -- date-driven transitions and deferred work, one pass per call.

Contract:
    ``run()`` activates cycles whose start date has come, completes cycles
    whose end date plus grace has passed, flags overdue participants and
    executes due deferred actions.  It returns a ReconcilerSummary and
    never raises: a failure outside any single candidate, including a
    SAVEPOINT that cannot be opened, is reported as an ``errors`` entry.

Architecture: appraisal_batch/services.  Calls kernel services only;
    nothing in the kernel imports from here.

Invariants enforced:
    - Every candidate runs in its own SAVEPOINT, so one bad cycle or
      participant never blocks the rest; the exception becomes an
      ``errors`` entry.
    - A second run on the same day changes nothing: every transition is
      a conditional update and every notification is deduped.
    - All dates come from the injected Clock.
    - The run record is written with the summary; the caller commits.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from appraisal_batch.domain.types import ReconcilerStep, ReconcilerSummary
from appraisal_batch.models.run import ReconcilerRunModel
from appraisal_kernel.domain.clock import Clock, SystemClock
from appraisal_kernel.logging_config import LogContext, get_logger
from appraisal_kernel.services.base import SYSTEM_ACTOR_ID, rollback_savepoint
from appraisal_kernel.services.cycle_lifecycle import CycleLifecycle
from appraisal_kernel.services.deferred_actions import (
    DeferredActionExecutor,
    HandlerRegistry,
)
from appraisal_kernel.services.notification_outbox import NotificationOutbox
from appraisal_kernel.services.participant_tracker import ParticipantTracker

logger = get_logger("batch.reconciler")


class Reconciler:
    """One reconciliation pass over all organizations.

    Non-goals:
        - Does NOT loop or sleep; ReconcilerScheduler and
          scripts/run_reconciler.py decide when to call ``run()``.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        hr_audience_id: UUID | None = None,
        registry: HandlerRegistry | None = None,
        run_overdue_scan: bool = True,
        run_deferred_actions: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._outbox = NotificationOutbox(session, self._clock)
        self._tracker = ParticipantTracker(session, self._clock, self._outbox)
        self._cycles = CycleLifecycle(
            session,
            self._clock,
            outbox=self._outbox,
            tracker=self._tracker,
            hr_audience_id=hr_audience_id,
        )
        self._actions = DeferredActionExecutor(
            session, self._clock, registry=registry, outbox=self._outbox,
        )
        self._run_overdue_scan = run_overdue_scan
        self._run_deferred_actions = run_deferred_actions

    def run(self) -> ReconcilerSummary:
        """Run every enabled step once and record the run."""
        run_id = uuid4()
        started_at = self._clock.now()
        today = self._clock.today()
        errors: list[str] = []
        counts = {
            "activated": 0,
            "completed": 0,
            "overdue_participants": 0,
            "actions_executed": 0,
        }

        with LogContext.bind(job_run_id=str(run_id)):
            logger.info("reconciler_run_started", extra={"run_date": today.isoformat()})

            try:
                self._run_steps(today, counts, errors)
            except Exception as exc:
                errors.append(f"run: {exc}")
                logger.exception("reconciler_run_failed")

            summary = ReconcilerSummary(
                run_id=run_id,
                run_date=today,
                errors=tuple(errors),
                started_at=started_at,
                finished_at=self._clock.now(),
                **counts,
            )
            self._record(summary)

            logger.info(
                "reconciler_run_completed",
                extra={
                    "run_date": today.isoformat(),
                    "run_status": summary.status.value,
                    "error_count": len(summary.errors),
                    **counts,
                },
            )
        return summary

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_steps(self, today: date, counts: dict[str, int], errors: list[str]) -> None:
        counts["activated"] = self._each(
            ReconcilerStep.ACTIVATE_CYCLES,
            lambda: self._cycles.find_activation_candidates(today),
            lambda cycle: self._cycles.try_activate(cycle.id),
            errors,
        )
        counts["completed"] = self._each(
            ReconcilerStep.COMPLETE_CYCLES,
            lambda: self._cycles.find_completion_candidates(today),
            lambda cycle: self._cycles.try_complete(cycle.id),
            errors,
        )
        if self._run_overdue_scan:
            counts["overdue_participants"] = self._each(
                ReconcilerStep.FLAG_OVERDUE,
                lambda: self._tracker.find_overdue_candidates(today),
                lambda participant: self._tracker.flag_overdue(participant.id),
                errors,
            )
        if self._run_deferred_actions:
            counts["actions_executed"] = self._execute_actions(today, errors)

    def _each(
        self,
        step: ReconcilerStep,
        find: Callable[[], Iterable[Any]],
        apply: Callable[[Any], bool],
        errors: list[str],
    ) -> int:
        """Apply ``apply`` to every candidate, one SAVEPOINT each.

        Returns the number of candidates ``apply`` reported as changed.
        """
        try:
            candidates = list(find())
        except Exception as exc:
            errors.append(f"{step.value}: {exc}")
            logger.exception("reconciler_step_failed", extra={"step": step.value})
            return 0

        changed = 0
        for candidate in candidates:
            savepoint = None
            try:
                savepoint = self._session.begin_nested()
                if apply(candidate):
                    changed += 1
                savepoint.commit()
            except Exception as exc:
                rollback_savepoint(savepoint)
                errors.append(f"{step.value}: {candidate.id}: {exc}")
                logger.warning(
                    "reconciler_item_failed",
                    extra={
                        "step": step.value,
                        "entity_id": str(candidate.id),
                        "error": str(exc),
                    },
                )
        return changed

    def _execute_actions(self, today: date, errors: list[str]) -> int:
        step = ReconcilerStep.EXECUTE_DEFERRED_ACTIONS.value
        try:
            result = self._actions.execute_due(today)
        except Exception as exc:
            errors.append(f"{step}: {exc}")
            logger.exception("reconciler_step_failed", extra={"step": step})
            return 0
        errors.extend(f"{step}: {error}" for error in result.errors)
        return result.executed

    def _record(self, summary: ReconcilerSummary) -> None:
        savepoint = None
        try:
            savepoint = self._session.begin_nested()
            self._session.add(
                ReconcilerRunModel.from_dto(summary, created_by_id=SYSTEM_ACTOR_ID)
            )
            self._session.flush()
            savepoint.commit()
        except Exception:
            rollback_savepoint(savepoint)
            logger.exception(
                "reconciler_run_record_failed", extra={"run_id": str(summary.run_id)},
            )

"""
appraisal_services.bulk_release -- Release a cycle's finalized appraisals in one pass.

Responsibility:
    Select the participants of a cycle that are ready for release, and for
    each one release its manager-rated goals, move the participant to
    ``released``, store the overall score and record exactly one
    ``appraisal_released`` notification for the employee.

Architecture position:
    Services -- orchestration over kernel services.
    Imports RatingSubmissionMachine, ParticipantTracker, NotificationOutbox
    and AppraisalSelector from the kernel; owns no tables.

Invariants enforced:
    - Only finalized or reviewed participants whose ``released_at`` is
      still null are candidates, so a retry touches only what failed.
    - One SAVEPOINT per participant: a failure rolls back that
      participant's submissions, status and notification together and the
      run carries on.
    - One ``appraisal_released`` intent per participant (dedupe key
      ``appraisal_released:<participant_id>``); per-goal release
      notifications are suppressed.
    - Flush-only; the caller commits.

Failure modes:
    - Per-participant failures never propagate; they are collected as
      ``"<participant_id>: <message>"`` strings.  A goal that the manager
      has not rated yet fails its participant with InvalidTransitionError.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from appraisal_kernel.db.types import round_rating
from appraisal_kernel.domain.clock import Clock, SystemClock
from appraisal_kernel.domain.dtos import ParticipantInfo
from appraisal_kernel.domain.lifecycle import (
    ALREADY_RELEASED_STATUSES,
    NotificationKind,
    ParticipantStatus,
)
from appraisal_kernel.logging_config import LogContext, get_logger
from appraisal_kernel.models.participant import AppraisalParticipant
from appraisal_kernel.selectors.appraisal_selector import AppraisalSelector
from appraisal_kernel.services.base import rollback_savepoint
from appraisal_kernel.services.notification_outbox import NotificationOutbox
from appraisal_kernel.services.participant_tracker import ParticipantTracker
from appraisal_kernel.services.rating_submission import RatingSubmissionMachine

logger = get_logger("services.bulk_release")


class BulkReleaseStatus(str, Enum):
    """Outcome of a bulk release run."""

    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    NO_CANDIDATES = "no_candidates"


@dataclass(frozen=True)
class BulkReleaseResult:
    """Counts and per-participant errors of one ``release_eligible`` call."""

    cycle_id: UUID
    candidates: int
    released: int
    notified: int
    errors: tuple[str, ...] = ()
    released_participant_ids: tuple[UUID, ...] = ()

    @property
    def status(self) -> BulkReleaseStatus:
        if self.candidates == 0:
            return BulkReleaseStatus.NO_CANDIDATES
        if self.released == 0:
            return BulkReleaseStatus.FAILED
        if self.errors:
            return BulkReleaseStatus.PARTIALLY_COMPLETED
        return BulkReleaseStatus.COMPLETED

    @property
    def fully_released(self) -> bool:
        return self.candidates > 0 and not self.errors

    @property
    def partially_released(self) -> bool:
        return self.released > 0 and bool(self.errors)


class BulkReleaseOrchestrator:
    """
    Releases every eligible participant of a cycle.

    Contract:
        ``release_eligible`` always returns a BulkReleaseResult; it never
        raises for a participant-level failure.
    Non-goals:
        - Does not commit.  The caller decides whether a partial run is
          kept.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        outbox: NotificationOutbox | None = None,
        score_precision: Decimal = Decimal("0.1"),
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._outbox = outbox or NotificationOutbox(session, self._clock)
        self._submissions = RatingSubmissionMachine(session, self._clock, self._outbox)
        self._tracker = ParticipantTracker(session, self._clock, self._outbox)
        self._selector = AppraisalSelector(session)
        self._score_precision = score_precision

    def release_eligible(
        self,
        cycle_id: UUID,
        released_by: UUID,
        participant_ids: list[UUID] | None = None,
    ) -> BulkReleaseResult:
        """
        Release the finalized and reviewed participants of ``cycle_id``.

        Args:
            cycle_id: Cycle to release.
            released_by: Actor recorded on every release.
            participant_ids: Restrict the run to these participants.

        Returns:
            BulkReleaseResult with released / notified counts and errors.
        """
        candidates = self._selector.find_releasable_participants(
            cycle_id, participant_ids,
        )
        logger.info(
            "bulk_release_started",
            extra={"cycle_id": str(cycle_id), "candidates": len(candidates)},
        )

        released: list[UUID] = []
        notified = 0
        errors: list[str] = []

        for participant in candidates:
            with LogContext.bind(participant_id=str(participant.id)):
                savepoint = None
                try:
                    savepoint = self._session.begin_nested()
                    sent = self._release_participant(participant, released_by)
                    savepoint.commit()
                    released.append(participant.id)
                    if sent:
                        notified += 1
                except Exception as exc:
                    rollback_savepoint(savepoint)
                    errors.append(f"{participant.id}: {exc}")
                    logger.warning(
                        "bulk_release_participant_failed",
                        extra={
                            "participant_id": str(participant.id),
                            "error": str(exc),
                        },
                    )

        result = BulkReleaseResult(
            cycle_id=cycle_id,
            candidates=len(candidates),
            released=len(released),
            notified=notified,
            errors=tuple(errors),
            released_participant_ids=tuple(released),
        )
        logger.info(
            "bulk_release_completed",
            extra={
                "cycle_id": str(cycle_id),
                "released": result.released,
                "notified": result.notified,
                "failed": len(result.errors),
                "run_status": result.status.value,
            },
        )
        return result

    def _release_participant(
        self, participant: ParticipantInfo, released_by: UUID,
    ) -> bool:
        """Release one participant; returns True if a notification was recorded."""
        final_scores: list[Decimal] = []
        for submission in self._selector.submissions_for_employee(
            participant.cycle_id, participant.employee_id,
        ):
            if submission.status not in ALREADY_RELEASED_STATUSES:
                submission = self._submissions.release(
                    submission.id, released_by, notify=False,
                )
            if submission.final_score is not None:
                final_scores.append(submission.final_score)

        self._tracker.advance(participant.id, ParticipantStatus.RELEASED, released_by)

        overall = None
        if final_scores:
            mean = sum(final_scores, Decimal("0")) / len(final_scores)
            overall = round_rating(mean, self._score_precision)
            self._session.execute(
                update(AppraisalParticipant)
                .where(AppraisalParticipant.id == participant.id)
                .values(overall_score=overall)
                .execution_options(synchronize_session=False)
            )
            self._session.expire_all()

        intent = self._outbox.enqueue(
            participant.employee_id,
            NotificationKind.APPRAISAL_RELEASED,
            payload={
                "cycle_id": participant.cycle_id,
                "participant_id": participant.id,
                "overall_score": overall,
                "goals_released": len(final_scores),
            },
            dedupe_key=f"appraisal_released:{participant.id}",
            actor_id=released_by,
        )
        return intent is not None

"""
ParticipantTracker -- per-participant progress and overdue tracking.

Responsibility:
    Moves participants through PARTICIPANT_TRANSITIONS, flags overdue
    participants exactly once, and force-completes still-open participants
    when their cycle closes.

Architecture position:
    Kernel > Services -- imperative shell.  Called by request handlers,
    CycleLifecycle (force completion), BulkReleaseOrchestrator (release) and
    the reconciler (overdue scan).

Invariants enforced:
    - Forward edges only; every write is a conditional update on the
      current status.
    - ``is_overdue`` goes false -> true once; the "was false" predicate is
      part of the UPDATE, so concurrent scans produce one notification.
    - ``released_at`` / ``released_by`` are written only while NULL.
    - Flush-only; no commit.

Failure modes:
    - ParticipantNotFoundError for an unknown participant ID.
    - InvalidTransitionError for a non-edge, a terminal source, or a
      concurrent writer that moved the row first.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from appraisal_kernel.domain.clock import Clock, SystemClock
from appraisal_kernel.domain.dtos import ParticipantInfo
from appraisal_kernel.domain.lifecycle import (
    FORCE_COMPLETABLE_PARTICIPANT_STATUSES,
    OVERDUE_ELIGIBLE_STATUSES,
    TERMINAL_PARTICIPANT_STATUSES,
    NotificationKind,
    ParticipantStatus,
    can_advance_participant,
)
from appraisal_kernel.exceptions import (
    InvalidTransitionError,
    ParticipantNotFoundError,
)
from appraisal_kernel.logging_config import get_logger
from appraisal_kernel.models.cycle import AppraisalCycle
from appraisal_kernel.models.participant import AppraisalParticipant
from appraisal_kernel.selectors.appraisal_selector import AppraisalSelector
from appraisal_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from appraisal_kernel.services.notification_outbox import NotificationOutbox

logger = get_logger("services.participant_tracker")


class ParticipantTracker(BaseService[AppraisalParticipant]):
    """
    Participant state machine.

    Contract:
        Public methods return frozen ``ParticipantInfo`` DTOs (or counts)
        and flush within the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        outbox: NotificationOutbox | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._outbox = outbox or NotificationOutbox(session, self._clock)
        self._selector = AppraisalSelector(session)

    def _get(self, participant_id: UUID) -> AppraisalParticipant:
        participant = self.session.get(AppraisalParticipant, participant_id)
        if participant is None:
            raise ParticipantNotFoundError(str(participant_id))
        return participant

    def enroll(
        self,
        cycle_id: UUID,
        employee_id: UUID,
        actor_id: UUID,
        manager_id: UUID | None = None,
        due_date: date | None = None,
    ) -> ParticipantInfo:
        """Add an employee to a cycle in ``pending``."""
        participant = AppraisalParticipant(
            cycle_id=cycle_id,
            employee_id=employee_id,
            manager_id=manager_id,
            due_date=due_date,
            status=ParticipantStatus.PENDING,
            is_overdue=False,
            created_by_id=actor_id,
        )
        self.session.add(participant)
        self.session.flush()

        logger.info(
            "participant_enrolled",
            extra={
                "cycle_id": str(cycle_id),
                "participant_id": str(participant.id),
                "employee_id": str(employee_id),
            },
        )
        return participant.to_dto()

    def advance(
        self,
        participant_id: UUID,
        target_status: ParticipantStatus,
        actor_id: UUID | None = None,
    ) -> ParticipantInfo:
        """
        Move a participant along one forward edge.

        When the target is ``released`` the release stamp is written only
        if the participant has never been released.

        Raises:
            ParticipantNotFoundError: unknown participant.
            InvalidTransitionError: not an edge of PARTICIPANT_TRANSITIONS,
                or another writer moved the participant first.
        """
        participant = self._get(participant_id)
        current = participant.status
        target = ParticipantStatus(target_status)

        if not can_advance_participant(current, target):
            raise InvalidTransitionError(
                "participant", str(participant_id), current.value, target.value,
            )

        values: dict = {"status": target, "updated_by_id": actor_id}
        extra_criteria = []
        if target == ParticipantStatus.RELEASED and participant.released_at is None:
            values["released_at"] = self._clock.now()
            values["released_by"] = actor_id
            extra_criteria.append(AppraisalParticipant.released_at.is_(None))

        moved = self._conditional_update(
            AppraisalParticipant, participant_id, current, values, extra_criteria,
        )
        if not moved:
            actual = self._reload(AppraisalParticipant, participant_id)
            raise InvalidTransitionError(
                "participant",
                str(participant_id),
                actual.status.value if actual else current.value,
                target.value,
                reason="participant was modified concurrently",
            )

        logger.info(
            "participant_advanced",
            extra={
                "participant_id": str(participant_id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return self._reload(AppraisalParticipant, participant_id).to_dto()

    def cancel(self, participant_id: UUID, actor_id: UUID) -> ParticipantInfo:
        """
        Administrative cancellation from any non-terminal status.

        Raises:
            InvalidTransitionError: participant already acknowledged or cancelled.
        """
        participant = self._get(participant_id)
        current = participant.status
        if current in TERMINAL_PARTICIPANT_STATUSES:
            raise InvalidTransitionError(
                "participant",
                str(participant_id),
                current.value,
                ParticipantStatus.CANCELLED.value,
                reason="participant is in a terminal status",
            )

        moved = self._conditional_update(
            AppraisalParticipant,
            participant_id,
            current,
            {"status": ParticipantStatus.CANCELLED, "updated_by_id": actor_id},
        )
        if not moved:
            actual = self._reload(AppraisalParticipant, participant_id)
            raise InvalidTransitionError(
                "participant",
                str(participant_id),
                actual.status.value,
                ParticipantStatus.CANCELLED.value,
                reason="participant was modified concurrently",
            )

        logger.info(
            "participant_cancelled",
            extra={"participant_id": str(participant_id), "from_status": current.value},
        )
        return self._reload(AppraisalParticipant, participant_id).to_dto()

    def flag_overdue(self, participant_id: UUID) -> bool:
        """
        Flag a participant overdue and notify the employee, once.

        Returns:
            True if this call flagged the participant; False when the
            participant is not open, not past due, or already flagged.
        """
        participant = self._get(participant_id)
        if participant.is_overdue:
            return False
        if participant.status not in OVERDUE_ELIGIBLE_STATUSES:
            return False

        due = participant.due_date
        if due is None:
            cycle = self.session.get(AppraisalCycle, participant.cycle_id)
            due = cycle.evaluation_deadline if cycle is not None else None
        today = self._clock.today()
        if due is None or due >= today:
            return False

        now = self._clock.now()
        flagged = self._execute_update(
            update(AppraisalParticipant)
            .where(
                AppraisalParticipant.id == participant_id,
                AppraisalParticipant.is_overdue.is_(False),
                AppraisalParticipant.status.in_(list(OVERDUE_ELIGIBLE_STATUSES)),
            )
            .values(is_overdue=True, overdue_notified_at=now)
        )
        if flagged != 1:
            return False

        self._outbox.enqueue(
            participant.employee_id,
            NotificationKind.PARTICIPANT_OVERDUE,
            payload={
                "cycle_id": participant.cycle_id,
                "participant_id": participant_id,
                "due_date": due,
                "days_overdue": (today - due).days,
            },
            dedupe_key=f"participant_overdue:{participant_id}",
        )

        logger.info(
            "participant_flagged_overdue",
            extra={
                "participant_id": str(participant_id),
                "cycle_id": str(participant.cycle_id),
                "due_date": due.isoformat(),
            },
        )
        return True

    def force_complete(self, cycle_id: UUID) -> int:
        """
        Move every still-open participant of a cycle to ``completed``.

        Forced participants are marked overdue.  Running it again changes
        nothing.

        Returns:
            Number of participants changed.
        """
        changed = self._execute_update(
            update(AppraisalParticipant)
            .where(
                AppraisalParticipant.cycle_id == cycle_id,
                AppraisalParticipant.status.in_(
                    list(FORCE_COMPLETABLE_PARTICIPANT_STATUSES)
                ),
            )
            .values(
                status=ParticipantStatus.COMPLETED,
                is_overdue=True,
                updated_by_id=SYSTEM_ACTOR_ID,
            )
        )
        if changed:
            logger.info(
                "participants_force_completed",
                extra={"cycle_id": str(cycle_id), "count": changed},
            )
        return changed

    def find_overdue_candidates(self, today: date | None = None) -> list[ParticipantInfo]:
        """Participants the next overdue scan should flag."""
        return self._selector.find_overdue_candidates(today or self._clock.today())


"""
RatingSubmissionMachine -- goal rating submission workflow.

Responsibility:
    Drives a goal rating through self rating, manager rating, release,
    acknowledgment, dispute and dispute resolution.  Every move is looked
    up in SUBMISSION_TRANSITIONS by (current status, event) and written with
    a conditional update on the status that was read.

Architecture position:
    Kernel > Services -- imperative shell.  Caller-facing operations
    ``submit_self``, ``submit_manager``, ``release``, ``acknowledge``,
    ``dispute`` and ``resolve_dispute`` live here; bulk release reuses
    ``release`` with ``notify=False``.

Invariants enforced:
    - acknowledged is only reachable from released.
    - At most one open dispute per submission.
    - ``is_disputed`` is true exactly while the status is disputed.
    - Release is idempotent: a released / acknowledged / disputed
      submission is returned unchanged and no second notification is
      recorded (the outbox dedupes on the submission ID).
    - A rating is only released once its participant is finalized or
      reviewed (or already released).
    - Flush-only; no commit.

Failure modes:
    - SubmissionNotFoundError (NO_SUBMISSION_FOUND) when a manager rates a
      goal nobody has submitted, or for an unknown submission ID.
    - SelfRatingPendingError when the configuration requires a self rating
      that does not exist yet.
    - InvalidTransitionError for any (status, event) pair not in the table,
      and for a release while the participant is still open.
    - DisputeAlreadyOpenError for a second dispute while one is open or
      under review.
    - ConcurrentModificationError when submit, acknowledge, dispute or
      resolve loses a race.  Release never raises for a lost race.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from appraisal_kernel.domain.clock import Clock, SystemClock
from appraisal_kernel.domain.dtos import RatingScaleInfo, SubmissionInfo
from appraisal_kernel.domain.lifecycle import (
    ACTIVE_DISPUTE_STATUSES,
    ALREADY_RELEASED_STATUSES,
    SUBMISSION_RELEASE_PARTICIPANT_STATUSES,
    DisputeOutcome,
    DisputeStatus,
    NotificationKind,
    ParticipantStatus,
    SubmissionEvent,
    SubmissionStatus,
    next_submission_status,
)
from appraisal_kernel.exceptions import (
    ConcurrentModificationError,
    CycleNotFoundError,
    DisputeAlreadyOpenError,
    InvalidTransitionError,
    RatingConfigNotFoundError,
    SelfRatingPendingError,
    SubmissionNotFoundError,
)
from appraisal_kernel.logging_config import LogContext, get_logger
from appraisal_kernel.models.cycle import AppraisalCycle
from appraisal_kernel.models.participant import AppraisalParticipant
from appraisal_kernel.models.rating_config import RatingConfig, RatingScale
from appraisal_kernel.models.submission import GoalRatingSubmission
from appraisal_kernel.services.base import BaseService
from appraisal_kernel.services.notification_outbox import NotificationOutbox

logger = get_logger("services.rating_submission")


class RatingSubmissionMachine(BaseService[GoalRatingSubmission]):
    """
    Goal rating submission state machine.

    Contract:
        Every public operation returns a frozen ``SubmissionInfo`` or raises
        a typed ``AppraisalKernelError``.  Validation happens before any
        write.
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

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, submission_id: UUID) -> GoalRatingSubmission:
        submission = self.session.get(GoalRatingSubmission, submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id=str(submission_id))
        return submission

    def _find(self, goal_id: UUID, cycle_id: UUID) -> GoalRatingSubmission | None:
        return self.session.execute(
            select(GoalRatingSubmission).where(
                GoalRatingSubmission.goal_id == goal_id,
                GoalRatingSubmission.cycle_id == cycle_id,
            )
        ).scalar_one_or_none()

    def _config(self, rating_config_id: UUID | None) -> RatingConfig | None:
        if rating_config_id is None:
            return None
        config = self.session.get(RatingConfig, rating_config_id)
        if config is None:
            raise RatingConfigNotFoundError(str(rating_config_id))
        return config

    def _check_on_scale(self, config: RatingConfig | None, rating: Decimal) -> None:
        if config is None or config.rating_scale_id is None:
            return
        scale = self.session.get(RatingScale, config.rating_scale_id)
        if scale is None:
            return
        bounds: RatingScaleInfo = scale.to_dto()
        if not bounds.min_rating <= rating <= bounds.max_rating:
            raise ValueError(
                f"Rating {rating} is outside scale '{bounds.name}' "
                f"[{bounds.min_rating}, {bounds.max_rating}]"
            )

    def _next(
        self, submission: GoalRatingSubmission, event: SubmissionEvent,
    ) -> SubmissionStatus:
        target = next_submission_status(submission.status, event)
        if target is None:
            raise InvalidTransitionError(
                "submission",
                str(submission.id),
                submission.status.value,
                event.value,
            )
        return target

    def _move(
        self,
        submission_id: UUID,
        expected: SubmissionStatus,
        values: dict,
        extra_criteria=(),
    ) -> GoalRatingSubmission:
        """Conditional update; raises when another writer got there first."""
        if not self._conditional_update(
            GoalRatingSubmission, submission_id, expected, values, extra_criteria,
        ):
            actual = self._reload(GoalRatingSubmission, submission_id)
            logger.warning(
                "submission_concurrent_modification",
                extra={
                    "submission_id": str(submission_id),
                    "expected_status": expected.value,
                    "actual_status": actual.status.value if actual else None,
                },
            )
            raise ConcurrentModificationError(
                "submission",
                str(submission_id),
                expected.value,
                actual.status.value if actual else "missing",
            )
        return self._reload(GoalRatingSubmission, submission_id)

    # ------------------------------------------------------------------
    # Self and manager ratings
    # ------------------------------------------------------------------

    def submit_self(
        self,
        cycle_id: UUID,
        goal_id: UUID,
        employee_id: UUID,
        rating: Decimal,
        comments: str | None = None,
        rating_config_id: UUID | None = None,
    ) -> SubmissionInfo:
        """
        Record or overwrite the employee's self rating of a goal.

        The first call creates the submission, taking its rating
        configuration from ``rating_config_id`` or else from the cycle.
        Later calls overwrite the self rating until a manager has rated.

        Raises:
            CycleNotFoundError: unknown cycle.
            InvalidTransitionError: the manager has already rated.
            ConcurrentModificationError: another writer moved the submission.
            ValueError: rating outside the configuration's scale.
        """
        now = self._clock.now()
        existing = self._find(goal_id, cycle_id)

        if existing is not None:
            target = self._next(existing, SubmissionEvent.SELF_RATE)
            self._check_on_scale(self._config(existing.rating_config_id), rating)
            submission = self._move(
                existing.id,
                existing.status,
                {
                    "status": target,
                    "self_rating": rating,
                    "self_rating_at": now,
                    "self_comments": comments,
                    "updated_by_id": employee_id,
                },
            )
            logger.info(
                "self_rating_updated",
                extra={"submission_id": str(submission.id), "goal_id": str(goal_id)},
            )
            return submission.to_dto()

        cycle = self.session.get(AppraisalCycle, cycle_id)
        if cycle is None:
            raise CycleNotFoundError(str(cycle_id))
        config_id = rating_config_id or cycle.rating_config_id
        self._check_on_scale(self._config(config_id), rating)

        participant = self._participant(cycle_id, employee_id)
        submission = GoalRatingSubmission(
            cycle_id=cycle_id,
            goal_id=goal_id,
            employee_id=employee_id,
            manager_id=participant.manager_id if participant is not None else None,
            rating_config_id=config_id,
            status=SubmissionStatus.SELF_SUBMITTED,
            self_rating=rating,
            self_rating_at=now,
            self_comments=comments,
            is_disputed=False,
            created_by_id=employee_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(submission)
                self.session.flush()
        except IntegrityError:
            raise ConcurrentModificationError(
                "submission",
                f"goal={goal_id}/cycle={cycle_id}",
                SubmissionStatus.NONE.value,
                "created by another writer",
            ) from None

        self._mark_participant_started(cycle_id, employee_id)

        with LogContext.bind(submission_id=str(submission.id), cycle_id=str(cycle_id)):
            logger.info(
                "self_rating_submitted",
                extra={"goal_id": str(goal_id), "employee_id": str(employee_id)},
            )
        return submission.to_dto()

    def submit_manager(
        self,
        cycle_id: UUID,
        goal_id: UUID,
        manager_id: UUID,
        rating: Decimal,
        comments: str | None = None,
        calculated_score: Decimal | None = None,
        final_score: Decimal | None = None,
    ) -> SubmissionInfo:
        """
        Record the manager's rating of a goal.

        ``final_score`` defaults to the raw manager rating when the caller
        supplies none.

        Raises:
            SubmissionNotFoundError: no submission exists for the goal.
            SelfRatingPendingError: the configuration requires a self rating.
            InvalidTransitionError: the rating was already released.
            ConcurrentModificationError: another writer moved the submission.
        """
        submission = self._find(goal_id, cycle_id)
        if submission is None:
            raise SubmissionNotFoundError(goal_id=str(goal_id), cycle_id=str(cycle_id))

        config = self._config(submission.rating_config_id)
        if (
            config is not None
            and config.self_rating_required
            and submission.self_rating is None
        ):
            raise SelfRatingPendingError(str(submission.id), str(goal_id))

        target = self._next(submission, SubmissionEvent.MANAGER_RATE)
        self._check_on_scale(config, rating)

        updated = self._move(
            submission.id,
            submission.status,
            {
                "status": target,
                "manager_id": manager_id,
                "manager_rating": rating,
                "manager_rating_at": self._clock.now(),
                "manager_comments": comments,
                "calculated_score": calculated_score,
                "final_score": final_score if final_score is not None else rating,
                "updated_by_id": manager_id,
            },
        )
        logger.info(
            "manager_rating_submitted",
            extra={
                "submission_id": str(updated.id),
                "goal_id": str(goal_id),
                "final_score": str(updated.final_score),
            },
        )
        return updated.to_dto()

    # ------------------------------------------------------------------
    # Release and acknowledgment
    # ------------------------------------------------------------------

    def release(
        self, submission_id: UUID, released_by: UUID, notify: bool = True,
    ) -> SubmissionInfo:
        """
        Make a manager-rated submission visible to the employee.

        Idempotent: an already released, acknowledged or disputed
        submission is returned unchanged.  Losing a race to another
        releaser returns the state that writer produced.

        Raises:
            SubmissionNotFoundError: unknown submission.
            InvalidTransitionError: the manager has not rated yet, or the
                participant has not been finalized.
        """
        submission = self._get(submission_id)
        if submission.status in ALREADY_RELEASED_STATUSES:
            logger.debug(
                "submission_release_noop",
                extra={
                    "submission_id": str(submission_id),
                    "status": submission.status.value,
                },
            )
            return submission.to_dto()

        target = self._next(submission, SubmissionEvent.RELEASE)
        participant = self._participant(submission.cycle_id, submission.employee_id)
        if (
            participant is None
            or participant.status not in SUBMISSION_RELEASE_PARTICIPANT_STATUSES
        ):
            raise InvalidTransitionError(
                "submission",
                str(submission_id),
                submission.status.value,
                target.value,
                reason="participant not finalized",
            )

        moved = self._conditional_update(
            GoalRatingSubmission,
            submission_id,
            submission.status,
            {
                "status": target,
                "released_at": self._clock.now(),
                "released_by": released_by,
                "updated_by_id": released_by,
            },
        )
        current = self._reload(GoalRatingSubmission, submission_id)
        if not moved:
            logger.info(
                "submission_release_lost_race",
                extra={
                    "submission_id": str(submission_id),
                    "status": current.status.value,
                },
            )
            return current.to_dto()

        if notify:
            self._outbox.enqueue(
                current.employee_id,
                NotificationKind.RATING_RELEASED,
                payload={
                    "submission_id": submission_id,
                    "cycle_id": current.cycle_id,
                    "goal_id": current.goal_id,
                    "final_score": current.final_score,
                },
                dedupe_key=f"rating_released:{submission_id}",
                actor_id=released_by,
            )

        logger.info(
            "submission_released",
            extra={"submission_id": str(submission_id), "notify": notify},
        )
        return current.to_dto()

    def acknowledge(
        self,
        submission_id: UUID,
        employee_id: UUID,
        comments: str | None = None,
    ) -> SubmissionInfo:
        """
        The rated employee confirms they have seen a released rating.

        When every goal of a released participant is acknowledged, the
        participant moves to ``acknowledged`` as well.

        Raises:
            InvalidTransitionError: not released, or not the rated employee.
            ConcurrentModificationError: another writer moved the submission.
        """
        submission = self._get(submission_id)
        target = self._next(submission, SubmissionEvent.ACKNOWLEDGE)
        if submission.employee_id != employee_id:
            raise InvalidTransitionError(
                "submission",
                str(submission_id),
                submission.status.value,
                target.value,
                reason="only the rated employee may acknowledge",
            )

        updated = self._move(
            submission_id,
            submission.status,
            {
                "status": target,
                "acknowledged_at": self._clock.now(),
                "acknowledged_by": employee_id,
                "acknowledgment_comments": comments,
                "updated_by_id": employee_id,
            },
        )
        self._acknowledge_participant_when_done(updated.cycle_id, employee_id)

        logger.info("submission_acknowledged", extra={"submission_id": str(submission_id)})
        return updated.to_dto()

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    def dispute(
        self,
        submission_id: UUID,
        reason: str,
        category: str | None = None,
    ) -> SubmissionInfo:
        """
        Open a dispute on a released or acknowledged rating.

        Raises:
            DisputeAlreadyOpenError: a dispute is open or under review.
            InvalidTransitionError: the rating is not released yet.
            ConcurrentModificationError: another writer moved the submission.
        """
        submission = self._get(submission_id)
        if submission.dispute_status in ACTIVE_DISPUTE_STATUSES:
            raise DisputeAlreadyOpenError(
                str(submission_id), submission.dispute_status.value,
            )
        target = self._next(submission, SubmissionEvent.DISPUTE)
        if not reason or not reason.strip():
            raise ValueError("A dispute requires a reason")

        updated = self._move(
            submission_id,
            submission.status,
            {
                "status": target,
                "is_disputed": True,
                "dispute_status": DisputeStatus.OPEN,
                "dispute_reason": reason,
                "dispute_category": category,
                "disputed_at": self._clock.now(),
                "dispute_resolution": None,
                "dispute_resolved_at": None,
                "dispute_resolved_by": None,
                "updated_by_id": submission.employee_id,
            },
        )

        if updated.manager_id is not None:
            self._outbox.enqueue(
                updated.manager_id,
                NotificationKind.RATING_DISPUTED,
                payload={
                    "submission_id": submission_id,
                    "employee_id": updated.employee_id,
                    "goal_id": updated.goal_id,
                    "category": category,
                },
                actor_id=updated.employee_id,
            )

        logger.info(
            "submission_disputed",
            extra={"submission_id": str(submission_id), "category": category},
        )
        return updated.to_dto()

    def start_dispute_review(self, submission_id: UUID, reviewer_id: UUID) -> SubmissionInfo:
        """
        Move an open dispute to ``under_review``.

        Raises:
            InvalidTransitionError: no open dispute.
            ConcurrentModificationError: another writer moved the submission.
        """
        submission = self._get(submission_id)
        if (
            submission.status != SubmissionStatus.DISPUTED
            or submission.dispute_status != DisputeStatus.OPEN
        ):
            raise InvalidTransitionError(
                "dispute",
                str(submission_id),
                submission.dispute_status.value if submission.dispute_status else "none",
                DisputeStatus.UNDER_REVIEW.value,
                reason="only an open dispute can be taken under review",
            )

        updated = self._move(
            submission_id,
            SubmissionStatus.DISPUTED,
            {"dispute_status": DisputeStatus.UNDER_REVIEW, "updated_by_id": reviewer_id},
            extra_criteria=(GoalRatingSubmission.dispute_status == DisputeStatus.OPEN,),
        )
        logger.info("dispute_under_review", extra={"submission_id": str(submission_id)})
        return updated.to_dto()

    def resolve_dispute(
        self,
        submission_id: UUID,
        resolved_by: UUID,
        resolution: str,
        outcome: DisputeOutcome,
        adjusted_final_score: Decimal | None = None,
    ) -> SubmissionInfo:
        """
        Close a dispute and return the rating to ``released``.

        ``adjusted_final_score`` is applied only when the outcome is
        ``resolved``.  Any earlier acknowledgment is cleared: the employee
        acknowledges the post-dispute rating again.

        Raises:
            InvalidTransitionError: the submission is not disputed.
            ConcurrentModificationError: another writer moved the submission.
        """
        outcome = DisputeOutcome(outcome)
        submission = self._get(submission_id)
        target = self._next(submission, outcome.event)

        values = {
            "status": target,
            "is_disputed": False,
            "dispute_status": outcome.dispute_status,
            "dispute_resolution": resolution,
            "dispute_resolved_at": self._clock.now(),
            "dispute_resolved_by": resolved_by,
            "acknowledged_at": None,
            "acknowledged_by": None,
            "acknowledgment_comments": None,
            "updated_by_id": resolved_by,
        }
        if outcome == DisputeOutcome.RESOLVED and adjusted_final_score is not None:
            values["final_score"] = adjusted_final_score

        updated = self._move(submission_id, submission.status, values)

        self._outbox.enqueue(
            updated.employee_id,
            NotificationKind.DISPUTE_RESOLVED,
            payload={
                "submission_id": submission_id,
                "outcome": outcome,
                "final_score": updated.final_score,
            },
            actor_id=resolved_by,
        )

        logger.info(
            "dispute_resolved",
            extra={
                "submission_id": str(submission_id),
                "outcome": outcome.value,
                "score_adjusted": "final_score" in values,
            },
        )
        return updated.to_dto()

    # ------------------------------------------------------------------
    # Participant bookkeeping
    # ------------------------------------------------------------------

    def _participant(
        self, cycle_id: UUID, employee_id: UUID,
    ) -> AppraisalParticipant | None:
        return self.session.execute(
            select(AppraisalParticipant).where(
                AppraisalParticipant.cycle_id == cycle_id,
                AppraisalParticipant.employee_id == employee_id,
            )
        ).scalar_one_or_none()

    def _mark_participant_started(self, cycle_id: UUID, employee_id: UUID) -> None:
        """First self rating moves a pending participant to in_progress."""
        self._execute_update(
            update(AppraisalParticipant)
            .where(
                AppraisalParticipant.cycle_id == cycle_id,
                AppraisalParticipant.employee_id == employee_id,
                AppraisalParticipant.status == ParticipantStatus.PENDING,
            )
            .values(status=ParticipantStatus.IN_PROGRESS)
        )

    def _acknowledge_participant_when_done(
        self, cycle_id: UUID, employee_id: UUID,
    ) -> None:
        outstanding = self.session.execute(
            select(func.count(GoalRatingSubmission.id)).where(
                GoalRatingSubmission.cycle_id == cycle_id,
                GoalRatingSubmission.employee_id == employee_id,
                GoalRatingSubmission.status != SubmissionStatus.ACKNOWLEDGED,
            )
        ).scalar_one()
        if outstanding:
            return
        changed = self._execute_update(
            update(AppraisalParticipant)
            .where(
                AppraisalParticipant.cycle_id == cycle_id,
                AppraisalParticipant.employee_id == employee_id,
                AppraisalParticipant.status == ParticipantStatus.RELEASED,
            )
            .values(status=ParticipantStatus.ACKNOWLEDGED, updated_by_id=employee_id)
        )
        if changed:
            logger.info(
                "participant_acknowledged",
                extra={"cycle_id": str(cycle_id), "employee_id": str(employee_id)},
            )
"""
Module: appraisal_kernel.selectors.appraisal_selector
Responsibility: Read-side queries for cycles, participants, submissions,
    deferred actions and notification intents, including the candidate
    queries that feed the reconciler.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Candidate queries only return rows a service would accept right now;
      the service still re-checks through a conditional update, so a stale
      candidate is harmless.
"""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from appraisal_kernel.domain.dtos import (
    CycleInfo,
    DeferredActionInfo,
    NotificationIntentInfo,
    ParticipantInfo,
    SubmissionInfo,
)
from appraisal_kernel.domain.lifecycle import (
    ALREADY_RELEASED_STATUSES,
    OVERDUE_ELIGIBLE_STATUSES,
    RELEASABLE_PARTICIPANT_STATUSES,
    CycleStatus,
    DeferredActionStatus,
    ParticipantStatus,
)
from appraisal_kernel.models.cycle import AppraisalCycle
from appraisal_kernel.models.deferred_action import DeferredAction
from appraisal_kernel.models.notification import NotificationIntent
from appraisal_kernel.models.participant import AppraisalParticipant
from appraisal_kernel.models.submission import GoalRatingSubmission
from appraisal_kernel.selectors.base import BaseSelector


class AppraisalSelector(BaseSelector[AppraisalCycle]):
    """Read-only access to appraisal state."""

    # ------------------------------------------------------------------
    # Single-row lookups
    # ------------------------------------------------------------------

    def get_cycle(self, cycle_id: UUID) -> CycleInfo | None:
        cycle = self.session.get(AppraisalCycle, cycle_id)
        return cycle.to_dto() if cycle is not None else None

    def get_participant(self, participant_id: UUID) -> ParticipantInfo | None:
        participant = self.session.get(AppraisalParticipant, participant_id)
        return participant.to_dto() if participant is not None else None

    def get_participant_for_employee(
        self, cycle_id: UUID, employee_id: UUID,
    ) -> ParticipantInfo | None:
        participant = self.session.execute(
            select(AppraisalParticipant).where(
                AppraisalParticipant.cycle_id == cycle_id,
                AppraisalParticipant.employee_id == employee_id,
            )
        ).scalar_one_or_none()
        return participant.to_dto() if participant is not None else None

    def get_submission(self, submission_id: UUID) -> SubmissionInfo | None:
        submission = self.session.get(GoalRatingSubmission, submission_id)
        return submission.to_dto() if submission is not None else None

    def get_submission_for_goal(
        self, goal_id: UUID, cycle_id: UUID,
    ) -> SubmissionInfo | None:
        submission = self.session.execute(
            select(GoalRatingSubmission).where(
                GoalRatingSubmission.goal_id == goal_id,
                GoalRatingSubmission.cycle_id == cycle_id,
            )
        ).scalar_one_or_none()
        return submission.to_dto() if submission is not None else None

    def get_deferred_action(self, action_id: UUID) -> DeferredActionInfo | None:
        action = self.session.get(DeferredAction, action_id, populate_existing=True)
        return action.to_dto() if action is not None else None

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def participants_for_cycle(
        self,
        cycle_id: UUID,
        statuses: Iterable[ParticipantStatus] | None = None,
    ) -> list[ParticipantInfo]:
        stmt = select(AppraisalParticipant).where(
            AppraisalParticipant.cycle_id == cycle_id,
        )
        if statuses is not None:
            stmt = stmt.where(AppraisalParticipant.status.in_(list(statuses)))
        stmt = stmt.order_by(AppraisalParticipant.employee_id)
        return [p.to_dto() for p in self.session.execute(stmt).scalars()]

    def submissions_for_employee(
        self, cycle_id: UUID, employee_id: UUID,
    ) -> list[SubmissionInfo]:
        stmt = (
            select(GoalRatingSubmission)
            .where(
                GoalRatingSubmission.cycle_id == cycle_id,
                GoalRatingSubmission.employee_id == employee_id,
            )
            .order_by(GoalRatingSubmission.goal_id)
        )
        return [s.to_dto() for s in self.session.execute(stmt).scalars()]

    def notifications(
        self,
        recipient_id: UUID | None = None,
        kind: str | None = None,
    ) -> list[NotificationIntentInfo]:
        stmt = select(NotificationIntent)
        if recipient_id is not None:
            stmt = stmt.where(NotificationIntent.recipient_id == recipient_id)
        if kind is not None:
            stmt = stmt.where(NotificationIntent.kind == getattr(kind, "value", kind))
        stmt = stmt.order_by(NotificationIntent.enqueued_at, NotificationIntent.dedupe_key)
        return [n.to_dto() for n in self.session.execute(stmt).scalars()]

    def count_released_submissions_for_config(self, rating_config_id: UUID) -> int:
        """Submissions using the config that have been released at least once."""
        return self.session.execute(
            select(func.count(GoalRatingSubmission.id)).where(
                GoalRatingSubmission.rating_config_id == rating_config_id,
                GoalRatingSubmission.status.in_(list(ALREADY_RELEASED_STATUSES)),
            )
        ).scalar_one()

    # ------------------------------------------------------------------
    # Reconciler candidates
    # ------------------------------------------------------------------

    def find_activation_candidates(self, today: date) -> list[CycleInfo]:
        """Draft cycles with auto-activation on whose start date has come."""
        stmt = (
            select(AppraisalCycle)
            .where(
                AppraisalCycle.status == CycleStatus.DRAFT,
                AppraisalCycle.auto_activate_enabled.is_(True),
                AppraisalCycle.start_date <= today,
            )
            .order_by(AppraisalCycle.start_date, AppraisalCycle.name)
        )
        return [c.to_dto() for c in self.session.execute(stmt).scalars()]

    def find_completion_candidates(self, today: date) -> list[CycleInfo]:
        """Active auto-complete cycles whose end date plus grace has passed."""
        stmt = (
            select(AppraisalCycle)
            .where(
                AppraisalCycle.status == CycleStatus.ACTIVE,
                AppraisalCycle.auto_complete_enabled.is_(True),
                AppraisalCycle.end_date <= today,
            )
            .order_by(AppraisalCycle.end_date, AppraisalCycle.name)
        )
        # Grace varies per row; date arithmetic stays out of dialect SQL
        return [
            cycle
            for cycle in (c.to_dto() for c in self.session.execute(stmt).scalars())
            if cycle.completion_due_date <= today
        ]

    def find_overdue_candidates(self, today: date) -> list[ParticipantInfo]:
        """
        Never-flagged participants of active cycles past their due date.

        The effective due date is the participant's own ``due_date`` or,
        when unset, the cycle's ``evaluation_deadline``.
        """
        effective_due = func.coalesce(
            AppraisalParticipant.due_date, AppraisalCycle.evaluation_deadline,
        )
        stmt = (
            select(AppraisalParticipant)
            .join(AppraisalCycle, AppraisalCycle.id == AppraisalParticipant.cycle_id)
            .where(
                AppraisalCycle.status == CycleStatus.ACTIVE,
                AppraisalParticipant.status.in_(list(OVERDUE_ELIGIBLE_STATUSES)),
                AppraisalParticipant.is_overdue.is_(False),
                effective_due.is_not(None),
                effective_due < today,
            )
            .order_by(AppraisalParticipant.cycle_id, AppraisalParticipant.employee_id)
        )
        return [p.to_dto() for p in self.session.execute(stmt).scalars()]

    def find_releasable_participants(
        self,
        cycle_id: UUID,
        participant_ids: Iterable[UUID] | None = None,
    ) -> list[ParticipantInfo]:
        """Finalized or reviewed participants never released before."""
        stmt = select(AppraisalParticipant).where(
            AppraisalParticipant.cycle_id == cycle_id,
            AppraisalParticipant.status.in_(list(RELEASABLE_PARTICIPANT_STATUSES)),
            AppraisalParticipant.released_at.is_(None),
        )
        if participant_ids is not None:
            stmt = stmt.where(AppraisalParticipant.id.in_(list(participant_ids)))
        stmt = stmt.order_by(AppraisalParticipant.employee_id)
        return [p.to_dto() for p in self.session.execute(stmt).scalars()]

    def find_due_actions(self, today: date) -> list[DeferredActionInfo]:
        """Pending deferred actions whose due date has been reached."""
        stmt = (
            select(DeferredAction)
            .where(
                DeferredAction.status == DeferredActionStatus.PENDING,
                DeferredAction.due_on <= today,
            )
            .order_by(DeferredAction.due_on, DeferredAction.action_type)
        )
        return [a.to_dto() for a in self.session.execute(stmt).scalars()]

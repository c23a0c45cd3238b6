"""
CycleLifecycle -- appraisal cycle activation and completion.

Responsibility:
    Creates cycles and drives them draft -> active -> completed, either
    automatically on their dates (``try_activate`` / ``try_complete``, called
    by the reconciler) or by an administrator (``activate_now`` /
    ``close_now``).  Completion force-completes still-open participants.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - CYCLE_TRANSITIONS is the only source of allowed moves; overrides
      bypass dates, never the table.
    - Every move is a conditional update on the expected status, so two
      reconcilers racing on the same cycle produce one transition and one
      notification.
    - Flush-only; no commit.

Failure modes:
    - CycleNotFoundError for an unknown cycle ID.
    - CycleDatesInvalidError when start_date is after end_date.
    - InvalidTransitionError from the administrative overrides on a
      backward or skipping move.
"""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from appraisal_kernel.domain.clock import Clock, SystemClock
from appraisal_kernel.domain.dtos import CycleInfo
from appraisal_kernel.domain.lifecycle import (
    CycleStatus,
    NotificationKind,
    can_advance_cycle,
)
from appraisal_kernel.exceptions import (
    CycleDatesInvalidError,
    CycleNotFoundError,
    InvalidTransitionError,
)
from appraisal_kernel.logging_config import get_logger
from appraisal_kernel.models.cycle import AppraisalCycle
from appraisal_kernel.selectors.appraisal_selector import AppraisalSelector
from appraisal_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from appraisal_kernel.services.notification_outbox import NotificationOutbox
from appraisal_kernel.services.participant_tracker import ParticipantTracker

logger = get_logger("services.cycle_lifecycle")


class CycleLifecycle(BaseService[AppraisalCycle]):
    """
    Cycle state machine.

    Contract:
        ``try_*`` methods return True only when this call moved the cycle.
        Administrative overrides return the cycle's DTO.

    Non-goals:
        - Does NOT resolve who the HR audience is; it notifies the
          ``hr_audience_id`` it was given, falling back to the cycle's
          organization ID.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        outbox: NotificationOutbox | None = None,
        tracker: ParticipantTracker | None = None,
        hr_audience_id: UUID | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._outbox = outbox or NotificationOutbox(session, self._clock)
        self._tracker = tracker or ParticipantTracker(
            session, self._clock, self._outbox,
        )
        self._hr_audience_id = hr_audience_id
        self._selector = AppraisalSelector(session)

    def _get(self, cycle_id: UUID) -> AppraisalCycle:
        cycle = self.session.get(AppraisalCycle, cycle_id)
        if cycle is None:
            raise CycleNotFoundError(str(cycle_id))
        return cycle

    def _audience(self, cycle: AppraisalCycle) -> UUID:
        return self._hr_audience_id or cycle.organization_id

    def create_cycle(
        self,
        organization_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        evaluation_deadline: date | None = None,
        grace_period_days: int = 0,
        auto_activate_enabled: bool = False,
        auto_complete_enabled: bool = False,
        rating_config_id: UUID | None = None,
    ) -> CycleInfo:
        """
        Create a cycle in ``draft``.

        Raises:
            CycleDatesInvalidError: start_date is after end_date.
            ValueError: negative grace period.
        """
        if start_date > end_date:
            raise CycleDatesInvalidError(start_date, end_date)
        if grace_period_days < 0:
            raise ValueError(
                f"grace_period_days must not be negative, got {grace_period_days}"
            )

        cycle = AppraisalCycle(
            organization_id=organization_id,
            name=name,
            status=CycleStatus.DRAFT,
            start_date=start_date,
            end_date=end_date,
            evaluation_deadline=evaluation_deadline,
            grace_period_days=grace_period_days,
            auto_activate_enabled=auto_activate_enabled,
            auto_complete_enabled=auto_complete_enabled,
            rating_config_id=rating_config_id,
            created_by_id=actor_id,
        )
        self.session.add(cycle)
        self.session.flush()

        logger.info(
            "cycle_created",
            extra={
                "cycle_id": str(cycle.id),
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )
        return cycle.to_dto()

    # ------------------------------------------------------------------
    # Date-driven transitions
    # ------------------------------------------------------------------

    def try_activate(self, cycle_id: UUID) -> bool:
        """
        Activate a draft cycle whose start date has been reached.

        Returns:
            False when auto-activation is off, the date has not come, or the
            cycle is no longer draft (including losing a race).
        """
        cycle = self._get(cycle_id)
        if cycle.status != CycleStatus.DRAFT or not cycle.auto_activate_enabled:
            return False
        if self._clock.today() < cycle.start_date:
            return False
        return self._activate(cycle, SYSTEM_ACTOR_ID, automatic=True)

    def try_complete(self, cycle_id: UUID) -> bool:
        """
        Complete an active cycle once end date plus grace period has passed.

        Still-open participants are force-completed first.
        """
        cycle = self._get(cycle_id)
        if cycle.status != CycleStatus.ACTIVE or not cycle.auto_complete_enabled:
            return False
        if self._clock.today() < cycle.to_dto().completion_due_date:
            return False
        return self._complete(cycle, SYSTEM_ACTOR_ID, automatic=True)

    # ------------------------------------------------------------------
    # Administrative overrides
    # ------------------------------------------------------------------

    def activate_now(self, cycle_id: UUID, actor_id: UUID) -> CycleInfo:
        """
        Activate a draft cycle regardless of its start date.

        Raises:
            InvalidTransitionError: cycle is not draft.
        """
        cycle = self._get(cycle_id)
        self._require_edge(cycle, CycleStatus.ACTIVE)
        self._activate(cycle, actor_id, automatic=False)
        return self._reload(AppraisalCycle, cycle_id).to_dto()

    def close_now(self, cycle_id: UUID, actor_id: UUID) -> CycleInfo:
        """
        Complete an active cycle regardless of its end date.

        Raises:
            InvalidTransitionError: cycle is not active.
        """
        cycle = self._get(cycle_id)
        self._require_edge(cycle, CycleStatus.COMPLETED)
        self._complete(cycle, actor_id, automatic=False)
        return self._reload(AppraisalCycle, cycle_id).to_dto()

    def find_activation_candidates(self, today: date | None = None) -> list[CycleInfo]:
        return self._selector.find_activation_candidates(today or self._clock.today())

    def find_completion_candidates(self, today: date | None = None) -> list[CycleInfo]:
        return self._selector.find_completion_candidates(today or self._clock.today())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_edge(self, cycle: AppraisalCycle, target: CycleStatus) -> None:
        if not can_advance_cycle(cycle.status, target):
            raise InvalidTransitionError(
                "cycle", str(cycle.id), cycle.status.value, target.value,
            )

    def _activate(self, cycle: AppraisalCycle, actor_id: UUID, automatic: bool) -> bool:
        cycle_id = cycle.id
        audience = self._audience(cycle)
        name = cycle.name
        now = self._clock.now()

        values = {"status": CycleStatus.ACTIVE, "updated_by_id": actor_id}
        if automatic:
            values["auto_activated_at"] = now
        if not self._conditional_update(
            AppraisalCycle, cycle_id, CycleStatus.DRAFT, values,
        ):
            logger.info("cycle_activation_skipped", extra={"cycle_id": str(cycle_id)})
            return False

        self._outbox.enqueue(
            audience,
            NotificationKind.CYCLE_ACTIVATED,
            payload={"cycle_id": cycle_id, "name": name, "automatic": automatic},
            dedupe_key=f"cycle_activated:{cycle_id}",
            actor_id=actor_id,
        )
        logger.info(
            "cycle_activated",
            extra={"cycle_id": str(cycle_id), "automatic": automatic},
        )
        return True

    def _complete(self, cycle: AppraisalCycle, actor_id: UUID, automatic: bool) -> bool:
        cycle_id = cycle.id
        audience = self._audience(cycle)
        name = cycle.name
        now = self._clock.now()

        forced = self._tracker.force_complete(cycle_id)

        values = {"status": CycleStatus.COMPLETED, "updated_by_id": actor_id}
        if automatic:
            values["auto_completed_at"] = now
        if not self._conditional_update(
            AppraisalCycle, cycle_id, CycleStatus.ACTIVE, values,
        ):
            logger.info("cycle_completion_skipped", extra={"cycle_id": str(cycle_id)})
            return False

        self._outbox.enqueue(
            audience,
            NotificationKind.CYCLE_COMPLETED,
            payload={
                "cycle_id": cycle_id,
                "name": name,
                "automatic": automatic,
                "force_completed_participants": forced,
            },
            dedupe_key=f"cycle_completed:{cycle_id}",
            actor_id=actor_id,
        )
        logger.info(
            "cycle_completed",
            extra={
                "cycle_id": str(cycle_id),
                "automatic": automatic,
                "force_completed_participants": forced,
            },
        )
        return True

"""
Lifecycle tables (``appraisal_kernel.domain.lifecycle``).

Responsibility
--------------
Closed status enumerations for every stateful entity and the single transition
table per entity.  Services consult these tables before issuing a conditional
update; no caller re-derives transition rules on its own.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Cycle status is monotonic: draft -> active -> completed, no skip.
* Participant transitions follow ``PARTICIPANT_TRANSITIONS``; forced
  completion is the one permitted skip and is limited to
  ``FORCE_COMPLETABLE_PARTICIPANT_STATUSES``.
* Submission transitions are keyed by (state, event) in
  ``SUBMISSION_TRANSITIONS``; acknowledged is only reachable from released.
"""

from __future__ import annotations

from enum import Enum


# =========================================================================
# Cycle
# =========================================================================


class CycleStatus(str, Enum):
    """Appraisal cycle lifecycle states."""

    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"


CYCLE_TRANSITIONS: dict[CycleStatus, frozenset[CycleStatus]] = {
    CycleStatus.DRAFT: frozenset({CycleStatus.ACTIVE}),
    CycleStatus.ACTIVE: frozenset({CycleStatus.COMPLETED}),
    CycleStatus.COMPLETED: frozenset(),
}


# =========================================================================
# Participant
# =========================================================================


class ParticipantStatus(str, Enum):
    """A participant's progress through a cycle's evaluation steps."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FINALIZED = "finalized"
    REVIEWED = "reviewed"
    RELEASED = "released"
    ACKNOWLEDGED = "acknowledged"
    CANCELLED = "cancelled"


# Forward edges reachable through ``advance``.  Cancellation is an
# administrative action with its own entry point.
PARTICIPANT_TRANSITIONS: dict[ParticipantStatus, frozenset[ParticipantStatus]] = {
    ParticipantStatus.PENDING: frozenset({ParticipantStatus.IN_PROGRESS}),
    ParticipantStatus.IN_PROGRESS: frozenset({
        ParticipantStatus.COMPLETED,
        ParticipantStatus.FINALIZED,
    }),
    ParticipantStatus.COMPLETED: frozenset({
        ParticipantStatus.FINALIZED,
        ParticipantStatus.REVIEWED,
    }),
    ParticipantStatus.FINALIZED: frozenset({
        ParticipantStatus.REVIEWED,
        ParticipantStatus.RELEASED,
    }),
    ParticipantStatus.REVIEWED: frozenset({ParticipantStatus.RELEASED}),
    ParticipantStatus.RELEASED: frozenset({ParticipantStatus.ACKNOWLEDGED}),
    # Terminal states
    ParticipantStatus.ACKNOWLEDGED: frozenset(),
    ParticipantStatus.CANCELLED: frozenset(),
}

TERMINAL_PARTICIPANT_STATUSES: frozenset[ParticipantStatus] = frozenset({
    ParticipantStatus.ACKNOWLEDGED,
    ParticipantStatus.CANCELLED,
})

OPEN_PARTICIPANT_STATUSES: frozenset[ParticipantStatus] = frozenset({
    ParticipantStatus.PENDING,
    ParticipantStatus.IN_PROGRESS,
})

# Overdue flagging and forced completion only touch participants still working
OVERDUE_ELIGIBLE_STATUSES = OPEN_PARTICIPANT_STATUSES
FORCE_COMPLETABLE_PARTICIPANT_STATUSES = OPEN_PARTICIPANT_STATUSES

RELEASABLE_PARTICIPANT_STATUSES: frozenset[ParticipantStatus] = frozenset({
    ParticipantStatus.FINALIZED,
    ParticipantStatus.REVIEWED,
})

# A single goal rating may be released once its participant is finalized
SUBMISSION_RELEASE_PARTICIPANT_STATUSES: frozenset[ParticipantStatus] = (
    RELEASABLE_PARTICIPANT_STATUSES
    | frozenset({ParticipantStatus.RELEASED, ParticipantStatus.ACKNOWLEDGED})
)


# =========================================================================
# Goal rating submission
# =========================================================================


class SubmissionStatus(str, Enum):
    """Goal rating submission lifecycle states."""

    NONE = "none"
    SELF_SUBMITTED = "self_submitted"
    MANAGER_SUBMITTED = "manager_submitted"
    RELEASED = "released"
    ACKNOWLEDGED = "acknowledged"
    DISPUTED = "disputed"


class SubmissionEvent(str, Enum):
    """Actions that move a submission."""

    SELF_RATE = "self_rate"
    MANAGER_RATE = "manager_rate"
    RELEASE = "release"
    ACKNOWLEDGE = "acknowledge"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    REJECT = "reject"


SUBMISSION_TRANSITIONS: dict[tuple[SubmissionStatus, SubmissionEvent], SubmissionStatus] = {
    (SubmissionStatus.NONE, SubmissionEvent.SELF_RATE): SubmissionStatus.SELF_SUBMITTED,
    (SubmissionStatus.SELF_SUBMITTED, SubmissionEvent.SELF_RATE): SubmissionStatus.SELF_SUBMITTED,
    (SubmissionStatus.NONE, SubmissionEvent.MANAGER_RATE): SubmissionStatus.MANAGER_SUBMITTED,
    (SubmissionStatus.SELF_SUBMITTED, SubmissionEvent.MANAGER_RATE): SubmissionStatus.MANAGER_SUBMITTED,
    (SubmissionStatus.MANAGER_SUBMITTED, SubmissionEvent.MANAGER_RATE): SubmissionStatus.MANAGER_SUBMITTED,
    (SubmissionStatus.MANAGER_SUBMITTED, SubmissionEvent.RELEASE): SubmissionStatus.RELEASED,
    (SubmissionStatus.RELEASED, SubmissionEvent.ACKNOWLEDGE): SubmissionStatus.ACKNOWLEDGED,
    (SubmissionStatus.RELEASED, SubmissionEvent.DISPUTE): SubmissionStatus.DISPUTED,
    (SubmissionStatus.ACKNOWLEDGED, SubmissionEvent.DISPUTE): SubmissionStatus.DISPUTED,
    (SubmissionStatus.DISPUTED, SubmissionEvent.RESOLVE): SubmissionStatus.RELEASED,
    (SubmissionStatus.DISPUTED, SubmissionEvent.REJECT): SubmissionStatus.RELEASED,
}

# States in which a release request is already satisfied
ALREADY_RELEASED_STATUSES: frozenset[SubmissionStatus] = frozenset({
    SubmissionStatus.RELEASED,
    SubmissionStatus.ACKNOWLEDGED,
    SubmissionStatus.DISPUTED,
})


class DisputeStatus(str, Enum):
    """Dispute sub-state carried on a submission."""

    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    REJECTED = "rejected"


ACTIVE_DISPUTE_STATUSES: frozenset[DisputeStatus] = frozenset({
    DisputeStatus.OPEN,
    DisputeStatus.UNDER_REVIEW,
})


class DisputeOutcome(str, Enum):
    """Outcome chosen when a dispute is closed."""

    RESOLVED = "resolved"
    REJECTED = "rejected"

    @property
    def event(self) -> SubmissionEvent:
        if self is DisputeOutcome.RESOLVED:
            return SubmissionEvent.RESOLVE
        return SubmissionEvent.REJECT

    @property
    def dispute_status(self) -> DisputeStatus:
        return DisputeStatus(self.value)


# =========================================================================
# Rating configuration
# =========================================================================


class CalculationMethod(str, Enum):
    """How a goal's final rating is derived."""

    AUTO = "auto"
    MANUAL = "manual"
    WEIGHTED_AVERAGE = "weighted_average"
    MANAGER_ONLY = "manager_only"


# =========================================================================
# Deferred actions and notifications
# =========================================================================


class DeferredActionStatus(str, Enum):
    """Deferred side-effect lifecycle states."""

    PENDING = "pending"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


class NotificationStatus(str, Enum):
    """Outbox row delivery state (advanced by the external consumer)."""

    PENDING = "pending"
    DISPATCHED = "dispatched"


class NotificationKind(str, Enum):
    """Notification intents produced by the engine."""

    CYCLE_ACTIVATED = "cycle_activated"
    CYCLE_COMPLETED = "cycle_completed"
    PARTICIPANT_OVERDUE = "participant_overdue"
    RATING_RELEASED = "rating_released"
    APPRAISAL_RELEASED = "appraisal_released"
    RATING_DISPUTED = "rating_disputed"
    DISPUTE_RESOLVED = "dispute_resolved"


# =========================================================================
# Helpers
# =========================================================================


def can_advance_participant(
    current: ParticipantStatus, target: ParticipantStatus,
) -> bool:
    """True when ``target`` is a forward edge from ``current``."""
    return target in PARTICIPANT_TRANSITIONS.get(current, frozenset())


def can_advance_cycle(current: CycleStatus, target: CycleStatus) -> bool:
    """True when ``target`` is the next cycle state after ``current``."""
    return target in CYCLE_TRANSITIONS.get(current, frozenset())


def next_submission_status(
    current: SubmissionStatus, event: SubmissionEvent,
) -> SubmissionStatus | None:
    """Resolve (state, event) to the next state, or None if not allowed."""
    return SUBMISSION_TRANSITIONS.get((current, event))


def allowed_submission_sources(event: SubmissionEvent) -> frozenset[SubmissionStatus]:
    """All states from which ``event`` may fire."""
    return frozenset(
        state for (state, evt) in SUBMISSION_TRANSITIONS if evt is event
    )

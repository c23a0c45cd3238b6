"""
DTOs -- Immutable snapshots returned across the service boundary.

Responsibility:
    Frozen dataclasses describing cycles, participants, rating submissions,
    rating configurations, deferred actions and notification intents.
    Services return these instead of ORM instances so callers can never
    mutate persistent state behind a service's back.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  ORM models convert themselves
    via ``to_dto()``; nothing in this module imports from ``models/``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from types import MappingProxyType
from typing import Any
from uuid import UUID

from appraisal_kernel.domain.lifecycle import (
    CalculationMethod,
    CycleStatus,
    DeferredActionStatus,
    DisputeStatus,
    NotificationStatus,
    ParticipantStatus,
    SubmissionStatus,
)


def freeze_payload(payload: dict[str, Any] | None) -> MappingProxyType:
    """Read-only view over a JSON payload (shallow copy first)."""
    return MappingProxyType(dict(payload or {}))


@dataclass(frozen=True)
class CycleInfo:
    """Snapshot of an appraisal cycle."""

    id: UUID
    organization_id: UUID
    name: str
    status: CycleStatus
    start_date: date
    end_date: date
    evaluation_deadline: date | None
    grace_period_days: int
    auto_activate_enabled: bool
    auto_complete_enabled: bool
    auto_activated_at: datetime | None = None
    auto_completed_at: datetime | None = None
    rating_config_id: UUID | None = None

    @property
    def completion_due_date(self) -> date:
        """First date on which auto-completion may fire."""
        return self.end_date + timedelta(days=self.grace_period_days)


@dataclass(frozen=True)
class ParticipantInfo:
    """Snapshot of one employee's participation in a cycle."""

    id: UUID
    cycle_id: UUID
    employee_id: UUID
    status: ParticipantStatus
    is_overdue: bool
    manager_id: UUID | None = None
    due_date: date | None = None
    overdue_notified_at: datetime | None = None
    released_at: datetime | None = None
    released_by: UUID | None = None
    overall_score: Decimal | None = None


@dataclass(frozen=True)
class SubmissionInfo:
    """Snapshot of a goal rating submission."""

    id: UUID
    cycle_id: UUID
    goal_id: UUID
    employee_id: UUID
    status: SubmissionStatus
    manager_id: UUID | None = None
    rating_config_id: UUID | None = None
    self_rating: Decimal | None = None
    self_rating_at: datetime | None = None
    self_comments: str | None = None
    manager_rating: Decimal | None = None
    manager_rating_at: datetime | None = None
    manager_comments: str | None = None
    calculated_score: Decimal | None = None
    final_score: Decimal | None = None
    is_disputed: bool = False
    dispute_category: str | None = None
    dispute_reason: str | None = None
    dispute_status: DisputeStatus | None = None
    disputed_at: datetime | None = None
    dispute_resolution: str | None = None
    dispute_resolved_at: datetime | None = None
    dispute_resolved_by: UUID | None = None
    released_at: datetime | None = None
    released_by: UUID | None = None
    acknowledged_at: datetime | None = None
    acknowledged_by: UUID | None = None
    acknowledgment_comments: str | None = None


@dataclass(frozen=True)
class RatingScaleInfo:
    """Bounds and step of a rating scale."""

    id: UUID | None
    name: str
    min_rating: Decimal
    max_rating: Decimal
    precision: Decimal = Decimal("0.1")

    def __post_init__(self) -> None:
        if self.min_rating >= self.max_rating:
            raise ValueError(
                f"Rating scale min {self.min_rating} must be below "
                f"max {self.max_rating}"
            )
        if self.precision <= 0:
            raise ValueError(
                f"Rating scale precision must be positive, got {self.precision}"
            )

    def clamp(self, value: Decimal) -> Decimal:
        return max(self.min_rating, min(self.max_rating, value))


DEFAULT_RATING_SCALE = RatingScaleInfo(
    id=None,
    name="Five point",
    min_rating=Decimal("1"),
    max_rating=Decimal("5"),
)


@dataclass(frozen=True)
class RatingConfigInfo:
    """How a final rating is computed from its components."""

    id: UUID | None
    name: str
    calculation_method: CalculationMethod
    self_weight: Decimal = Decimal("0")
    manager_weight: Decimal = Decimal("100")
    progress_weight: Decimal = Decimal("0")
    self_rating_required: bool = False
    version: int = 1
    organization_id: UUID | None = None
    rating_scale_id: UUID | None = None
    supersedes_id: UUID | None = None

    @property
    def total_weight(self) -> Decimal:
        return self.self_weight + self.manager_weight + self.progress_weight


@dataclass(frozen=True)
class DeferredActionInfo:
    """Snapshot of a deferred side effect."""

    id: UUID
    organization_id: UUID
    action_type: str
    status: DeferredActionStatus
    payload: MappingProxyType = field(default_factory=lambda: freeze_payload(None))
    participant_id: UUID | None = None
    execute_after_days: int | None = None
    auto_execute_on_date: date | None = None
    due_on: date | None = None
    executed_at: datetime | None = None
    cancelled_at: datetime | None = None
    result: MappingProxyType | None = None


@dataclass(frozen=True)
class NotificationIntentInfo:
    """A durable notification request awaiting delivery."""

    id: UUID
    recipient_id: UUID
    kind: str
    dedupe_key: str
    status: NotificationStatus
    payload: MappingProxyType = field(default_factory=lambda: freeze_payload(None))
    enqueued_at: datetime | None = None
    dispatched_at: datetime | None = None

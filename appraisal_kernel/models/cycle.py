"""
Module: appraisal_kernel.models.cycle
Responsibility: ORM persistence for appraisal cycles -- the time-boxed
    evaluation windows that own participants.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Status is monotonic: draft -> active -> completed.  Writes go through
      CycleLifecycle, which issues conditional updates against
      CYCLE_TRANSITIONS.
    - A cycle is never deleted while participants reference it
      (ondelete=RESTRICT on the participant FK).

Failure modes:
    - CycleNotFoundError when a service is handed an unknown ID.
    - InvalidTransitionError on any backward or skipping move.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from appraisal_kernel.db.base import TrackedBase, UUIDString
from appraisal_kernel.db.types import StatusEnum
from appraisal_kernel.domain.dtos import CycleInfo
from appraisal_kernel.domain.lifecycle import CycleStatus


class AppraisalCycle(TrackedBase):
    """
    Appraisal cycle.

    Contract:
        ``start_date <= end_date`` (checked by CycleLifecycle.create_cycle).
        Completion may fire from ``end_date + grace_period_days`` onward.
    """

    __tablename__ = "appraisal_cycles"

    __table_args__ = (
        Index("idx_cycle_status", "status"),
        Index("idx_cycle_org", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[CycleStatus] = mapped_column(
        StatusEnum(CycleStatus),
        default=CycleStatus.DRAFT,
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Default due date for participants without their own
    evaluation_deadline: Mapped[date | None] = mapped_column(Date, nullable=True)

    grace_period_days: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False,
    )

    auto_activate_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    auto_complete_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )

    auto_activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    auto_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Default rating configuration for submissions in this cycle
    rating_config_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AppraisalCycle {self.name}: {self.status.value}>"

    def to_dto(self) -> CycleInfo:
        return CycleInfo(
            id=self.id,
            organization_id=self.organization_id,
            name=self.name,
            status=self.status,
            start_date=self.start_date,
            end_date=self.end_date,
            evaluation_deadline=self.evaluation_deadline,
            grace_period_days=self.grace_period_days,
            auto_activate_enabled=self.auto_activate_enabled,
            auto_complete_enabled=self.auto_complete_enabled,
            auto_activated_at=self.auto_activated_at,
            auto_completed_at=self.auto_completed_at,
            rating_config_id=self.rating_config_id,
        )

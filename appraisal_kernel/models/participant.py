"""
Module: appraisal_kernel.models.participant
Responsibility: ORM persistence for an employee's participation in a cycle.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One row per (cycle_id, employee_id) (uq_participant_cycle_employee).
    - is_overdue is only raised while status is pending/in_progress, except
      by forced completion at cycle close.
    - released_at is written at most once (conditional update on NULL).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from appraisal_kernel.db.base import TrackedBase, UUIDString
from appraisal_kernel.db.types import RATING_TYPE, StatusEnum
from appraisal_kernel.domain.dtos import ParticipantInfo
from appraisal_kernel.domain.lifecycle import ParticipantStatus


class AppraisalParticipant(TrackedBase):
    """An employee being evaluated in one appraisal cycle."""

    __tablename__ = "appraisal_participants"

    __table_args__ = (
        UniqueConstraint(
            "cycle_id", "employee_id", name="uq_participant_cycle_employee",
        ),
        Index("idx_participant_status", "cycle_id", "status"),
        Index("idx_participant_overdue", "is_overdue", "status"),
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("appraisal_cycles.id", ondelete="RESTRICT"),
        nullable=False,
    )

    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    manager_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[ParticipantStatus] = mapped_column(
        StatusEnum(ParticipantStatus),
        default=ParticipantStatus.PENDING,
        nullable=False,
    )

    # Falls back to the cycle's evaluation_deadline when NULL
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_overdue: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    overdue_notified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    released_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    overall_score: Mapped[Decimal | None] = mapped_column(RATING_TYPE, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AppraisalParticipant {self.employee_id} in {self.cycle_id}: "
            f"{self.status.value}>"
        )

    def to_dto(self) -> ParticipantInfo:
        return ParticipantInfo(
            id=self.id,
            cycle_id=self.cycle_id,
            employee_id=self.employee_id,
            manager_id=self.manager_id,
            status=self.status,
            due_date=self.due_date,
            is_overdue=self.is_overdue,
            overdue_notified_at=self.overdue_notified_at,
            released_at=self.released_at,
            released_by=self.released_by,
            overall_score=self.overall_score,
        )

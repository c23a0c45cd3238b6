"""
Module: appraisal_kernel.models.deferred_action
Responsibility: ORM persistence for deferred side effects scheduled by
    appraisal outcome rules and executed by the reconciler.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - An action leaves ``pending`` exactly once (conditional update in
      DeferredActionExecutor), so re-running the reconciler never executes
      an action twice.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column

from appraisal_kernel.db.base import TrackedBase, UUIDString
from appraisal_kernel.db.types import StatusEnum
from appraisal_kernel.domain.dtos import DeferredActionInfo, freeze_payload
from appraisal_kernel.domain.lifecycle import DeferredActionStatus


class DeferredAction(TrackedBase):
    """
    A side effect due on or after a date.

    Due when ``auto_execute_on_date <= today`` or, failing that, when
    ``created_at`` date plus ``execute_after_days`` has been reached.
    """

    __tablename__ = "deferred_actions"

    __table_args__ = (
        Index("idx_deferred_action_status", "status"),
        Index("idx_deferred_action_due", "status", "due_on"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    participant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    action_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    execute_after_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    auto_execute_on_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Resolved at scheduling time from the two fields above
    due_on: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[DeferredActionStatus] = mapped_column(
        StatusEnum(DeferredActionStatus),
        default=DeferredActionStatus.PENDING,
        nullable=False,
    )

    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<DeferredAction {self.action_type}: {self.status.value}>"

    def to_dto(self) -> DeferredActionInfo:
        return DeferredActionInfo(
            id=self.id,
            organization_id=self.organization_id,
            participant_id=self.participant_id,
            action_type=self.action_type,
            payload=freeze_payload(self.payload),
            execute_after_days=self.execute_after_days,
            auto_execute_on_date=self.auto_execute_on_date,
            due_on=self.due_on,
            status=self.status,
            executed_at=self.executed_at,
            cancelled_at=self.cancelled_at,
            result=freeze_payload(self.result) if self.result is not None else None,
        )

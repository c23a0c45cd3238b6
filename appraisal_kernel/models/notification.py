"""
Module: appraisal_kernel.models.notification
Responsibility: Transactional outbox of notification intents.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - ``dedupe_key`` is UNIQUE: the same logical notification (for example
      "rating released for submission X") is recorded at most once, no
      matter how many times the triggering transition is retried.
    - Rows are written in the same transaction as the state change that
      caused them; delivery is an external consumer's job.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column

from appraisal_kernel.db.base import TrackedBase, UUIDString
from appraisal_kernel.db.types import StatusEnum
from appraisal_kernel.domain.dtos import NotificationIntentInfo, freeze_payload
from appraisal_kernel.domain.lifecycle import NotificationStatus


class NotificationIntent(TrackedBase):
    """A notification the engine has decided to send."""

    __tablename__ = "notification_outbox"

    __table_args__ = (
        Index("idx_outbox_status", "status", "enqueued_at"),
        Index("idx_outbox_recipient", "recipient_id"),
    )

    recipient_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    dedupe_key: Mapped[str] = mapped_column(
        String(300), nullable=False, unique=True,
    )
    status: Mapped[NotificationStatus] = mapped_column(
        StatusEnum(NotificationStatus),
        default=NotificationStatus.PENDING,
        nullable=False,
    )
    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    dispatched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<NotificationIntent {self.kind} -> {self.recipient_id}>"

    def to_dto(self) -> NotificationIntentInfo:
        return NotificationIntentInfo(
            id=self.id,
            recipient_id=self.recipient_id,
            kind=self.kind,
            payload=freeze_payload(self.payload),
            dedupe_key=self.dedupe_key,
            status=self.status,
            enqueued_at=self.enqueued_at,
            dispatched_at=self.dispatched_at,
        )

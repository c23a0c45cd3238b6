"""
Module: appraisal_kernel.models.submission
Responsibility: ORM persistence for goal rating submissions -- the self and
    manager ratings of one goal in one cycle, their release, acknowledgment
    and dispute trail.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One submission per (goal_id, cycle_id) (uq_submission_goal_cycle).
    - final_score is only meaningful once status is released or acknowledged.
    - is_disputed is true exactly while status is disputed.
    - Status changes go through RatingSubmissionMachine and
      SUBMISSION_TRANSITIONS; nothing else writes ``status``.

Audit relevance:
    The row carries who released, acknowledged and resolved it, and when.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from appraisal_kernel.db.base import TrackedBase, UUIDString
from appraisal_kernel.db.types import LONG_TEXT_TYPE, RATING_TYPE, StatusEnum
from appraisal_kernel.domain.dtos import SubmissionInfo
from appraisal_kernel.domain.lifecycle import DisputeStatus, SubmissionStatus


class GoalRatingSubmission(TrackedBase):
    """Ratings for one goal of one employee in one cycle."""

    __tablename__ = "goal_rating_submissions"

    __table_args__ = (
        UniqueConstraint("goal_id", "cycle_id", name="uq_submission_goal_cycle"),
        Index("idx_submission_employee", "cycle_id", "employee_id"),
        Index("idx_submission_status", "status"),
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("appraisal_cycles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    goal_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    manager_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    rating_config_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("rating_configs.id", ondelete="RESTRICT"),
        nullable=True,
    )

    status: Mapped[SubmissionStatus] = mapped_column(
        StatusEnum(SubmissionStatus),
        default=SubmissionStatus.NONE,
        nullable=False,
    )

    # Self rating
    self_rating: Mapped[Decimal | None] = mapped_column(RATING_TYPE, nullable=True)
    self_rating_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    self_comments: Mapped[str | None] = mapped_column(
        LONG_TEXT_TYPE, nullable=True,
    )

    # Manager rating
    manager_rating: Mapped[Decimal | None] = mapped_column(RATING_TYPE, nullable=True)
    manager_rating_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    manager_comments: Mapped[str | None] = mapped_column(
        LONG_TEXT_TYPE, nullable=True,
    )

    calculated_score: Mapped[Decimal | None] = mapped_column(RATING_TYPE, nullable=True)
    final_score: Mapped[Decimal | None] = mapped_column(RATING_TYPE, nullable=True)

    # Dispute
    is_disputed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    dispute_category: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
    )
    dispute_reason: Mapped[str | None] = mapped_column(
        LONG_TEXT_TYPE, nullable=True,
    )
    dispute_status: Mapped[DisputeStatus | None] = mapped_column(
        StatusEnum(DisputeStatus), nullable=True,
    )
    disputed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    dispute_resolution: Mapped[str | None] = mapped_column(
        LONG_TEXT_TYPE, nullable=True,
    )
    dispute_resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    dispute_resolved_by: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )

    # Release / acknowledgment
    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    released_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    acknowledged_by: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    acknowledgment_comments: Mapped[str | None] = mapped_column(
        LONG_TEXT_TYPE, nullable=True,
    )

    def __repr__(self) -> str:
        return f"<GoalRatingSubmission goal={self.goal_id}: {self.status.value}>"

    def to_dto(self) -> SubmissionInfo:
        return SubmissionInfo(
            id=self.id,
            cycle_id=self.cycle_id,
            goal_id=self.goal_id,
            employee_id=self.employee_id,
            manager_id=self.manager_id,
            rating_config_id=self.rating_config_id,
            status=self.status,
            self_rating=self.self_rating,
            self_rating_at=self.self_rating_at,
            self_comments=self.self_comments,
            manager_rating=self.manager_rating,
            manager_rating_at=self.manager_rating_at,
            manager_comments=self.manager_comments,
            calculated_score=self.calculated_score,
            final_score=self.final_score,
            is_disputed=self.is_disputed,
            dispute_category=self.dispute_category,
            dispute_reason=self.dispute_reason,
            dispute_status=self.dispute_status,
            disputed_at=self.disputed_at,
            dispute_resolution=self.dispute_resolution,
            dispute_resolved_at=self.dispute_resolved_at,
            dispute_resolved_by=self.dispute_resolved_by,
            released_at=self.released_at,
            released_by=self.released_by,
            acknowledged_at=self.acknowledged_at,
            acknowledged_by=self.acknowledged_by,
            acknowledgment_comments=self.acknowledgment_comments,
        )

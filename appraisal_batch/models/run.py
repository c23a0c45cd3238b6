"""
ORM model for reconciler run records.

Contract:
    ReconcilerRunModel persists the counts and errors of each
    ``Reconciler.run()`` so operators can see what the scheduler did.

Architecture: appraisal_batch/models. Imports from appraisal_kernel.db.base only.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column

from appraisal_batch.domain.types import ReconcilerSummary
from appraisal_kernel.db.base import TrackedBase


class ReconcilerRunModel(TrackedBase):
    """One reconciler run."""

    __tablename__ = "reconciler_runs"

    __table_args__ = (
        Index("ix_reconciler_runs_run_date", "run_date"),
    )

    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    activated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    overdue_participants: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    actions_executed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<ReconcilerRun {self.run_date}: {self.status}>"

    def to_dto(self) -> ReconcilerSummary:
        return ReconcilerSummary(
            run_id=self.id,
            run_date=self.run_date,
            activated=self.activated,
            completed=self.completed,
            overdue_participants=self.overdue_participants,
            actions_executed=self.actions_executed,
            errors=tuple(self.errors or ()),
            started_at=self.started_at,
            finished_at=self.finished_at,
        )

    @classmethod
    def from_dto(cls, summary: ReconcilerSummary, created_by_id) -> ReconcilerRunModel:
        return cls(
            id=summary.run_id,
            run_date=summary.run_date,
            status=summary.status.value,
            activated=summary.activated,
            completed=summary.completed,
            overdue_participants=summary.overdue_participants,
            actions_executed=summary.actions_executed,
            error_count=len(summary.errors),
            errors=list(summary.errors),
            started_at=summary.started_at,
            finished_at=summary.finished_at,
            created_by_id=created_by_id,
        )

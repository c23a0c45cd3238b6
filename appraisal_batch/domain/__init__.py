"""appraisal_batch.domain -- Pure types for scheduled reconciliation."""

from appraisal_batch.domain.types import (
    ReconcilerRunStatus,
    ReconcilerStep,
    ReconcilerSummary,
)

__all__ = ["ReconcilerRunStatus", "ReconcilerStep", "ReconcilerSummary"]

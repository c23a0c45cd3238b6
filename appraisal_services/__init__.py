"""Orchestration services over the appraisal kernel and engines."""

from appraisal_services.bulk_release import (
    BulkReleaseOrchestrator,
    BulkReleaseResult,
    BulkReleaseStatus,
)
from appraisal_services.manager_rating import ManagerRatingService

__all__ = [
    "BulkReleaseOrchestrator",
    "BulkReleaseResult",
    "BulkReleaseStatus",
    "ManagerRatingService",
]

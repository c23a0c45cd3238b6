"""
Pure domain layer.

This module contains the lifecycle tables, frozen DTOs and the clock
abstraction with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (other than SystemClock)
"""

from appraisal_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
)
from appraisal_kernel.domain.dtos import (
    DEFAULT_RATING_SCALE,
    CycleInfo,
    DeferredActionInfo,
    NotificationIntentInfo,
    ParticipantInfo,
    RatingConfigInfo,
    RatingScaleInfo,
    SubmissionInfo,
)
from appraisal_kernel.domain.lifecycle import (
    CYCLE_TRANSITIONS,
    PARTICIPANT_TRANSITIONS,
    SUBMISSION_TRANSITIONS,
    CalculationMethod,
    CycleStatus,
    DeferredActionStatus,
    DisputeOutcome,
    DisputeStatus,
    NotificationKind,
    NotificationStatus,
    ParticipantStatus,
    SubmissionEvent,
    SubmissionStatus,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # DTOs
    "CycleInfo",
    "ParticipantInfo",
    "SubmissionInfo",
    "RatingConfigInfo",
    "RatingScaleInfo",
    "DEFAULT_RATING_SCALE",
    "DeferredActionInfo",
    "NotificationIntentInfo",
    # Lifecycle
    "CycleStatus",
    "ParticipantStatus",
    "SubmissionStatus",
    "SubmissionEvent",
    "DisputeStatus",
    "DisputeOutcome",
    "CalculationMethod",
    "DeferredActionStatus",
    "NotificationStatus",
    "NotificationKind",
    "CYCLE_TRANSITIONS",
    "PARTICIPANT_TRANSITIONS",
    "SUBMISSION_TRANSITIONS",
]

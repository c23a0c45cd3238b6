"""Services for the appraisal kernel (write side)."""

from appraisal_kernel.services.base import SYSTEM_ACTOR_ID, BaseService
from appraisal_kernel.services.cycle_lifecycle import CycleLifecycle
from appraisal_kernel.services.deferred_actions import (
    DeferredActionExecutor,
    DeferredRunResult,
    HandlerRegistry,
    default_handler_registry,
)
from appraisal_kernel.services.notification_outbox import NotificationOutbox
from appraisal_kernel.services.participant_tracker import ParticipantTracker
from appraisal_kernel.services.rating_config_service import RatingConfigService
from appraisal_kernel.services.rating_submission import RatingSubmissionMachine

__all__ = [
    "BaseService",
    "CycleLifecycle",
    "DeferredActionExecutor",
    "DeferredRunResult",
    "HandlerRegistry",
    "NotificationOutbox",
    "ParticipantTracker",
    "RatingConfigService",
    "RatingSubmissionMachine",
    "SYSTEM_ACTOR_ID",
    "default_handler_registry",
]

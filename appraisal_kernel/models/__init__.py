"""ORM models for the appraisal kernel."""

from appraisal_kernel.models.cycle import AppraisalCycle
from appraisal_kernel.models.deferred_action import DeferredAction
from appraisal_kernel.models.notification import NotificationIntent
from appraisal_kernel.models.participant import AppraisalParticipant
from appraisal_kernel.models.rating_config import RatingConfig, RatingScale
from appraisal_kernel.models.submission import GoalRatingSubmission

__all__ = [
    "AppraisalCycle",
    "AppraisalParticipant",
    "GoalRatingSubmission",
    "RatingConfig",
    "RatingScale",
    "DeferredAction",
    "NotificationIntent",
]

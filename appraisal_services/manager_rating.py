"""
appraisal_services.manager_rating -- Manager rating with a computed final score.

Responsibility:
    Record a manager's rating of a goal after composing the final score
    from the goal's rating configuration with ScoreCalculator.  The kernel
    state machine stores whatever score it is given; this service is where
    the calculation method is applied.

Architecture position:
    Services -- orchestration over the kernel and engines.

Failure modes:
    - SubmissionNotFoundError / SelfRatingPendingError, raised before any
      score is computed.
    - MissingRatingInputError from the calculator.
    - Everything RatingSubmissionMachine.submit_manager raises.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from appraisal_engines.scoring import ScoreCalculator, progress_to_scale
from appraisal_kernel.domain.clock import Clock, SystemClock
from appraisal_kernel.domain.dtos import DEFAULT_RATING_SCALE, SubmissionInfo
from appraisal_kernel.exceptions import SelfRatingPendingError, SubmissionNotFoundError
from appraisal_kernel.logging_config import get_logger
from appraisal_kernel.selectors.appraisal_selector import AppraisalSelector
from appraisal_kernel.services.notification_outbox import NotificationOutbox
from appraisal_kernel.services.rating_config_service import RatingConfigService
from appraisal_kernel.services.rating_submission import RatingSubmissionMachine

logger = get_logger("services.manager_rating")


class ManagerRatingService:
    """Applies the goal's calculation method, then records the manager rating."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        outbox: NotificationOutbox | None = None,
        calculator: ScoreCalculator | None = None,
    ):
        self._clock = clock or SystemClock()
        self._machine = RatingSubmissionMachine(
            session, self._clock, outbox or NotificationOutbox(session, self._clock),
        )
        self._configs = RatingConfigService(session)
        self._selector = AppraisalSelector(session)
        self._calculator = calculator or ScoreCalculator()

    def rate(
        self,
        cycle_id: UUID,
        goal_id: UUID,
        manager_id: UUID,
        rating: Decimal,
        comments: str | None = None,
        progress_percent: Decimal | None = None,
    ) -> SubmissionInfo:
        """
        Rate a goal as its manager.

        ``progress_percent`` (0-100) is mapped onto the rating scale before
        it is weighted.  Without a rating configuration the final score is
        the manager's rating.
        """
        submission = self._selector.get_submission_for_goal(goal_id, cycle_id)
        if submission is None:
            raise SubmissionNotFoundError(goal_id=str(goal_id), cycle_id=str(cycle_id))

        if submission.rating_config_id is None:
            return self._machine.submit_manager(
                cycle_id, goal_id, manager_id, rating, comments=comments,
            )

        config = self._configs.get_config(submission.rating_config_id)
        if config.self_rating_required and submission.self_rating is None:
            raise SelfRatingPendingError(str(submission.id), str(goal_id))

        scale = self._configs.scale_for_config(config)
        progress = None
        if progress_percent is not None:
            progress = progress_to_scale(progress_percent, scale or DEFAULT_RATING_SCALE)

        score = self._calculator.compute(
            submission.self_rating, rating, progress, config, scale,
        )
        logger.info(
            "manager_score_calculated",
            extra={
                "submission_id": str(submission.id),
                "calculation_method": config.calculation_method.value,
                "calculated_score": str(score),
            },
        )
        return self._machine.submit_manager(
            cycle_id,
            goal_id,
            manager_id,
            rating,
            comments=comments,
            calculated_score=score,
            final_score=score,
        )

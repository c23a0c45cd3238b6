"""
Typed Exception Hierarchy for the Appraisal Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (UI handlers, the reconciler, bulk jobs) must be able
to tell *which* precondition failed without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        machine.submit_manager(...)
    except Exception as e:
        if "self-rating" in str(e):  # FRAGILE - message might change
            explain_self_rating()

Example - RIGHT way (what this module enables):
    try:
        machine.submit_manager(...)
    except SelfRatingPendingError as e:
        return {"error": e.code, "submission_id": e.submission_id}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AppraisalKernelError (base)
    |
    +-- NotFoundError
    |   +-- CycleNotFoundError
    |   +-- ParticipantNotFoundError
    |   +-- SubmissionNotFoundError          (NO_SUBMISSION_FOUND)
    |   +-- RatingConfigNotFoundError
    |   +-- RatingScaleNotFoundError
    |   +-- DeferredActionNotFoundError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |   +-- SelfRatingPendingError
    |   +-- DisputeAlreadyOpenError
    |
    +-- ConfigurationError
    |   +-- WeightConfigurationInvalidError
    |   +-- RatingConfigImmutableError
    |   +-- CycleDatesInvalidError
    |   +-- DeferredActionHandlerNotFoundError
    |
    +-- ScoringError
    |   +-- MissingRatingInputError
    |
    +-- ConcurrencyError
        +-- ConcurrentModificationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Not found       | CYCLE_NOT_FOUND               | Cycle ID doesn't exist
                | PARTICIPANT_NOT_FOUND         | Participant ID doesn't exist
                | NO_SUBMISSION_FOUND           | No rating submission for goal/cycle
                | RATING_CONFIG_NOT_FOUND       | Rating config ID doesn't exist
                | RATING_SCALE_NOT_FOUND        | Rating scale ID doesn't exist
                | DEFERRED_ACTION_NOT_FOUND     | Deferred action ID doesn't exist
----------------|-------------------------------|---------------------------------------
Transition      | INVALID_TRANSITION            | State change violates the machine
                | SELF_RATING_PENDING           | Manager rated before required self-rating
                | DISPUTE_ALREADY_OPEN          | Second dispute while one is open
----------------|-------------------------------|---------------------------------------
Configuration   | WEIGHT_CONFIGURATION_INVALID  | Weights don't sum to 100
                | RATING_CONFIG_IMMUTABLE       | Editing a config used by released ratings
                | CYCLE_DATES_INVALID           | Cycle start_date after end_date
                | DEFERRED_ACTION_HANDLER_...   | No handler for an action type
----------------|-------------------------------|---------------------------------------
Scoring         | MISSING_RATING_INPUT          | Required score component absent
----------------|-------------------------------|---------------------------------------
Concurrency     | CONCURRENT_MODIFICATION       | Conditional update matched zero rows

===============================================================================
HANDLING PATTERNS
===============================================================================

1. BENIGN CONFLICTS ARE NOT RAISED:
   release / activate / complete losing a race re-read the row and return the
   current state.  Only user-initiated actions (submit, acknowledge, dispute,
   resolve) raise ConcurrentModificationError.

2. BULK OPERATIONS COLLECT, NEVER RAISE PER ITEM:
   BulkReleaseOrchestrator and the Reconciler turn each item's exception into
   an ``errors`` entry using ``str(exc)``, so every message below must name
   the failed precondition.
"""

from datetime import date
from decimal import Decimal


class AppraisalKernelError(Exception):
    """
    Base exception for all appraisal kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPRAISAL_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(AppraisalKernelError):
    """Base exception for missing referenced records."""

    code: str = "NOT_FOUND"


class CycleNotFoundError(NotFoundError):
    """Appraisal cycle with given ID was not found."""

    code: str = "CYCLE_NOT_FOUND"

    def __init__(self, cycle_id: str):
        self.cycle_id = cycle_id
        super().__init__(f"Appraisal cycle not found: {cycle_id}")


class ParticipantNotFoundError(NotFoundError):
    """Participant with given ID was not found."""

    code: str = "PARTICIPANT_NOT_FOUND"

    def __init__(self, participant_id: str):
        self.participant_id = participant_id
        super().__init__(f"Appraisal participant not found: {participant_id}")


class SubmissionNotFoundError(NotFoundError):
    """No goal rating submission exists for the requested goal/cycle or ID."""

    code: str = "NO_SUBMISSION_FOUND"

    def __init__(
        self,
        goal_id: str | None = None,
        cycle_id: str | None = None,
        submission_id: str | None = None,
    ):
        self.goal_id = goal_id
        self.cycle_id = cycle_id
        self.submission_id = submission_id
        if submission_id is not None:
            message = f"No rating submission found: {submission_id}"
        else:
            message = (
                f"No rating submission found for goal {goal_id} "
                f"in cycle {cycle_id}; the employee must self-rate first"
            )
        super().__init__(message)


class RatingConfigNotFoundError(NotFoundError):
    """Rating configuration with given ID was not found."""

    code: str = "RATING_CONFIG_NOT_FOUND"

    def __init__(self, rating_config_id: str):
        self.rating_config_id = rating_config_id
        super().__init__(f"Rating configuration not found: {rating_config_id}")


class RatingScaleNotFoundError(NotFoundError):
    """Rating scale with given ID was not found."""

    code: str = "RATING_SCALE_NOT_FOUND"

    def __init__(self, rating_scale_id: str):
        self.rating_scale_id = rating_scale_id
        super().__init__(f"Rating scale not found: {rating_scale_id}")


class DeferredActionNotFoundError(NotFoundError):
    """Deferred action with given ID was not found."""

    code: str = "DEFERRED_ACTION_NOT_FOUND"

    def __init__(self, action_id: str):
        self.action_id = action_id
        super().__init__(f"Deferred action not found: {action_id}")


# Transition exceptions


class TransitionError(AppraisalKernelError):
    """Base exception for rejected state changes."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """Requested state change violates the entity's state machine."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity: str,
        entity_id: str,
        current_status: str,
        target: str,
        reason: str | None = None,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.current_status = current_status
        self.target = target
        self.reason = reason
        message = (
            f"Cannot move {entity} {entity_id} from '{current_status}' "
            f"to '{target}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SelfRatingPendingError(TransitionError):
    """Manager attempted to rate before the required self-rating exists."""

    code: str = "SELF_RATING_PENDING"

    def __init__(self, submission_id: str, goal_id: str):
        self.submission_id = submission_id
        self.goal_id = goal_id
        super().__init__(
            f"Self-rating required before manager can rate goal {goal_id} "
            f"(submission {submission_id})"
        )


class DisputeAlreadyOpenError(TransitionError):
    """A dispute is already open or under review for this submission."""

    code: str = "DISPUTE_ALREADY_OPEN"

    def __init__(self, submission_id: str, dispute_status: str):
        self.submission_id = submission_id
        self.dispute_status = dispute_status
        super().__init__(
            f"Submission {submission_id} already has a dispute in "
            f"status '{dispute_status}'"
        )


# Configuration exceptions


class ConfigurationError(AppraisalKernelError):
    """Base exception for invalid rating configuration."""

    code: str = "CONFIGURATION_ERROR"


class WeightConfigurationInvalidError(ConfigurationError):
    """Weights of a weighted_average configuration do not sum to 100."""

    code: str = "WEIGHT_CONFIGURATION_INVALID"

    def __init__(
        self,
        self_weight: Decimal,
        manager_weight: Decimal,
        progress_weight: Decimal,
        reason: str | None = None,
    ):
        self.self_weight = self_weight
        self.manager_weight = manager_weight
        self.progress_weight = progress_weight
        total = self_weight + manager_weight + progress_weight
        self.total = total
        super().__init__(
            reason
            or (
                f"Weighted average weights must sum to 100, got {total} "
                f"(self={self_weight}, manager={manager_weight}, "
                f"progress={progress_weight})"
            )
        )


class RatingConfigImmutableError(ConfigurationError):
    """Rating configuration is referenced by released ratings."""

    code: str = "RATING_CONFIG_IMMUTABLE"

    def __init__(self, rating_config_id: str, released_count: int):
        self.rating_config_id = rating_config_id
        self.released_count = released_count
        super().__init__(
            f"Rating configuration {rating_config_id} is referenced by "
            f"{released_count} released rating(s); create a new version instead"
        )


class DeferredActionHandlerNotFoundError(ConfigurationError):
    """No handler is registered for a deferred action type."""

    code: str = "DEFERRED_ACTION_HANDLER_NOT_FOUND"

    def __init__(self, action_type: str, available: tuple[str, ...]):
        self.action_type = action_type
        self.available = available
        super().__init__(
            f"No handler registered for deferred action type '{action_type}'. "
            f"Available: {list(available)}"
        )


# Scoring exceptions


class ScoringError(AppraisalKernelError):
    """Base exception for score calculation failures."""

    code: str = "SCORING_ERROR"


class MissingRatingInputError(ScoringError):
    """A component required by the calculation method is absent."""

    code: str = "MISSING_RATING_INPUT"

    def __init__(self, component: str, calculation_method: str):
        self.component = component
        self.calculation_method = calculation_method
        super().__init__(
            f"Calculation method '{calculation_method}' requires a "
            f"{component} value"
        )


# Concurrency exceptions


class ConcurrencyError(AppraisalKernelError):
    """Base exception for concurrency conflicts."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """A conditional update matched zero rows: another caller moved the row."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity: str,
        entity_id: str,
        expected_status: str,
        actual_status: str,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"{entity} {entity_id} was modified concurrently: expected "
            f"status '{expected_status}', found '{actual_status}'"
        )


class CycleDatesInvalidError(ConfigurationError):
    """Cycle date range is inconsistent."""

    code: str = "CYCLE_DATES_INVALID"

    def __init__(self, start_date: date, end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Cycle start_date {start_date} must not be after end_date {end_date}"
        )

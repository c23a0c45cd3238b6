"""
appraisal_engines.scoring -- Final rating composition from self, manager and progress inputs.

Responsibility:
    Compute a goal's final score according to its rating configuration's
    calculation method, and map completion percentages onto a rating scale.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import appraisal_kernel/domain, db.types and logging.
    Consumed by appraisal_services.manager_rating, which hands the
    computed score to RatingSubmissionMachine.submit_manager.

Invariants enforced:
    - Decimal-only arithmetic; floats are rejected.
    - weighted_average weights are NOT renormalized when a component is
      missing: the missing component contributes nothing.
    - Results are rounded ROUND_HALF_UP to the scale's precision step.
    - Purity: no clock access, no I/O.

Failure modes:
    - MissingRatingInputError when a component the method depends on is
      absent (manager rating for manager_only / manual / weighted_average
      with a manager weight, progress for auto, self rating for
      weighted_average when the configuration requires it).
    - TypeError if a float is passed.
    - WeightConfigurationInvalidError from ``validate_weights``.

Usage:
    from appraisal_engines.scoring import ScoreCalculator

    calculator = ScoreCalculator()
    final = calculator.compute(
        self_rating=Decimal("4"),
        manager_rating=Decimal("5"),
        progress_score=Decimal("3"),
        config=config,
    )
"""

from __future__ import annotations

from decimal import Decimal

from appraisal_engines.tracer import traced_engine
from appraisal_kernel.db.types import round_rating
from appraisal_kernel.domain.dtos import (
    DEFAULT_RATING_SCALE,
    RatingConfigInfo,
    RatingScaleInfo,
)
from appraisal_kernel.domain.lifecycle import CalculationMethod
from appraisal_kernel.domain.weights import WEIGHT_TOTAL
from appraisal_kernel.domain.weights import validate_weights as _validate_weights
from appraisal_kernel.exceptions import MissingRatingInputError
from appraisal_kernel.logging_config import get_logger

logger = get_logger("engines.scoring")

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def _check_decimal(name: str, value: Decimal | None) -> None:
    if value is not None and not isinstance(value, Decimal):
        raise TypeError(f"{name} must be a Decimal, got {type(value).__name__}")


def progress_to_scale(percent: Decimal, scale: RatingScaleInfo = DEFAULT_RATING_SCALE) -> Decimal:
    """
    Map a 0-100 completion percentage linearly onto ``scale``.

    0% lands on the scale minimum and 100% on the maximum; values outside
    0-100 are clamped first.  The result is not rounded.
    """
    _check_decimal("percent", percent)
    bounded = max(_ZERO, min(_HUNDRED, percent))
    span = scale.max_rating - scale.min_rating
    return scale.min_rating + span * bounded / _HUNDRED


class ScoreCalculator:
    """
    Pure calculator for final goal scores.

    Contract:
        No I/O, no database access, fully deterministic.
    Guarantees:
        - ``manager_only`` and ``manual`` return the manager rating.
        - ``auto`` returns the progress score clamped to the scale.
        - ``weighted_average`` returns sum(component * weight) / 100 over
          the present components with a positive weight.
    Non-goals:
        - Does not validate weights at compute time; that happens when a
          configuration is saved.
    """

    def __init__(self, default_precision: Decimal = Decimal("0.1")):
        self.default_precision = default_precision

    @staticmethod
    def validate_weights(config: RatingConfigInfo) -> None:
        """Raise WeightConfigurationInvalidError for an unusable configuration."""
        _validate_weights(config)

    @traced_engine(
        "scoring",
        "1.0",
        fingerprint_fields=("self_rating", "manager_rating", "progress_score", "config"),
    )
    def compute(
        self,
        self_rating: Decimal | None,
        manager_rating: Decimal | None,
        progress_score: Decimal | None,
        config: RatingConfigInfo,
        scale: RatingScaleInfo | None = None,
    ) -> Decimal:
        """
        Compute the final score for one goal.

        Args:
            self_rating: Employee's rating on the scale, if given.
            manager_rating: Manager's rating on the scale, if given.
            progress_score: Goal progress already expressed on the scale
                (see ``progress_to_scale``), if tracked.
            config: Calculation method and weights.
            scale: Rating scale; defaults to the five point scale with this
                calculator's precision.

        Returns:
            The final score rounded to the scale precision.

        Raises:
            MissingRatingInputError: a required component is absent.
            TypeError: an input is a float.
        """
        _check_decimal("self_rating", self_rating)
        _check_decimal("manager_rating", manager_rating)
        _check_decimal("progress_score", progress_score)

        if scale is None:
            scale = RatingScaleInfo(
                id=None,
                name=DEFAULT_RATING_SCALE.name,
                min_rating=DEFAULT_RATING_SCALE.min_rating,
                max_rating=DEFAULT_RATING_SCALE.max_rating,
                precision=self.default_precision,
            )

        method = CalculationMethod(config.calculation_method)

        if method in (CalculationMethod.MANAGER_ONLY, CalculationMethod.MANUAL):
            if manager_rating is None:
                raise MissingRatingInputError("manager_rating", method.value)
            raw = manager_rating
        elif method == CalculationMethod.AUTO:
            if progress_score is None:
                raise MissingRatingInputError("progress_score", method.value)
            raw = scale.clamp(progress_score)
        else:
            raw = self._weighted(self_rating, manager_rating, progress_score, config)

        final = round_rating(raw, scale.precision)
        logger.debug(
            "score_computed",
            extra={
                "calculation_method": method.value,
                "raw_score": str(raw),
                "final_score": str(final),
            },
        )
        return final

    def _weighted(
        self,
        self_rating: Decimal | None,
        manager_rating: Decimal | None,
        progress_score: Decimal | None,
        config: RatingConfigInfo,
    ) -> Decimal:
        method = CalculationMethod.WEIGHTED_AVERAGE.value

        if manager_rating is None and config.manager_weight > 0:
            raise MissingRatingInputError("manager_rating", method)
        if (
            self_rating is None
            and config.self_weight > 0
            and config.self_rating_required
        ):
            raise MissingRatingInputError("self_rating", method)

        components = (
            (self_rating, config.self_weight),
            (manager_rating, config.manager_weight),
            (progress_score, config.progress_weight),
        )
        total = sum(
            (value * weight for value, weight in components
             if value is not None and weight > 0),
            _ZERO,
        )
        return total / WEIGHT_TOTAL

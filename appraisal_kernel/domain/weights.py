"""
Weight rules for rating configurations.

Pure validation shared by RatingConfigService (save time) and the
ScoreCalculator engine.  Zero I/O.
"""

from decimal import Decimal

from appraisal_kernel.domain.dtos import RatingConfigInfo
from appraisal_kernel.domain.lifecycle import CalculationMethod
from appraisal_kernel.exceptions import WeightConfigurationInvalidError

WEIGHT_TOTAL = Decimal("100")


def validate_weights(config: RatingConfigInfo) -> None:
    """
    Check the component weights of ``config``.

    Weights may never be negative.  For ``weighted_average`` they must sum
    to exactly 100; other methods ignore weights.

    Raises:
        WeightConfigurationInvalidError: on a negative weight or a
            weighted_average total other than 100.
    """
    weights = {
        "self": config.self_weight,
        "manager": config.manager_weight,
        "progress": config.progress_weight,
    }
    negative = [name for name, value in weights.items() if value < 0]
    if negative:
        raise WeightConfigurationInvalidError(
            config.self_weight,
            config.manager_weight,
            config.progress_weight,
            reason=f"Weights must not be negative: {', '.join(negative)}",
        )

    if config.calculation_method != CalculationMethod.WEIGHTED_AVERAGE:
        return

    if config.total_weight != WEIGHT_TOTAL:
        raise WeightConfigurationInvalidError(
            config.self_weight,
            config.manager_weight,
            config.progress_weight,
        )

"""
Property-based tests for the scoring engine.

Invariants checked over generated ratings and weights:
- A weighted score lies between the smallest and largest component
- Every score is a multiple of the scale precision
- Raising the manager rating never lowers the weighted score
- Progress percentages always map inside the scale
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from appraisal_engines.scoring import ScoreCalculator, progress_to_scale
from appraisal_kernel.domain.dtos import DEFAULT_RATING_SCALE, RatingConfigInfo
from appraisal_kernel.domain.lifecycle import CalculationMethod

ratings = st.decimals(
    min_value=Decimal("1"),
    max_value=Decimal("5"),
    places=1,
    allow_nan=False,
    allow_infinity=False,
)


@composite
def weighted_configs(draw):
    """Weighted average configurations whose weights sum to 100."""
    self_weight = draw(st.integers(min_value=0, max_value=100))
    progress_weight = draw(st.integers(min_value=0, max_value=100 - self_weight))
    manager_weight = 100 - self_weight - progress_weight
    return RatingConfigInfo(
        id=None,
        name="generated",
        calculation_method=CalculationMethod.WEIGHTED_AVERAGE,
        self_weight=Decimal(self_weight),
        manager_weight=Decimal(manager_weight),
        progress_weight=Decimal(progress_weight),
    )


calculator = ScoreCalculator()

# The suite clears the log context around every test
_FIXTURE_CHECK = [HealthCheck.function_scoped_fixture]


class TestWeightedScoreProperties:

    @given(ratings, ratings, ratings, weighted_configs())
    @settings(max_examples=200, deadline=None, suppress_health_check=_FIXTURE_CHECK)
    def test_score_between_components(self, self_rating, manager_rating, progress, config):
        score = calculator.compute(self_rating, manager_rating, progress, config)

        components = [self_rating, manager_rating, progress]
        assert min(components) <= score <= max(components)

    @given(ratings, ratings, ratings, weighted_configs())
    @settings(max_examples=200, deadline=None, suppress_health_check=_FIXTURE_CHECK)
    def test_score_on_precision_grid(self, self_rating, manager_rating, progress, config):
        score = calculator.compute(self_rating, manager_rating, progress, config)

        assert score % Decimal("0.1") == 0

    @given(ratings, ratings, ratings, ratings, weighted_configs())
    @settings(max_examples=200, deadline=None, suppress_health_check=_FIXTURE_CHECK)
    def test_manager_rating_is_monotonic(self, self_rating, low, high, progress, config):
        if low > high:
            low, high = high, low

        lower = calculator.compute(self_rating, low, progress, config)
        higher = calculator.compute(self_rating, high, progress, config)

        assert lower <= higher


class TestProgressMappingProperties:

    @given(st.decimals(
        min_value=Decimal("-50"),
        max_value=Decimal("150"),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    ))
    @settings(suppress_health_check=_FIXTURE_CHECK)
    def test_always_inside_scale(self, percent):
        mapped = progress_to_scale(percent)

        assert DEFAULT_RATING_SCALE.min_rating <= mapped <= DEFAULT_RATING_SCALE.max_rating

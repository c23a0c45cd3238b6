"""
Tests for weight validation and the frozen DTOs.
"""

from dataclasses import FrozenInstanceError
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from appraisal_kernel.domain.dtos import (
    CycleInfo,
    RatingConfigInfo,
    RatingScaleInfo,
    freeze_payload,
)
from appraisal_kernel.domain.lifecycle import CalculationMethod, CycleStatus
from appraisal_kernel.domain.weights import validate_weights
from appraisal_kernel.exceptions import WeightConfigurationInvalidError


def _config(method=CalculationMethod.WEIGHTED_AVERAGE, **weights) -> RatingConfigInfo:
    return RatingConfigInfo(
        id=None,
        name="test",
        calculation_method=method,
        self_weight=Decimal(weights.get("self", "20")),
        manager_weight=Decimal(weights.get("manager", "60")),
        progress_weight=Decimal(weights.get("progress", "20")),
    )


class TestValidateWeights:

    def test_weights_summing_to_100_pass(self):
        validate_weights(_config())

    def test_weights_not_summing_to_100_rejected(self):
        with pytest.raises(WeightConfigurationInvalidError) as exc_info:
            validate_weights(_config(manager="50"))
        assert exc_info.value.code == "WEIGHT_CONFIGURATION_INVALID"
        assert exc_info.value.total == Decimal("90")

    def test_negative_weight_rejected(self):
        with pytest.raises(WeightConfigurationInvalidError, match="negative"):
            validate_weights(_config(self="-10", manager="90", progress="20"))

    def test_negative_weight_rejected_for_other_methods(self):
        with pytest.raises(WeightConfigurationInvalidError):
            validate_weights(
                _config(CalculationMethod.MANAGER_ONLY, self="-1", manager="100", progress="0")
            )

    @pytest.mark.parametrize("method", [
        CalculationMethod.AUTO,
        CalculationMethod.MANUAL,
        CalculationMethod.MANAGER_ONLY,
    ])
    def test_other_methods_ignore_total(self, method):
        validate_weights(_config(method, self="0", manager="10", progress="0"))


class TestDtos:

    def test_cycle_info_is_frozen(self):
        cycle = CycleInfo(
            id=uuid4(),
            organization_id=uuid4(),
            name="FY24",
            status=CycleStatus.DRAFT,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
            evaluation_deadline=None,
            grace_period_days=5,
            auto_activate_enabled=True,
            auto_complete_enabled=True,
        )
        with pytest.raises(FrozenInstanceError):
            cycle.status = CycleStatus.ACTIVE

    def test_completion_due_date_adds_grace(self):
        cycle = CycleInfo(
            id=uuid4(),
            organization_id=uuid4(),
            name="FY24",
            status=CycleStatus.ACTIVE,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
            evaluation_deadline=None,
            grace_period_days=5,
            auto_activate_enabled=False,
            auto_complete_enabled=True,
        )
        assert cycle.completion_due_date == date(2024, 2, 5)

    def test_payload_is_read_only(self):
        payload = freeze_payload({"a": 1})
        with pytest.raises(TypeError):
            payload["a"] = 2

    def test_scale_bounds_validated(self):
        with pytest.raises(ValueError, match="below"):
            RatingScaleInfo(id=None, name="bad", min_rating=Decimal("5"), max_rating=Decimal("1"))

    def test_scale_precision_validated(self):
        with pytest.raises(ValueError, match="precision"):
            RatingScaleInfo(
                id=None, name="bad",
                min_rating=Decimal("1"), max_rating=Decimal("5"),
                precision=Decimal("0"),
            )

    def test_scale_clamp(self):
        scale = RatingScaleInfo(id=None, name="s", min_rating=Decimal("1"), max_rating=Decimal("5"))
        assert scale.clamp(Decimal("7")) == Decimal("5")
        assert scale.clamp(Decimal("0.5")) == Decimal("1")
        assert scale.clamp(Decimal("3.3")) == Decimal("3.3")

    def test_total_weight(self):
        assert _config().total_weight == Decimal("100")

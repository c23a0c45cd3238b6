"""
RatingConfigService -- rating scales and versioned rating configurations.

Responsibility:
    Persists rating scales and rating configurations.  Weight rules are
    checked before anything is written.  A configuration referenced by a
    released rating is frozen: ``save_config`` writes a new version that
    supersedes it, and ``update_config`` refuses to edit it.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - weighted_average configurations are only persisted when their weights
      sum to 100 (``validate_weights``).
    - Configurations referenced by released / acknowledged / disputed
      submissions never change in place.
    - Flush-only; no commit.

Failure modes:
    - WeightConfigurationInvalidError on bad weights.
    - RatingConfigImmutableError from ``update_config`` on a frozen version.
    - RatingConfigNotFoundError / RatingScaleNotFoundError on unknown IDs.
"""

from dataclasses import replace
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from appraisal_kernel.domain.dtos import RatingConfigInfo, RatingScaleInfo
from appraisal_kernel.domain.lifecycle import CalculationMethod
from appraisal_kernel.domain.weights import validate_weights
from appraisal_kernel.exceptions import (
    RatingConfigImmutableError,
    RatingConfigNotFoundError,
    RatingScaleNotFoundError,
)
from appraisal_kernel.logging_config import get_logger
from appraisal_kernel.models.rating_config import RatingConfig, RatingScale
from appraisal_kernel.selectors.appraisal_selector import AppraisalSelector
from appraisal_kernel.services.base import BaseService

logger = get_logger("services.rating_config")

_EDITABLE_FIELDS = frozenset({
    "calculation_method",
    "self_weight",
    "manager_weight",
    "progress_weight",
    "self_rating_required",
    "rating_scale_id",
})


class RatingConfigService(BaseService[RatingConfig]):
    """Write-side access to rating scales and configurations."""

    # ------------------------------------------------------------------
    # Scales
    # ------------------------------------------------------------------

    def create_scale(
        self,
        organization_id: UUID,
        name: str,
        min_rating: Decimal,
        max_rating: Decimal,
        actor_id: UUID,
        precision: Decimal = Decimal("0.1"),
    ) -> RatingScaleInfo:
        """
        Create a rating scale.

        Raises:
            ValueError: min is not below max, or precision is not positive.
        """
        # Bounds are validated by the DTO before anything is written
        RatingScaleInfo(
            id=None,
            name=name,
            min_rating=min_rating,
            max_rating=max_rating,
            precision=precision,
        )
        scale = RatingScale(
            organization_id=organization_id,
            name=name,
            min_rating=min_rating,
            max_rating=max_rating,
            precision=precision,
            created_by_id=actor_id,
        )
        self.session.add(scale)
        self.session.flush()
        logger.info("rating_scale_created", extra={"rating_scale_id": str(scale.id)})
        return scale.to_dto()

    def get_scale(self, rating_scale_id: UUID) -> RatingScaleInfo:
        scale = self.session.get(RatingScale, rating_scale_id)
        if scale is None:
            raise RatingScaleNotFoundError(str(rating_scale_id))
        return scale.to_dto()

    # ------------------------------------------------------------------
    # Configurations
    # ------------------------------------------------------------------

    def get_config(self, rating_config_id: UUID) -> RatingConfigInfo:
        config = self.session.get(RatingConfig, rating_config_id)
        if config is None:
            raise RatingConfigNotFoundError(str(rating_config_id))
        return config.to_dto()

    def scale_for_config(self, config: RatingConfigInfo) -> RatingScaleInfo | None:
        """The scale a configuration rates on, if it names one."""
        if config.rating_scale_id is None:
            return None
        return self.get_scale(config.rating_scale_id)

    def latest_version(self, organization_id: UUID, name: str) -> RatingConfigInfo | None:
        config = self.session.execute(
            select(RatingConfig)
            .where(
                RatingConfig.organization_id == organization_id,
                RatingConfig.name == name,
            )
            .order_by(RatingConfig.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        return config.to_dto() if config is not None else None

    def save_config(
        self,
        organization_id: UUID,
        name: str,
        calculation_method: CalculationMethod,
        actor_id: UUID,
        self_weight: Decimal = Decimal("0"),
        manager_weight: Decimal = Decimal("100"),
        progress_weight: Decimal = Decimal("0"),
        self_rating_required: bool = False,
        rating_scale_id: UUID | None = None,
    ) -> RatingConfigInfo:
        """
        Create or change the configuration called ``name``.

        The first save writes version 1.  Later saves edit the latest
        version in place while no released rating uses it; otherwise a new
        version is written that supersedes it.

        Raises:
            WeightConfigurationInvalidError: weights fail validation.
            RatingScaleNotFoundError: unknown ``rating_scale_id``.
        """
        proposed = RatingConfigInfo(
            id=None,
            organization_id=organization_id,
            name=name,
            calculation_method=CalculationMethod(calculation_method),
            self_weight=self_weight,
            manager_weight=manager_weight,
            progress_weight=progress_weight,
            self_rating_required=self_rating_required,
            rating_scale_id=rating_scale_id,
        )
        validate_weights(proposed)
        if rating_scale_id is not None:
            self.get_scale(rating_scale_id)

        latest = self.latest_version(organization_id, name)
        if latest is None:
            return self._insert(proposed, version=1, supersedes_id=None, actor_id=actor_id)

        if self._released_count(latest.id) == 0:
            return self._apply(latest.id, proposed, actor_id)

        return self._insert(
            proposed,
            version=latest.version + 1,
            supersedes_id=latest.id,
            actor_id=actor_id,
        )

    def update_config(
        self, rating_config_id: UUID, actor_id: UUID, **changes,
    ) -> RatingConfigInfo:
        """
        Edit one configuration version in place.

        Raises:
            RatingConfigNotFoundError: unknown ID.
            RatingConfigImmutableError: released ratings reference it.
            WeightConfigurationInvalidError: resulting weights are invalid.
            ValueError: a field that cannot be edited was passed.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit rating config fields: {sorted(unknown)}")

        current = self.get_config(rating_config_id)
        released = self._released_count(rating_config_id)
        if released:
            raise RatingConfigImmutableError(str(rating_config_id), released)

        proposed = replace(current, **changes)
        validate_weights(proposed)
        return self._apply(rating_config_id, proposed, actor_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _released_count(self, rating_config_id: UUID) -> int:
        return AppraisalSelector(self.session).count_released_submissions_for_config(
            rating_config_id,
        )

    def _insert(
        self,
        proposed: RatingConfigInfo,
        version: int,
        supersedes_id: UUID | None,
        actor_id: UUID,
    ) -> RatingConfigInfo:
        config = RatingConfig(
            organization_id=proposed.organization_id,
            name=proposed.name,
            version=version,
            calculation_method=proposed.calculation_method,
            self_weight=proposed.self_weight,
            manager_weight=proposed.manager_weight,
            progress_weight=proposed.progress_weight,
            self_rating_required=proposed.self_rating_required,
            rating_scale_id=proposed.rating_scale_id,
            supersedes_id=supersedes_id,
            created_by_id=actor_id,
        )
        self.session.add(config)
        self.session.flush()

        logger.info(
            "rating_config_saved",
            extra={
                "rating_config_id": str(config.id),
                "version": version,
                "calculation_method": config.calculation_method.value,
                "supersedes_id": str(supersedes_id) if supersedes_id else None,
            },
        )
        return config.to_dto()

    def _apply(
        self, rating_config_id: UUID, proposed: RatingConfigInfo, actor_id: UUID,
    ) -> RatingConfigInfo:
        config = self.session.get(RatingConfig, rating_config_id)
        config.calculation_method = proposed.calculation_method
        config.self_weight = proposed.self_weight
        config.manager_weight = proposed.manager_weight
        config.progress_weight = proposed.progress_weight
        config.self_rating_required = proposed.self_rating_required
        config.rating_scale_id = proposed.rating_scale_id
        config.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "rating_config_updated",
            extra={"rating_config_id": str(rating_config_id), "version": config.version},
        )
        return config.to_dto()

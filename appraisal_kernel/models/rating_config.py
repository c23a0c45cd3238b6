"""
Module: appraisal_kernel.models.rating_config
Responsibility: ORM persistence for rating scales and versioned rating
    configurations (calculation method and component weights).
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - (organization_id, name, version) is unique: a configuration is never
      edited in place once released ratings reference it; a new version row
      is written and points back through ``supersedes_id``.
    - weighted_average weights sum to 100 (validated by RatingConfigService
      before the row is flushed).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from appraisal_kernel.db.base import TrackedBase, UUIDString
from appraisal_kernel.db.types import RATING_TYPE, WEIGHT_TYPE, StatusEnum
from appraisal_kernel.domain.dtos import RatingConfigInfo, RatingScaleInfo
from appraisal_kernel.domain.lifecycle import CalculationMethod


class RatingScale(TrackedBase):
    """Bounds and rounding step for ratings (e.g. 1-5 in steps of 0.1)."""

    __tablename__ = "rating_scales"

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_rating: Mapped[Decimal] = mapped_column(RATING_TYPE, nullable=False)
    max_rating: Mapped[Decimal] = mapped_column(RATING_TYPE, nullable=False)
    precision: Mapped[Decimal] = mapped_column(
        RATING_TYPE, default=Decimal("0.1"), nullable=False,
    )

    def __repr__(self) -> str:
        return f"<RatingScale {self.name}: {self.min_rating}-{self.max_rating}>"

    def to_dto(self) -> RatingScaleInfo:
        return RatingScaleInfo(
            id=self.id,
            name=self.name,
            min_rating=self.min_rating,
            max_rating=self.max_rating,
            precision=self.precision,
        )


class RatingConfig(TrackedBase):
    """One version of an organization's rating calculation rules."""

    __tablename__ = "rating_configs"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "name", "version", name="uq_rating_config_version",
        ),
        Index("idx_rating_config_org", "organization_id", "name"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    calculation_method: Mapped[CalculationMethod] = mapped_column(
        StatusEnum(CalculationMethod),
        default=CalculationMethod.MANAGER_ONLY,
        nullable=False,
    )

    self_weight: Mapped[Decimal] = mapped_column(
        WEIGHT_TYPE, default=Decimal("0"), nullable=False,
    )
    manager_weight: Mapped[Decimal] = mapped_column(
        WEIGHT_TYPE, default=Decimal("100"), nullable=False,
    )
    progress_weight: Mapped[Decimal] = mapped_column(
        WEIGHT_TYPE, default=Decimal("0"), nullable=False,
    )

    self_rating_required: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )

    rating_scale_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("rating_scales.id", ondelete="RESTRICT"),
        nullable=True,
    )

    # Previous version this row replaced
    supersedes_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("rating_configs.id", ondelete="RESTRICT"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<RatingConfig {self.name} v{self.version}: "
            f"{self.calculation_method.value}>"
        )

    def to_dto(self) -> RatingConfigInfo:
        return RatingConfigInfo(
            id=self.id,
            organization_id=self.organization_id,
            name=self.name,
            version=self.version,
            calculation_method=self.calculation_method,
            self_weight=self.self_weight,
            manager_weight=self.manager_weight,
            progress_weight=self.progress_weight,
            self_rating_required=self.self_rating_required,
            rating_scale_id=self.rating_scale_id,
            supersedes_id=self.supersedes_id,
        )

"""Database layer - engine, base classes and column types."""

from appraisal_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from appraisal_kernel.db.engine import create_tables, get_engine, get_session
from appraisal_kernel.db.types import (
    LONG_TEXT_TYPE,
    RATING_TYPE,
    WEIGHT_TYPE,
    Rating,
    StatusEnum,
    Weight,
    round_rating,
)

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Rating",
    "Weight",
    "StatusEnum",
    "RATING_TYPE",
    "WEIGHT_TYPE",
    "LONG_TEXT_TYPE",
    "round_rating",
]

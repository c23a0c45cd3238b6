"""
Module: appraisal_kernel.db.types
Responsibility: Annotated type aliases, the closed-enum status column type, and
    the rating rounding helper.  Centralizes precision and status handling so
    that every model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Closed status sets: StatusEnum refuses to bind or load any value that is
      not a member of its enum class.  Unknown strings never propagate past
      the persistence boundary.
    - round_rating() is the ONLY sanctioned rounding function for scores.
    - No floats anywhere: ratings, weights and scores are Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator


# Rating on a rating scale (e.g. 1.0 - 5.0)
Rating = Annotated[Decimal, Numeric(10, 4)]

# Percentage weight (0 - 100)
Weight = Annotated[Decimal, Numeric(6, 2)]

# Long free text (comments, dispute reasons)
LongText = Annotated[str, String(4000)]

# Column types for mapped_column()
RATING_TYPE = Numeric(10, 4)
WEIGHT_TYPE = Numeric(6, 2)
LONG_TEXT_TYPE = String(4000)

DEFAULT_PRECISION = Decimal("0.1")
DEFAULT_ROUNDING = ROUND_HALF_UP


class StatusEnum(TypeDecorator):
    """
    String column restricted to the members of an ``Enum`` class.

    Contract:
        Binds enum members (or their exact string values) as the value
        string; loads strings back as enum members.

    Raises:
        ValueError: on bind or load of a value outside the enum.  A row with
            an unknown status is a data error, not a state to reason about.
    """

    impl = String
    cache_ok = True

    def __init__(self, enum_class: type[Enum], length: int = 30):
        super().__init__(length)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, self.enum_class):
            return value.value
        return self.enum_class(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class(value)

    def copy(self, **kw):
        return StatusEnum(self.enum_class, self.impl.length)


def round_rating(
    value: Decimal,
    precision: Decimal = DEFAULT_PRECISION,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a score to the nearest multiple of ``precision``.

    Preconditions: value is a Decimal; precision is a positive Decimal step
        (0.1, 0.5, 0.25, 1, ...).
    Postconditions: Returns value snapped to the step, quantized to the
        step's exponent.

    Raises:
        ValueError: If precision is not positive.
    """
    if precision <= 0:
        raise ValueError(f"Rating precision must be positive, got {precision}")
    steps = (value / precision).quantize(Decimal("1"), rounding=rounding)
    return (steps * precision).quantize(precision)

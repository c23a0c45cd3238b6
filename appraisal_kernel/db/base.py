"""
Module: appraisal_kernel.db.base
Responsibility: Declarative base for the appraisal tables.  Cycles,
    participants, goal rating submissions, rating configurations, deferred
    actions, notification intents and reconciler runs all inherit from
    TrackedBase.
Architecture position: Kernel > DB.  Imports nothing from the rest of the
    package; every model module imports from here.

Invariants enforced:
    - Every row has a uuid4 primary key, stored as a 36-character string so
      the same schema runs on SQLite and PostgreSQL.
    - Ratings, weights and scores are Decimal columns (Numeric(10, 4)).
    - Every row records who created it; the actor of the last status change
      goes in ``updated_by_id``.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID column stored as String(36).

    Employee, manager and organization IDs arrive from callers either as
    ``UUID`` objects or as strings; both are normalized on bind, and a
    malformed string fails before reaching the database.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, UUID):
            value = UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return UUID(value)


class Base(DeclarativeBase):
    """Declarative base: uuid4 ``id`` plus the column types for annotated fields."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(10, 4),
        datetime: DateTime(timezone=True),
        date: Date,
        UUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with creation and last-change stamps.

    ``created_at`` / ``updated_at`` come from the database clock.  The
    appraisal-specific stamps (``released_at``, ``acknowledged_at`` ...)
    come from the injected Clock and live on the models themselves.
    ``created_by_id`` is required; the reconciler writes SYSTEM_ACTOR_ID.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

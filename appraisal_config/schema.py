"""
Engine settings schema.

Frozen dataclasses the loader parses ``sets/*.yaml`` into.  Defaults here
are the values used when a key is absent from the file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class ReconcilerSettings:
    """How often the reconciler runs and which optional steps it performs."""

    tick_interval_seconds: int = 300
    run_overdue_scan: bool = True
    run_deferred_actions: bool = True


@dataclass(frozen=True)
class ScoringSettings:
    """Rounding applied when no rating scale says otherwise."""

    default_precision: Decimal = Decimal("0.1")


@dataclass(frozen=True)
class NotificationSettings:
    """Recipients of organization-level notifications.

    ``hr_audience`` is None when cycle notifications should go to the
    cycle's organization ID.
    """

    hr_audience: UUID | None = None


@dataclass(frozen=True)
class EngineSettings:
    """Root of the engine configuration."""

    name: str = "default"
    reconciler: ReconcilerSettings = field(default_factory=ReconcilerSettings)
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

"""
Clock -- the one source of "now" and "today" for the appraisal engine.

Responsibility:
    Cycle activation and completion, grace periods, overdue flags and
    deferred action due dates all compare against ``Clock.today()``.
    Services receive a Clock in their constructor and never read the
    system time themselves, so a reconciler run can be replayed for any
    date.

Architecture position:
    Kernel > Domain.  SystemClock is the only class here that touches the
    operating system.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Injected time source.

    ``today()`` is derived from ``now()``; a subclass only supplies
    ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Timestamp written to ``*_at`` columns."""
        ...

    def today(self) -> date:
        """Calendar date every date-driven rule compares against."""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time in UTC, used by the reconciler script and services."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a chosen instant until a test moves it.

    A naive ``fixed_time`` stays naive, which keeps comparisons against
    SQLite-loaded timestamps simple.
    """

    def __init__(self, fixed_time: datetime):
        self._time = fixed_time

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        """Jump to ``time``; reconciler tests use this to step through days."""
        self._time = time

    def advance(self, seconds: int = 1) -> None:
        self._time += timedelta(seconds=seconds)

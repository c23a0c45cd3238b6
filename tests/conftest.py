"""
Pytest fixtures for the appraisal engine test suite.

Provides:
- In-memory SQLite sessions, one fresh database per test (SAVEPOINT
  recipe applied so per-item isolation behaves as on PostgreSQL)
- A naive DeterministicClock shared by every service fixture
- Service fixtures wired to that clock and a shared outbox
- Factories for cycles, participants and rating configurations
"""

import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from appraisal_kernel.db.base import Base
from appraisal_kernel.db.engine import create_engine_from_url, import_all_models
from appraisal_kernel.domain.clock import DeterministicClock
from appraisal_kernel.domain.dtos import CycleInfo, ParticipantInfo
from appraisal_kernel.domain.lifecycle import CalculationMethod
from appraisal_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from appraisal_kernel.selectors.appraisal_selector import AppraisalSelector
from appraisal_kernel.services.cycle_lifecycle import CycleLifecycle
from appraisal_kernel.services.deferred_actions import DeferredActionExecutor
from appraisal_kernel.services.notification_outbox import NotificationOutbox
from appraisal_kernel.services.participant_tracker import ParticipantTracker
from appraisal_kernel.services.rating_config_service import RatingConfigService
from appraisal_kernel.services.rating_submission import RatingSubmissionMachine


# Shared identities for all test operations
ORG_ID = UUID("00000000-0000-0000-0000-00000000a001")
HR_ADMIN_ID = UUID("00000000-0000-0000-0000-00000000a002")
MANAGER_ID = UUID("00000000-0000-0000-0000-00000000a003")

# Clock starts here unless a test moves it
START_TIME = datetime(2024, 3, 1, 9, 0, 0)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture appraisal_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, reconciler):
            reconciler.run()
            logs = captured_logs()
            assert any(r["message"] == "reconciler_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("appraisal_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_engine_from_url("sqlite:///:memory:")
    import_all_models()
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def outbox(session, clock) -> NotificationOutbox:
    return NotificationOutbox(session, clock)


@pytest.fixture
def tracker(session, clock, outbox) -> ParticipantTracker:
    return ParticipantTracker(session, clock, outbox)


@pytest.fixture
def lifecycle(session, clock, outbox, tracker) -> CycleLifecycle:
    return CycleLifecycle(session, clock, outbox=outbox, tracker=tracker)


@pytest.fixture
def machine(session, clock, outbox) -> RatingSubmissionMachine:
    return RatingSubmissionMachine(session, clock, outbox)


@pytest.fixture
def configs(session) -> RatingConfigService:
    return RatingConfigService(session)


@pytest.fixture
def actions(session, clock, outbox) -> DeferredActionExecutor:
    return DeferredActionExecutor(session, clock, outbox=outbox)


@pytest.fixture
def selector(session) -> AppraisalSelector:
    return AppraisalSelector(session)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_cycle(lifecycle) -> Callable[..., CycleInfo]:
    """Create a draft cycle running March 2024 unless overridden."""

    def _make(**overrides) -> CycleInfo:
        values = {
            "organization_id": ORG_ID,
            "name": f"FY24 review {uuid4().hex[:6]}",
            "start_date": date(2024, 3, 1),
            "end_date": date(2024, 3, 31),
            "actor_id": HR_ADMIN_ID,
        }
        values.update(overrides)
        return lifecycle.create_cycle(**values)

    return _make


@pytest.fixture
def active_cycle(make_cycle, lifecycle) -> CycleInfo:
    cycle = make_cycle()
    return lifecycle.activate_now(cycle.id, HR_ADMIN_ID)


@pytest.fixture
def enroll(tracker) -> Callable[..., ParticipantInfo]:
    """Enroll a new employee (random ID) in a cycle, managed by MANAGER_ID."""

    def _enroll(cycle_id: UUID, employee_id: UUID | None = None, **kwargs) -> ParticipantInfo:
        kwargs.setdefault("manager_id", MANAGER_ID)
        return tracker.enroll(
            cycle_id, employee_id or uuid4(), HR_ADMIN_ID, **kwargs,
        )

    return _enroll


@pytest.fixture
def weighted_config(configs):
    """20/60/20 weighted average configuration on a 1-5 scale."""
    scale = configs.create_scale(
        ORG_ID, "Five point", Decimal("1"), Decimal("5"), HR_ADMIN_ID,
    )
    return configs.save_config(
        ORG_ID,
        "Weighted",
        CalculationMethod.WEIGHTED_AVERAGE,
        HR_ADMIN_ID,
        self_weight=Decimal("20"),
        manager_weight=Decimal("60"),
        progress_weight=Decimal("20"),
        rating_scale_id=scale.id,
    )

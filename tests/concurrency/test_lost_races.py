"""
Lost-race tests for the conditional-update state machines.

Each test lets a second service instance move the row after the first
one has read it and before it writes, which is the window two request
handlers or a handler and the reconciler share in production.

Expected behavior:
- Two releases of one rating: one wins, the other returns the winner's
  state, and exactly one rating_released intent exists
- Submit, acknowledge and dispute raise ConcurrentModificationError and
  leave the winner's write in place
- A duplicate first self rating maps the unique-constraint violation to
  ConcurrentModificationError
- Activation and completion races are benign: the loser reports False
  and only the winner notifies
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from appraisal_kernel.domain.lifecycle import (
    CycleStatus,
    DisputeStatus,
    NotificationKind,
    ParticipantStatus,
    SubmissionStatus,
)
from appraisal_kernel.exceptions import ConcurrentModificationError
from appraisal_kernel.services.cycle_lifecycle import CycleLifecycle
from appraisal_kernel.services.rating_submission import RatingSubmissionMachine

from conftest import HR_ADMIN_ID, MANAGER_ID

OTHER_ADMIN_ID = UUID("00000000-0000-0000-0000-00000000a004")


def run_before_write(monkeypatch, service, competing):
    """Run ``competing`` once, between ``service``'s read and its conditional write."""
    original = service._conditional_update
    pending = [competing]

    def _conditional_update(*args, **kwargs):
        if pending:
            pending.pop()()
        return original(*args, **kwargs)

    monkeypatch.setattr(service, "_conditional_update", _conditional_update)


@pytest.fixture
def rival_machine(session, clock, outbox) -> RatingSubmissionMachine:
    return RatingSubmissionMachine(session, clock, outbox)


@pytest.fixture
def rival_lifecycle(session, clock, outbox) -> CycleLifecycle:
    return CycleLifecycle(session, clock, outbox=outbox)


@pytest.fixture
def participant(active_cycle, enroll):
    return enroll(active_cycle.id)


@pytest.fixture
def self_rated(machine, active_cycle, participant):
    return machine.submit_self(
        active_cycle.id, uuid4(), participant.employee_id, Decimal("4"),
    )


@pytest.fixture
def rated(machine, active_cycle, self_rated):
    return machine.submit_manager(
        active_cycle.id, self_rated.goal_id, MANAGER_ID, Decimal("5"),
    )


@pytest.fixture
def finalized_rating(tracker, rated, participant):
    tracker.advance(participant.id, ParticipantStatus.FINALIZED, HR_ADMIN_ID)
    return rated


@pytest.fixture
def released(machine, finalized_rating):
    return machine.release(finalized_rating.id, HR_ADMIN_ID)


# =============================================================================
# Release
# =============================================================================


class TestReleaseRace:

    def test_loser_returns_winner_state(
        self, machine, rival_machine, finalized_rating, monkeypatch,
    ):
        run_before_write(
            monkeypatch, machine,
            lambda: rival_machine.release(finalized_rating.id, OTHER_ADMIN_ID),
        )

        result = machine.release(finalized_rating.id, HR_ADMIN_ID)

        assert result.status == SubmissionStatus.RELEASED
        assert result.released_by == OTHER_ADMIN_ID

    def test_single_notification(
        self, machine, rival_machine, finalized_rating, selector, monkeypatch,
    ):
        run_before_write(
            monkeypatch, machine,
            lambda: rival_machine.release(finalized_rating.id, OTHER_ADMIN_ID),
        )

        machine.release(finalized_rating.id, HR_ADMIN_ID)

        intents = selector.notifications(kind=NotificationKind.RATING_RELEASED)
        assert len(intents) == 1
        assert intents[0].recipient_id == finalized_rating.employee_id

    def test_lost_race_logged(
        self, machine, rival_machine, finalized_rating, captured_logs, monkeypatch,
    ):
        run_before_write(
            monkeypatch, machine,
            lambda: rival_machine.release(finalized_rating.id, OTHER_ADMIN_ID),
        )

        machine.release(finalized_rating.id, HR_ADMIN_ID)

        messages = [r["message"] for r in captured_logs()]
        assert messages.count("submission_released") == 1
        assert messages.count("submission_release_lost_race") == 1


# =============================================================================
# Submit, acknowledge, dispute
# =============================================================================


class TestMoveRaces:

    def test_self_rating_loses_to_manager(
        self, machine, rival_machine, active_cycle, self_rated, selector, monkeypatch,
    ):
        run_before_write(
            monkeypatch, machine,
            lambda: rival_machine.submit_manager(
                active_cycle.id, self_rated.goal_id, MANAGER_ID, Decimal("3"),
            ),
        )

        with pytest.raises(ConcurrentModificationError) as exc_info:
            machine.submit_self(
                active_cycle.id, self_rated.goal_id, self_rated.employee_id, Decimal("2"),
            )

        assert exc_info.value.code == "CONCURRENT_MODIFICATION"
        assert exc_info.value.expected_status == "self_submitted"
        assert exc_info.value.actual_status == "manager_submitted"
        loaded = selector.get_submission(self_rated.id)
        assert loaded.self_rating == Decimal("4")
        assert loaded.manager_rating == Decimal("3")

    def test_manager_rating_loses_to_release(
        self, machine, rival_machine, active_cycle, finalized_rating, selector, monkeypatch,
    ):
        run_before_write(
            monkeypatch, machine,
            lambda: rival_machine.release(finalized_rating.id, HR_ADMIN_ID),
        )

        with pytest.raises(ConcurrentModificationError) as exc_info:
            machine.submit_manager(
                active_cycle.id, finalized_rating.goal_id, MANAGER_ID, Decimal("1"),
            )

        assert exc_info.value.actual_status == "released"
        assert selector.get_submission(finalized_rating.id).final_score == Decimal("5")

    def test_acknowledge_loses_to_dispute(
        self, machine, rival_machine, released, selector, monkeypatch,
    ):
        run_before_write(
            monkeypatch, machine,
            lambda: rival_machine.dispute(released.id, "Scope changed mid-quarter"),
        )

        with pytest.raises(ConcurrentModificationError) as exc_info:
            machine.acknowledge(released.id, released.employee_id)

        assert exc_info.value.expected_status == "released"
        assert exc_info.value.actual_status == "disputed"
        loaded = selector.get_submission(released.id)
        assert loaded.acknowledged_at is None
        assert loaded.dispute_status == DisputeStatus.OPEN

    def test_second_dispute_loses(
        self, machine, rival_machine, released, selector, monkeypatch, captured_logs,
    ):
        run_before_write(
            monkeypatch, machine,
            lambda: rival_machine.dispute(released.id, "First reason"),
        )

        with pytest.raises(ConcurrentModificationError):
            machine.dispute(released.id, "Second reason")

        loaded = selector.get_submission(released.id)
        assert loaded.dispute_reason == "First reason"
        assert len(selector.notifications(kind=NotificationKind.RATING_DISPUTED)) == 1
        assert any(
            r["message"] == "submission_concurrent_modification" for r in captured_logs()
        )


class TestDuplicateCreate:

    def test_second_first_self_rating_raises(
        self, machine, rival_machine, active_cycle, participant, selector, monkeypatch,
    ):
        goal_id = uuid4()
        original_find = machine._find

        def find_then_lose(find_goal_id, cycle_id):
            found = original_find(find_goal_id, cycle_id)
            rival_machine.submit_self(
                cycle_id, find_goal_id, participant.employee_id, Decimal("3"),
            )
            return found

        monkeypatch.setattr(machine, "_find", find_then_lose)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            machine.submit_self(
                active_cycle.id, goal_id, participant.employee_id, Decimal("5"),
            )

        assert exc_info.value.expected_status == "none"
        assert exc_info.value.actual_status == "created by another writer"
        winner = selector.get_submission_for_goal(goal_id, active_cycle.id)
        assert winner.self_rating == Decimal("3")

    def test_session_usable_after_duplicate(
        self, machine, rival_machine, active_cycle, participant, selector, monkeypatch,
    ):
        goal_id = uuid4()
        original_find = machine._find

        def find_then_lose(find_goal_id, cycle_id):
            found = original_find(find_goal_id, cycle_id)
            rival_machine.submit_self(
                cycle_id, find_goal_id, participant.employee_id, Decimal("3"),
            )
            return found

        monkeypatch.setattr(machine, "_find", find_then_lose)
        with pytest.raises(ConcurrentModificationError):
            machine.submit_self(
                active_cycle.id, goal_id, participant.employee_id, Decimal("5"),
            )
        monkeypatch.undo()

        retried = machine.submit_self(
            active_cycle.id, goal_id, participant.employee_id, Decimal("5"),
        )

        assert retried.self_rating == Decimal("5")
        assert selector.get_participant(participant.id).status == ParticipantStatus.IN_PROGRESS


# =============================================================================
# Cycle transitions
# =============================================================================


class TestCycleRaces:

    def test_activation_race_is_benign(
        self, lifecycle, rival_lifecycle, make_cycle, selector, monkeypatch,
    ):
        cycle = make_cycle(auto_activate_enabled=True)
        run_before_write(
            monkeypatch, lifecycle,
            lambda: rival_lifecycle.activate_now(cycle.id, HR_ADMIN_ID),
        )

        assert lifecycle.try_activate(cycle.id) is False

        loaded = selector.get_cycle(cycle.id)
        assert loaded.status == CycleStatus.ACTIVE
        assert loaded.auto_activated_at is None
        assert len(selector.notifications(kind=NotificationKind.CYCLE_ACTIVATED)) == 1

    def test_completion_race_is_benign(
        self, lifecycle, rival_lifecycle, make_cycle, selector, monkeypatch,
    ):
        cycle = make_cycle(
            start_date=date(2024, 2, 1),
            end_date=date(2024, 2, 20),
            auto_complete_enabled=True,
        )
        lifecycle.activate_now(cycle.id, HR_ADMIN_ID)
        run_before_write(
            monkeypatch, lifecycle,
            lambda: rival_lifecycle.close_now(cycle.id, HR_ADMIN_ID),
        )

        assert lifecycle.try_complete(cycle.id) is False

        loaded = selector.get_cycle(cycle.id)
        assert loaded.status == CycleStatus.COMPLETED
        assert loaded.auto_completed_at is None
        assert len(selector.notifications(kind=NotificationKind.CYCLE_COMPLETED)) == 1

    def test_loser_logs_skip(
        self, lifecycle, rival_lifecycle, make_cycle, captured_logs, monkeypatch,
    ):
        cycle = make_cycle(auto_activate_enabled=True)
        run_before_write(
            monkeypatch, lifecycle,
            lambda: rival_lifecycle.activate_now(cycle.id, HR_ADMIN_ID),
        )

        lifecycle.try_activate(cycle.id)

        messages = [r["message"] for r in captured_logs()]
        assert messages.count("cycle_activated") == 1
        assert messages.count("cycle_activation_skipped") == 1

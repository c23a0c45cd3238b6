"""
Tests for appraisal_batch.services.reconciler.

Validates one reconciliation pass: cycle activation and completion,
overdue flagging, deferred action execution, per-item error isolation,
database failures outside any one item, idempotent re-runs and the
persisted run record.
"""

from datetime import date, datetime
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from appraisal_batch.domain.types import ReconcilerRunStatus
from appraisal_batch.models.run import ReconcilerRunModel
from appraisal_batch.services.reconciler import Reconciler
from appraisal_kernel.domain.lifecycle import (
    CycleStatus,
    DeferredActionStatus,
    NotificationKind,
    ParticipantStatus,
)
from appraisal_kernel.services.deferred_actions import default_handler_registry
from appraisal_kernel.services.participant_tracker import ParticipantTracker

from conftest import HR_ADMIN_ID, ORG_ID


def _explode(action, executor):
    raise RuntimeError("handler down")


@pytest.fixture
def reconciler(session, clock) -> Reconciler:
    registry = default_handler_registry()
    registry.register("explode", _explode)
    return Reconciler(session, clock, registry=registry)


@pytest.fixture
def scenario(make_cycle, lifecycle, enroll, actions, clock):
    """
    On 2024-03-01:
    - March cycle is due to auto-activate and has one overdue participant
    - February cycle is active and past its end date
    - One deferred notify action is due
    """
    march = make_cycle(auto_activate_enabled=True)
    late = enroll(march.id, due_date=date(2024, 2, 28))
    on_time = enroll(march.id, due_date=date(2024, 3, 15))

    february = make_cycle(
        start_date=date(2024, 2, 1),
        end_date=date(2024, 2, 20),
        auto_complete_enabled=True,
    )
    lifecycle.activate_now(february.id, HR_ADMIN_ID)
    open_participant = enroll(february.id)

    action = actions.schedule(
        ORG_ID, "notify",
        payload={"kind": "follow_up"},
        participant_id=on_time.id,
        execute_after_days=0,
    )
    return {
        "march": march,
        "february": february,
        "late": late,
        "on_time": on_time,
        "open_participant": open_participant,
        "action": action,
    }


class TestReconcilerRun:

    def test_full_pass(self, reconciler, scenario, selector):
        summary = reconciler.run()

        assert summary.activated == 1
        assert summary.completed == 1
        assert summary.overdue_participants == 1
        assert summary.actions_executed == 1
        assert summary.errors == ()
        assert summary.status == ReconcilerRunStatus.COMPLETED
        assert summary.run_date == date(2024, 3, 1)

        assert selector.get_cycle(scenario["march"].id).status == CycleStatus.ACTIVE
        assert selector.get_cycle(scenario["february"].id).status == CycleStatus.COMPLETED
        assert selector.get_participant(scenario["late"].id).is_overdue is True
        assert selector.get_participant(scenario["on_time"].id).is_overdue is False
        assert (
            selector.get_participant(scenario["open_participant"].id).status
            == ParticipantStatus.COMPLETED
        )
        assert (
            selector.get_deferred_action(scenario["action"].id).status
            == DeferredActionStatus.EXECUTED
        )

    def test_rerun_changes_nothing(self, reconciler, scenario, selector):
        reconciler.run()
        notifications_after_first = len(selector.notifications())
        activated_after_first = len(
            selector.notifications(kind=NotificationKind.CYCLE_ACTIVATED)
        )

        second = reconciler.run()

        assert second.changed_anything is False
        assert second.errors == ()
        assert len(selector.notifications()) == notifications_after_first
        assert (
            len(selector.notifications(kind=NotificationKind.CYCLE_ACTIVATED))
            == activated_after_first
        )
        assert len(selector.notifications(kind=NotificationKind.PARTICIPANT_OVERDUE)) == 1

    def test_nothing_to_do(self, reconciler):
        summary = reconciler.run()

        assert summary.changed_anything is False
        assert summary.status == ReconcilerRunStatus.COMPLETED

    def test_overdue_scan_disabled(self, session, clock, scenario, selector):
        summary = Reconciler(session, clock, run_overdue_scan=False).run()

        assert summary.overdue_participants == 0
        assert selector.get_participant(scenario["late"].id).is_overdue is False

    def test_deferred_actions_disabled(self, session, clock, scenario, selector):
        summary = Reconciler(session, clock, run_deferred_actions=False).run()

        assert summary.actions_executed == 0
        assert (
            selector.get_deferred_action(scenario["action"].id).status
            == DeferredActionStatus.PENDING
        )

    def test_configured_hr_audience(self, session, clock, scenario, selector):
        audience = uuid4()
        Reconciler(session, clock, hr_audience_id=audience).run()

        kinds = {n.kind for n in selector.notifications(recipient_id=audience)}
        assert kinds == {"cycle_activated", "cycle_completed"}


class TestErrorIsolation:

    def test_failing_action_reported_and_others_continue(
        self, reconciler, scenario, actions, selector,
    ):
        bad = actions.schedule(ORG_ID, "explode", execute_after_days=0)

        summary = reconciler.run()

        assert summary.status == ReconcilerRunStatus.PARTIALLY_COMPLETED
        assert summary.actions_executed == 1
        assert summary.activated == 1
        assert len(summary.errors) == 1
        assert summary.errors[0].startswith(f"execute_deferred_actions: {bad.id}: ")
        assert selector.get_deferred_action(bad.id).status == DeferredActionStatus.PENDING

    def test_failing_item_isolated(
        self, reconciler, scenario, enroll, selector, monkeypatch,
    ):
        other_late = enroll(scenario["march"].id, due_date=date(2024, 2, 25))
        original = ParticipantTracker.flag_overdue

        def flaky(self, participant_id):
            if participant_id == other_late.id:
                raise RuntimeError("lock timeout")
            return original(self, participant_id)

        monkeypatch.setattr(ParticipantTracker, "flag_overdue", flaky)

        summary = reconciler.run()

        assert summary.overdue_participants == 1
        assert summary.errors == (f"flag_overdue: {other_late.id}: lock timeout",)
        assert selector.get_participant(scenario["late"].id).is_overdue is True
        assert selector.get_participant(other_late.id).is_overdue is False

    def test_failed_item_retried_next_run(
        self, reconciler, scenario, actions, clock,
    ):
        bad = actions.schedule(ORG_ID, "explode", execute_after_days=0)
        reconciler.run()

        clock.set_time(datetime(2024, 3, 2, 9, 0))
        again = reconciler.run()

        assert again.errors == (
            f"execute_deferred_actions: {bad.id}: handler down",
        )


class TestRunRecord:

    def test_run_persisted(self, reconciler, scenario, session):
        summary = reconciler.run()

        row = session.execute(
            select(ReconcilerRunModel).where(ReconcilerRunModel.id == summary.run_id)
        ).scalar_one()
        assert row.status == "completed"
        assert row.activated == 1
        assert row.error_count == 0
        assert row.to_dto().run_date == summary.run_date

    def test_errors_persisted(self, reconciler, actions, session):
        actions.schedule(ORG_ID, "explode", execute_after_days=0)

        summary = reconciler.run()

        row = session.get(ReconcilerRunModel, summary.run_id)
        assert row.status == "partially_completed"
        assert row.error_count == 1
        assert row.to_dto().errors == summary.errors

    def test_logs_completion_with_run_id(self, reconciler, captured_logs):
        summary = reconciler.run()

        completed = [
            r for r in captured_logs() if r["message"] == "reconciler_run_completed"
        ]
        assert len(completed) == 1
        assert completed[0]["job_run_id"] == str(summary.run_id)
        assert completed[0]["run_status"] == "completed"


class TestDatabaseFailures:

    def test_savepoint_refused_still_returns_summary(
        self, reconciler, scenario, session, monkeypatch, captured_logs,
    ):
        def refuse_savepoint():
            raise OperationalError("SAVEPOINT", None, Exception("connection reset"))

        monkeypatch.setattr(session, "begin_nested", refuse_savepoint)

        summary = reconciler.run()

        assert summary.status == ReconcilerRunStatus.PARTIALLY_COMPLETED
        assert summary.changed_anything is False
        assert all("connection reset" in error for error in summary.errors)
        assert {error.split(":")[0] for error in summary.errors} == {
            "activate_cycles",
            "complete_cycles",
            "flag_overdue",
            "execute_deferred_actions",
        }

        messages = [r["message"] for r in captured_logs()]
        assert "reconciler_run_record_failed" in messages
        assert "reconciler_run_completed" in messages

    def test_savepoint_refused_leaves_state_untouched(
        self, reconciler, scenario, session, selector, monkeypatch,
    ):
        def refuse_savepoint():
            raise OperationalError("SAVEPOINT", None, Exception("connection reset"))

        monkeypatch.setattr(session, "begin_nested", refuse_savepoint)

        summary = reconciler.run()
        monkeypatch.undo()

        assert selector.get_cycle(scenario["march"].id).status == CycleStatus.DRAFT
        assert selector.get_cycle(scenario["february"].id).status == CycleStatus.ACTIVE
        assert session.get(ReconcilerRunModel, summary.run_id) is None

    def test_failure_between_steps_becomes_error(
        self, reconciler, scenario, session, monkeypatch,
    ):
        def lost_connection(today, counts, errors):
            counts["activated"] = 1
            raise OperationalError("SELECT", None, Exception("server closed"))

        monkeypatch.setattr(reconciler, "_run_steps", lost_connection)

        summary = reconciler.run()

        assert summary.activated == 1
        assert len(summary.errors) == 1
        assert summary.errors[0].startswith("run: ")
        assert "server closed" in summary.errors[0]
        assert session.get(ReconcilerRunModel, summary.run_id).error_count == 1

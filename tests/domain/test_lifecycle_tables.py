"""
Tests for the lifecycle transition tables.

These tests verify:
- Cycle moves are strictly draft -> active -> completed
- Participant edges are forward-only and terminal states have no exits
- Submission transitions are keyed by (state, event)
- acknowledged is only reachable from released
"""

import pytest

from appraisal_kernel.domain.lifecycle import (
    CYCLE_TRANSITIONS,
    PARTICIPANT_TRANSITIONS,
    SUBMISSION_TRANSITIONS,
    TERMINAL_PARTICIPANT_STATUSES,
    CycleStatus,
    DisputeOutcome,
    DisputeStatus,
    ParticipantStatus,
    SubmissionEvent,
    SubmissionStatus,
    allowed_submission_sources,
    can_advance_cycle,
    can_advance_participant,
    next_submission_status,
)


class TestCycleTransitions:

    def test_forward_path(self):
        assert can_advance_cycle(CycleStatus.DRAFT, CycleStatus.ACTIVE)
        assert can_advance_cycle(CycleStatus.ACTIVE, CycleStatus.COMPLETED)

    def test_no_skip_from_draft_to_completed(self):
        assert not can_advance_cycle(CycleStatus.DRAFT, CycleStatus.COMPLETED)

    @pytest.mark.parametrize("current,target", [
        (CycleStatus.ACTIVE, CycleStatus.DRAFT),
        (CycleStatus.COMPLETED, CycleStatus.ACTIVE),
        (CycleStatus.COMPLETED, CycleStatus.DRAFT),
    ])
    def test_no_backward_moves(self, current, target):
        assert not can_advance_cycle(current, target)

    def test_every_status_has_an_entry(self):
        assert set(CYCLE_TRANSITIONS) == set(CycleStatus)


class TestParticipantTransitions:

    @pytest.mark.parametrize("current,target", [
        (ParticipantStatus.PENDING, ParticipantStatus.IN_PROGRESS),
        (ParticipantStatus.IN_PROGRESS, ParticipantStatus.COMPLETED),
        (ParticipantStatus.IN_PROGRESS, ParticipantStatus.FINALIZED),
        (ParticipantStatus.COMPLETED, ParticipantStatus.FINALIZED),
        (ParticipantStatus.COMPLETED, ParticipantStatus.REVIEWED),
        (ParticipantStatus.FINALIZED, ParticipantStatus.REVIEWED),
        (ParticipantStatus.FINALIZED, ParticipantStatus.RELEASED),
        (ParticipantStatus.REVIEWED, ParticipantStatus.RELEASED),
        (ParticipantStatus.RELEASED, ParticipantStatus.ACKNOWLEDGED),
    ])
    def test_forward_edges(self, current, target):
        assert can_advance_participant(current, target)

    @pytest.mark.parametrize("current,target", [
        (ParticipantStatus.PENDING, ParticipantStatus.RELEASED),
        (ParticipantStatus.IN_PROGRESS, ParticipantStatus.RELEASED),
        (ParticipantStatus.COMPLETED, ParticipantStatus.RELEASED),
        (ParticipantStatus.RELEASED, ParticipantStatus.FINALIZED),
        (ParticipantStatus.IN_PROGRESS, ParticipantStatus.PENDING),
    ])
    def test_rejected_edges(self, current, target):
        assert not can_advance_participant(current, target)

    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_PARTICIPANT_STATUSES:
            assert PARTICIPANT_TRANSITIONS[status] == frozenset()

    def test_cancelled_is_not_an_advance_target(self):
        for targets in PARTICIPANT_TRANSITIONS.values():
            assert ParticipantStatus.CANCELLED not in targets


class TestSubmissionTransitions:

    def test_happy_path(self):
        state = SubmissionStatus.NONE
        for event in (
            SubmissionEvent.SELF_RATE,
            SubmissionEvent.MANAGER_RATE,
            SubmissionEvent.RELEASE,
            SubmissionEvent.ACKNOWLEDGE,
        ):
            state = next_submission_status(state, event)
        assert state == SubmissionStatus.ACKNOWLEDGED

    def test_acknowledged_only_via_released(self):
        sources = {
            source for (source, _), target in SUBMISSION_TRANSITIONS.items()
            if target == SubmissionStatus.ACKNOWLEDGED
        }
        assert sources == {SubmissionStatus.RELEASED}

    def test_self_rate_closed_after_manager_rating(self):
        assert next_submission_status(
            SubmissionStatus.MANAGER_SUBMITTED, SubmissionEvent.SELF_RATE,
        ) is None

    def test_release_requires_manager_rating(self):
        assert allowed_submission_sources(SubmissionEvent.RELEASE) == frozenset({
            SubmissionStatus.MANAGER_SUBMITTED,
        })

    def test_dispute_sources(self):
        assert allowed_submission_sources(SubmissionEvent.DISPUTE) == frozenset({
            SubmissionStatus.RELEASED,
            SubmissionStatus.ACKNOWLEDGED,
        })

    @pytest.mark.parametrize("outcome", list(DisputeOutcome))
    def test_dispute_closure_returns_to_released(self, outcome):
        assert next_submission_status(
            SubmissionStatus.DISPUTED, outcome.event,
        ) == SubmissionStatus.RELEASED

    def test_outcome_maps_to_dispute_status(self):
        assert DisputeOutcome.RESOLVED.dispute_status == DisputeStatus.RESOLVED
        assert DisputeOutcome.REJECTED.dispute_status == DisputeStatus.REJECTED

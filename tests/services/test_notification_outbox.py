"""
Tests for NotificationOutbox: dedupe keys, JSON-safe payloads and
dispatch bookkeeping.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from appraisal_kernel.domain.lifecycle import NotificationKind, NotificationStatus


class TestEnqueue:

    def test_enqueue_records_pending_intent(self, outbox, clock):
        recipient = uuid4()

        intent = outbox.enqueue(
            recipient, NotificationKind.RATING_RELEASED, dedupe_key="k-1",
        )

        assert intent.recipient_id == recipient
        assert intent.kind == "rating_released"
        assert intent.status == NotificationStatus.PENDING
        assert intent.enqueued_at == clock.now()

    def test_duplicate_key_absorbed(self, outbox, selector):
        recipient = uuid4()

        first = outbox.enqueue(recipient, "custom_kind", dedupe_key="same")
        second = outbox.enqueue(recipient, "custom_kind", dedupe_key="same")

        assert first is not None
        assert second is None
        assert len(selector.notifications(recipient_id=recipient)) == 1

    def test_random_key_when_omitted(self, outbox):
        recipient = uuid4()

        first = outbox.enqueue(recipient, "custom_kind")
        second = outbox.enqueue(recipient, "custom_kind")

        assert first.dedupe_key != second.dedupe_key

    def test_payload_made_json_safe(self, outbox):
        cycle_id = uuid4()

        intent = outbox.enqueue(
            uuid4(),
            NotificationKind.PARTICIPANT_OVERDUE,
            payload={
                "cycle_id": cycle_id,
                "score": Decimal("4.5"),
                "due_date": date(2024, 3, 10),
                "kind": NotificationKind.PARTICIPANT_OVERDUE,
            },
        )

        assert intent.payload == {
            "cycle_id": str(cycle_id),
            "score": "4.5",
            "due_date": "2024-03-10",
            "kind": "participant_overdue",
        }


class TestDispatch:

    def test_pending_and_mark_dispatched(self, outbox, clock):
        intent = outbox.enqueue(uuid4(), "custom_kind", dedupe_key="d-1")
        clock.advance(60)

        assert [i.id for i in outbox.pending()] == [intent.id]
        assert outbox.mark_dispatched(intent.id) is True
        assert outbox.mark_dispatched(intent.id) is False
        assert outbox.pending() == []

    def test_pending_limit(self, outbox, clock):
        for index in range(3):
            outbox.enqueue(uuid4(), "custom_kind", dedupe_key=f"l-{index}")
            clock.advance(1)

        assert [i.dedupe_key for i in outbox.pending(limit=2)] == ["l-0", "l-1"]

"""
NotificationOutbox -- durable notification intents.

Responsibility:
    Records "this person must be told X" in the ``notification_outbox``
    table, inside the caller's transaction, so that a state change and the
    notification it causes commit or roll back together.  Delivery is done
    by an external consumer that reads ``pending()`` and calls
    ``mark_dispatched()``.

Architecture position:
    Kernel > Services -- imperative shell.  Used by every state machine
    that notifies (cycles, participants, submissions, bulk release,
    deferred actions).

Invariants enforced:
    - At most one intent per ``dedupe_key``.  Re-running a transition
      re-enqueues with the same key and is silently absorbed.
    - Flush-only; no commit.

Failure modes:
    - IntegrityError from a concurrent writer with the same dedupe_key is
      contained in a SAVEPOINT and reported as "already enqueued".
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from appraisal_kernel.domain.clock import Clock, SystemClock
from appraisal_kernel.domain.dtos import NotificationIntentInfo
from appraisal_kernel.domain.lifecycle import NotificationStatus
from appraisal_kernel.logging_config import get_logger
from appraisal_kernel.models.notification import NotificationIntent
from appraisal_kernel.services.base import SYSTEM_ACTOR_ID, BaseService

logger = get_logger("services.notification_outbox")


def _jsonable(value: Any) -> Any:
    """Convert UUIDs, Decimals, dates and enums for a JSON column."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class NotificationOutbox(BaseService[NotificationIntent]):
    """
    Transactional outbox for notification intents.

    Contract:
        ``enqueue`` returns the new intent's DTO, or ``None`` when an intent
        with the same ``dedupe_key`` already exists.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def enqueue(
        self,
        recipient_id: UUID,
        kind: str,
        payload: dict[str, Any] | None = None,
        dedupe_key: str | None = None,
        actor_id: UUID | None = None,
    ) -> NotificationIntentInfo | None:
        """
        Record one notification intent.

        Args:
            recipient_id: Who should be notified.
            kind: Notification kind (``NotificationKind`` value or a rule-defined kind).
            payload: JSON-compatible details for the message template.
            dedupe_key: Idempotency key; a random key is used when omitted.
            actor_id: Who caused the notification (system actor by default).

        Returns:
            The recorded intent, or None if ``dedupe_key`` was already used.
        """
        kind_value = kind.value if isinstance(kind, Enum) else str(kind)
        key = dedupe_key or f"{kind_value}:{recipient_id}:{uuid4()}"

        existing = self.session.execute(
            select(NotificationIntent.id).where(NotificationIntent.dedupe_key == key)
        ).scalar_one_or_none()
        if existing is not None:
            logger.debug(
                "notification_already_enqueued",
                extra={"kind": kind_value, "dedupe_key": key},
            )
            return None

        intent = NotificationIntent(
            recipient_id=recipient_id,
            kind=kind_value,
            payload=_jsonable(payload or {}),
            dedupe_key=key,
            status=NotificationStatus.PENDING,
            enqueued_at=self._clock.now(),
            created_by_id=actor_id or SYSTEM_ACTOR_ID,
        )
        try:
            with self.session.begin_nested():
                self.session.add(intent)
                self.session.flush()
        except IntegrityError:
            logger.info(
                "notification_enqueue_race_absorbed",
                extra={"kind": kind_value, "dedupe_key": key},
            )
            return None

        logger.info(
            "notification_enqueued",
            extra={
                "kind": kind_value,
                "recipient_id": str(recipient_id),
                "dedupe_key": key,
            },
        )
        return intent.to_dto()

    def pending(self, limit: int | None = None) -> list[NotificationIntentInfo]:
        """Intents not yet dispatched, oldest first."""
        stmt = (
            select(NotificationIntent)
            .where(NotificationIntent.status == NotificationStatus.PENDING)
            .order_by(NotificationIntent.enqueued_at, NotificationIntent.dedupe_key)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def mark_dispatched(self, intent_id: UUID) -> bool:
        """
        Mark an intent delivered.

        Returns:
            False when the intent was already dispatched (or does not exist).
        """
        moved = self._conditional_update(
            NotificationIntent,
            intent_id,
            NotificationStatus.PENDING,
            {
                "status": NotificationStatus.DISPATCHED,
                "dispatched_at": self._clock.now(),
            },
        )
        if moved:
            logger.info("notification_dispatched", extra={"intent_id": str(intent_id)})
        return moved

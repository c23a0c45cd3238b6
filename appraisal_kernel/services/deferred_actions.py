"""
DeferredActionExecutor -- scheduled side effects of appraisal outcomes.

Responsibility:
    Schedules, cancels and executes deferred actions.  Execution dispatches
    each due action to the handler registered for its ``action_type``, one
    SAVEPOINT per action, so a failing handler leaves the action pending
    for the next run without disturbing the others.

Architecture position:
    Kernel > Services -- imperative shell.  The reconciler calls
    ``execute_due`` once per run; the rule layer that decides *which*
    actions to schedule lives outside the engine and calls ``schedule``.

Invariants enforced:
    - An action is claimed with a conditional update pending -> executed
      before its handler runs; a second executor finds nothing to claim,
      so re-runs never execute an action twice.
    - A handler failure rolls back the claim together with anything the
      handler wrote (SAVEPOINT).
    - Flush-only; no commit.

Failure modes:
    - DeferredActionHandlerNotFoundError for an unregistered action type
      (collected as a per-action error by ``execute_due``).
    - DeferredActionNotFoundError / InvalidTransitionError from ``cancel``.
    - ValueError from ``schedule`` when no due date can be derived.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from appraisal_kernel.domain.clock import Clock, SystemClock
from appraisal_kernel.domain.dtos import DeferredActionInfo
from appraisal_kernel.domain.lifecycle import DeferredActionStatus
from appraisal_kernel.exceptions import (
    DeferredActionHandlerNotFoundError,
    DeferredActionNotFoundError,
    InvalidTransitionError,
)
from appraisal_kernel.logging_config import LogContext, get_logger
from appraisal_kernel.models.deferred_action import DeferredAction
from appraisal_kernel.models.participant import AppraisalParticipant
from appraisal_kernel.selectors.appraisal_selector import AppraisalSelector
from appraisal_kernel.services.base import (
    SYSTEM_ACTOR_ID,
    BaseService,
    rollback_savepoint,
)
from appraisal_kernel.services.notification_outbox import (
    NotificationOutbox,
    _jsonable,
)

logger = get_logger("services.deferred_actions")


# =============================================================================
# Handlers
# =============================================================================


class DeferredActionHandler(Protocol):
    """Callable that performs one deferred action.

    Runs inside the action's SAVEPOINT; raising rolls the action back to
    pending.  The returned mapping is stored as the action's ``result``.
    """

    def __call__(
        self, action: DeferredActionInfo, executor: DeferredActionExecutor,
    ) -> dict[str, Any] | None: ...


def notify_handler(
    action: DeferredActionInfo, executor: DeferredActionExecutor,
) -> dict[str, Any]:
    """
    Record a notification intent described by the action payload.

    Payload keys: ``kind`` (required), ``recipient_id`` (defaults to the
    participant's employee), anything else is passed through.
    """
    payload = dict(action.payload)
    kind = payload.pop("kind", None)
    if not kind:
        raise ValueError(f"Deferred notify action {action.id} has no 'kind'")

    recipient = payload.pop("recipient_id", None)
    if recipient is None and action.participant_id is not None:
        participant = executor.session.get(AppraisalParticipant, action.participant_id)
        recipient = participant.employee_id if participant is not None else None
    if recipient is None:
        raise ValueError(f"Deferred notify action {action.id} has no recipient")

    intent = executor.outbox.enqueue(
        UUID(str(recipient)),
        kind,
        payload=payload,
        dedupe_key=f"deferred_action:{action.id}",
    )
    return {"notified": intent is not None, "recipient_id": str(recipient)}


class HandlerRegistry:
    """Registry mapping action_type strings to handlers.

    Contract:
        - ``register()`` adds a handler; raises ValueError on duplicate.
        - ``get()`` raises DeferredActionHandlerNotFoundError if missing.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, DeferredActionHandler] = {}

    def register(self, action_type: str, handler: DeferredActionHandler) -> None:
        if action_type in self._handlers:
            raise ValueError(f"Action type '{action_type}' is already registered")
        self._handlers[action_type] = handler

    def get(self, action_type: str) -> DeferredActionHandler:
        try:
            return self._handlers[action_type]
        except KeyError:
            raise DeferredActionHandlerNotFoundError(
                action_type, self.list_types(),
            ) from None

    def list_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))

    def __contains__(self, action_type: str) -> bool:
        return action_type in self._handlers


def default_handler_registry() -> HandlerRegistry:
    """Registry with the built-in ``notify`` handler."""
    registry = HandlerRegistry()
    registry.register("notify", notify_handler)
    return registry


# =============================================================================
# Executor
# =============================================================================


@dataclass(frozen=True)
class DeferredRunResult:
    """Outcome of one ``execute_due`` pass."""

    executed: int = 0
    skipped: int = 0
    errors: tuple[str, ...] = ()

    @property
    def failed(self) -> int:
        return len(self.errors)


class DeferredActionExecutor(BaseService[DeferredAction]):
    """Schedules and runs deferred actions."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        registry: HandlerRegistry | None = None,
        outbox: NotificationOutbox | None = None,
    ):
        super().__init__(session)
        self.clock = clock or SystemClock()
        self.registry = registry or default_handler_registry()
        self.outbox = outbox or NotificationOutbox(session, self.clock)
        self._selector = AppraisalSelector(session)

    def schedule(
        self,
        organization_id: UUID,
        action_type: str,
        payload: dict[str, Any] | None = None,
        participant_id: UUID | None = None,
        execute_after_days: int | None = None,
        auto_execute_on_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> DeferredActionInfo:
        """
        Create a pending action.

        The due date is ``auto_execute_on_date`` when given, otherwise
        today plus ``execute_after_days``.

        Raises:
            ValueError: neither date input given, or a negative day count.
        """
        if auto_execute_on_date is None and execute_after_days is None:
            raise ValueError(
                "A deferred action needs auto_execute_on_date or execute_after_days"
            )
        if execute_after_days is not None and execute_after_days < 0:
            raise ValueError(
                f"execute_after_days must not be negative, got {execute_after_days}"
            )

        now = self.clock.now()
        due_on = auto_execute_on_date or (
            now.date() + timedelta(days=execute_after_days)
        )
        action = DeferredAction(
            organization_id=organization_id,
            participant_id=participant_id,
            action_type=action_type,
            payload=_jsonable(payload or {}),
            execute_after_days=execute_after_days,
            auto_execute_on_date=auto_execute_on_date,
            due_on=due_on,
            status=DeferredActionStatus.PENDING,
            created_at=now,
            created_by_id=actor_id or SYSTEM_ACTOR_ID,
        )
        self.session.add(action)
        self.session.flush()

        logger.info(
            "deferred_action_scheduled",
            extra={
                "action_id": str(action.id),
                "action_type": action_type,
                "due_on": due_on.isoformat(),
            },
        )
        return action.to_dto()

    def cancel(self, action_id: UUID, actor_id: UUID) -> DeferredActionInfo:
        """
        Cancel a pending action.

        Raises:
            DeferredActionNotFoundError: unknown action.
            InvalidTransitionError: action already executed or cancelled.
        """
        action = self.session.get(DeferredAction, action_id)
        if action is None:
            raise DeferredActionNotFoundError(str(action_id))

        moved = self._conditional_update(
            DeferredAction,
            action_id,
            DeferredActionStatus.PENDING,
            {
                "status": DeferredActionStatus.CANCELLED,
                "cancelled_at": self.clock.now(),
                "updated_by_id": actor_id,
            },
        )
        current = self._reload(DeferredAction, action_id)
        if not moved:
            raise InvalidTransitionError(
                "deferred_action",
                str(action_id),
                current.status.value,
                DeferredActionStatus.CANCELLED.value,
            )

        logger.info("deferred_action_cancelled", extra={"action_id": str(action_id)})
        return current.to_dto()

    def find_due(self, today: date | None = None) -> list[DeferredActionInfo]:
        return self._selector.find_due_actions(today or self.clock.today())

    def execute_due(self, today: date | None = None) -> DeferredRunResult:
        """
        Execute every due pending action, one SAVEPOINT each.

        Returns:
            Counts of executed and skipped (claimed elsewhere) actions, and
            one ``"<action_id>: <message>"`` entry per failure.
        """
        executed = 0
        skipped = 0
        errors: list[str] = []

        for action in self.find_due(today):
            with LogContext.bind(participant_id=action.participant_id):
                savepoint = None
                try:
                    savepoint = self.session.begin_nested()
                    handler = self.registry.get(action.action_type)
                    claimed = self._conditional_update(
                        DeferredAction,
                        action.id,
                        DeferredActionStatus.PENDING,
                        {
                            "status": DeferredActionStatus.EXECUTED,
                            "executed_at": self.clock.now(),
                        },
                    )
                    if not claimed:
                        savepoint.rollback()
                        skipped += 1
                        continue

                    result = handler(action, self) or {}
                    self._execute_update(
                        update(DeferredAction)
                        .where(DeferredAction.id == action.id)
                        .values(result=_jsonable(result))
                    )
                    savepoint.commit()
                    executed += 1
                    logger.info(
                        "deferred_action_executed",
                        extra={
                            "action_id": str(action.id),
                            "action_type": action.action_type,
                        },
                    )
                except Exception as exc:
                    rollback_savepoint(savepoint)
                    errors.append(f"{action.id}: {exc}")
                    logger.warning(
                        "deferred_action_failed",
                        extra={
                            "action_id": str(action.id),
                            "action_type": action.action_type,
                            "error": str(exc),
                        },
                    )

        return DeferredRunResult(
            executed=executed, skipped=skipped, errors=tuple(errors),
        )

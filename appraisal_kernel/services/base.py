"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor, session-handling contract and the
    conditional-update primitive every state machine in the kernel uses.
    All concrete services receive a SQLAlchemy ``Session`` that they use
    via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (a request handler, BulkReleaseOrchestrator, the reconciler
      scheduler tick, or the test harness) owns commit/rollback.
    - Every status change is ``UPDATE ... WHERE id = :id AND status IN
      (:expected)``; a zero row count means another writer got there first.

Failure modes:
    - If a subclass violates the flush-only contract by calling
      ``session.commit()``, per-participant SAVEPOINT isolation in bulk
      release and the reconciler is broken.
"""

from abc import ABC
from collections.abc import Iterable
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session, SessionTransaction

from appraisal_kernel.db.base import Base
from appraisal_kernel.logging_config import get_logger

logger = get_logger("services.base")

ModelType = TypeVar("ModelType", bound=Base)

# Actor recorded on rows written by the reconciler and other unattended jobs
SYSTEM_ACTOR_ID = UUID(int=0)


def rollback_savepoint(savepoint: SessionTransaction | None) -> None:
    """
    Roll back a per-item SAVEPOINT after a failure.

    ``savepoint`` is None when ``begin_nested()`` itself raised.  A failing
    rollback is logged, not raised; the caller reports the original error.
    """
    if savepoint is None or not savepoint.is_active:
        return
    try:
        savepoint.rollback()
    except Exception:
        logger.exception("savepoint_rollback_failed")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - ``_execute_update`` expires identity-map state after a write so
          later reads see the changed rows.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``appraisal_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

    def _conditional_update(
        self,
        model: type[ModelType],
        entity_id: UUID,
        expected_status: Any,
        values: dict[str, Any],
        extra_criteria: Iterable[Any] = (),
    ) -> bool:
        """
        Move one row only if its status is still ``expected_status``.

        Args:
            model: Mapped class with ``id`` and ``status`` columns.
            entity_id: Row to update.
            expected_status: A status member or a collection of them.
            values: Column values to write.
            extra_criteria: Additional WHERE clauses (e.g. ``released_at IS NULL``).

        Returns:
            True if exactly this caller moved the row.
        """
        if isinstance(expected_status, (set, frozenset, list, tuple)):
            status_clause = model.status.in_(list(expected_status))
        else:
            status_clause = model.status == expected_status

        stmt = (
            update(model)
            .where(model.id == entity_id, status_clause, *extra_criteria)
            .values(**values)
        )
        return self._execute_update(stmt) == 1

    def _execute_update(self, stmt: Any) -> int:
        """
        Run an UPDATE and return the matched row count.

        The session autoflushes before the statement, so expiring loaded
        instances afterwards loses no pending changes.
        """
        result = self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        changed = result.rowcount
        if changed:
            self.session.expire_all()
        return changed

    def _reload(self, model: type[ModelType], entity_id: UUID) -> ModelType | None:
        """Re-read a row, discarding any stale identity-map state."""
        return self.session.get(model, entity_id, populate_existing=True)

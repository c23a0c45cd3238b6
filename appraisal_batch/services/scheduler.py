"""
ReconcilerScheduler -- In-process polling loop around Reconciler.run().

Contract:
    ``tick()`` opens a fresh session, runs one reconciliation, commits on
    success and rolls back on failure.  ``start()`` / ``stop()`` run ticks
    on a background thread every ``tick_interval_seconds``.

Architecture: appraisal_batch/services.  Uses appraisal_batch.services.reconciler.

Invariants enforced:
    - One session per tick; the tick owns the transaction.
    - Graceful shutdown: ``stop()`` lets the current tick finish.
"""

from __future__ import annotations

import threading
from typing import Callable

from sqlalchemy.orm import Session

from appraisal_batch.domain.types import ReconcilerSummary
from appraisal_batch.services.reconciler import Reconciler
from appraisal_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


class ReconcilerScheduler:
    """In-process polling scheduler for the reconciler.

    Non-goals:
        - NOT a distributed scheduler (no leader election); concurrent
          schedulers are safe but do redundant reads.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        reconciler_factory: Callable[[Session], Reconciler],
        tick_interval_seconds: int = 300,
    ):
        self._session_factory = session_factory
        self._reconciler_factory = reconciler_factory
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> ReconcilerSummary | None:
        """Run one reconciliation (public for testing).

        Returns the run summary, or None if the transaction failed.
        """
        session = self._session_factory()
        try:
            summary = self._reconciler_factory(session).run()
            session.commit()
            return summary
        except Exception:
            session.rollback()
            logger.exception("scheduler_tick_failed")
            return None
        finally:
            session.close()

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="appraisal-reconciler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_forever(self) -> None:
        """Tick on the calling thread until ``stop()`` is called."""
        self._run_loop()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._tick_interval)

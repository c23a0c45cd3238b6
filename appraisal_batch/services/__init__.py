"""appraisal_batch.services -- Reconciler and its polling scheduler."""

from appraisal_batch.services.reconciler import Reconciler
from appraisal_batch.services.scheduler import ReconcilerScheduler

__all__ = ["Reconciler", "ReconcilerScheduler"]

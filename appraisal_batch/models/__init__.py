"""
appraisal_batch.models -- ORM models for reconciler persistence.

Architecture: appraisal_batch/models. Imports from appraisal_kernel.db.base only.
"""

from appraisal_batch.models.run import ReconcilerRunModel

__all__ = ["ReconcilerRunModel"]

"""
Module: appraisal_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import appraisal_kernel domain types, db.types and logging.
    MUST NOT import appraisal_services or appraisal_batch.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only arithmetic for ratings, weights and scores.

Usage:
    from appraisal_engines import ScoreCalculator, progress_to_scale
"""

from appraisal_engines.scoring import ScoreCalculator, progress_to_scale
from appraisal_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "ScoreCalculator",
    "compute_input_fingerprint",
    "progress_to_scale",
    "traced_engine",
]

"""
appraisal_batch -- Scheduled reconciliation for appraisal cycles.

Runs the date-driven work of the engine: cycle activation and completion,
overdue flagging and deferred action execution.  Each run is recorded in
``reconciler_runs``.

Architecture:
    appraisal_batch/ is a top-level package.  Nothing in the kernel,
    engines or services imports from appraisal_batch, apart from the
    kernel's ``import_all_models`` registering its tables.
"""

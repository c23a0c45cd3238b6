"""
appraisal_config -- single public entrypoint for engine settings.

Responsibility:
    Provides ``get_engine_settings()``, the only way runtime code obtains
    reconciler, scoring and notification settings.  YAML parsing lives in
    ``appraisal_config.loader``.

Architecture position:
    Configuration.  Sits beside ``appraisal_batch``; the kernel and engines
    never import from ``appraisal_config``.  The reconciler CLI reads the
    settings and passes plain values down.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` / ``KeyError`` -- invalid or unknown settings.
    - ``yaml.YAMLError`` -- malformed YAML.
"""

from __future__ import annotations

import logging
from pathlib import Path

from appraisal_config.loader import load_settings
from appraisal_config.schema import (
    EngineSettings,
    NotificationSettings,
    ReconcilerSettings,
    ScoringSettings,
)

_logger = logging.getLogger("appraisal_kernel.config")

# Default settings file
DEFAULT_SETTINGS_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_engine_settings(path: Path | str | None = None) -> EngineSettings:
    """Load engine settings.

    Args:
        path: Settings file; defaults to appraisal_config/sets/default.yaml.

    Returns:
        Frozen EngineSettings.
    """
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = load_settings(settings_path)
    _logger.info(
        "engine_settings_loaded",
        extra={
            "settings_name": settings.name,
            "settings_path": str(settings_path),
            "tick_interval_seconds": settings.reconciler.tick_interval_seconds,
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "EngineSettings",
    "NotificationSettings",
    "ReconcilerSettings",
    "ScoringSettings",
    "get_engine_settings",
]

"""
YAML loader for engine settings.

Reads a settings file with ``yaml.safe_load`` and parses it into the frozen
dataclasses of ``appraisal_config.schema``.

* All parse errors raise ``ValueError`` or ``KeyError`` with a message
  naming the offending key.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys are rejected so typos do not silently fall back to defaults.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from appraisal_config.schema import (
    EngineSettings,
    NotificationSettings,
    ReconcilerSettings,
    ScoringSettings,
)

_SECTIONS = frozenset({"name", "reconciler", "scoring", "notifications"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _section(data: dict[str, Any], key: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{key}' must be a mapping, got {type(section).__name__}")
    unknown = set(section) - allowed
    if unknown:
        raise KeyError(f"Unknown keys in '{key}': {sorted(unknown)}")
    return section


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def parse_reconciler(data: dict[str, Any]) -> ReconcilerSettings:
    section = _section(
        data,
        "reconciler",
        {"tick_interval_seconds", "run_overdue_scan", "run_deferred_actions"},
    )
    defaults = ReconcilerSettings()

    interval = section.get("tick_interval_seconds", defaults.tick_interval_seconds)
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise ValueError(
            f"reconciler.tick_interval_seconds must be a positive integer, got {interval!r}"
        )
    return ReconcilerSettings(
        tick_interval_seconds=interval,
        run_overdue_scan=_bool(
            "reconciler",
            "run_overdue_scan",
            section.get("run_overdue_scan", defaults.run_overdue_scan),
        ),
        run_deferred_actions=_bool(
            "reconciler",
            "run_deferred_actions",
            section.get("run_deferred_actions", defaults.run_deferred_actions),
        ),
    )


def parse_scoring(data: dict[str, Any]) -> ScoringSettings:
    section = _section(data, "scoring", {"default_precision"})
    raw = section.get("default_precision")
    if raw is None:
        return ScoringSettings()
    try:
        precision = Decimal(str(raw))
    except InvalidOperation:
        raise ValueError(f"scoring.default_precision is not a number: {raw!r}") from None
    if precision <= 0:
        raise ValueError(f"scoring.default_precision must be positive, got {raw!r}")
    return ScoringSettings(default_precision=precision)


def parse_notifications(data: dict[str, Any]) -> NotificationSettings:
    section = _section(data, "notifications", {"hr_audience"})
    raw = section.get("hr_audience")
    if raw is None:
        return NotificationSettings()
    try:
        return NotificationSettings(hr_audience=UUID(str(raw)))
    except ValueError:
        raise ValueError(f"notifications.hr_audience is not a UUID: {raw!r}") from None


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse a settings mapping into EngineSettings.

    Raises:
        KeyError: unknown top-level or section keys.
        ValueError: a value of the wrong type or range.
    """
    unknown = set(data) - _SECTIONS
    if unknown:
        raise KeyError(f"Unknown settings sections: {sorted(unknown)}")
    return EngineSettings(
        name=str(data.get("name", "default")),
        reconciler=parse_reconciler(data),
        scoring=parse_scoring(data),
        notifications=parse_notifications(data),
    )


def load_settings(path: Path) -> EngineSettings:
    return parse_settings(load_yaml_file(path))

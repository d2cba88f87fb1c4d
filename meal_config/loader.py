"""
Configuration Loader (``meal_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``EngineConfig`` dataclass.  Runtime callers go through
``meal_config.get_active_config()``; this module is the parsing step.

Invariants enforced
-------------------
* Unknown keys are rejected (a typo must not silently fall back to a
  default).
* Money and thresholds are parsed from strings into ``Decimal``; YAML
  floats are converted through ``str`` so no binary noise survives.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or invalid value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from datetime import time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from meal_config.schema import EngineConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: {value!r} is not a number") from exc


def _time_of_day(value: Any, key: str) -> time:
    # YAML 1.1 reads an unquoted 10:30 as the sexagesimal integer 630
    if isinstance(value, int):
        hours, minutes = divmod(value, 60)
        return time(hours, minutes)
    try:
        return time.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"{key}: {value!r} is not a HH:MM time") from exc


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """Translate a raw mapping into a validated EngineConfig."""
    section = data.get("engine", data)
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in section.items():
        if key == "combo_prices":
            if not isinstance(value, dict):
                raise ValueError("combo_prices must be a mapping of combo name to price")
            kwargs[key] = {
                str(name): _decimal(price, f"combo_prices[{name}]")
                for name, price in value.items()
            }
        elif key == "low_budget_threshold":
            kwargs[key] = _decimal(value, key)
        elif key == "default_cutoff_time":
            kwargs[key] = _time_of_day(value, key)
        elif key in ("max_freezes_per_week", "min_subscription_days", "optimistic_retry_limit"):
            kwargs[key] = int(value)
        elif key == "lock_timeout_seconds":
            kwargs[key] = float(value)
        else:
            kwargs[key] = str(value)
    return EngineConfig(**kwargs)


def load_engine_config(path: Path) -> EngineConfig:
    return parse_engine_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

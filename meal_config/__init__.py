"""
meal_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain configuration.
    It resolves the YAML file (explicit path, then the
    ``MEAL_ENGINE_CONFIG`` environment variable, then the bundled
    ``sets/default.yaml``), parses it into ``EngineConfig`` and emits a
    ``MEAL_CONFIG_TRACE`` log record with the content checksum.

Architecture position:
    Configuration -- sits above ``meal_kernel`` and below ``meal_modules``.
    The kernel never imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- configured file missing.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from meal_config.loader import compute_checksum, load_yaml_file, parse_engine_config
from meal_config.schema import EngineConfig

_logger = logging.getLogger("meal_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_ENV_VAR = "MEAL_ENGINE_CONFIG"


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """The ONLY public configuration entrypoint."""
    resolved = Path(path or os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_FILE)
    data = load_yaml_file(resolved)
    config = parse_engine_config(data)

    _logger.info(
        "MEAL_CONFIG_TRACE",
        extra={
            "trace_type": "MEAL_CONFIG_TRACE",
            "config_path": str(resolved),
            "checksum": compute_checksum(data),
            "max_freezes_per_week": config.max_freezes_per_week,
            "combo_count": len(config.combo_prices),
        },
    )
    return config


__all__ = ["CONFIG_ENV_VAR", "EngineConfig", "get_active_config"]

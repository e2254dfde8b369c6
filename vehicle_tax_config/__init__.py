"""
vehicle_tax_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_active_settings()`` is the only way services and scripts obtain
    settings.  No other component reads settings files or environment
    variables.

Architecture position:
    Configuration -- sits above ``vehicle_tax_kernel`` and below
    ``vehicle_tax_services``.  The kernel and engines MUST NEVER import
    from this package.

Resolution order for the settings file:
    1. the ``path`` argument,
    2. the ``VEHICLE_TAX_SETTINGS`` environment variable,
    3. ``sets/default.yaml`` shipped with this package.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` -- a setting fails validation.
"""

from __future__ import annotations

import os
from pathlib import Path

from vehicle_tax_config.loader import load_tax_tables, load_yaml_file, parse_settings
from vehicle_tax_config.schema import (
    CirculationFeeStep,
    DepreciationSettings,
    EngineSettings,
    PersistenceSettings,
    TaxTableSeed,
)
from vehicle_tax_kernel.logging_config import get_logger

_logger = get_logger("config")

SETTINGS_ENV_VAR = "VEHICLE_TAX_SETTINGS"

_SETS_DIR = Path(__file__).parent / "sets"
DEFAULT_SETTINGS_PATH = _SETS_DIR / "default.yaml"
DEFAULT_TAX_TABLES_PATH = _SETS_DIR / "tax_tables.yaml"

__all__ = [
    "CirculationFeeStep",
    "DEFAULT_SETTINGS_PATH",
    "DEFAULT_TAX_TABLES_PATH",
    "DepreciationSettings",
    "EngineSettings",
    "PersistenceSettings",
    "SETTINGS_ENV_VAR",
    "TaxTableSeed",
    "get_active_settings",
    "load_tax_tables",
]


def get_active_settings(path: Path | str | None = None) -> EngineSettings:
    """
    Load and validate the engine settings.

    Args:
        path: Settings YAML file.  Defaults to ``$VEHICLE_TAX_SETTINGS``,
            then the packaged ``sets/default.yaml``.

    Returns:
        A frozen EngineSettings.
    """
    resolved = Path(path or os.environ.get(SETTINGS_ENV_VAR) or DEFAULT_SETTINGS_PATH)
    settings = parse_settings(load_yaml_file(resolved))

    _logger.info(
        "CONFIG_TRACE",
        extra={
            "trace_type": "CONFIG_TRACE",
            "settings_path": str(resolved),
            "settings_name": settings.name,
            "settings_version": settings.version,
            "checksum": settings.checksum,
            "vat_rate": settings.vat_rate,
            "require_full_coverage": settings.require_full_coverage,
        },
    )
    return settings

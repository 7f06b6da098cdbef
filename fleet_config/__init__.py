"""
fleet_config -- single public entrypoint for fleet configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.  Returns a frozen ``FleetSettings``; ``bridges`` turns it into
    the kernel's ``OperatingPolicy``.

Architecture position:
    Configuration.  This package sits above ``fleet_kernel`` and below
    ``fleet_services``.  The kernel MUST NEVER import from ``fleet_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic identity: the same YAML document always produces the same
      checksum.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ConfigValidationError`` -- a value is missing, mistyped or out of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``fleet_config_loaded`` log entry with the config id, version and
    checksum, tying every trip and invoice to the configuration that
    governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fleet_config.bridges import build_operating_policy
from fleet_config.loader import load_yaml_file, parse_settings
from fleet_config.schema import (
    ConfigValidationError,
    DatabaseSettings,
    FleetSettings,
    LedgerSettings,
    NumberingSettings,
    SchedulingSettings,
)

_logger = logging.getLogger("fleet_kernel.config")

# Default configuration set
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> FleetSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.  Defaults
            to fleet_config/sets/default.yaml.

    Returns:
        FleetSettings with its checksum set.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If a value fails validation.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    settings = parse_settings(load_yaml_file(path))

    _logger.info(
        "fleet_config_loaded",
        extra={
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "config_path": str(path),
            "credit_policy": settings.ledger.credit_policy,
        },
    )
    return settings


__all__ = [
    "ConfigValidationError",
    "DEFAULT_CONFIG_PATH",
    "DatabaseSettings",
    "FleetSettings",
    "LedgerSettings",
    "NumberingSettings",
    "SchedulingSettings",
    "build_operating_policy",
    "get_active_config",
]

"""
Configuration Loader (``fleet_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the typed
``fleet_config.schema`` dataclasses.  The single public entry point for
runtime config is ``fleet_config.get_active_config()``.

Invariants enforced
-------------------
* Every key has a typed default; a key that is present must have the right
  type and range or ``ConfigValidationError`` names it.
* Unknown top-level sections are rejected, so a misspelt section never
  silently falls back to defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad value  -> ``ConfigValidationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from fleet_config.schema import (
    CREDIT_POLICIES,
    ConfigValidationError,
    DatabaseSettings,
    FleetSettings,
    LedgerSettings,
    NumberingSettings,
    SchedulingSettings,
)

_SECTIONS = ("config_id", "version", "scheduling", "ledger", "numbering", "database")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigValidationError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigValidationError("<root>", f"expected a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigValidationError(name, "expected a mapping")
    return section


def _int(section: dict[str, Any], key: str, default: int, path: str, minimum: int = 0) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"{path}.{key}", f"expected an integer, got {value!r}")
    if value < minimum:
        raise ConfigValidationError(f"{path}.{key}", f"must be >= {minimum}, got {value}")
    return value


def _bool(section: dict[str, Any], key: str, default: bool, path: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigValidationError(f"{path}.{key}", f"expected true or false, got {value!r}")
    return value


def _str(section: dict[str, Any], key: str, default: str, path: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value:
        raise ConfigValidationError(f"{path}.{key}", f"expected a non-empty string, got {value!r}")
    return value


def parse_scheduling(data: dict[str, Any]) -> SchedulingSettings:
    return SchedulingSettings(
        start_grace_minutes=_int(data, "start_grace_minutes", 60, "scheduling"),
        auto_invoice_default=_bool(data, "auto_invoice_default", True, "scheduling"),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    """Parse the ledger section; the aging buckets are three increasing day counts."""
    policy = _str(data, "credit_policy", "advisory", "ledger").lower()
    if policy not in CREDIT_POLICIES:
        raise ConfigValidationError(
            "ledger.credit_policy", f"expected one of {', '.join(CREDIT_POLICIES)}, got {policy!r}"
        )

    buckets = data.get("aging_buckets", [30, 60, 90])
    if (
        not isinstance(buckets, list)
        or len(buckets) != 3
        or any(isinstance(b, bool) or not isinstance(b, int) or b <= 0 for b in buckets)
        or buckets != sorted(set(buckets))
    ):
        raise ConfigValidationError(
            "ledger.aging_buckets",
            f"expected three strictly increasing positive integers, got {buckets!r}",
        )

    return LedgerSettings(
        credit_policy=policy,
        default_credit_days=_int(data, "default_credit_days", 30, "ledger"),
        aging_buckets=tuple(buckets),
    )


def parse_numbering(data: dict[str, Any]) -> NumberingSettings:
    prefixes = _section(data, "prefixes")
    return NumberingSettings(
        trip_prefix=_str(prefixes, "trip", "TR", "numbering.prefixes"),
        invoice_prefix=_str(prefixes, "invoice", "BL", "numbering.prefixes"),
        payment_prefix=_str(prefixes, "payment", "PAY", "numbering.prefixes"),
        expense_prefix=_str(prefixes, "expense", "EXP", "numbering.prefixes"),
        date_format=_str(data, "date_format", "%Y%m%d", "numbering"),
        width=_int(data, "width", 4, "numbering", minimum=1),
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    timeout = data.get("busy_timeout_seconds", 30)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
        raise ConfigValidationError(
            "database.busy_timeout_seconds", f"expected a non-negative number, got {timeout!r}"
        )
    return DatabaseSettings(
        url=_str(data, "url", "sqlite:///fleet.db", "database"),
        echo=_bool(data, "echo", False, "database"),
        busy_timeout_seconds=float(timeout),
    )


def parse_settings(data: dict[str, Any]) -> FleetSettings:
    """
    Parse a configuration document into FleetSettings.

    Postconditions:
        - The returned settings carry the checksum of ``data``.

    Raises:
        ConfigValidationError: unknown section or invalid value.
    """
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigValidationError(unknown[0], "unknown configuration section")

    return FleetSettings(
        config_id=_str(data, "config_id", "fleet-default", "root"),
        version=_int(data, "version", 1, "root", minimum=1),
        scheduling=parse_scheduling(_section(data, "scheduling")),
        ledger=parse_ledger(_section(data, "ledger")),
        numbering=parse_numbering(_section(data, "numbering")),
        database=parse_database(_section(data, "database")),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums regardless of
    key order.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

"""
FleetSettings schema.

Typed, frozen view of a fleet configuration set.  YAML documents are parsed
into these types by the loader; ``fleet_config.bridges`` turns them into the
kernel's OperatingPolicy.

Key distinction:
  FleetSettings   = source artifact (human-authored YAML, checksummed)
  OperatingPolicy = runtime artifact the kernel services consume
"""

from __future__ import annotations

from dataclasses import dataclass, field

CREDIT_POLICIES = ("advisory", "enforce")


class ConfigValidationError(ValueError):
    """A configuration value is missing, mistyped, or out of range.

    Attributes:
        key: Dotted path of the offending key (e.g. "ledger.credit_policy").
    """

    code: str = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Invalid configuration at '{key}': {message}")


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulingSettings:
    """Trip scheduling rules."""

    start_grace_minutes: int = 60
    auto_invoice_default: bool = True


@dataclass(frozen=True)
class LedgerSettings:
    """Credit and receivables rules."""

    credit_policy: str = "advisory"  # advisory | enforce
    default_credit_days: int = 30
    aging_buckets: tuple[int, ...] = (30, 60, 90)


@dataclass(frozen=True)
class NumberingSettings:
    """Document number prefixes and layout."""

    trip_prefix: str = "TR"
    invoice_prefix: str = "BL"
    payment_prefix: str = "PAY"
    expense_prefix: str = "EXP"
    date_format: str = "%Y%m%d"
    width: int = 4


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///fleet.db"
    echo: bool = False
    busy_timeout_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FleetSettings:
    """
    The complete configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON of the source document
    and identifies the exact configuration a process ran with.
    """

    config_id: str = "fleet-default"
    version: int = 1
    scheduling: SchedulingSettings = field(default_factory=SchedulingSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    numbering: NumberingSettings = field(default_factory=NumberingSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    checksum: str = ""

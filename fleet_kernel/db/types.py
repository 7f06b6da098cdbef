"""
Module: fleet_kernel.db.types
Responsibility: Parse-on-write and rounding utilities for money and
    measurement columns.  Centralizes precision, rounding, and parse-on-write
    conversion so that every model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the ledger.  All monetary amounts use Decimal.
    - money_from_value() is the single entry point that turns caller input
      into a Decimal amount.  Free text that is not a number, floats, NaN
      and infinities are rejected rather than coerced.
    - round_money() is the ONLY sanctioned rounding function.

Failure modes:
    - InvalidAmountError on unparseable, non-finite, or float input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from fleet_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def money_from_value(value: Any, field: str = "amount") -> Decimal:
    """
    Parse caller input into a Decimal amount.

    Accepts Decimal, int, and numeric strings.  Floats are refused because
    their binary representation silently changes the amount.

    Args:
        value: Raw amount as supplied by the caller.
        field: Name of the field, carried on the error.

    Returns:
        The amount as a finite Decimal (not rounded).

    Raises:
        InvalidAmountError: If the value cannot be parsed exactly.
    """
    if isinstance(value, bool) or isinstance(value, float) or value is None:
        raise InvalidAmountError(field, str(value), "must be a Decimal, int, or numeric string")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, str):
        try:
            parsed = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            raise InvalidAmountError(field, value, "not a number") from None
    else:
        raise InvalidAmountError(field, str(value), f"unsupported type {type(value).__name__}")

    if not parsed.is_finite():
        raise InvalidAmountError(field, str(value), "must be finite")
    return parsed


def optional_money(value: Any, field: str) -> Decimal:
    """Parse an optional amount, treating None as zero."""
    if value is None:
        return ZERO
    return money_from_value(value, field)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the ONLY sanctioned rounding function for financial values.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)

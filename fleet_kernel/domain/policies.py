"""
Operating policy (``fleet_kernel.domain.policies``).

Responsibility
--------------
The tunable business rules the kernel services consult: start grace
period, auto-invoice default, credit policy, payment terms, aging
boundaries and document numbering.  Services receive an ``OperatingPolicy``
by constructor injection; ``fleet_config.bridges`` builds one from the
loaded configuration.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  The kernel never imports
``fleet_config``; the dependency points the other way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class CreditPolicy(str, Enum):
    """What happens when a client would go over its credit limit."""

    ADVISORY = "advisory"  # log credit_limit_warning and proceed
    ENFORCE = "enforce"  # raise CreditLimitExceededError


@dataclass(frozen=True)
class NumberFormat:
    """Prefixes and layout of generated document numbers."""

    trip_prefix: str = "TR"
    invoice_prefix: str = "BL"
    payment_prefix: str = "PAY"
    expense_prefix: str = "EXP"
    date_format: str = "%Y%m%d"
    width: int = 4


@dataclass(frozen=True)
class OperatingPolicy:
    start_grace_minutes: int = 60
    auto_invoice_default: bool = True
    credit_policy: CreditPolicy = CreditPolicy.ADVISORY
    default_credit_days: int = 30
    aging_boundaries: tuple[int, int, int] = (30, 60, 90)
    numbering: NumberFormat = field(default_factory=NumberFormat)

    @property
    def enforces_credit_limit(self) -> bool:
        return self.credit_policy == CreditPolicy.ENFORCE


DEFAULT_POLICY = OperatingPolicy()

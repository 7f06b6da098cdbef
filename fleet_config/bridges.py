"""
Config -> Kernel Bridges.

Functions that convert FleetSettings into kernel-compatible inputs.  They
live in fleet_config (the producer) because the kernel must NEVER import
fleet_config.

Usage:
    from fleet_config.bridges import build_operating_policy

    settings = get_active_config()
    policy = build_operating_policy(settings)
    service = TripLifecycleService(session, clock, policy)
"""

from __future__ import annotations

from fleet_config.schema import FleetSettings
from fleet_kernel.domain.policies import CreditPolicy, NumberFormat, OperatingPolicy


def build_number_format(settings: FleetSettings) -> NumberFormat:
    numbering = settings.numbering
    return NumberFormat(
        trip_prefix=numbering.trip_prefix,
        invoice_prefix=numbering.invoice_prefix,
        payment_prefix=numbering.payment_prefix,
        expense_prefix=numbering.expense_prefix,
        date_format=numbering.date_format,
        width=numbering.width,
    )


def build_operating_policy(settings: FleetSettings) -> OperatingPolicy:
    """Build the OperatingPolicy the kernel services run under."""
    return OperatingPolicy(
        start_grace_minutes=settings.scheduling.start_grace_minutes,
        auto_invoice_default=settings.scheduling.auto_invoice_default,
        credit_policy=CreditPolicy(settings.ledger.credit_policy),
        default_credit_days=settings.ledger.default_credit_days,
        aging_boundaries=tuple(settings.ledger.aging_buckets),
        numbering=build_number_format(settings),
    )

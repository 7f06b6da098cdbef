"""
ORM-Level Append-Only Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Two records in the fleet kernel are logs, not state:

  - TripEvent: the history of a trip.  A rewritten history line would hide
    who moved a trip and why.
  - Payment: money received.  A bounced payment is never deleted or edited
    into a smaller amount; it is marked BOUNCED and the ledger reverses its
    effect, leaving a visible trail.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
Listeners registered here intercept those events and raise
ImmutabilityViolationError, aborting the flush before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity     | What is frozen                            | What may change
-----------|-------------------------------------------|------------------------------
TripEvent  | Everything, from creation                 | Nothing
Payment    | number, invoice, client, amount, mode,    | status (along the payment
           | reference, received_at                    | transition table), cleared_at,
           |                                           | bounced_at, bounce_reason,
           |                                           | updated_at, updated_by
Both       | Rows are never deleted                    |

===============================================================================
USAGE
===============================================================================

Called by create_tables(); safe to call more than once:

    from fleet_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from fleet_kernel.domain.ledger_rules import can_transition_payment
from fleet_kernel.exceptions import ImmutabilityViolationError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.payment import Payment
from fleet_kernel.models.trip import TripEvent

logger = get_logger("db.immutability")

PAYMENT_FROZEN_FIELDS = (
    "payment_number",
    "invoice_id",
    "client_id",
    "amount",
    "mode",
    "reference",
    "received_at",
)


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_trip_event_update(mapper, connection, target):
    raise _blocked("TripEvent", target.id, "UPDATE", "Trip history is append-only")


def _check_trip_event_delete(mapper, connection, target):
    raise _blocked("TripEvent", target.id, "DELETE", "Trip history is append-only")


def _check_payment_update(mapper, connection, target):
    """Allow only status moves along the payment transition table."""
    for field in PAYMENT_FROZEN_FIELDS:
        if get_history(target, field).has_changes():
            raise _blocked(
                "Payment",
                target.id,
                "UPDATE",
                f"Payment field '{field}' cannot change after it is recorded",
            )

    status_history = get_history(target, "status")
    if status_history.deleted and status_history.added:
        old_status = status_history.deleted[0]
        new_status = status_history.added[0]
        if old_status != new_status and not can_transition_payment(old_status, new_status):
            raise _blocked(
                "Payment",
                target.id,
                "UPDATE",
                f"Payment status cannot move from {old_status} to {new_status}",
            )


def _check_payment_delete(mapper, connection, target):
    raise _blocked("Payment", target.id, "DELETE", "Payments are never deleted")


_LISTENERS = (
    (TripEvent, "before_update", _check_trip_event_update),
    (TripEvent, "before_delete", _check_trip_event_delete),
    (Payment, "before_update", _check_payment_update),
    (Payment, "before_delete", _check_payment_delete),
)


def register_immutability_listeners() -> None:
    """Register all append-only listeners (idempotent)."""
    for target, identifier, fn in _LISTENERS:
        if not event.contains(target, identifier, fn):
            event.listen(target, identifier, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove all append-only listeners. FOR TESTING ONLY."""
    for target, identifier, fn in _LISTENERS:
        if event.contains(target, identifier, fn):
            event.remove(target, identifier, fn)

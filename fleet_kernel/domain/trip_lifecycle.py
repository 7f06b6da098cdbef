"""
Trip lifecycle state machine (``fleet_kernel.domain.trip_lifecycle``).

Responsibility
--------------
Closed status and action tags for trips, and the single transition table
that every lifecycle operation consults.  No caller compares status strings
on its own; they ask this module.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* COMPLETED and CANCELLED are terminal: no action leads out of them.
* Only PLANNED and RUNNING trips hold a truck or driver.
"""

from __future__ import annotations

from enum import Enum


class TripStatus(str, Enum):
    """Lifecycle status of a trip."""

    PLANNED = "PLANNED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TripAction(str, Enum):
    """Requested lifecycle move."""

    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


class TripEventType(str, Enum):
    """Kinds of entries in a trip's append-only history."""

    CREATED = "CREATED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RESCHEDULED = "RESCHEDULED"
    CHARGES_UPDATED = "CHARGES_UPDATED"
    ADVANCE_ADDED = "ADVANCE_ADDED"


TRANSITIONS: dict[tuple[TripStatus, TripAction], TripStatus] = {
    (TripStatus.PLANNED, TripAction.START): TripStatus.RUNNING,
    (TripStatus.PLANNED, TripAction.CANCEL): TripStatus.CANCELLED,
    (TripStatus.RUNNING, TripAction.COMPLETE): TripStatus.COMPLETED,
    (TripStatus.RUNNING, TripAction.CANCEL): TripStatus.CANCELLED,
}

ACTION_EVENTS: dict[TripAction, TripEventType] = {
    TripAction.START: TripEventType.STARTED,
    TripAction.COMPLETE: TripEventType.COMPLETED,
    TripAction.CANCEL: TripEventType.CANCELLED,
}

# Statuses in which a trip occupies its truck and driver
ACTIVE_STATUSES: frozenset[TripStatus] = frozenset({TripStatus.PLANNED, TripStatus.RUNNING})

TERMINAL_STATUSES: frozenset[TripStatus] = frozenset(
    {TripStatus.COMPLETED, TripStatus.CANCELLED}
)

# Statuses in which charges and advances may still change
EDITABLE_STATUSES = ACTIVE_STATUSES


def next_status(current: TripStatus, action: TripAction) -> TripStatus | None:
    """Return the status ``action`` leads to, or None when the move is illegal."""
    return TRANSITIONS.get((TripStatus(current), action))


def is_terminal(status: TripStatus) -> bool:
    return TripStatus(status) in TERMINAL_STATUSES

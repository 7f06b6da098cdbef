"""
Typed Exception Hierarchy for the Fleet Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Scheduling and ledger errors are decisions the caller has to act on: pick
another truck, correct an amount, re-read a trip that moved on.  Callers must
be able to tell them apart without parsing message text, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        operations.apply_payment(invoice_id, Decimal("7000"), PaymentMode.CASH)
    except ExceedsBalanceError as e:
        api_response(code=e.code, balance=str(e.balance_amount))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FleetKernelError (base)
    |
    +-- NotFoundError
    |   +-- TruckNotFoundError
    |   +-- DriverNotFoundError
    |   +-- ClientNotFoundError
    |   +-- TripNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   |   +-- ExceedsBalanceError
    |   +-- InvalidTimeWindowError
    |   +-- StartTimeOutOfRangeError
    |   +-- CapacityExceededError
    |   +-- InactiveResourceError
    |   +-- CreditLimitExceededError
    |
    +-- TripStateError
    |   +-- InvalidStateTransitionError
    |
    +-- SchedulingError
    |   +-- ResourceUnavailableError
    |
    +-- LedgerError
    |   +-- AlreadyReversedError
    |   +-- InvalidPaymentTransitionError
    |   +-- DuplicateInvoiceError
    |   +-- LedgerInvariantError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityViolationError
    |
    +-- TransientStoreError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | When Raised
-------------|----------------------------|-----------------------------------------
Lookup       | *_NOT_FOUND                | Referenced record does not exist
-------------|----------------------------|-----------------------------------------
Validation   | INVALID_AMOUNT             | Non-positive charge, advance > charges
             | EXCEEDS_BALANCE            | Payment larger than invoice balance
             | INVALID_TIME_WINDOW        | start > end, end before actual start
             | START_TIME_OUT_OF_RANGE    | Start more than the grace period ago
             | CAPACITY_EXCEEDED          | Load heavier than truck capacity
             | INACTIVE_RESOURCE          | Truck/driver/client flagged inactive
             | CREDIT_LIMIT_EXCEEDED      | Credit check failed (enforce policy)
-------------|----------------------------|-----------------------------------------
Trip state   | INVALID_STATE_TRANSITION   | Lifecycle move illegal from state
-------------|----------------------------|-----------------------------------------
Scheduling   | RESOURCE_UNAVAILABLE       | Truck/driver booked in the window
-------------|----------------------------|-----------------------------------------
Ledger       | ALREADY_REVERSED           | Payment reversed twice
             | INVALID_PAYMENT_TRANSITION | e.g. clearing a bounced payment
             | DUPLICATE_INVOICE          | Trip already invoiced
             | LEDGER_INVARIANT_VIOLATION | Derived totals out of step
-------------|----------------------------|-----------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT   | Concurrent modification detected
-------------|----------------------------|-----------------------------------------
Immutability | IMMUTABILITY_VIOLATION     | Rewriting an append-only record
-------------|----------------------------|-----------------------------------------
Store        | TRANSIENT_STORE_FAILURE    | Write failed at the store; retry
             |                            | with the same idempotency key

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS (not base classes):

    try:
        operations.create_trip(request)
    except ResourceUnavailableError as e:
        suggest_other_truck(e.conflicting_trip_numbers)
    except ValidationError as e:
        show_form_error(e.code, str(e))

2. TRANSIENT FAILURES ARE NEVER RETRIED FOR YOU ON WRITES:

    except TransientStoreError as e:
        retry_later(e.operation, reference=payment_reference)

===============================================================================
"""


class FleetKernelError(Exception):
    """
    Base exception for all fleet kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FLEET_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(FleetKernelError):
    """A referenced record does not exist."""

    code: str = "NOT_FOUND"
    entity: str = "Record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"{self.entity} not found: {record_id}")


class TruckNotFoundError(NotFoundError):
    code: str = "TRUCK_NOT_FOUND"
    entity: str = "Truck"


class DriverNotFoundError(NotFoundError):
    code: str = "DRIVER_NOT_FOUND"
    entity: str = "Driver"


class ClientNotFoundError(NotFoundError):
    code: str = "CLIENT_NOT_FOUND"
    entity: str = "Client"


class TripNotFoundError(NotFoundError):
    code: str = "TRIP_NOT_FOUND"
    entity: str = "Trip"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    entity: str = "Invoice"


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"
    entity: str = "Payment"


# Validation exceptions


class ValidationError(FleetKernelError):
    """Base exception for input that fails a business rule before any write."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """An amount is non-positive, unparseable, or out of its allowed range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class ExceedsBalanceError(InvalidAmountError):
    """Payment is larger than the remaining invoice balance."""

    code: str = "EXCEEDS_BALANCE"

    def __init__(self, invoice_number: str, amount: str, balance_amount: str):
        self.invoice_number = invoice_number
        self.amount = amount
        self.balance_amount = balance_amount
        super().__init__(
            "amount",
            amount,
            f"exceeds balance {balance_amount} of invoice {invoice_number}",
        )


class InvalidTimeWindowError(ValidationError):
    """A time window is inverted or ends before it started."""

    code: str = "INVALID_TIME_WINDOW"

    def __init__(self, start: str, end: str, reason: str):
        self.start = start
        self.end = end
        self.reason = reason
        super().__init__(f"Invalid time window [{start}, {end}]: {reason}")


class StartTimeOutOfRangeError(ValidationError):
    """Actual start is further in the past than the configured grace period."""

    code: str = "START_TIME_OUT_OF_RANGE"

    def __init__(self, trip_number: str, actual_start: str, grace_minutes: int):
        self.trip_number = trip_number
        self.actual_start = actual_start
        self.grace_minutes = grace_minutes
        super().__init__(
            f"Start time {actual_start} for trip {trip_number} is more than "
            f"{grace_minutes} minutes in the past"
        )


class CapacityExceededError(ValidationError):
    """Load weight is above the truck's rated capacity."""

    code: str = "CAPACITY_EXCEEDED"

    def __init__(self, truck_number: str, load_weight: str, capacity: str):
        self.truck_number = truck_number
        self.load_weight = load_weight
        self.capacity = capacity
        super().__init__(
            f"Load {load_weight}t exceeds capacity {capacity}t of truck {truck_number}"
        )


class InactiveResourceError(ValidationError):
    """Truck, driver, or client is flagged inactive."""

    code: str = "INACTIVE_RESOURCE"

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} is inactive")


class CreditLimitExceededError(ValidationError):
    """
    Client would exceed its credit limit.

    Only raised when the ledger credit policy is ``enforce``; under the
    default advisory policy the same condition is logged instead.
    """

    code: str = "CREDIT_LIMIT_EXCEEDED"

    def __init__(
        self,
        client_code: str,
        outstanding_balance: str,
        proposed_amount: str,
        credit_limit: str,
    ):
        self.client_code = client_code
        self.outstanding_balance = outstanding_balance
        self.proposed_amount = proposed_amount
        self.credit_limit = credit_limit
        super().__init__(
            f"Client {client_code}: outstanding {outstanding_balance} + "
            f"{proposed_amount} exceeds credit limit {credit_limit}"
        )


# Trip lifecycle exceptions


class TripStateError(FleetKernelError):
    """Base exception for trip lifecycle errors."""

    code: str = "TRIP_STATE_ERROR"


class InvalidStateTransitionError(TripStateError):
    """Requested lifecycle move is illegal from the trip's current status."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, trip_number: str, current_status: str, action: str):
        self.trip_number = trip_number
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} trip {trip_number} in status {current_status}"
        )


# Scheduling exceptions


class SchedulingError(FleetKernelError):
    """Base exception for scheduling errors."""

    code: str = "SCHEDULING_ERROR"


class ResourceUnavailableError(SchedulingError):
    """Truck or driver is already committed to an overlapping window."""

    code: str = "RESOURCE_UNAVAILABLE"

    def __init__(
        self,
        kind: str,
        resource_id: str,
        window_start: str,
        window_end: str,
        conflicting_trip_numbers: list[str],
    ):
        self.kind = kind
        self.resource_id = resource_id
        self.window_start = window_start
        self.window_end = window_end
        self.conflicting_trip_numbers = conflicting_trip_numbers
        super().__init__(
            f"{kind} {resource_id} is not available for [{window_start}, "
            f"{window_end}]: conflicts with {', '.join(conflicting_trip_numbers)}"
        )


# Ledger exceptions


class LedgerError(FleetKernelError):
    """Base exception for invoice and payment ledger errors."""

    code: str = "LEDGER_ERROR"


class AlreadyReversedError(LedgerError):
    """Payment was already reversed (bounced)."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, payment_number: str):
        self.payment_number = payment_number
        super().__init__(f"Payment {payment_number} was already reversed")


class InvalidPaymentTransitionError(LedgerError):
    """Payment status change is not allowed from its current status."""

    code: str = "INVALID_PAYMENT_TRANSITION"

    def __init__(self, payment_number: str, current_status: str, target_status: str):
        self.payment_number = payment_number
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Payment {payment_number} cannot move from {current_status} to {target_status}"
        )


class DuplicateInvoiceError(LedgerError):
    """Trip already carries an invoice."""

    code: str = "DUPLICATE_INVOICE"

    def __init__(self, trip_number: str, invoice_number: str):
        self.trip_number = trip_number
        self.invoice_number = invoice_number
        super().__init__(
            f"Trip {trip_number} is already invoiced as {invoice_number}"
        )


class LedgerInvariantError(LedgerError):
    """
    A derived total no longer matches its source records.

    This indicates a bug or an out-of-band write; it is never expected in
    normal operation.
    """

    code: str = "LEDGER_INVARIANT_VIOLATION"

    def __init__(self, record: str, reason: str):
        self.record = record
        self.reason = reason
        super().__init__(f"Ledger invariant violated on {record}: {reason}")


# Concurrency exceptions


class ConcurrencyError(FleetKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Record was modified concurrently."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}; re-read and retry"
        )


# Immutability exceptions


class ImmutabilityViolationError(FleetKernelError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Store exceptions


class TransientStoreError(FleetKernelError):
    """
    The record store failed a write (connectivity, lock timeout, conflict).

    Writes are never retried silently; the caller decides whether to retry,
    reusing the same idempotency key where the operation takes one.
    """

    code: str = "TRANSIENT_STORE_FAILURE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Transient store failure during {operation}: {detail}")

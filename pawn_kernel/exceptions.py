"""
Typed Exception Hierarchy for the Pawn Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Counter staff see a message; the calling layer needs to decide between
"fix the input", "pick another slot" and "retry".  That decision is made by
exception TYPE, never by parsing message text:

    try:
        storage.assign(item_id, slot_id, actor_id)
    except SlotOccupiedError as e:
        offer_alternative(storage.next_available_slot(branch_id))
    except IllegalTransitionError as e:
        show(e.code, e.current_status, e.action)

Every exception carries:
  1. A ``code`` class attribute (machine-readable, API-safe)
  2. Structured attributes describing the failure (not just a message)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PawnKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidWeightError
    |   +-- UnknownPurityError
    |   +-- InvalidLoanTermsError
    |   +-- InsufficientPaymentError
    |
    +-- IllegalTransitionError
    |
    +-- SlotOccupiedError
    |
    +-- SequenceConflictError
    |
    +-- ConsistencyViolationError
    |
    +-- NotFoundError
    |   +-- BranchNotFoundError
    |   +-- PledgeNotFoundError
    |   +-- PledgeItemNotFoundError
    |   +-- SlotNotFoundError
    |   +-- GoldPriceNotFoundError
    |   +-- DayEndNotFoundError
    |
    +-- DayEndError
    |   +-- DayEndConflictError
    |   +-- DayEndClosedError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                   | Caller behaviour
----------------|------------------------|-----------------------------------
Validation      | INVALID_WEIGHT         | Fix input; nothing was written
                | UNKNOWN_PURITY         | Fix input / set today's price
                | INVALID_LOAN_TERMS     | Fix input
                | INSUFFICIENT_PAYMENT   | Collect the full amount
----------------|------------------------|-----------------------------------
Lifecycle       | ILLEGAL_TRANSITION     | Surface; never retry
----------------|------------------------|-----------------------------------
Storage         | SLOT_OCCUPIED          | Re-fetch availability, pick again
----------------|------------------------|-----------------------------------
Sequence        | SEQUENCE_CONFLICT      | "Please retry" (internal retries
                |                        | already exhausted)
----------------|------------------------|-----------------------------------
Consistency     | CONSISTENCY_VIOLATION  | Fatal; investigate
----------------|------------------------|-----------------------------------
Day-end         | DAY_END_CONFLICT       | Report already exists for the date
                | DAY_END_CLOSED         | Date is frozen; use the next day
----------------|------------------------|-----------------------------------
Immutability    | IMMUTABILITY_VIOLATION | Append-only record was touched

Money and weight arithmetic never raises on rounding: rounding is
deterministic (half-up) and is not an error path.
"""

from datetime import date
from decimal import Decimal


class PawnKernelError(Exception):
    """
    Base exception for all pawn kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAWN_KERNEL_ERROR"


# Validation exceptions


class ValidationError(PawnKernelError):
    """Caller input is malformed; rejected before any mutation."""

    code: str = "VALIDATION_ERROR"


class InvalidWeightError(ValidationError):
    """Gross weight is not positive, or a deduction exceeds the gross."""

    code: str = "INVALID_WEIGHT"

    def __init__(self, reason: str, gross_weight: Decimal | None = None):
        self.reason = reason
        self.gross_weight = gross_weight
        super().__init__(f"Invalid weight: {reason}")


class UnknownPurityError(ValidationError):
    """No price exists for the purity code in the gold price snapshot."""

    code: str = "UNKNOWN_PURITY"

    def __init__(self, purity_code: str, available: tuple[str, ...] = ()):
        self.purity_code = purity_code
        self.available = available
        super().__init__(
            f"Unknown purity '{purity_code}' (priced: {', '.join(available) or 'none'})"
        )


class InvalidLoanTermsError(ValidationError):
    """Loan percentage, renewal period or rate schedule is out of range."""

    code: str = "INVALID_LOAN_TERMS"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid loan terms: {reason}")


class InsufficientPaymentError(ValidationError):
    """Tendered cash + transfer is below the amount payable."""

    code: str = "INSUFFICIENT_PAYMENT"

    def __init__(self, required: Decimal, tendered: Decimal):
        self.required = required
        self.tendered = tendered
        super().__init__(
            f"Insufficient payment: required {required}, tendered {tendered}"
        )


# Lifecycle exceptions


class IllegalTransitionError(PawnKernelError):
    """Requested lifecycle change violates the pledge state machine."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        entity_id: str,
        current_status: str,
        action: str,
        reason: str | None = None,
    ):
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        message = f"Cannot {action} {entity_id} in status '{current_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Storage exceptions


class SlotOccupiedError(PawnKernelError):
    """Target slot already holds a different, unreleased item."""

    code: str = "SLOT_OCCUPIED"

    def __init__(self, slot_id: str, occupant_item_id: str | None):
        self.slot_id = slot_id
        self.occupant_item_id = occupant_item_id
        super().__init__(
            f"Slot {slot_id} is occupied by item {occupant_item_id}"
        )


# Sequence exceptions


class SequenceConflictError(PawnKernelError):
    """Counter allocation kept colliding; internal retries are exhausted."""

    code: str = "SEQUENCE_CONFLICT"

    def __init__(self, sequence_key: str, attempts: int):
        self.sequence_key = sequence_key
        self.attempts = attempts
        super().__init__(
            f"Sequence {sequence_key} conflicted after {attempts} attempts"
        )


# Consistency exceptions


class ConsistencyViolationError(PawnKernelError):
    """
    A cross-entity invariant does not hold.

    Should never occur in correct operation.  Raised for item/pledge status
    disagreement and for box occupancy drift detected in strict mode.
    """

    code: str = "CONSISTENCY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Consistency violation on {entity_type} {entity_id}: {reason}"
        )


# Lookup exceptions


class NotFoundError(PawnKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class BranchNotFoundError(NotFoundError):
    code: str = "BRANCH_NOT_FOUND"
    entity_type: str = "Branch"


class PledgeNotFoundError(NotFoundError):
    code: str = "PLEDGE_NOT_FOUND"
    entity_type: str = "Pledge"


class PledgeItemNotFoundError(NotFoundError):
    code: str = "PLEDGE_ITEM_NOT_FOUND"
    entity_type: str = "PledgeItem"


class SlotNotFoundError(NotFoundError):
    code: str = "SLOT_NOT_FOUND"
    entity_type: str = "Slot"


class GoldPriceNotFoundError(NotFoundError):
    code: str = "GOLD_PRICE_NOT_FOUND"
    entity_type: str = "GoldPrice"


class DayEndNotFoundError(NotFoundError):
    """No day-end report exists for the branch and date."""

    code: str = "DAY_END_NOT_FOUND"
    entity_type: str = "DayEndReport"

    def __init__(self, branch_id: str, report_date: date):
        self.branch_id = branch_id
        self.report_date = report_date
        super().__init__(f"{branch_id}/{report_date}")


# Day-end exceptions


class DayEndError(PawnKernelError):
    """Base exception for day-end errors."""

    code: str = "DAY_END_ERROR"


class DayEndConflictError(DayEndError):
    """A day-end report already exists for the branch and date."""

    code: str = "DAY_END_CONFLICT"

    def __init__(self, branch_id: str, report_date: date):
        self.branch_id = branch_id
        self.report_date = report_date
        super().__init__(
            f"Day-end report already exists for branch {branch_id} on {report_date}"
        )


class DayEndClosedError(DayEndError):
    """The day-end for the branch and date is closed; figures are frozen."""

    code: str = "DAY_END_CLOSED"

    def __init__(self, branch_id: str, report_date: date):
        self.branch_id = branch_id
        self.report_date = report_date
        super().__init__(
            f"Day-end for branch {branch_id} on {report_date} is closed"
        )


# Immutability exceptions


class ImmutabilityViolationError(PawnKernelError):
    """Attempted to modify or delete an append-only or frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )

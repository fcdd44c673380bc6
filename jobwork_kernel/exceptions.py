"""
Typed Exception Hierarchy for the Job-work Voucher Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (UI forms, notification dispatch, report jobs) must
react to failures by type, not by parsing messages.  Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries its context as attributes (not only a message string)

Example:
    try:
        ledger.record_forward(voucher_no, sender_id="v-1", receiver_id="v-2",
                              quantity=120)
    except QuantityViolationError as e:
        api_response(code=e.code, errors=[err.message for err in e.result.errors])

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    JobWorkKernelError (base)
    |
    +-- VoucherError
    |   +-- VoucherNotFoundError
    |   +-- VoucherAlreadyExistsError
    |
    +-- EventError
    |   +-- ParentEventNotFoundError
    |   +-- UnknownEventTypeError
    |
    +-- ValidationFailedError
    |   +-- QuantityViolationError
    |
    +-- NumberingError
    |   +-- NumberingCollisionError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|---------------------------------------
Voucher      | VOUCHER_NOT_FOUND         | voucher_no doesn't exist
             | VOUCHER_ALREADY_EXISTS    | voucher_no taken at commit time
-------------|---------------------------|---------------------------------------
Event        | PARENT_EVENT_NOT_FOUND    | parent_event_id not in the ledger
             | UNKNOWN_EVENT_TYPE        | event_type not dispatch/receive/forward
-------------|---------------------------|---------------------------------------
Validation   | QUANTITY_VIOLATION        | over-forward, over-receive, negatives
-------------|---------------------------|---------------------------------------
Numbering    | NUMBERING_COLLISION       | number still taken after all retries
-------------|---------------------------|---------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT  | voucher modified by another writer

Status transitions that do not apply to the current status are NOT errors:
the status is returned unchanged.

===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from jobwork_kernel.domain.dtos import ValidationResult


class JobWorkKernelError(Exception):
    """
    Base exception for all job-work kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "JOBWORK_KERNEL_ERROR"


# Voucher-related exceptions


class VoucherError(JobWorkKernelError):
    """Base exception for voucher-level errors."""

    code: str = "VOUCHER_ERROR"


class VoucherNotFoundError(VoucherError):
    """Voucher with given number was not found."""

    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, voucher_no: str):
        self.voucher_no = voucher_no
        super().__init__(f"Voucher not found: {voucher_no}")


class VoucherAlreadyExistsError(VoucherError):
    """A voucher with this number was committed first by another writer."""

    code: str = "VOUCHER_ALREADY_EXISTS"

    def __init__(self, voucher_no: str):
        self.voucher_no = voucher_no
        super().__init__(f"Voucher already exists: {voucher_no}")


# Event-related exceptions


class EventError(JobWorkKernelError):
    """Base exception for event-related errors."""

    code: str = "EVENT_ERROR"


class ParentEventNotFoundError(EventError):
    """The parent_event_id of a new event is not in the voucher's ledger."""

    code: str = "PARENT_EVENT_NOT_FOUND"

    def __init__(self, voucher_no: str, parent_event_id: str):
        self.voucher_no = voucher_no
        self.parent_event_id = parent_event_id
        super().__init__(
            f"Parent event {parent_event_id} not found on voucher {voucher_no}"
        )


class UnknownEventTypeError(EventError):
    """Event type is not one of dispatch, receive, forward."""

    code: str = "UNKNOWN_EVENT_TYPE"

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type!r}")


# Validation exceptions


class ValidationFailedError(JobWorkKernelError):
    """Base exception for rejected event construction."""

    code: str = "VALIDATION_FAILED"


class QuantityViolationError(ValidationFailedError):
    """
    A proposed event would move more pieces than are legitimately held.

    Raised by the ledger service before the event is constructed; the
    aggregators themselves never reject events already recorded.
    """

    code: str = "QUANTITY_VIOLATION"

    def __init__(self, voucher_no: str, result: ValidationResult):
        self.voucher_no = voucher_no
        self.result = result
        messages = "; ".join(e.message for e in result.errors)
        super().__init__(f"Quantity violation on {voucher_no}: {messages}")


# Numbering exceptions


class NumberingError(JobWorkKernelError):
    """Base exception for identifier generation errors."""

    code: str = "NUMBERING_ERROR"


class NumberingCollisionError(NumberingError):
    """Every proposed number was already taken."""

    code: str = "NUMBERING_COLLISION"

    def __init__(self, voucher_no: str, attempts: int):
        self.voucher_no = voucher_no
        self.attempts = attempts
        super().__init__(
            f"Voucher number {voucher_no} still taken after {attempts} attempts"
        )


# Concurrency exceptions


class ConcurrencyError(JobWorkKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )

"""
Data Transfer Objects for the voucher kernel.

These are pure, immutable data structures that cross the boundary
between the pure domain/engines and the imperative services.  They
have no ORM or database dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from jobwork_kernel.domain.events import VoucherEvent
from jobwork_kernel.domain.voucher import VoucherStatus, VoucherTotals


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Contract:
        Carries a machine-readable code, human-readable message, optional
        field path, and optional details dict.

    Non-goals:
        - Does NOT raise exceptions -- it IS the error representation.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Contract:
        Aggregates zero or more ValidationErrors. is_valid is True only when
        there are no errors.

    Guarantees:
        - errors is always a tuple (never None)
        - bool(result) == result.is_valid for convenience
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        """Create a successful validation result."""
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        """Create a failed validation result."""
        return cls(is_valid=False, errors=tuple(errors))

    @property
    def error(self) -> str | None:
        """First error message, or None when valid."""
        return self.errors[0].message if self.errors else None

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass(frozen=True)
class AppendResult:
    """
    Outcome of appending one event to a voucher's ledger.

    Contract:
        ``events`` already contains ``event``; ``totals`` and ``status`` were
        derived from that same event list.  The caller persists
        ``{events, **totals, voucher_status: status, updated_at}`` atomically.
    """

    event: VoucherEvent
    events: tuple[VoucherEvent, ...]
    totals: VoucherTotals
    status: VoucherStatus
    previous_status: VoucherStatus

    @property
    def status_changed(self) -> bool:
        return self.status is not self.previous_status


@dataclass(frozen=True)
class VoucherNumberAllocation:
    """
    A proposed voucher number.

    ``degraded`` is True when every candidate collided or the lookup failed
    and the number came from the timestamp fallback: likely but not
    guaranteed unique.
    """

    voucher_no: str
    attempts: int
    degraded: bool = False

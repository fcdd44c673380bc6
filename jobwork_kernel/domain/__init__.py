"""
Pure domain layer.

This module contains value objects, the workflow table, numbering and
quantity validation with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the Clock abstraction itself)
- I/O

All domain objects are immutable and deterministic.
"""

from jobwork_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
)
from jobwork_kernel.domain.dtos import (
    AppendResult,
    ValidationError,
    ValidationResult,
    VoucherNumberAllocation,
)
from jobwork_kernel.domain.events import (
    DispatchDetails,
    EventDetails,
    EventType,
    ForwardDetails,
    ForwardDiscrepancies,
    ReceiveDetails,
    ReceiveDiscrepancies,
    Transport,
    VoucherEvent,
    event_from_dict,
    event_to_dict,
)
from jobwork_kernel.domain.numbering import (
    NumberingStrategy,
    format_event_id,
    format_voucher_no,
    generate_lr_number,
    next_event_serial,
    parse_voucher_no,
)
from jobwork_kernel.domain.voucher import (
    ADMIN_SENTINEL,
    ItemDetails,
    Voucher,
    VoucherStatus,
    VoucherTotals,
    is_generic_admin_sentinel,
    voucher_from_dict,
    voucher_to_dict,
)
from jobwork_kernel.domain.workflow import (
    STATUS_TRANSITIONS,
    VOUCHER_WORKFLOW,
    Guard,
    Transition,
    Workflow,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # DTOs
    "AppendResult",
    "ValidationError",
    "ValidationResult",
    "VoucherNumberAllocation",
    # Events
    "DispatchDetails",
    "EventDetails",
    "EventType",
    "ForwardDetails",
    "ForwardDiscrepancies",
    "ReceiveDetails",
    "ReceiveDiscrepancies",
    "Transport",
    "VoucherEvent",
    "event_from_dict",
    "event_to_dict",
    # Numbering
    "NumberingStrategy",
    "format_event_id",
    "format_voucher_no",
    "generate_lr_number",
    "next_event_serial",
    "parse_voucher_no",
    # Voucher
    "ADMIN_SENTINEL",
    "ItemDetails",
    "Voucher",
    "VoucherStatus",
    "VoucherTotals",
    "is_generic_admin_sentinel",
    "voucher_from_dict",
    "voucher_to_dict",
    # Workflow
    "STATUS_TRANSITIONS",
    "VOUCHER_WORKFLOW",
    "Guard",
    "Transition",
    "Workflow",
]

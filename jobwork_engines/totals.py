"""
jobwork_engines.totals -- Quantity Aggregator.

Responsibility:
    Fold a voucher's event list into its seven running totals and derive
    the voucher-level and per-vendor available quantities used by the
    forward/receive screens and the completion analyzer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import jobwork_kernel.domain.
    Consumed by jobwork_engines.completion, jobwork_engines.status and the
    ledger service.

Invariants enforced:
    - Totals are always re-derived from the full event list; the function is
      never told about "the last event" incrementally.
    - Summation is order-independent: calculate_totals(v) is identical for
      any permutation of v.events.
    - Missing numeric fields contribute zero (decoded as 0 at the boundary).
    - Purity: no clock access, no I/O.

Failure modes:
    - None.  Every function here is total over well-typed vouchers.

Audit relevance:
    The totals persisted on a voucher row must equal calculate_totals over
    that row's events.  All entrypoints are traced via ``@traced_engine``.

Usage:
    from jobwork_engines.totals import calculate_totals

    totals = calculate_totals(voucher)
    totals.admin_received_quantity
"""

from __future__ import annotations

from dataclasses import dataclass

from jobwork_engines.tracer import traced_engine
from jobwork_kernel.domain.balances import (
    is_admin_receive,
    recorded_losses,
    vendor_forwardable_quantity as _vendor_forwardable_quantity,
)
from jobwork_kernel.domain.events import (
    DispatchDetails,
    ForwardDetails,
    ReceiveDetails,
    VoucherEvent,
)
from jobwork_kernel.domain.voucher import (
    Voucher,
    VoucherStatus,
    VoucherTotals,
)


@dataclass(frozen=True)
class VoucherSummary:
    """Headline quantities for one voucher."""

    initial_quantity: int
    total_received: int
    total_forwarded: int
    total_damage: int
    available_quantity: int
    status: VoucherStatus


@traced_engine("totals", "1.0", fingerprint_fields=("voucher",))
def calculate_totals(voucher: Voucher) -> VoucherTotals:
    """Re-derive all seven totals from ``voucher.events``."""
    dispatched = received = forwarded = 0
    missing = damaged_on_arrival = damaged_after_work = 0
    admin_received = 0

    for event in voucher.events:
        details = event.details
        if isinstance(details, DispatchDetails):
            dispatched += details.quantity_dispatched
        elif isinstance(details, ReceiveDetails):
            received += details.quantity_received
            missing += details.discrepancies.missing
            damaged_on_arrival += details.discrepancies.damaged_on_arrival
            if is_admin_receive(event, voucher):
                admin_received += details.quantity_received
        elif isinstance(details, ForwardDetails):
            forwarded += details.quantity_forwarded
            damaged_after_work += details.discrepancies.damaged_after_job

    return VoucherTotals(
        total_dispatched=dispatched,
        total_received=received,
        total_forwarded=forwarded,
        total_missing_on_arrival=missing,
        total_damaged_on_arrival=damaged_on_arrival,
        total_damaged_after_work=damaged_after_work,
        admin_received_quantity=admin_received,
    )


@traced_engine("totals", "1.0", fingerprint_fields=("vendor_id",))
def vendor_forwardable_quantity(
    vendor_id: str, events: tuple[VoucherEvent, ...] | list[VoucherEvent],
) -> int:
    """received - damaged_on_arrival - forwarded - damaged_after_job for one vendor."""
    return _vendor_forwardable_quantity(vendor_id, events)


def sorted_events(voucher: Voucher) -> list[VoucherEvent]:
    """Events ordered by instant; ties keep append order."""
    return sorted(voucher.events, key=lambda e: e.timestamp)


@traced_engine("totals", "1.0", fingerprint_fields=("voucher",))
def calculate_forwardable_quantity(voucher: Voucher) -> int:
    """Voucher-level available quantity, never negative.

    Anchored to ``initial_quantity`` until something has been received,
    then to the total received.
    """
    received = forwarded = 0
    for event in voucher.events:
        if isinstance(event.details, ReceiveDetails):
            received += event.details.quantity_received
        elif isinstance(event.details, ForwardDetails):
            forwarded += event.details.quantity_forwarded
    losses = recorded_losses(voucher.events)

    base = received if received else voucher.item_details.initial_quantity
    return max(0, base - forwarded - losses)


def voucher_summary(voucher: Voucher) -> VoucherSummary:
    totals = calculate_totals(voucher)
    return VoucherSummary(
        initial_quantity=voucher.item_details.initial_quantity,
        total_received=totals.total_received,
        total_forwarded=totals.total_forwarded,
        total_damage=totals.total_losses,
        available_quantity=calculate_forwardable_quantity(voucher),
        status=voucher.voucher_status,
    )

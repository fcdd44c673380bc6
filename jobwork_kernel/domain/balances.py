"""
Per-vendor balance folds.

Pure arithmetic over an event sequence, shared by the quantity validators
in this package and the calculation engines in ``jobwork_engines``.  No
I/O and no tracing; the engines wrap these where they are entrypoints.
"""

from __future__ import annotations

from typing import Iterable

from jobwork_kernel.domain.events import (
    DispatchDetails,
    EventType,
    ForwardDetails,
    ReceiveDetails,
    VoucherEvent,
)
from jobwork_kernel.domain.voucher import Voucher, is_generic_admin_sentinel


def vendor_forwardable_quantity(
    vendor_id: str, events: Iterable[VoucherEvent],
) -> int:
    """Pieces ``vendor_id`` still holds and may pass on.

    received - damaged_on_arrival (as receiver) minus
    forwarded - damaged_after_job (as sender).  May be negative when an
    unvalidated over-forward was recorded.
    """
    balance = 0
    for event in events:
        details = event.details
        if isinstance(details, ReceiveDetails) and event.receiver == vendor_id:
            balance += details.quantity_received
            balance -= details.discrepancies.damaged_on_arrival
        elif isinstance(details, ForwardDetails) and event.sender == vendor_id:
            balance -= details.quantity_forwarded
            balance -= details.discrepancies.damaged_after_job
    return balance


def dispatched_quantity(events: Iterable[VoucherEvent]) -> int:
    return sum(
        event.details.quantity_dispatched
        for event in events
        if isinstance(event.details, DispatchDetails)
    )


def recorded_losses(events: Iterable[VoucherEvent]) -> int:
    """Missing plus damage at any stage, summed over every event."""
    losses = 0
    for event in events:
        details = event.details
        if isinstance(details, ReceiveDetails):
            losses += details.discrepancies.missing
            losses += details.discrepancies.damaged_on_arrival
        elif isinstance(details, ForwardDetails):
            losses += details.discrepancies.damaged_after_job
    return losses


def vendor_ids(events: Iterable[VoucherEvent], admin_id: str | None) -> list[str]:
    """Distinct vendors in first-seen order.

    A vendor is any effective receiver of a receive or effective sender of
    a forward, other than ``admin_id`` and the generic admin sentinel.
    """
    seen: dict[str, None] = {}
    for event in events:
        if isinstance(event.details, ReceiveDetails):
            identity = event.receiver
        elif isinstance(event.details, ForwardDetails):
            identity = event.sender
        else:
            continue
        if not identity or identity == admin_id:
            continue
        if is_generic_admin_sentinel(identity):
            continue
        seen.setdefault(identity, None)
    return list(seen)


def is_admin_receive(event: VoucherEvent, voucher: Voucher) -> bool:
    """Whether a receive event counts toward ``admin_received_quantity``.

    Any of:
        * the explicit ``is_admin_receive`` flag;
        * the parent event is a forward addressed to the generic admin;
        * the event's own ``receiver_id`` is the generic admin or the
          voucher's creator.
    """
    details = event.details
    if not isinstance(details, ReceiveDetails):
        return False
    if details.is_admin_receive:
        return True
    if event.parent_event_id:
        parent = voucher.find_event(event.parent_event_id)
        if (
            parent is not None
            and parent.event_type is EventType.FORWARD
            and is_generic_admin_sentinel(parent.details.receiver_id)
        ):
            return True
    receiver = details.receiver_id
    return is_generic_admin_sentinel(receiver) or (
        receiver is not None and receiver == voucher.created_by_user_id
    )


def admin_received(voucher: Voucher) -> int:
    """Pieces the admin has taken back, folded from ``voucher.events``."""
    return sum(
        event.details.quantity_received
        for event in voucher.events
        if is_admin_receive(event, voucher)
    )

"""
jobwork_engines.status -- Status Transition Engine.

Responsibility:
    Decide a voucher's lifecycle status after an event by evaluating the
    fixed transition table in ``jobwork_kernel.domain.workflow``, and build
    the persistence patch that stores status and freshly derived totals
    together.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The caller passes the voucher with the new event already appended and
    supplies ``now`` for the patch; this module never reads the clock.

Invariants enforced:
    - No-op policy: a (status, event) pair with no table row, or whose rows
      all fail their guards, returns the current status unchanged.  Invalid
      transitions never raise.
    - Table order is priority order; the first row whose guards all pass
      fires.
    - ``update_voucher_status`` always recomputes totals; caller-supplied
      totals are never trusted.
    - ``Completed`` has no outgoing rows, so later events are recorded for
      audit without changing status.

Failure modes:
    - KeyError from ``evaluate_guard`` for a guard with no evaluator; the
      shipped table only uses known guards.

Audit relevance:
    ``determine_new_status`` is traced via ``@traced_engine``; status
    changes themselves are logged by the ledger service.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from jobwork_engines.completion import check_admin_received_enough
from jobwork_engines.totals import calculate_totals
from jobwork_engines.tracer import traced_engine
from jobwork_kernel.domain.balances import vendor_forwardable_quantity
from jobwork_kernel.domain.events import (
    EventType,
    ForwardDetails,
    ReceiveDetails,
    VoucherEvent,
)
from jobwork_kernel.domain.voucher import Voucher, VoucherStatus
from jobwork_kernel.domain.workflow import (
    ADMIN_RECEIVED_ENOUGH,
    ALL_VENDORS_RECEIVED,
    QUANTITY_CHECK,
    STATUS_TRANSITIONS,
    Guard,
    Transition,
)


def check_all_vendors_received(voucher: Voucher) -> bool:
    """Every forward's receiver has recorded a receive after that forward."""
    receives = [e for e in voucher.events if isinstance(e.details, ReceiveDetails)]
    for forward in voucher.events:
        if not isinstance(forward.details, ForwardDetails):
            continue
        receiver_id = forward.details.receiver_id
        if not receiver_id:
            continue
        if not any(
            r.receiver == receiver_id and r.timestamp > forward.timestamp
            for r in receives
        ):
            return False
    return True


def check_forward_quantity_complete(
    voucher: Voucher, event: VoucherEvent | None,
) -> bool:
    """The forward exhausts its sender's balance as it stood before it."""
    if event is None or not isinstance(event.details, ForwardDetails):
        return False
    sender = event.sender
    if not sender:
        return False
    events = voucher.events
    prior = events[:events.index(event)] if event in events else events
    available = vendor_forwardable_quantity(sender, prior)
    return event.details.quantity_forwarded >= available


GuardEvaluator = Callable[[Voucher, VoucherEvent | None], bool]

GUARD_EVALUATORS: dict[str, GuardEvaluator] = {
    ADMIN_RECEIVED_ENOUGH.name: lambda voucher, _event: check_admin_received_enough(voucher),
    ALL_VENDORS_RECEIVED.name: lambda voucher, _event: check_all_vendors_received(voucher),
    QUANTITY_CHECK.name: check_forward_quantity_complete,
}


def evaluate_guard(
    guard: Guard, voucher: Voucher, event: VoucherEvent | None = None,
) -> bool:
    return GUARD_EVALUATORS[guard.name](voucher, event)


@traced_engine("status", "1.0", fingerprint_fields=("voucher", "event_type"))
def determine_new_status(
    voucher: Voucher,
    event_type: EventType | str,
    event: VoucherEvent | None = None,
    table: Sequence[Transition] = STATUS_TRANSITIONS,
) -> VoucherStatus:
    """
    Status after an event of ``event_type``.

    Preconditions:
        ``voucher.events`` already contains the event being applied.

    Postconditions:
        Returns the ``to_state`` of the first matching row whose guards
        all pass, otherwise ``voucher.voucher_status`` unchanged.
    """
    event_type = EventType.parse(event_type)
    current = voucher.voucher_status

    for transition in table:
        if transition.from_state is not current or transition.event is not event_type:
            continue
        if all(evaluate_guard(g, voucher, event) for g in transition.guards):
            return transition.to_state
    return current


def update_voucher_status(
    voucher: Voucher, new_status: VoucherStatus, now: datetime,
) -> dict[str, Any]:
    """Persistence patch: status, recomputed totals and ``updated_at``."""
    patch: dict[str, Any] = {"voucher_status": new_status}
    patch.update(calculate_totals(voucher).as_dict())
    patch["updated_at"] = now
    return patch


def rederive_status(voucher: Voucher, now: datetime) -> dict[str, Any] | None:
    """Re-run the table for the latest event.

    Returns the patch when the derived status differs from the stored one,
    None otherwise (including for a voucher with no events).
    """
    if not voucher.events:
        return None
    latest = voucher.events[-1]
    new_status = determine_new_status(voucher, latest.event_type, latest)
    if new_status is voucher.voucher_status:
        return None
    return update_voucher_status(voucher, new_status, now)

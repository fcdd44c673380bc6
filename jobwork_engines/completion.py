"""
jobwork_engines.completion -- Completion Analyzer.

Responsibility:
    Decide whether a voucher's job work is really finished: no vendor still
    holds forwardable pieces and the admin has received everything that
    should remain after recorded losses.  Also provides the manual
    completion escape hatch and the dashboard classification.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import jobwork_kernel.domain and sibling engine modules.

Invariants enforced:
    - Two completion baselines are kept apart:
        * ``check_admin_received_enough`` expects
          total_dispatched - missing - damaged_on_arrival - damaged_after_work
          (drives the status engine's completion guard);
        * ``analyze_voucher_completion`` expects
          initial_quantity - all recorded losses
          (drives manual completion and dashboards).
    - The reason strings are diagnostic only; no control flow reads them.
    - Purity: no clock access, no I/O.

Failure modes:
    - None.  Functions are total over well-typed vouchers.

Audit relevance:
    A forced manual completion is recorded only through its status
    comment, which embeds the override reason.  The analyzer logs a
    warning whenever a completion is forced.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from jobwork_engines.totals import calculate_totals, is_admin_receive
from jobwork_engines.tracer import traced_engine
from jobwork_kernel.domain.balances import (
    recorded_losses,
    vendor_forwardable_quantity,
    vendor_ids,
)
from jobwork_kernel.domain.events import ReceiveDetails
from jobwork_kernel.domain.voucher import Voucher, VoucherStatus
from jobwork_kernel.logging_config import get_logger

logger = get_logger("engines.completion")

COMPLETED_COMMENT = "All work completed - no partial quantities remaining"
DEFAULT_OVERRIDE_REASON = (
    "Workflow logically complete with minor quantity discrepancies."
)
PENDING_COMMENT = "Partial quantities still pending with vendors"


class CompletionClass(str, Enum):
    """Dashboard classification of a voucher's progress."""

    COMPLETED = "Completed"
    PARTIALLY_COMPLETED = "Partially Completed"
    IN_PROGRESS = "InProgress"


@dataclass(frozen=True)
class CompletionAnalysis:
    """
    Result of ``analyze_voucher_completion``.

    Guarantees:
        - is_really_completed == (not incomplete_vendors and admin_received_enough)
        - reason_not_completed is None exactly when is_really_completed
    """

    is_really_completed: bool
    incomplete_vendors: tuple[str, ...]
    admin_received_enough: bool
    admin_received: int
    expected_admin_receive: int
    reason_not_completed: str | None = None


@dataclass(frozen=True)
class DiscrepancyDetails:
    expected_admin_receive: int
    actual_admin_receive: int
    missing_quantity: int
    incomplete_vendors: tuple[str, ...]


@dataclass(frozen=True)
class ManualCompletionResult:
    """
    Outcome of a manual completion request.

    ``final_status`` is ``Completed`` when the voucher is really complete
    or the completion was forced, ``Received`` when refused.
    """

    can_be_completed: bool
    final_status: VoucherStatus
    status_comment: str
    discrepancy: DiscrepancyDetails


@traced_engine("completion", "1.0", fingerprint_fields=("voucher",))
def check_admin_received_enough(voucher: Voucher) -> bool:
    """Admin-received quantity covers what was dispatched net of losses."""
    totals = calculate_totals(voucher)
    expected = (
        totals.total_dispatched
        - totals.total_missing_on_arrival
        - totals.total_damaged_on_arrival
        - totals.total_damaged_after_work
    )
    return totals.admin_received_quantity >= expected


def _admin_received(voucher: Voucher, admin_id: str) -> int:
    total = 0
    for event in voucher.events:
        details = event.details
        if not isinstance(details, ReceiveDetails):
            continue
        if details.receiver_id == admin_id or is_admin_receive(event, voucher):
            total += details.quantity_received
    return total


def _pending_reason(
    incomplete_vendors: tuple[str, ...],
    admin_received_enough: bool,
    admin_received: int,
    expected: int,
) -> str | None:
    if incomplete_vendors:
        return (
            "Vendors with pending forwardable quantity: "
            + ", ".join(incomplete_vendors)
        )
    if not admin_received_enough:
        return (
            "Admin has not received all expected quantity "
            f"(received: {admin_received}, expected: {expected})"
        )
    return None


@traced_engine("completion", "1.0", fingerprint_fields=("voucher", "admin_id"))
def analyze_voucher_completion(voucher: Voucher, admin_id: str) -> CompletionAnalysis:
    """Vendor balances plus admin receipt against ``initial_quantity``."""
    events = voucher.events
    incomplete = tuple(
        vendor for vendor in vendor_ids(events, admin_id)
        if vendor_forwardable_quantity(vendor, events) > 0
    )
    expected = voucher.item_details.initial_quantity - recorded_losses(events)
    admin_received = _admin_received(voucher, admin_id)
    enough = admin_received >= expected

    return CompletionAnalysis(
        is_really_completed=not incomplete and enough,
        incomplete_vendors=incomplete,
        admin_received_enough=enough,
        admin_received=admin_received,
        expected_admin_receive=expected,
        reason_not_completed=_pending_reason(
            incomplete, enough, admin_received, expected,
        ),
    )


def classify_completion(voucher: Voucher, admin_id: str) -> CompletionClass:
    analysis = analyze_voucher_completion(voucher, admin_id)
    if analysis.is_really_completed:
        return CompletionClass.COMPLETED
    if analysis.incomplete_vendors:
        return CompletionClass.PARTIALLY_COMPLETED
    return CompletionClass.IN_PROGRESS


@traced_engine(
    "completion", "1.0",
    fingerprint_fields=("voucher", "admin_id", "force_complete"),
)
def manually_mark_complete(
    voucher: Voucher,
    admin_id: str,
    force_complete: bool = False,
    reason: str | None = None,
) -> ManualCompletionResult:
    """
    Complete a voucher by hand.

    Preconditions:
        ``voucher`` carries its full event list.

    Postconditions:
        - Really complete: Completed with the standard comment.
        - Not complete, forced: Completed with a comment embedding
          ``reason`` (or the default override text).
        - Not complete, not forced: Received with the diagnostic reason.
        The discrepancy breakdown is always populated.
    """
    analysis = analyze_voucher_completion(voucher, admin_id)
    discrepancy = DiscrepancyDetails(
        expected_admin_receive=analysis.expected_admin_receive,
        actual_admin_receive=analysis.admin_received,
        missing_quantity=(
            analysis.expected_admin_receive - analysis.admin_received
        ),
        incomplete_vendors=analysis.incomplete_vendors,
    )

    if analysis.is_really_completed:
        return ManualCompletionResult(
            can_be_completed=True,
            final_status=VoucherStatus.COMPLETED,
            status_comment=COMPLETED_COMMENT,
            discrepancy=discrepancy,
        )

    if force_complete:
        logger.warning("voucher_completion_forced", extra={
            "voucher_no": voucher.voucher_no,
            "admin_id": admin_id,
            "incomplete_vendors": list(analysis.incomplete_vendors),
            "missing_quantity": discrepancy.missing_quantity,
        })
        return ManualCompletionResult(
            can_be_completed=True,
            final_status=VoucherStatus.COMPLETED,
            status_comment=(
                f"Manually marked as complete. {reason or DEFAULT_OVERRIDE_REASON}"
            ),
            discrepancy=discrepancy,
        )

    return ManualCompletionResult(
        can_be_completed=False,
        final_status=VoucherStatus.RECEIVED,
        status_comment=analysis.reason_not_completed or PENDING_COMMENT,
        discrepancy=discrepancy,
    )

"""
Module: jobwork_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for the
    ledger services and selectors.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import jobwork_kernel.domain (and sibling engine modules).
    MUST NOT import jobwork_kernel.services, db, models or selectors.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Timestamps are passed in by the caller.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entrypoints are traced via ``@traced_engine`` (see
    ``jobwork_engines.tracer``), emitting JOBWORK_ENGINE_TRACE records.

Usage:
    from jobwork_engines import calculate_totals, determine_new_status
"""

from jobwork_engines.completion import (
    CompletionAnalysis,
    CompletionClass,
    DiscrepancyDetails,
    ManualCompletionResult,
    analyze_voucher_completion,
    check_admin_received_enough,
    classify_completion,
    manually_mark_complete,
)
from jobwork_engines.status import (
    check_all_vendors_received,
    check_forward_quantity_complete,
    determine_new_status,
    evaluate_guard,
    rederive_status,
    update_voucher_status,
)
from jobwork_engines.totals import (
    VoucherSummary,
    calculate_forwardable_quantity,
    calculate_totals,
    is_admin_receive,
    sorted_events,
    vendor_forwardable_quantity,
    voucher_summary,
)

__all__ = [
    "CompletionAnalysis",
    "CompletionClass",
    "DiscrepancyDetails",
    "ManualCompletionResult",
    "VoucherSummary",
    "analyze_voucher_completion",
    "calculate_forwardable_quantity",
    "calculate_totals",
    "check_admin_received_enough",
    "check_all_vendors_received",
    "check_forward_quantity_complete",
    "classify_completion",
    "determine_new_status",
    "evaluate_guard",
    "is_admin_receive",
    "manually_mark_complete",
    "rederive_status",
    "sorted_events",
    "update_voucher_status",
    "vendor_forwardable_quantity",
    "voucher_summary",
]

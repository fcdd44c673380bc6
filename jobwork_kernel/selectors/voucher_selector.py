"""
Module: jobwork_kernel.selectors.voucher_selector
Responsibility: Read-only queries over stored vouchers, returning domain
    ``Voucher`` snapshots and engine-derived views (totals, completion).
Architecture position: Kernel > Selectors.  May import from models/, the
    pure domain and the pure engines.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: never adds, flushes or commits.
    - No locking: reads are unordered with respect to writes and may run
      fully in parallel.
    - ``totals`` is always recomputed from events, never read from the
      denormalized columns.

Failure modes:
    - VoucherNotFoundError from ``totals`` and ``completion`` when the
      voucher does not exist.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from jobwork_engines.completion import CompletionAnalysis, analyze_voucher_completion
from jobwork_engines.totals import calculate_totals
from jobwork_kernel.domain.voucher import Voucher, VoucherStatus, VoucherTotals
from jobwork_kernel.exceptions import VoucherNotFoundError
from jobwork_kernel.models.voucher import VoucherRecord
from jobwork_kernel.selectors.base import BaseSelector


class VoucherSelector(BaseSelector[VoucherRecord]):
    """
    Query interface for vouchers.

    Contract:
        Returns frozen domain objects, never ORM rows.

    Non-goals:
        - Does NOT paginate beyond ``limit``.
    """

    def get(self, voucher_no: str) -> Voucher | None:
        record = self.session.execute(
            select(VoucherRecord).where(VoucherRecord.voucher_no == voucher_no)
        ).scalar_one_or_none()
        return record.to_domain() if record is not None else None

    def require(self, voucher_no: str) -> Voucher:
        voucher = self.get(voucher_no)
        if voucher is None:
            raise VoucherNotFoundError(voucher_no)
        return voucher

    def list_recent(self, limit: int = 100) -> list[Voucher]:
        """Most recent first, by voucher number descending."""
        records = self.session.execute(
            select(VoucherRecord)
            .order_by(VoucherRecord.voucher_no.desc())
            .limit(limit)
        ).scalars()
        return [r.to_domain() for r in records]

    def list_by_status(self, *statuses: VoucherStatus) -> list[Voucher]:
        """Vouchers in any of ``statuses``, by voucher number ascending."""
        if not statuses:
            return []
        records = self.session.execute(
            select(VoucherRecord)
            .where(VoucherRecord.voucher_status.in_([s.value for s in statuses]))
            .order_by(VoucherRecord.voucher_no)
        ).scalars()
        return [r.to_domain() for r in records]

    def totals(self, voucher_no: str) -> VoucherTotals:
        return calculate_totals(self.require(voucher_no))

    def completion(self, voucher_no: str, admin_id: str) -> CompletionAnalysis:
        return analyze_voucher_completion(self.require(voucher_no), admin_id)

"""
Module: jobwork_kernel.models.voucher
Responsibility: ORM persistence for the voucher aggregate -- one row per
    voucher holding its append-only event list as a JSON document alongside
    the denormalized totals and the derived status.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain value objects (for the to_domain/from_domain codec).

Invariants enforced:
    - voucher_no is unique (uq_voucher_no).
    - The seven total columns equal the totals derived from ``events``; they
      are only written through ``apply_patch`` with engine output.
    - ``version`` is SQLAlchemy's version_id_col: every UPDATE is
      ``... WHERE version = :loaded`` and a stale writer gets StaleDataError.

Failure modes:
    - IntegrityError on INSERT of a duplicate voucher_no.
    - StaleDataError on UPDATE when another transaction committed first.

Audit relevance:
    ``events`` is the ledger.  Rows are never deleted in normal operation
    and events are never rewritten in place.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from jobwork_kernel.db.base import Base
from jobwork_kernel.domain.events import event_from_dict, event_to_dict, parse_timestamp
from jobwork_kernel.domain.voucher import (
    ItemDetails,
    Voucher,
    VoucherStatus,
    VoucherTotals,
)

TOTAL_COLUMNS: tuple[str, ...] = tuple(VoucherTotals.__dataclass_fields__)


class VoucherRecord(Base):
    """
    Stored voucher document.

    Contract:
        The row is a faithful encoding of a domain ``Voucher``; services
        read it through ``to_domain`` and write it through ``apply_patch``.

    Guarantees:
        - voucher_no never changes after INSERT.
        - version increments on every UPDATE.

    Non-goals:
        - Does NOT derive totals or status itself; the engines do.
    """

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint("voucher_no", name="uq_voucher_no"),
        Index("idx_voucher_status", "voucher_status"),
    )

    voucher_no: Mapped[str] = mapped_column(String(40), nullable=False)

    voucher_status: Mapped[str] = mapped_column(
        String(20),
        default=VoucherStatus.DISPATCHED.value,
        nullable=False,
    )

    created_by_user_id: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    item_details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Append-only ledger, in append order
    events: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    total_dispatched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_forwarded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_missing_on_arrival: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_damaged_on_arrival: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_damaged_after_work: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    admin_received_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Audit trail for manual completion
    status_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<VoucherRecord {self.voucher_no}: {self.voucher_status}>"

    def to_domain(self) -> Voucher:
        return Voucher(
            voucher_no=self.voucher_no,
            voucher_status=VoucherStatus.parse(self.voucher_status),
            created_at=parse_timestamp(self.created_at),
            created_by_user_id=self.created_by_user_id,
            item_details=ItemDetails.from_dict(self.item_details or {}),
            events=tuple(event_from_dict(e) for e in self.events or ()),
            totals=VoucherTotals(**{
                name: getattr(self, name) or 0 for name in TOTAL_COLUMNS
            }),
            status_comment=self.status_comment,
        )

    @classmethod
    def from_domain(cls, voucher: Voucher) -> "VoucherRecord":
        record = cls(
            voucher_no=voucher.voucher_no,
            voucher_status=voucher.voucher_status.value,
            created_by_user_id=voucher.created_by_user_id,
            created_at=voucher.created_at,
            updated_at=voucher.created_at,
            item_details=voucher.item_details.to_dict(),
            events=[event_to_dict(e) for e in voucher.events],
            status_comment=voucher.status_comment,
        )
        for name, value in voucher.totals.as_dict().items():
            setattr(record, name, value)
        return record

    def apply_patch(self, patch: dict[str, Any]) -> None:
        """Write an engine-produced patch onto the row.

        Recognised keys: ``events`` (domain events), ``voucher_status``,
        ``status_comment``, ``updated_at`` and the total columns.
        """
        if "events" in patch:
            self.events = [event_to_dict(e) for e in patch["events"]]
        if "voucher_status" in patch:
            self.voucher_status = VoucherStatus.parse(patch["voucher_status"]).value
        if "status_comment" in patch:
            self.status_comment = patch["status_comment"]
        if "updated_at" in patch:
            self.updated_at = patch["updated_at"]
        for name in TOTAL_COLUMNS:
            if name in patch:
                setattr(self, name, patch[name])

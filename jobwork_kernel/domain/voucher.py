"""
Voucher aggregate (``jobwork_kernel.domain.voucher``).

Responsibility
--------------
The aggregate root for one batch of garment items moving through job
work: immutable provenance and item details, an append-only tuple of
events, the lifecycle status, and the denormalized totals.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``events`` only grows; ``with_event`` returns a new voucher.
* ``totals`` is a read-optimization and must equal a fresh fold over
  ``events`` (the engines recompute it on every mutation).
* Comparisons against the generic admin identity go through
  ``is_generic_admin_sentinel`` only.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from jobwork_kernel.domain.events import (
    VoucherEvent,
    event_from_dict,
    event_to_dict,
    parse_timestamp,
)

# Generic receiver meaning "any admin" rather than a specific admin user.
ADMIN_SENTINEL = "admin"


def is_generic_admin_sentinel(identity: str | None) -> bool:
    """True when ``identity`` is the generic, non-user-specific admin."""
    return identity == ADMIN_SENTINEL


class VoucherStatus(str, Enum):
    """Lifecycle status, derived from the event history."""

    DISPATCHED = "Dispatched"
    RECEIVED = "Received"
    FORWARDED = "Forwarded"
    COMPLETED = "Completed"

    @classmethod
    def parse(cls, value: str | VoucherStatus) -> VoucherStatus:
        """Accept canonical and legacy lower-case spellings."""
        if isinstance(value, VoucherStatus):
            return value
        for status in cls:
            if status.value.lower() == str(value).strip().lower():
                return status
        raise ValueError(f"Unknown voucher status: {value!r}")


@dataclass(frozen=True)
class ItemDetails:
    """What was sent out.  Immutable after dispatch."""

    item_name: str
    initial_quantity: int
    supplier_name: str = ""
    supplier_price_per_piece: Decimal = Decimal("0")
    images: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemDetails:
        return cls(
            item_name=data.get("item_name") or "",
            initial_quantity=int(data.get("initial_quantity") or 0),
            supplier_name=data.get("supplier_name") or "",
            supplier_price_per_piece=Decimal(
                str(data.get("supplier_price_per_piece") or "0")
            ),
            images=tuple(data.get("images") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_name": self.item_name,
            "initial_quantity": self.initial_quantity,
            "supplier_name": self.supplier_name,
            "supplier_price_per_piece": str(self.supplier_price_per_piece),
            "images": list(self.images),
        }


@dataclass(frozen=True)
class VoucherTotals:
    """Running totals folded from a voucher's events."""

    total_dispatched: int = 0
    total_received: int = 0
    total_forwarded: int = 0
    total_missing_on_arrival: int = 0
    total_damaged_on_arrival: int = 0
    total_damaged_after_work: int = 0
    admin_received_quantity: int = 0

    @property
    def total_losses(self) -> int:
        """Missing plus damage at any stage."""
        return (
            self.total_missing_on_arrival
            + self.total_damaged_on_arrival
            + self.total_damaged_after_work
        )

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VoucherTotals:
        return cls(**{
            name: int(data.get(name) or 0)
            for name in cls.__dataclass_fields__
        })


@dataclass(frozen=True)
class Voucher:
    """
    Aggregate root.

    Contract:
        ``voucher_no`` is ``MFV{YYYYMMDD}_{seq:04d}`` and never changes.
        ``voucher_status`` is only ever set by the status engine, except at
        creation where it is ``Dispatched``.
    """

    voucher_no: str
    created_at: datetime
    created_by_user_id: str
    item_details: ItemDetails
    voucher_status: VoucherStatus = VoucherStatus.DISPATCHED
    events: tuple[VoucherEvent, ...] = ()
    totals: VoucherTotals = field(default_factory=VoucherTotals)
    status_comment: str | None = None

    def with_event(self, event: VoucherEvent) -> Voucher:
        """Return a copy with ``event`` appended."""
        return replace(self, events=self.events + (event,))

    def find_event(self, event_id: str) -> VoucherEvent | None:
        for event in self.events:
            if event.event_id == event_id:
                return event
        return None


def voucher_from_dict(data: dict[str, Any]) -> Voucher:
    """Decode a stored voucher document."""
    return Voucher(
        voucher_no=data["voucher_no"],
        voucher_status=VoucherStatus.parse(
            data.get("voucher_status") or VoucherStatus.DISPATCHED
        ),
        created_at=parse_timestamp(data["created_at"]),
        created_by_user_id=data.get("created_by_user_id") or "",
        item_details=ItemDetails.from_dict(data.get("item_details") or {}),
        events=tuple(event_from_dict(e) for e in data.get("events") or ()),
        totals=VoucherTotals.from_dict(data),
        status_comment=data.get("status_comment"),
    )


def voucher_to_dict(voucher: Voucher) -> dict[str, Any]:
    """Encode a voucher as a JSON-safe document."""
    doc: dict[str, Any] = {
        "voucher_no": voucher.voucher_no,
        "voucher_status": voucher.voucher_status.value,
        "created_at": voucher.created_at.isoformat(),
        "created_by_user_id": voucher.created_by_user_id,
        "item_details": voucher.item_details.to_dict(),
        "events": [event_to_dict(e) for e in voucher.events],
        "status_comment": voucher.status_comment,
    }
    doc.update(voucher.totals.as_dict())
    return doc

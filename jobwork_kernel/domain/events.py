"""
Voucher events (``jobwork_kernel.domain.events``).

Responsibility
--------------
Immutable records of something that happened to a voucher: a dispatch,
a receive or a forward.  The ``details`` payload is a tagged union keyed
by ``event_type``; each variant declares exactly the fields it uses and
every quantity is an ``int`` that defaults to zero.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``event_type`` and the ``details`` variant always agree.
* Timestamps are timezone-aware; naive ISO strings are read as UTC.
* Missing numeric fields in stored documents decode as ``0`` so that
  ledgers written before a field existed still aggregate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from jobwork_kernel.exceptions import UnknownEventTypeError


class EventType(str, Enum):
    """Kinds of ledger event."""

    DISPATCH = "dispatch"
    RECEIVE = "receive"
    FORWARD = "forward"

    @classmethod
    def parse(cls, value: str | EventType) -> EventType:
        try:
            return cls(value)
        except ValueError:
            raise UnknownEventTypeError(str(value)) from None


@dataclass(frozen=True)
class Transport:
    """Consignment note attached to a dispatch or forward."""

    lr_no: str = ""
    lr_date: str = ""
    transporter_name: str = ""


@dataclass(frozen=True)
class ReceiveDiscrepancies:
    """Losses noted by the receiver on arrival."""

    missing: int = 0
    damaged_on_arrival: int = 0
    damage_reason: str | None = None


@dataclass(frozen=True)
class ForwardDiscrepancies:
    """Losses noted by the sender after doing the job work."""

    damaged_after_job: int = 0
    damage_reason: str | None = None


@dataclass(frozen=True)
class DispatchDetails:
    job_work: str | None = None
    sender_id: str | None = None
    receiver_id: str | None = None
    quantity_dispatched: int = 0
    transport: Transport | None = None

    event_type = EventType.DISPATCH


@dataclass(frozen=True)
class ReceiveDetails:
    sender_id: str | None = None
    receiver_id: str | None = None
    quantity_expected: int = 0
    quantity_received: int = 0
    is_admin_receive: bool = False
    discrepancies: ReceiveDiscrepancies = field(
        default_factory=ReceiveDiscrepancies
    )

    event_type = EventType.RECEIVE


@dataclass(frozen=True)
class ForwardDetails:
    job_work: str | None = None
    sender_id: str | None = None
    receiver_id: str | None = None
    quantity_before_job: int = 0
    quantity_forwarded: int = 0
    price_per_piece: Decimal | None = None
    discrepancies: ForwardDiscrepancies = field(
        default_factory=ForwardDiscrepancies
    )
    transport: Transport | None = None

    event_type = EventType.FORWARD


EventDetails = DispatchDetails | ReceiveDetails | ForwardDetails


@dataclass(frozen=True)
class VoucherEvent:
    """
    One immutable ledger record.

    Contract:
        ``event_id`` is ``evnt_{voucherNo}_{serial:03d}``; an event built
        before the ledger assigns an ID carries ``event_id=""``.
        ``parent_event_id`` is a weak back-reference (a receive's parent is
        usually the forward that triggered it).
    """

    event_type: EventType
    timestamp: datetime
    details: EventDetails
    event_id: str = ""
    parent_event_id: str | None = None
    user_id: str | None = None
    comment: str = ""

    def __post_init__(self) -> None:
        if self.details.event_type is not self.event_type:
            raise ValueError(
                f"{type(self.details).__name__} cannot carry a "
                f"{self.event_type.value} event"
            )
        if self.timestamp.tzinfo is None:
            raise ValueError("VoucherEvent.timestamp must be timezone-aware")

    @property
    def receiver(self) -> str | None:
        """Effective receiver: ``details.receiver_id`` or, for legacy receive
        events that never recorded it, the acting user."""
        receiver = self.details.receiver_id
        if receiver is None and self.event_type is EventType.RECEIVE:
            return self.user_id
        return receiver

    @property
    def sender(self) -> str | None:
        """Effective sender: ``details.sender_id`` or, for legacy forward
        events, the acting user."""
        sender = self.details.sender_id
        if sender is None and self.event_type is EventType.FORWARD:
            return self.user_id
        return sender


# ---------------------------------------------------------------------------
# Document codec
# ---------------------------------------------------------------------------


def parse_timestamp(value: str | datetime) -> datetime:
    """ISO-8601 string (or datetime) to a timezone-aware datetime."""
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _qty(data: dict[str, Any] | None, key: str) -> int:
    if not data:
        return 0
    value = data.get(key)
    if value in (None, ""):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _price(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _transport_from_dict(data: dict[str, Any] | None) -> Transport | None:
    if not data:
        return None
    return Transport(
        lr_no=data.get("lr_no") or "",
        lr_date=data.get("lr_date") or "",
        transporter_name=data.get("transporter_name") or "",
    )


def _transport_to_dict(transport: Transport | None) -> dict[str, str] | None:
    if transport is None:
        return None
    return {
        "lr_no": transport.lr_no,
        "lr_date": transport.lr_date,
        "transporter_name": transport.transporter_name,
    }


def details_from_dict(event_type: EventType, data: dict[str, Any]) -> EventDetails:
    """Decode a stored ``details`` map into its typed variant."""
    disc = data.get("discrepancies") or {}
    job_work = data.get("job_work", data.get("jobWork"))

    if event_type is EventType.DISPATCH:
        return DispatchDetails(
            job_work=job_work,
            sender_id=data.get("sender_id"),
            receiver_id=data.get("receiver_id"),
            quantity_dispatched=_qty(data, "quantity_dispatched"),
            transport=_transport_from_dict(data.get("transport")),
        )
    if event_type is EventType.RECEIVE:
        return ReceiveDetails(
            sender_id=data.get("sender_id"),
            receiver_id=data.get("receiver_id"),
            quantity_expected=_qty(data, "quantity_expected"),
            quantity_received=_qty(data, "quantity_received"),
            is_admin_receive=bool(data.get("is_admin_receive", False)),
            discrepancies=ReceiveDiscrepancies(
                missing=_qty(disc, "missing"),
                damaged_on_arrival=_qty(disc, "damaged_on_arrival"),
                damage_reason=disc.get("damage_reason"),
            ),
        )
    return ForwardDetails(
        job_work=job_work,
        sender_id=data.get("sender_id"),
        receiver_id=data.get("receiver_id"),
        quantity_before_job=_qty(data, "quantity_before_job"),
        quantity_forwarded=_qty(data, "quantity_forwarded"),
        price_per_piece=_price(data.get("price_per_piece")),
        discrepancies=ForwardDiscrepancies(
            damaged_after_job=_qty(disc, "damaged_after_job"),
            damage_reason=disc.get("damage_reason"),
        ),
        transport=_transport_from_dict(data.get("transport")),
    )


def details_to_dict(details: EventDetails) -> dict[str, Any]:
    """Encode a details variant in the document-store shape."""
    out: dict[str, Any] = {
        "sender_id": details.sender_id,
        "receiver_id": details.receiver_id,
    }
    if isinstance(details, DispatchDetails):
        out["job_work"] = details.job_work
        out["quantity_dispatched"] = details.quantity_dispatched
        out["transport"] = _transport_to_dict(details.transport)
    elif isinstance(details, ReceiveDetails):
        out["quantity_expected"] = details.quantity_expected
        out["quantity_received"] = details.quantity_received
        out["is_admin_receive"] = details.is_admin_receive
        out["discrepancies"] = {
            "missing": details.discrepancies.missing,
            "damaged_on_arrival": details.discrepancies.damaged_on_arrival,
            "damage_reason": details.discrepancies.damage_reason,
        }
    else:
        out["job_work"] = details.job_work
        out["quantity_before_job"] = details.quantity_before_job
        out["quantity_forwarded"] = details.quantity_forwarded
        out["price_per_piece"] = (
            str(details.price_per_piece)
            if details.price_per_piece is not None
            else None
        )
        out["discrepancies"] = {
            "damaged_after_job": details.discrepancies.damaged_after_job,
            "damage_reason": details.discrepancies.damage_reason,
        }
        out["transport"] = _transport_to_dict(details.transport)
    return out


def event_from_dict(data: dict[str, Any]) -> VoucherEvent:
    """Decode one stored event document."""
    event_type = EventType.parse(data["event_type"])
    return VoucherEvent(
        event_id=data.get("event_id") or "",
        parent_event_id=data.get("parent_event_id") or None,
        event_type=event_type,
        timestamp=parse_timestamp(data["timestamp"]),
        user_id=data.get("user_id"),
        comment=data.get("comment") or "",
        details=details_from_dict(event_type, data.get("details") or {}),
    )


def event_to_dict(event: VoucherEvent) -> dict[str, Any]:
    """Encode one event as a JSON-safe document."""
    return {
        "event_id": event.event_id,
        "parent_event_id": event.parent_event_id,
        "event_type": event.event_type.value,
        "timestamp": event.timestamp.isoformat(),
        "user_id": event.user_id,
        "comment": event.comment,
        "details": details_to_dict(event.details),
    }

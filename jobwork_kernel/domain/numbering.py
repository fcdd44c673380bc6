"""
Voucher and event identifiers (``jobwork_kernel.domain.numbering``).

Responsibility
--------------
Pure formatting, parsing and sequence arithmetic for:

* voucher numbers ``MFV{YYYYMMDD}_{seq:04d}`` under three strategies
  (financial year, plain sequential, per calendar day);
* event IDs ``evnt_{voucherNo}_{serial:03d}`` whose serial is the
  voucher's current event count plus one;
* transport LR numbers derived from a voucher number and a phone.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  The lookup of existing numbers and
the uniqueness check live in ``services.voucher_number_service``.

Invariants enforced
-------------------
* Financial year runs April 1 to March 31.
* Sequence numbers start at 1 and stop at ``MAX_SEQUENCE``; the four-digit
  field is what ``parse_voucher_no`` reads back.
* Event serials for N sequential appends are exactly 1..N; this only holds
  when the read of the event count and the append are serialized per
  voucher (see ``services.voucher_transaction``).
"""

from __future__ import annotations

import re
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Sequence

from jobwork_kernel.domain.events import VoucherEvent

VOUCHER_PREFIX = "MFV"
FINANCIAL_YEAR_START_MONTH = 4
MAX_SEQUENCE = 9999

_EVENT_SERIAL_RE = re.compile(r"^evnt_.*_(\d+)$")


class NumberingStrategy(str, Enum):
    FINANCIAL_YEAR = "financial_year"
    SEQUENTIAL = "sequential"
    DATE_BASED = "date_based"


def _voucher_re(prefix: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(prefix)}(\d{{8}})_(\d{{4}})$")


def format_voucher_no(
    on: date, sequence: int, prefix: str = VOUCHER_PREFIX,
) -> str:
    """``MFV20250722_0003`` for ``(2025-07-22, 3)``."""
    if not 0 <= sequence <= MAX_SEQUENCE:
        raise ValueError(
            f"Voucher sequence {sequence} does not fit in four digits"
        )
    return f"{prefix}{on:%Y%m%d}_{sequence:04d}"


def parse_voucher_no(
    voucher_no: str, prefix: str = VOUCHER_PREFIX,
) -> tuple[date, int] | None:
    """Return ``(embedded_date, sequence)`` or None when not well-formed."""
    match = _voucher_re(prefix).match(voucher_no or "")
    if match is None:
        return None
    raw = match.group(1)
    try:
        embedded = date(int(raw[:4]), int(raw[4:6]), int(raw[6:8]))
    except ValueError:
        return None
    return embedded, int(match.group(2))


def financial_year_window(
    on: date, start_month: int = FINANCIAL_YEAR_START_MONTH,
) -> tuple[date, date]:
    """Inclusive ``(first_day, last_day)`` of the financial year containing ``on``."""
    start_year = on.year if on.month >= start_month else on.year - 1
    start = date(start_year, start_month, 1)
    end = date(start_year + 1, start_month, 1) - timedelta(days=1)
    return start, end


def max_sequence(
    voucher_numbers: Iterable[str],
    strategy: NumberingStrategy,
    on: date,
    prefix: str = VOUCHER_PREFIX,
    fy_start_month: int = FINANCIAL_YEAR_START_MONTH,
) -> int:
    """Highest sequence among ``voucher_numbers`` that counts under ``strategy``.

    * financial_year -- numbers whose embedded date lies in ``on``'s
      financial year.
    * date_based -- numbers embedded with exactly ``on``.
    * sequential -- every well-formed number.

    Malformed numbers are ignored.
    """
    if strategy is NumberingStrategy.FINANCIAL_YEAR:
        fy_start, fy_end = financial_year_window(on, fy_start_month)

    highest = 0
    for voucher_no in voucher_numbers:
        parsed = parse_voucher_no(voucher_no, prefix)
        if parsed is None:
            continue
        embedded, sequence = parsed
        if strategy is NumberingStrategy.FINANCIAL_YEAR:
            if not fy_start <= embedded <= fy_end:
                continue
        elif strategy is NumberingStrategy.DATE_BASED:
            if embedded != on:
                continue
        highest = max(highest, sequence)
    return highest


def fallback_voucher_no(
    on: date, epoch_millis: int, prefix: str = VOUCHER_PREFIX,
) -> str:
    """Timestamp-suffixed number used when lookups fail or keep colliding."""
    return format_voucher_no(on, epoch_millis % 10_000, prefix)


def format_event_id(voucher_no: str, serial: int) -> str:
    """``evnt_MFV20250722_0003_004`` for ``(MFV20250722_0003, 4)``."""
    return f"evnt_{voucher_no}_{serial:03d}"


def parse_event_serial(event_id: str) -> int | None:
    match = _EVENT_SERIAL_RE.match(event_id or "")
    return int(match.group(1)) if match else None


def next_event_serial(events: Sequence[VoucherEvent]) -> int:
    """Serial for the next event: current event count plus one."""
    return len(events) + 1


def generate_lr_number(voucher_no: str, receiver_phone: str) -> str:
    """``LR`` + first 6 digits of the voucher number + last 4 of the phone."""
    if not voucher_no or not receiver_phone:
        raise ValueError(
            "Voucher number and receiver phone are required for LR generation"
        )
    voucher_digits = re.sub(r"\D", "", voucher_no)
    phone_digits = re.sub(r"\D", "", receiver_phone)[-4:]
    return f"LR{voucher_digits[:6]}{phone_digits}"

"""
VoucherNumberService -- voucher number allocation by scan, verify and retry.

Responsibility:
    Proposes the next voucher number ``MFV{YYYYMMDD}_{seq:04d}``: scans a
    bounded window of recent numbers, takes the highest sequence that
    counts under the configured strategy, proposes ``max + 1`` and checks
    it is free.  Collisions bump the sequence by a random step and retry;
    lookup failures and exhausted retries fall back to a timestamp-suffixed
    number.

Architecture position:
    Kernel > Services -- imperative shell.  The storage access goes through
    the ``VoucherNumberSource`` protocol; ``SqlVoucherNumberSource`` is the
    ORM implementation.  Pure formatting and parsing live in
    ``jobwork_kernel.domain.numbering``.

Invariants enforced:
    - No global counter: uniqueness is probabilistic here and enforced by
      the ``uq_voucher_no`` constraint at commit time.
    - Allocation never raises for a lookup failure; it degrades and logs.
    - The date segment is the creation date, defaulting to the clock's
      today.

Failure modes:
    - None raised.  ``VoucherNumberAllocation.degraded`` is True when the
      number came from the timestamp fallback.

Audit relevance:
    Collisions log ``voucher_number_collision_retry``; fallbacks log
    ``voucher_number_fallback`` at WARNING with the reason.
"""

from __future__ import annotations

import random
from datetime import date
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from jobwork_kernel.domain.clock import Clock
from jobwork_kernel.domain.dtos import VoucherNumberAllocation
from jobwork_kernel.domain.numbering import (
    FINANCIAL_YEAR_START_MONTH,
    MAX_SEQUENCE,
    VOUCHER_PREFIX,
    NumberingStrategy,
    fallback_voucher_no,
    format_voucher_no,
    max_sequence,
)
from jobwork_kernel.logging_config import get_logger
from jobwork_kernel.models.voucher import VoucherRecord

logger = get_logger("services.voucher_number")


class VoucherNumberSource(Protocol):
    """Storage hooks the allocator needs."""

    def list_recent_voucher_numbers(self, limit: int) -> list[str]:
        """Up to ``limit`` voucher numbers, descending."""
        ...

    def voucher_number_exists(self, voucher_no: str) -> bool:
        ...


class SqlVoucherNumberSource:
    """``VoucherNumberSource`` over the ``vouchers`` table.

    Each call runs in its own short read-only session.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def list_recent_voucher_numbers(self, limit: int) -> list[str]:
        with self._session_factory() as session:
            rows = session.execute(
                select(VoucherRecord.voucher_no)
                .order_by(VoucherRecord.voucher_no.desc())
                .limit(limit)
            ).scalars()
            return list(rows)

    def voucher_number_exists(self, voucher_no: str) -> bool:
        with self._session_factory() as session:
            found = session.execute(
                select(VoucherRecord.id)
                .where(VoucherRecord.voucher_no == voucher_no)
                .limit(1)
            ).first()
            return found is not None


class VoucherNumberService:
    """Allocates voucher numbers.

    Contract:
        ``next_available`` always returns a well-formed number.

    Guarantees:
        - A non-degraded allocation was free at the time of the point check.
        - At most ``max_attempts`` point checks per call.

    Non-goals:
        - Does NOT reserve the number; two callers can receive the same
          proposal in a tight race.  The write path rejects the loser.
    """

    def __init__(
        self,
        source: VoucherNumberSource,
        clock: Clock,
        strategy: NumberingStrategy = NumberingStrategy.FINANCIAL_YEAR,
        prefix: str = VOUCHER_PREFIX,
        fetch_limit: int = 100,
        max_attempts: int = 5,
        fy_start_month: int = FINANCIAL_YEAR_START_MONTH,
        rng: random.Random | None = None,
    ):
        self._source = source
        self._clock = clock
        self.strategy = strategy
        self.prefix = prefix
        self.fetch_limit = fetch_limit
        self.max_attempts = max_attempts
        self.fy_start_month = fy_start_month
        self._rng = rng or random.Random()

    def _fallback(self, on: date, attempts: int, reason: str) -> VoucherNumberAllocation:
        epoch_millis = int(self._clock.now().timestamp() * 1000)
        voucher_no = fallback_voucher_no(on, epoch_millis, self.prefix)
        logger.warning(
            "voucher_number_fallback",
            extra={
                "voucher_no": voucher_no,
                "reason": reason,
                "attempts": attempts,
                "strategy": self.strategy.value,
            },
        )
        return VoucherNumberAllocation(
            voucher_no=voucher_no, attempts=attempts, degraded=True,
        )

    def next_available(self, creation_date: date | None = None) -> VoucherNumberAllocation:
        """
        Propose a free voucher number for ``creation_date``.

        Postconditions:
            Returns a non-degraded allocation when a free candidate was
            found within ``max_attempts`` checks, otherwise the timestamp
            fallback flagged ``degraded``.
        """
        on = creation_date or self._clock.today()

        # Any storage error degrades to the fallback instead of failing creation.
        try:
            recent = self._source.list_recent_voucher_numbers(self.fetch_limit)
        except Exception:
            logger.warning("voucher_number_lookup_failed", exc_info=True)
            return self._fallback(on, 0, "lookup_failed")

        sequence = max_sequence(
            recent, self.strategy, on, self.prefix, self.fy_start_month,
        ) + 1

        for attempt in range(1, self.max_attempts + 1):
            if sequence > MAX_SEQUENCE:
                return self._fallback(on, attempt - 1, "sequence_exhausted")
            candidate = format_voucher_no(on, sequence, self.prefix)
            try:
                taken = self._source.voucher_number_exists(candidate)
            except Exception:
                logger.warning("voucher_number_lookup_failed", exc_info=True)
                return self._fallback(on, attempt, "lookup_failed")

            if not taken:
                logger.debug(
                    "voucher_number_allocated",
                    extra={"voucher_no": candidate, "attempts": attempt},
                )
                return VoucherNumberAllocation(voucher_no=candidate, attempts=attempt)

            step = self._rng.randint(1, 10)
            logger.info(
                "voucher_number_collision_retry",
                extra={
                    "voucher_no": candidate,
                    "attempt": attempt,
                    "next_step": step,
                },
            )
            sequence += step

        return self._fallback(on, self.max_attempts, "collisions_exhausted")

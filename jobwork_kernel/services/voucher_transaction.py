"""
Per-voucher read-modify-write executor (``voucher_transaction``).

Responsibility:
    Run one mutation of one voucher as a serialized transaction: load the
    row with a row lock, hand the caller a typed ``Voucher`` snapshot,
    apply the patch the caller returns and commit.  Conflicts with a
    concurrent writer are retried on a fresh snapshot.

Architecture position:
    Kernel > Services -- imperative shell.  Every write to an existing
    voucher goes through ``voucher_transaction``; nothing else updates a
    ``VoucherRecord``.

Invariants enforced:
    - The snapshot handed to ``fn`` is the committed state at the time of
      the read; ``fn`` is re-invoked with a fresh snapshot on every retry,
      so event serials and completion checks never use stale data.
    - PostgreSQL: SELECT ... FOR UPDATE blocks a second writer until the
      first commits.
    - Every backend: the ``version`` column makes a stale UPDATE fail with
      StaleDataError, translated to OptimisticLockError.

Failure modes:
    - VoucherNotFoundError: no row for ``voucher_no`` (not retried).
    - OptimisticLockError: still conflicting after ``max_attempts``.
    - Any exception raised by ``fn`` rolls back and propagates unchanged.

Audit relevance:
    Each retry is logged as ``voucher_transaction_conflict`` with the
    attempt number.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from jobwork_kernel.domain.voucher import Voucher
from jobwork_kernel.exceptions import OptimisticLockError, VoucherNotFoundError
from jobwork_kernel.logging_config import get_logger
from jobwork_kernel.models.voucher import VoucherRecord

logger = get_logger("services.voucher_transaction")

T = TypeVar("T")

# fn(snapshot) -> (patch or None, result).  A None patch writes nothing.
VoucherMutation = Callable[[Voucher], tuple[dict[str, Any] | None, T]]

DEFAULT_MAX_ATTEMPTS = 3


def load_for_update(session: Session, voucher_no: str) -> VoucherRecord:
    """Fetch the row with a row lock (no-op lock on SQLite)."""
    record = session.execute(
        select(VoucherRecord)
        .where(VoucherRecord.voucher_no == voucher_no)
        .with_for_update()
    ).scalar_one_or_none()
    if record is None:
        raise VoucherNotFoundError(voucher_no)
    return record


def voucher_transaction(
    session_factory: sessionmaker[Session],
    voucher_no: str,
    fn: VoucherMutation[T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> T:
    """
    Serialize one mutation of ``voucher_no``.

    Preconditions:
        ``fn`` is free of side effects other than its return value; it may
        be called up to ``max_attempts`` times.

    Postconditions:
        The patch returned by the successful call of ``fn`` is committed
        and its result returned.

    Raises:
        VoucherNotFoundError: If the voucher does not exist.
        OptimisticLockError: If every attempt lost a race.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        session = session_factory()
        try:
            record = load_for_update(session, voucher_no)
            patch, result = fn(record.to_domain())
            if patch:
                record.apply_patch(patch)
            session.commit()
            return result
        except StaleDataError:
            session.rollback()
            logger.warning(
                "voucher_transaction_conflict",
                extra={
                    "voucher_no": voucher_no,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                },
            )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    logger.error(
        "voucher_transaction_exhausted",
        extra={"voucher_no": voucher_no, "max_attempts": max_attempts},
    )
    raise OptimisticLockError("Voucher", voucher_no)

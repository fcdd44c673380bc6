"""
Concurrent appends to one voucher.

Two appends computed from the same snapshot both claim serial N+1; the
per-voucher transaction with its version column is what keeps serials
1..N.  These tests run on a file-backed SQLite database so each session
gets its own connection.
"""

import random
from itertools import count

import pytest
from sqlalchemy.orm import sessionmaker

from jobwork_kernel.db.engine import build_engine, create_tables
from jobwork_kernel.domain.events import EventType
from jobwork_kernel.exceptions import OptimisticLockError
from jobwork_kernel.services.voucher_ledger_service import (
    VoucherLedgerService,
    prepare_append,
)
from jobwork_kernel.services.voucher_number_service import (
    SqlVoucherNumberSource,
    VoucherNumberService,
)
from jobwork_kernel.services.voucher_transaction import voucher_transaction
from tests.builders import dispatch, make_voucher, receive

pytestmark = pytest.mark.concurrency

VOUCHER = "MFV20250722_0001"


@pytest.fixture
def file_session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def file_ledger(file_session_factory, deterministic_clock, kurta):
    numbers = VoucherNumberService(
        SqlVoucherNumberSource(file_session_factory),
        deterministic_clock,
        rng=random.Random(11),
    )
    ledger = VoucherLedgerService(
        file_session_factory, deterministic_clock, number_service=numbers,
    )
    ledger.create_voucher(kurta, "admin-1", voucher_no=VOUCHER)
    return ledger


def _append_receive(receiver_id):
    def mutate(voucher):
        result = prepare_append(voucher, receive(receiver_id, 1))
        patch = {"events": result.events, "voucher_status": result.status}
        patch.update(result.totals.as_dict())
        return patch, result
    return mutate


def _receivers(voucher):
    return [e.receiver for e in voucher.events if e.event_type is EventType.RECEIVE]


class TestUnserializedAppends:
    def test_same_snapshot_claims_same_serial(self):
        snapshot = make_voucher(dispatch(100))
        first = prepare_append(snapshot, receive("vendor-a", 10))
        second = prepare_append(snapshot, receive("vendor-b", 10))

        assert first.event.event_id == second.event.event_id == f"evnt_{VOUCHER}_002"
        # Whichever write lands last silently drops the other event.
        assert first.events[-1] != second.events[-1]
        assert len(first.events) == len(second.events) == 2


class TestSerializedAppends:
    def test_sequential_appends_get_one_to_n(self, file_ledger, file_session_factory):
        for n in range(5):
            file_ledger.record_receive(VOUCHER, f"vendor-{n}", 1)

        events = voucher_transaction(
            file_session_factory, VOUCHER, lambda v: (None, v.events),
        )
        assert [e.event_id for e in events] == [
            f"evnt_{VOUCHER}_{n:03d}" for n in range(1, 7)
        ]
        assert events[0].event_type is EventType.DISPATCH

    def test_stale_writer_is_retried_on_fresh_snapshot(
        self, file_ledger, file_session_factory, captured_logs,
    ):
        calls = count(1)
        append = _append_receive("vendor-late")

        def racing_mutation(voucher):
            if next(calls) == 1:
                # Another writer commits between our read and our write.
                file_ledger.record_receive(VOUCHER, "vendor-early", 1)
            return append(voucher)

        result = voucher_transaction(file_session_factory, VOUCHER, racing_mutation)

        assert result.event.event_id == f"evnt_{VOUCHER}_003"
        stored = voucher_transaction(
            file_session_factory, VOUCHER, lambda v: (None, v),
        )
        assert _receivers(stored) == ["vendor-early", "vendor-late"]
        assert stored.totals.total_received == 2
        assert any(r["message"] == "voucher_transaction_conflict" for r in captured_logs())

    def test_persistent_conflict_raises(self, file_ledger, file_session_factory):
        writers = count()
        append = _append_receive("vendor-late")

        def always_racing(voucher):
            file_ledger.record_receive(VOUCHER, f"vendor-{next(writers)}", 1)
            return append(voucher)

        with pytest.raises(OptimisticLockError) as exc_info:
            voucher_transaction(file_session_factory, VOUCHER, always_racing, max_attempts=2)
        assert exc_info.value.entity_id == VOUCHER

        stored = voucher_transaction(file_session_factory, VOUCHER, lambda v: (None, v))
        assert _receivers(stored) == ["vendor-0", "vendor-1"]

    def test_max_attempts_must_be_positive(self, file_session_factory):
        with pytest.raises(ValueError):
            voucher_transaction(file_session_factory, VOUCHER, lambda v: (None, v), max_attempts=0)

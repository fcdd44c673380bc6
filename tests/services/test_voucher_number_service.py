"""Tests for VoucherNumberService allocation, retry and fallback."""

import random
from datetime import date

import pytest

from jobwork_kernel.domain.numbering import NumberingStrategy
from jobwork_kernel.services.voucher_number_service import (
    SqlVoucherNumberSource,
    VoucherNumberService,
)


class FakeSource:
    """In-memory VoucherNumberSource with optional failure injection."""

    def __init__(self, existing=(), taken=(), fail_list=False, fail_exists=False):
        self.existing = list(existing)
        self.taken = set(existing) | set(taken)
        self.fail_list = fail_list
        self.fail_exists = fail_exists
        self.checked: list[str] = []

    def list_recent_voucher_numbers(self, limit):
        if self.fail_list:
            raise ConnectionError("store unavailable")
        return sorted(self.existing, reverse=True)[:limit]

    def voucher_number_exists(self, voucher_no):
        if self.fail_exists:
            raise ConnectionError("store unavailable")
        self.checked.append(voucher_no)
        return voucher_no in self.taken


def _service(source, clock, **kwargs):
    return VoucherNumberService(source, clock, rng=random.Random(3), **kwargs)


class TestNextAvailable:
    def test_first_number_of_the_day(self, deterministic_clock):
        allocation = _service(FakeSource(), deterministic_clock).next_available()
        assert allocation.voucher_no == "MFV20250722_0001"
        assert allocation.attempts == 1
        assert not allocation.degraded

    def test_continues_financial_year_sequence(self, deterministic_clock):
        source = FakeSource(existing=["MFV20250410_0007", "MFV20250301_0050"])
        allocation = _service(source, deterministic_clock).next_available()
        assert allocation.voucher_no == "MFV20250722_0008"

    def test_date_based_restarts_each_day(self, deterministic_clock):
        source = FakeSource(existing=["MFV20250721_0007"])
        service = _service(source, deterministic_clock, strategy=NumberingStrategy.DATE_BASED)
        assert service.next_available().voucher_no == "MFV20250722_0001"

    def test_sequential_ignores_dates(self, deterministic_clock):
        source = FakeSource(existing=["MFV20240101_0041"])
        service = _service(source, deterministic_clock, strategy=NumberingStrategy.SEQUENTIAL)
        assert service.next_available().voucher_no == "MFV20250722_0042"

    def test_explicit_creation_date(self, deterministic_clock):
        allocation = _service(FakeSource(), deterministic_clock).next_available(date(2026, 1, 5))
        assert allocation.voucher_no == "MFV20260105_0001"

    def test_fetch_limit_bounds_the_scan(self, deterministic_clock):
        source = FakeSource(existing=["MFV20250722_0009", "MFV20250722_0003"])
        service = _service(source, deterministic_clock, fetch_limit=1)
        assert service.next_available().voucher_no == "MFV20250722_0010"


class TestCollisions:
    def test_collision_bumps_by_random_step(self, deterministic_clock, captured_logs):
        source = FakeSource(taken=["MFV20250722_0001"])
        allocation = _service(source, deterministic_clock).next_available()

        assert allocation.attempts == 2
        assert not allocation.degraded
        first, second = source.checked
        assert first == "MFV20250722_0001"
        step = int(second[-4:]) - 1
        assert 1 <= step <= 10
        assert any(r["message"] == "voucher_number_collision_retry" for r in captured_logs())

    def test_exhausted_retries_fall_back(self, deterministic_clock, captured_logs):
        taken = [f"MFV20250722_{n:04d}" for n in range(1, 200)]
        source = FakeSource(taken=taken)
        allocation = _service(source, deterministic_clock, max_attempts=3).next_available()

        assert allocation.degraded
        assert allocation.attempts == 3
        assert len(source.checked) == 3
        millis = int(deterministic_clock.now().timestamp() * 1000)
        assert allocation.voucher_no == f"MFV20250722_{millis % 10_000:04d}"
        fallback = [r for r in captured_logs() if r["message"] == "voucher_number_fallback"]
        assert fallback[0]["reason"] == "collisions_exhausted"

    def test_full_sequence_falls_back(self, deterministic_clock, captured_logs):
        source = FakeSource(existing=["MFV20250722_9999"])
        allocation = _service(source, deterministic_clock).next_available()

        assert allocation.degraded
        assert allocation.attempts == 0
        assert source.checked == []
        fallback = [r for r in captured_logs() if r["message"] == "voucher_number_fallback"]
        assert fallback[0]["reason"] == "sequence_exhausted"

    def test_collision_past_the_last_sequence_falls_back(self, deterministic_clock):
        source = FakeSource(existing=["MFV20250722_9998"], taken=["MFV20250722_9999"])
        allocation = _service(source, deterministic_clock).next_available()

        assert allocation.degraded
        assert allocation.attempts == 1
        assert source.checked == ["MFV20250722_9999"]


class TestLookupFailures:
    @pytest.mark.parametrize("flags", [{"fail_list": True}, {"fail_exists": True}])
    def test_degrades_instead_of_raising(self, deterministic_clock, captured_logs, flags):
        allocation = _service(FakeSource(**flags), deterministic_clock).next_available()
        assert allocation.degraded
        assert allocation.voucher_no.startswith("MFV20250722_")
        reasons = [
            r["reason"] for r in captured_logs() if r["message"] == "voucher_number_fallback"
        ]
        assert reasons == ["lookup_failed"]


class TestSqlSource:
    def test_reads_committed_numbers(self, ledger, kurta, session_factory):
        ledger.create_voucher(kurta, "admin-1")
        ledger.create_voucher(kurta, "admin-1")
        source = SqlVoucherNumberSource(session_factory)

        assert source.list_recent_voucher_numbers(10) == [
            "MFV20250722_0002", "MFV20250722_0001",
        ]
        assert source.list_recent_voucher_numbers(1) == ["MFV20250722_0002"]
        assert source.voucher_number_exists("MFV20250722_0001")
        assert not source.voucher_number_exists("MFV20250722_0003")

"""Tests for voucher number, event ID and LR number formatting."""

from datetime import date

import pytest

from jobwork_kernel.domain.numbering import (
    MAX_SEQUENCE,
    NumberingStrategy,
    fallback_voucher_no,
    financial_year_window,
    format_event_id,
    format_voucher_no,
    generate_lr_number,
    max_sequence,
    next_event_serial,
    parse_event_serial,
    parse_voucher_no,
)
from tests.builders import dispatch, make_voucher, receive


class TestVoucherNumberFormat:
    def test_format(self):
        assert format_voucher_no(date(2025, 7, 22), 3) == "MFV20250722_0003"

    def test_custom_prefix(self):
        assert format_voucher_no(date(2025, 7, 22), 12, "JWV") == "JWV20250722_0012"

    def test_sequence_limited_to_four_digits(self):
        last = format_voucher_no(date(2025, 7, 22), MAX_SEQUENCE)
        assert last == "MFV20250722_9999"
        assert parse_voucher_no(last) == (date(2025, 7, 22), 9999)
        with pytest.raises(ValueError):
            format_voucher_no(date(2025, 7, 22), MAX_SEQUENCE + 1)

    def test_parse(self):
        assert parse_voucher_no("MFV20250722_0003") == (date(2025, 7, 22), 3)

    @pytest.mark.parametrize("bad", [
        "", "MFV2025072_0003", "XYZ20250722_0003", "MFV20251322_0001", "MFV20250722-0001",
    ])
    def test_parse_rejects_malformed(self, bad):
        assert parse_voucher_no(bad) is None


class TestFinancialYear:
    def test_mid_year(self):
        assert financial_year_window(date(2025, 7, 22)) == (
            date(2025, 4, 1), date(2026, 3, 31),
        )

    def test_before_april_belongs_to_previous_start(self):
        assert financial_year_window(date(2026, 2, 10)) == (
            date(2025, 4, 1), date(2026, 3, 31),
        )

    def test_april_first_starts_new_year(self):
        assert financial_year_window(date(2026, 4, 1))[0] == date(2026, 4, 1)


class TestMaxSequence:
    NUMBERS = [
        "MFV20250722_0004",
        "MFV20250721_0009",
        "MFV20250301_0042",   # previous financial year
        "MFV20250722_0002",
        "not-a-voucher",
    ]

    def test_financial_year(self):
        seq = max_sequence(
            self.NUMBERS, NumberingStrategy.FINANCIAL_YEAR, date(2025, 7, 22),
        )
        assert seq == 9

    def test_date_based(self):
        seq = max_sequence(self.NUMBERS, NumberingStrategy.DATE_BASED, date(2025, 7, 22))
        assert seq == 4

    def test_sequential(self):
        seq = max_sequence(self.NUMBERS, NumberingStrategy.SEQUENTIAL, date(2025, 7, 22))
        assert seq == 42

    def test_empty(self):
        assert max_sequence([], NumberingStrategy.SEQUENTIAL, date(2025, 7, 22)) == 0

    def test_new_financial_year_restarts(self):
        seq = max_sequence(
            self.NUMBERS, NumberingStrategy.FINANCIAL_YEAR, date(2026, 4, 1),
        )
        assert seq == 0


class TestFallback:
    def test_uses_timestamp_suffix(self):
        assert fallback_voucher_no(date(2025, 7, 22), 1753178401234) == "MFV20250722_1234"


class TestEventIds:
    def test_format(self):
        assert format_event_id("MFV20250722_0003", 4) == "evnt_MFV20250722_0003_004"

    def test_parse_serial(self):
        assert parse_event_serial("evnt_MFV20250722_0003_004") == 4
        assert parse_event_serial("garbage") is None

    def test_next_serial_is_count_plus_one(self):
        voucher = make_voucher(dispatch(100), receive("vendor-a", 100))
        assert next_event_serial(voucher.events) == 3
        assert next_event_serial(()) == 1


class TestLrNumber:
    def test_generate(self):
        lr = generate_lr_number("MFV20250722_0003", "+91 98765 43210")
        assert lr == "LR2025073210"

    @pytest.mark.parametrize("voucher_no,phone", [("", "9876543210"), ("MFV20250722_0003", "")])
    def test_requires_both_inputs(self, voucher_no, phone):
        with pytest.raises(ValueError):
            generate_lr_number(voucher_no, phone)

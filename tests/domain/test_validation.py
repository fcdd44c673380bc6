"""Tests for quantity validation of proposed events."""

from dataclasses import replace

from jobwork_kernel.domain.validation import (
    validate_admin_receive,
    validate_forward,
    validate_receive,
)
from tests.builders import dispatch, event_id, forward, make_voucher, receive


def _vendor_a_holds_90():
    return make_voucher(receive("vendor-a", 100, damaged=10, minute=1))


class TestValidateForward:
    def test_within_balance(self):
        result = validate_forward(_vendor_a_holds_90(), "vendor-a", 80, damaged_after_job=5)
        assert result.is_valid
        assert result.error is None

    def test_exact_balance(self):
        assert validate_forward(_vendor_a_holds_90(), "vendor-a", 90)

    def test_over_balance_counts_damage(self):
        result = validate_forward(_vendor_a_holds_90(), "vendor-a", 86, damaged_after_job=5)
        assert not result
        assert result.errors[0].code == "FORWARD_EXCEEDS_BALANCE"
        assert result.error == (
            "Cannot forward 86 pieces with 5 damaged. "
            "Only 90 pieces available for forwarding."
        )
        assert result.errors[0].details["available"] == 90

    def test_zero_quantity(self):
        result = validate_forward(_vendor_a_holds_90(), "vendor-a", 0)
        assert result.errors[0].code == "FORWARD_QUANTITY_NOT_POSITIVE"

    def test_negative_damage(self):
        result = validate_forward(_vendor_a_holds_90(), "vendor-a", 5, damaged_after_job=-1)
        assert result.errors[0].code == "NEGATIVE_QUANTITY"

    def test_unknown_vendor_holds_nothing(self):
        result = validate_forward(_vendor_a_holds_90(), "vendor-z", 1)
        assert result.errors[0].code == "FORWARD_EXCEEDS_BALANCE"

    def test_prior_forwards_reduce_balance(self):
        voucher = make_voucher(
            receive("vendor-a", 100, minute=1),
            forward("vendor-a", "vendor-b", 60, minute=2),
        )
        assert validate_forward(voucher, "vendor-a", 40)
        assert not validate_forward(voucher, "vendor-a", 41)


class TestValidateReceive:
    def test_accounted_within_expected(self):
        assert validate_receive(_vendor_a_holds_90(), 95, missing=3, damaged_on_arrival=2,
                                quantity_expected=100)

    def test_accounted_over_expected(self):
        result = validate_receive(_vendor_a_holds_90(), 100, missing=1, quantity_expected=100)
        assert result.errors[0].code == "RECEIVE_EXCEEDS_EXPECTED"
        assert result.errors[0].details["accounted"] == 101

    def test_no_expected_skips_ceiling(self):
        assert validate_receive(_vendor_a_holds_90(), 10_000)

    def test_every_negative_reported(self):
        result = validate_receive(_vendor_a_holds_90(), -1, missing=-2, damaged_on_arrival=0)
        assert [e.field for e in result.errors] == ["quantity_received", "missing"]


class TestValidateAdminReceive:
    def test_within_remaining(self):
        voucher = make_voucher(
            receive("vendor-a", 100, damaged=10, minute=1),
            forward("vendor-a", "admin", 85, damaged_after=5, minute=2),
        )
        # 100 initial - 10 - 5 = 85 expected at admin
        assert validate_admin_receive(voucher, 85)
        assert not validate_admin_receive(voucher, 86)

    def test_counts_what_admin_already_holds(self):
        voucher = make_voucher(
            receive("vendor-a", 100, minute=1),
            forward("vendor-a", "admin", 100, minute=2),
            receive("admin-1", 60, parent=event_id(2), is_admin=True, minute=3),
        )
        assert validate_admin_receive(voucher, 40)
        result = validate_admin_receive(voucher, 41)
        assert result.errors[0].code == "ADMIN_RECEIVE_EXCEEDS_EXPECTED"
        assert result.errors[0].details == {"ceiling": 100, "after": 101}

    def test_negative(self):
        assert not validate_admin_receive(_vendor_a_holds_90(), -5)

    def test_own_losses_lower_the_ceiling(self):
        voucher = make_voucher(
            receive("vendor-a", 100, minute=1),
            forward("vendor-a", "admin", 100, minute=2),
        )
        assert validate_admin_receive(voucher, 85, missing=10, damaged_on_arrival=5)
        result = validate_admin_receive(voucher, 100, missing=10, damaged_on_arrival=5)
        assert result.errors[0].details == {"ceiling": 85, "after": 100}

    def test_negative_losses(self):
        result = validate_admin_receive(_vendor_a_holds_90(), 10, missing=-1)
        assert result.errors[0].field == "missing"

    def test_ceiling_capped_by_dispatched(self):
        voucher = make_voucher(
            dispatch(60),
            receive("vendor-a", 60, minute=1),
            forward("vendor-a", "admin", 60, minute=2),
        )
        assert validate_admin_receive(voucher, 60)
        assert not validate_admin_receive(voucher, 61)

    def test_admin_total_folded_from_events(self):
        voucher = make_voucher(
            receive("vendor-a", 100, minute=1),
            forward("vendor-a", "admin", 100, minute=2),
            receive("admin-1", 60, parent=event_id(2), is_admin=True, minute=3),
        )
        stale = replace(
            voucher, totals=replace(voucher.totals, admin_received_quantity=0),
        )
        result = validate_admin_receive(stale, 41)
        assert result.errors[0].details == {"ceiling": 100, "after": 101}

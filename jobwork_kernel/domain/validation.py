"""
Quantity validation at the point of event construction.

Pure checks with no I/O.  Each validator returns a ``ValidationResult``;
the ledger service turns a failed result into ``QuantityViolationError``.
The engines never reject an event already recorded, so these checks are
the only place an over-forward or over-receive is stopped.
"""

from __future__ import annotations

from jobwork_kernel.domain.balances import (
    admin_received,
    dispatched_quantity,
    recorded_losses,
    vendor_forwardable_quantity,
)
from jobwork_kernel.domain.dtos import ValidationError, ValidationResult
from jobwork_kernel.domain.voucher import Voucher


def validate_forward(
    voucher: Voucher,
    sender_id: str,
    quantity: int,
    damaged_after_job: int = 0,
) -> ValidationResult:
    """A vendor may forward (plus write off) at most what it holds."""
    if quantity <= 0:
        return ValidationResult.failure(ValidationError(
            code="FORWARD_QUANTITY_NOT_POSITIVE",
            message="Forward quantity must be greater than 0",
            field="quantity_forwarded",
        ))
    if damaged_after_job < 0:
        return ValidationResult.failure(ValidationError(
            code="NEGATIVE_QUANTITY",
            message="Damaged-after-job quantity cannot be negative",
            field="damaged_after_job",
        ))

    available = vendor_forwardable_quantity(sender_id, voucher.events)
    requested = quantity + damaged_after_job
    if requested > available:
        return ValidationResult.failure(ValidationError(
            code="FORWARD_EXCEEDS_BALANCE",
            message=(
                f"Cannot forward {quantity} pieces with {damaged_after_job} "
                f"damaged. Only {available} pieces available for forwarding."
            ),
            field="quantity_forwarded",
            details={
                "sender_id": sender_id,
                "available": available,
                "requested": requested,
            },
        ))
    return ValidationResult.success()


def validate_receive(
    voucher: Voucher,
    quantity_received: int,
    missing: int = 0,
    damaged_on_arrival: int = 0,
    quantity_expected: int | None = None,
) -> ValidationResult:
    """No negative quantities; accounted pieces never exceed the expected count."""
    errors: list[ValidationError] = []
    for name, value in (
        ("quantity_received", quantity_received),
        ("missing", missing),
        ("damaged_on_arrival", damaged_on_arrival),
    ):
        if value < 0:
            errors.append(ValidationError(
                code="NEGATIVE_QUANTITY",
                message=f"{name} cannot be negative",
                field=name,
            ))
    if errors:
        return ValidationResult.failure(*errors)

    if quantity_expected is not None:
        accounted = quantity_received + missing + damaged_on_arrival
        if accounted > quantity_expected:
            return ValidationResult.failure(ValidationError(
                code="RECEIVE_EXCEEDS_EXPECTED",
                message=(
                    f"Received {quantity_received}, missing {missing} and "
                    f"damaged {damaged_on_arrival} add up to {accounted}, "
                    f"more than the {quantity_expected} expected"
                ),
                field="quantity_received",
                details={
                    "voucher_no": voucher.voucher_no,
                    "expected": quantity_expected,
                    "accounted": accounted,
                },
            ))
    return ValidationResult.success()


def validate_admin_receive(
    voucher: Voucher,
    quantity: int,
    missing: int = 0,
    damaged_on_arrival: int = 0,
) -> ValidationResult:
    """Admin may not receive more than what remains after recorded losses.

    The baseline is ``initial_quantity``, capped by the dispatched total
    once any dispatch is recorded.  Losses reported on the admin receive
    itself count against the ceiling.  The admin total is folded from the
    events, never read from the stored totals.
    """
    negatives = validate_receive(voucher, quantity, missing, damaged_on_arrival)
    if not negatives:
        return negatives

    baseline = voucher.item_details.initial_quantity
    dispatched = dispatched_quantity(voucher.events)
    if dispatched:
        baseline = min(baseline, dispatched)
    ceiling = (
        baseline
        - recorded_losses(voucher.events)
        - missing
        - damaged_on_arrival
    )
    after = admin_received(voucher) + quantity
    if after > ceiling:
        return ValidationResult.failure(ValidationError(
            code="ADMIN_RECEIVE_EXCEEDS_EXPECTED",
            message=(
                f"Admin would hold {after} pieces, more than the {ceiling} "
                "expected after recorded losses"
            ),
            field="quantity_received",
            details={"ceiling": ceiling, "after": after},
        ))
    return ValidationResult.success()

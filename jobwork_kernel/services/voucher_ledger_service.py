"""
VoucherLedgerService -- the write path of the voucher event ledger.

Responsibility:
    Creates vouchers and appends dispatch, receive and forward events.
    Each append assigns the event ID, re-derives totals from the full event
    list, re-derives the status from the transition table and persists
    ``{events, totals, voucher_status, updated_at}`` in one serialized
    transaction.  Also runs manual completion and the bulk status rerun.

Architecture position:
    Kernel > Services -- imperative shell.
    Calls the pure engines (``jobwork_engines``) for every derived value
    and ``voucher_transaction`` for every update.  Callers never write a
    ``VoucherRecord`` directly.

Invariants enforced:
    - Event serials are 1..N: the serial is read from the snapshot inside
      the same transaction that writes the event.
    - Stored totals always equal ``calculate_totals`` over stored events.
    - Status is derived over the ledger that already contains the new event.
    - Quantity validation (when enabled) runs against the same snapshot the
      event is appended to, so a concurrent append cannot invalidate it.
    - A parent_event_id must name an event already in the ledger.

Failure modes:
    - VoucherNotFoundError, ParentEventNotFoundError: caller-facing, no retry.
    - QuantityViolationError: validation rejected the event; nothing written.
    - VoucherAlreadyExistsError: explicit voucher_no already taken.
    - NumberingCollisionError: auto-allocated numbers kept colliding at commit.
    - OptimisticLockError: concurrent writers exhausted the retries.

Audit relevance:
    Logs ``voucher_created``, ``voucher_event_appended`` and
    ``voucher_status_changed`` with voucher_no and event_id bound in the
    log context; manual completions log the status comment.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from jobwork_engines.completion import ManualCompletionResult, manually_mark_complete
from jobwork_engines.status import (
    determine_new_status,
    rederive_status,
    update_voucher_status,
)
from jobwork_engines.totals import calculate_totals
from jobwork_kernel.db.engine import session_scope
from jobwork_kernel.domain.balances import vendor_forwardable_quantity
from jobwork_kernel.domain.clock import Clock
from jobwork_kernel.domain.dtos import AppendResult, ValidationResult
from jobwork_kernel.domain.events import (
    DispatchDetails,
    EventType,
    ForwardDetails,
    ForwardDiscrepancies,
    ReceiveDetails,
    ReceiveDiscrepancies,
    Transport,
    VoucherEvent,
)
from jobwork_kernel.domain.numbering import format_event_id, next_event_serial
from jobwork_kernel.domain.validation import (
    validate_admin_receive,
    validate_forward,
    validate_receive,
)
from jobwork_kernel.domain.voucher import ItemDetails, Voucher, VoucherStatus
from jobwork_kernel.exceptions import (
    JobWorkKernelError,
    NumberingCollisionError,
    ParentEventNotFoundError,
    QuantityViolationError,
    VoucherAlreadyExistsError,
)
from jobwork_kernel.logging_config import LogContext, get_logger
from jobwork_kernel.models.voucher import VoucherRecord
from jobwork_kernel.services.voucher_number_service import VoucherNumberService
from jobwork_kernel.services.voucher_transaction import (
    DEFAULT_MAX_ATTEMPTS,
    voucher_transaction,
)

logger = get_logger("services.voucher_ledger")

# Builds the event to append from the fresh snapshot; may raise to abort.
EventBuilder = Callable[[Voucher], VoucherEvent]


def prepare_append(voucher: Voucher, new_event: VoucherEvent) -> AppendResult:
    """
    Pure core of an append: assign ID, append, derive totals, derive status.

    Preconditions:
        ``voucher`` is the current committed snapshot.  Two calls on the
        same snapshot assign the same serial; only a serialized caller
        gets 1..N.

    Raises:
        ParentEventNotFoundError: ``new_event.parent_event_id`` is not in
            the ledger.
    """
    if new_event.parent_event_id and voucher.find_event(new_event.parent_event_id) is None:
        raise ParentEventNotFoundError(voucher.voucher_no, new_event.parent_event_id)

    serial = next_event_serial(voucher.events)
    event = replace(new_event, event_id=format_event_id(voucher.voucher_no, serial))

    appended = voucher.with_event(event)
    totals = calculate_totals(appended)
    appended = replace(appended, totals=totals)
    status = determine_new_status(appended, event.event_type, event)

    return AppendResult(
        event=event,
        events=appended.events,
        totals=totals,
        status=status,
        previous_status=voucher.voucher_status,
    )


class VoucherLedgerService:
    """
    Voucher creation and event append.

    Contract:
        Every public method is one transaction.  Methods that mutate an
        existing voucher go through ``voucher_transaction``.

    Guarantees:
        - The returned ``AppendResult`` is exactly what was committed.
        - Totals and status are never taken from the caller.

    Non-goals:
        - Does NOT send notifications or render documents; those read the
          committed row.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock,
        number_service: VoucherNumberService | None = None,
        transaction_attempts: int = DEFAULT_MAX_ATTEMPTS,
        validate_quantities: bool = True,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._numbers = number_service
        self.transaction_attempts = transaction_attempts
        self.validate_quantities = validate_quantities

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_voucher(
        self,
        item_details: ItemDetails,
        created_by_user_id: str,
        dispatch: DispatchDetails | None = None,
        voucher_no: str | None = None,
        comment: str = "",
        creation_date: date | None = None,
    ) -> Voucher:
        """
        Create a voucher in status ``Dispatched``.

        The ledger starts with a dispatch event (serial 001).  When
        ``dispatch`` is omitted it dispatches ``initial_quantity`` from the
        creator.  When ``voucher_no`` is omitted a number is
        allocated and a commit-time collision re-allocates.

        Raises:
            VoucherAlreadyExistsError: Explicit ``voucher_no`` is taken.
            NumberingCollisionError: Allocated numbers kept colliding.
        """
        if voucher_no is not None:
            return self._insert(
                voucher_no, item_details, created_by_user_id, dispatch, comment,
            )

        if self._numbers is None:
            raise ValueError("voucher_no is required when no number service is configured")

        attempts = self._numbers.max_attempts
        candidate = ""
        for attempt in range(1, attempts + 1):
            allocation = self._numbers.next_available(creation_date)
            candidate = allocation.voucher_no
            try:
                return self._insert(
                    candidate, item_details, created_by_user_id, dispatch, comment,
                )
            except VoucherAlreadyExistsError:
                logger.info(
                    "voucher_number_commit_collision",
                    extra={"voucher_no": candidate, "attempt": attempt},
                )
        raise NumberingCollisionError(candidate, attempts)

    def _insert(
        self,
        voucher_no: str,
        item_details: ItemDetails,
        created_by_user_id: str,
        dispatch: DispatchDetails | None,
        comment: str,
    ) -> Voucher:
        now = self._clock.now()
        if dispatch is None:
            dispatch = DispatchDetails(
                sender_id=created_by_user_id,
                quantity_dispatched=item_details.initial_quantity,
            )
        events = (VoucherEvent(
            event_id=format_event_id(voucher_no, 1),
            event_type=EventType.DISPATCH,
            timestamp=now,
            user_id=created_by_user_id,
            comment=comment,
            details=dispatch,
        ),)

        voucher = Voucher(
            voucher_no=voucher_no,
            created_at=now,
            created_by_user_id=created_by_user_id,
            item_details=item_details,
            voucher_status=VoucherStatus.DISPATCHED,
            events=events,
        )
        voucher = replace(voucher, totals=calculate_totals(voucher))

        try:
            with session_scope(self._session_factory) as session:
                session.add(VoucherRecord.from_domain(voucher))
        except IntegrityError as exc:
            raise VoucherAlreadyExistsError(voucher_no) from exc

        logger.info(
            "voucher_created",
            extra={
                "voucher_no": voucher_no,
                "created_by_user_id": created_by_user_id,
                "initial_quantity": item_details.initial_quantity,
                "event_count": len(events),
            },
        )
        return voucher

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append_event(self, voucher_no: str, new_event: VoucherEvent) -> AppendResult:
        """Append a caller-built event (no quantity validation)."""
        return self._append(voucher_no, lambda _voucher: new_event)

    def _append(self, voucher_no: str, build: EventBuilder) -> AppendResult:
        def mutate(voucher: Voucher) -> tuple[dict[str, Any], AppendResult]:
            result = prepare_append(voucher, build(voucher))
            patch: dict[str, Any] = {
                "events": result.events,
                "voucher_status": result.status,
                "updated_at": self._clock.now(),
            }
            patch.update(result.totals.as_dict())
            return patch, result

        with LogContext.bind(voucher_no=voucher_no):
            result = voucher_transaction(
                self._session_factory, voucher_no, mutate,
                max_attempts=self.transaction_attempts,
            )
            with LogContext.bind_event(result.event):
                logger.info(
                    "voucher_event_appended",
                    extra={"event_count": len(result.events)},
                )
                if result.status_changed:
                    logger.info(
                        "voucher_status_changed",
                        extra={
                            "from_status": result.previous_status.value,
                            "to_status": result.status.value,
                        },
                    )
        return result

    def _check(self, voucher: Voucher, result: ValidationResult) -> None:
        if not result.is_valid:
            logger.warning(
                "voucher_quantity_rejected",
                extra={
                    "voucher_no": voucher.voucher_no,
                    "codes": [e.code for e in result.errors],
                },
            )
            raise QuantityViolationError(voucher.voucher_no, result)

    def record_dispatch(
        self,
        voucher_no: str,
        user_id: str,
        quantity: int,
        receiver_id: str | None = None,
        job_work: str | None = None,
        transport: Transport | None = None,
        comment: str = "",
    ) -> AppendResult:
        def build(voucher: Voucher) -> VoucherEvent:
            return VoucherEvent(
                event_type=EventType.DISPATCH,
                timestamp=self._clock.now(),
                user_id=user_id,
                comment=comment,
                details=DispatchDetails(
                    job_work=job_work,
                    sender_id=user_id,
                    receiver_id=receiver_id,
                    quantity_dispatched=quantity,
                    transport=transport,
                ),
            )

        return self._append(voucher_no, build)

    def record_receive(
        self,
        voucher_no: str,
        receiver_id: str,
        quantity_received: int,
        sender_id: str | None = None,
        quantity_expected: int | None = None,
        missing: int = 0,
        damaged_on_arrival: int = 0,
        damage_reason: str | None = None,
        parent_event_id: str | None = None,
        comment: str = "",
    ) -> AppendResult:
        """
        Record a vendor taking delivery.

        ``quantity_expected`` defaults to the parent forward's
        ``quantity_forwarded`` when a parent is given.
        """
        def build(voucher: Voucher) -> VoucherEvent:
            expected = quantity_expected
            sender = sender_id
            if parent_event_id:
                parent = voucher.find_event(parent_event_id)
                if parent is None:
                    raise ParentEventNotFoundError(voucher.voucher_no, parent_event_id)
                if isinstance(parent.details, ForwardDetails):
                    if expected is None:
                        expected = parent.details.quantity_forwarded
                    if sender is None:
                        sender = parent.sender

            if self.validate_quantities:
                self._check(voucher, validate_receive(
                    voucher, quantity_received, missing, damaged_on_arrival, expected,
                ))

            return VoucherEvent(
                event_type=EventType.RECEIVE,
                timestamp=self._clock.now(),
                user_id=receiver_id,
                parent_event_id=parent_event_id,
                comment=comment,
                details=ReceiveDetails(
                    sender_id=sender,
                    receiver_id=receiver_id,
                    quantity_expected=(
                        expected if expected is not None
                        else quantity_received + missing + damaged_on_arrival
                    ),
                    quantity_received=quantity_received,
                    discrepancies=ReceiveDiscrepancies(
                        missing=missing,
                        damaged_on_arrival=damaged_on_arrival,
                        damage_reason=damage_reason,
                    ),
                ),
            )

        return self._append(voucher_no, build)

    def record_forward(
        self,
        voucher_no: str,
        sender_id: str,
        receiver_id: str,
        quantity: int,
        job_work: str | None = None,
        damaged_after_job: int = 0,
        damage_reason: str | None = None,
        price_per_piece: Decimal | None = None,
        transport: Transport | None = None,
        parent_event_id: str | None = None,
        comment: str = "",
    ) -> AppendResult:
        """
        Record a vendor passing pieces on after job work.

        ``quantity_before_job`` is the sender's balance in the snapshot.
        """
        def build(voucher: Voucher) -> VoucherEvent:
            held = vendor_forwardable_quantity(sender_id, voucher.events)
            if self.validate_quantities:
                self._check(voucher, validate_forward(
                    voucher, sender_id, quantity, damaged_after_job,
                ))

            return VoucherEvent(
                event_type=EventType.FORWARD,
                timestamp=self._clock.now(),
                user_id=sender_id,
                parent_event_id=parent_event_id,
                comment=comment,
                details=ForwardDetails(
                    job_work=job_work,
                    sender_id=sender_id,
                    receiver_id=receiver_id,
                    quantity_before_job=held,
                    quantity_forwarded=quantity,
                    price_per_piece=price_per_piece,
                    discrepancies=ForwardDiscrepancies(
                        damaged_after_job=damaged_after_job,
                        damage_reason=damage_reason,
                    ),
                    transport=transport,
                ),
            )

        return self._append(voucher_no, build)

    def record_admin_receive(
        self,
        voucher_no: str,
        admin_id: str,
        parent_event_id: str,
        quantity: int | None = None,
        missing: int = 0,
        damaged_on_arrival: int = 0,
        damage_reason: str | None = None,
        comment: str = "",
    ) -> AppendResult:
        """
        Record the admin taking back finished pieces from a forward.

        The parent must be a forward in the ledger.  ``quantity`` defaults
        to the parent's ``quantity_forwarded``; the event carries
        ``is_admin_receive``.
        """
        def build(voucher: Voucher) -> VoucherEvent:
            parent = voucher.find_event(parent_event_id)
            if parent is None or not isinstance(parent.details, ForwardDetails):
                raise ParentEventNotFoundError(voucher.voucher_no, parent_event_id)

            received = (
                quantity if quantity is not None
                else parent.details.quantity_forwarded
            )
            if self.validate_quantities:
                self._check(voucher, validate_receive(
                    voucher, received, missing, damaged_on_arrival,
                    parent.details.quantity_forwarded,
                ))
                self._check(voucher, validate_admin_receive(
                    voucher, received, missing, damaged_on_arrival,
                ))

            return VoucherEvent(
                event_type=EventType.RECEIVE,
                timestamp=self._clock.now(),
                user_id=admin_id,
                parent_event_id=parent_event_id,
                comment=comment,
                details=ReceiveDetails(
                    sender_id=parent.sender,
                    receiver_id=admin_id,
                    quantity_expected=parent.details.quantity_forwarded,
                    quantity_received=received,
                    is_admin_receive=True,
                    discrepancies=ReceiveDiscrepancies(
                        missing=missing,
                        damaged_on_arrival=damaged_on_arrival,
                        damage_reason=damage_reason,
                    ),
                ),
            )

        return self._append(voucher_no, build)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def manually_complete(
        self,
        voucher_no: str,
        admin_id: str,
        force_complete: bool = False,
        reason: str | None = None,
    ) -> ManualCompletionResult:
        """
        Run the completion analyzer and persist ``Completed`` when allowed.

        A refused completion writes nothing.
        """
        def mutate(voucher: Voucher) -> tuple[dict[str, Any] | None, ManualCompletionResult]:
            result = manually_mark_complete(voucher, admin_id, force_complete, reason)
            if not result.can_be_completed:
                return None, result
            patch = update_voucher_status(voucher, result.final_status, self._clock.now())
            patch["status_comment"] = result.status_comment
            return patch, result

        with LogContext.bind(voucher_no=voucher_no, actor_id=admin_id):
            result = voucher_transaction(
                self._session_factory, voucher_no, mutate,
                max_attempts=self.transaction_attempts,
            )
            logger.info(
                "voucher_manual_completion",
                extra={
                    "can_be_completed": result.can_be_completed,
                    "final_status": result.final_status.value,
                    "status_comment": result.status_comment,
                    "force_complete": force_complete,
                },
            )
        return result

    def rederive_all_statuses(self) -> tuple[int, int]:
        """
        Re-run the transition table for every stored voucher.

        One transaction per voucher.  Failures are logged and counted, not
        raised.

        Returns:
            ``(updated, errors)``.
        """
        with session_scope(self._session_factory) as session:
            voucher_numbers = list(session.execute(
                select(VoucherRecord.voucher_no).order_by(VoucherRecord.voucher_no)
            ).scalars())

        def mutate(voucher: Voucher) -> tuple[dict[str, Any] | None, bool]:
            patch = rederive_status(voucher, self._clock.now())
            return patch, patch is not None

        updated = errors = 0
        for voucher_no in voucher_numbers:
            try:
                changed = voucher_transaction(
                    self._session_factory, voucher_no, mutate,
                    max_attempts=self.transaction_attempts,
                )
            except (JobWorkKernelError, SQLAlchemyError, ValueError):
                errors += 1
                logger.error(
                    "voucher_status_rederive_failed",
                    extra={"voucher_no": voucher_no},
                    exc_info=True,
                )
                continue
            if changed:
                updated += 1

        logger.info(
            "voucher_status_rederive_completed",
            extra={
                "voucher_count": len(voucher_numbers),
                "updated": updated,
                "errors": errors,
            },
        )
        return updated, errors

"""
Voucher lifecycle workflow (``jobwork_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing the voucher state machine: the guards a
transition may require, the transition rows, and the fixed table the
status engine evaluates.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Guards are
descriptive only; ``jobwork_engines.status`` evaluates them.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
* For any ``(from_state, event)`` pair the table holds at most one
  unguarded row, and an unguarded row never precedes a guarded row for
  the same pair that leads somewhere else.
"""

from __future__ import annotations

from dataclasses import dataclass

from jobwork_kernel.domain.events import EventType
from jobwork_kernel.domain.voucher import VoucherStatus


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the status engine does.
    """
    name: str
    description: str


ADMIN_RECEIVED_ENOUGH = Guard(
    name="admin_received_enough",
    description=(
        "Admin-received quantity covers dispatched quantity net of missing "
        "and damaged pieces."
    ),
)

ALL_VENDORS_RECEIVED = Guard(
    name="all_vendors_received",
    description=(
        "Every forward's receiver has recorded a receive after that forward."
    ),
)

QUANTITY_CHECK = Guard(
    name="quantity_check",
    description="The forward exhausts the sender's remaining balance.",
)

KNOWN_GUARDS: tuple[Guard, ...] = (
    ADMIN_RECEIVED_ENOUGH,
    ALL_VENDORS_RECEIVED,
    QUANTITY_CHECK,
)


@dataclass(frozen=True)
class Transition:
    """A valid status transition triggered by an event type.

    Contract: frozen.  The row fires only when every guard passes.
    """
    from_state: VoucherStatus
    to_state: VoucherStatus
    event: EventType
    guards: tuple[Guard, ...] = ()

    @property
    def is_guarded(self) -> bool:
        return bool(self.guards)


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: VoucherStatus
    states: tuple[VoucherStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[VoucherStatus, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t} references an "
                    "undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    "has an outgoing transition"
                )
        seen_unguarded: set[tuple[VoucherStatus, EventType]] = set()
        for t in self.transitions:
            key = (t.from_state, t.event)
            if key in seen_unguarded:
                raise ValueError(
                    f"Workflow {self.name}: row {t} is unreachable behind an "
                    f"unguarded row for {key[0].value}/{key[1].value}"
                )
            if not t.is_guarded:
                seen_unguarded.add(key)

    def candidates(
        self, from_state: VoucherStatus, event: EventType,
    ) -> tuple[Transition, ...]:
        """Rows matching ``(from_state, event)`` in table order."""
        return tuple(
            t for t in self.transitions
            if t.from_state is from_state and t.event is event
        )


# Table order is priority order.  For a pair with both a guarded and an
# unguarded row the guarded row comes first, so the two behave as
# mutually exclusive branches: complete when the guard passes, otherwise
# take the unguarded row.
STATUS_TRANSITIONS: tuple[Transition, ...] = (
    Transition(VoucherStatus.DISPATCHED, VoucherStatus.DISPATCHED, EventType.DISPATCH),
    Transition(VoucherStatus.DISPATCHED, VoucherStatus.RECEIVED, EventType.RECEIVE),
    Transition(VoucherStatus.RECEIVED, VoucherStatus.FORWARDED, EventType.FORWARD),
    Transition(
        VoucherStatus.RECEIVED, VoucherStatus.COMPLETED, EventType.RECEIVE,
        guards=(ADMIN_RECEIVED_ENOUGH,),
    ),
    Transition(
        VoucherStatus.FORWARDED, VoucherStatus.COMPLETED, EventType.RECEIVE,
        guards=(ADMIN_RECEIVED_ENOUGH,),
    ),
    Transition(VoucherStatus.FORWARDED, VoucherStatus.RECEIVED, EventType.RECEIVE),
)

VOUCHER_WORKFLOW = Workflow(
    name="voucher_lifecycle",
    description="Job-work voucher from dispatch to admin receipt",
    initial_state=VoucherStatus.DISPATCHED,
    states=tuple(VoucherStatus),
    transitions=STATUS_TRANSITIONS,
    terminal_states=(VoucherStatus.COMPLETED,),
)

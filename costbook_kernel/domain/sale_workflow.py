"""
Sale workflow -- the Draft / Completed / Cancelled state machine.

Responsibility:
    Declares the legal status edges of a sale and which of them move
    product stock.  SalesService consults ``require_transition`` before
    writing a new status.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Only the edges declared in SALE_WORKFLOW are legal.
    - Line items may be edited only in the initial (Draft) state.
    - Cancelled has no outgoing edge; a cancelled sale can only be deleted.
"""

from __future__ import annotations

from dataclasses import dataclass

from costbook_kernel.exceptions import InvalidSaleTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires."""

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """
    A legal status change.

    ``stock_effect`` is -1 when the transition deducts product stock,
    +1 when it returns it, 0 when stock is untouched.
    """

    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    stock_effect: int = 0


@dataclass(frozen=True)
class Workflow:
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    deletable_states: tuple[str, ...] = ()

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.to_state == to_state:
                return transition
        return None


STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Every product on the sale has enough stock on hand",
)

SALE_WORKFLOW = Workflow(
    name="sale",
    description="Sale lifecycle",
    initial_state="Draft",
    states=("Draft", "Completed", "Cancelled"),
    transitions=(
        Transition("Draft", "Completed", action="complete", guard=STOCK_AVAILABLE, stock_effect=-1),
        Transition("Completed", "Draft", action="revert", stock_effect=1),
        Transition("Completed", "Cancelled", action="revert", stock_effect=1),
        Transition("Draft", "Cancelled", action="cancel"),
    ),
    deletable_states=("Draft", "Cancelled"),
)


def require_transition(sale_id: str, from_state: str, to_state: str) -> Transition:
    """
    Look up the edge from_state -> to_state.

    Raises:
        InvalidSaleTransitionError: the edge is not declared.
    """
    transition = SALE_WORKFLOW.find(from_state, to_state)
    if transition is None:
        raise InvalidSaleTransitionError(sale_id, from_state, to_state)
    return transition


def is_editable(state: str) -> bool:
    return state == SALE_WORKFLOW.initial_state


def is_deletable(state: str) -> bool:
    return state in SALE_WORKFLOW.deletable_states

"""
Canonical workflow types (``count_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the count session and storage area state machines.
Statuses are closed enums and every legal move is a declared
``Transition``; anything not declared is an ``InvalidTransitionError``,
never a silent no-op.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from count_kernel.domain.count import AreaStatus, CountStatus
from count_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.  The lifecycle engine evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: Enum
    to_state: Enum
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a count lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: Enum
    states: tuple[Enum, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[Enum, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} references "
                    "an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    "has an outgoing transition"
                )

    def find(self, from_state: Enum, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def require(
        self, from_state: Enum, action: str, entity_type: str, entity_id: str,
    ) -> Transition:
        """Return the declared transition or raise ``InvalidTransitionError``."""
        transition = self.find(from_state, action)
        if transition is None:
            raise InvalidTransitionError(
                entity_type, entity_id, from_state.value, action,
            )
        return transition

    def allows(self, from_state: Enum, action: str) -> bool:
        return self.find(from_state, action) is not None


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ALL_AREAS_COMPLETED = Guard(
    name="all_areas_completed",
    description="Every area owned by the session is COMPLETED",
)


# -----------------------------------------------------------------------------
# Count session workflow
# -----------------------------------------------------------------------------

SESSION_WORKFLOW = Workflow(
    name="count_session",
    description="Physical inventory count session lifecycle",
    initial_state=CountStatus.DRAFT,
    states=(
        CountStatus.DRAFT,
        CountStatus.IN_PROGRESS,
        CountStatus.COMPLETED,
        CountStatus.APPROVED,
    ),
    transitions=(
        Transition(CountStatus.DRAFT, CountStatus.IN_PROGRESS, action="start"),
        # Item writes and area completion keep the session in progress.
        Transition(CountStatus.IN_PROGRESS, CountStatus.IN_PROGRESS, action="record"),
        Transition(
            CountStatus.IN_PROGRESS,
            CountStatus.COMPLETED,
            action="complete",
            guard=ALL_AREAS_COMPLETED,
        ),
        Transition(CountStatus.COMPLETED, CountStatus.APPROVED, action="approve"),
    ),
    terminal_states=(CountStatus.APPROVED,),
)


# -----------------------------------------------------------------------------
# Storage area workflow
# -----------------------------------------------------------------------------

AREA_WORKFLOW = Workflow(
    name="count_area",
    description="Storage area counting lifecycle",
    initial_state=AreaStatus.PENDING,
    states=(
        AreaStatus.PENDING,
        AreaStatus.IN_PROGRESS,
        AreaStatus.COMPLETED,
    ),
    transitions=(
        Transition(AreaStatus.PENDING, AreaStatus.IN_PROGRESS, action="record"),
        Transition(AreaStatus.IN_PROGRESS, AreaStatus.IN_PROGRESS, action="record"),
        # An area with nothing in it may be closed straight from PENDING.
        Transition(AreaStatus.PENDING, AreaStatus.COMPLETED, action="complete"),
        Transition(AreaStatus.IN_PROGRESS, AreaStatus.COMPLETED, action="complete"),
    ),
    terminal_states=(AreaStatus.COMPLETED,),
)

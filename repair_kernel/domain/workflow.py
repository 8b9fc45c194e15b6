"""
Repair quote workflow definition (``repair_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the quote state machine and the single transition
table every quote mutation is checked against.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``closed`` is terminal: it has no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class QuoteStatus(str, Enum):
    """Lifecycle status of a repair quote."""

    DRAFT = "draft"
    SENT_TO_TECH = "sent_to_tech"
    TECH_DECLINED = "tech_declined"
    TECH_SUBMITTED = "tech_submitted"
    UNDER_REVIEW = "under_review"
    SENT_TO_CLIENT = "sent_to_client"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CLOSED = "closed"


class QuoteAction(str, Enum):
    """Triggers that may move a quote between statuses."""

    ASSIGN_TECHNICIAN = "assign_technician"
    SEND_TO_TECHNICIAN = "send_to_technician"
    TECHNICIAN_SUBMIT = "technician_submit"
    TECHNICIAN_DECLINE = "technician_decline"
    MARK_UNDER_REVIEW = "mark_under_review"
    SEND_TO_CLIENT = "send_to_client"
    CLIENT_ACCEPT = "client_accept"
    CLIENT_DECLINE = "client_decline"
    CLOSE = "close"


class GuardCode(str, Enum):
    """Machine-readable names of the guards a transition can fail."""

    TECHNICIAN_ACTIVE = "technician_active"
    TECHNICIAN_ASSIGNED = "technician_assigned"
    TOKEN_VALID = "token_valid"
    CUSTOMER_TOTAL_PRESENT = "customer_total_present"
    NOT_CLOSED = "not_closed"
    ILLEGAL_STATE = "illegal_state"


class TokenPhase(str, Enum):
    """External participation stage a capability token is scoped to."""

    TECH = "tech"
    CLIENT = "client"


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only; ``QuoteStateMachine`` evaluates it.
    """
    code: GuardCode
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``token_phase`` is set on transitions an external actor triggers with a
    capability token; ``audit_action`` is the action code written to the
    audit trail when the transition succeeds.
    """
    from_state: QuoteStatus
    to_state: QuoteStatus
    action: QuoteAction
    audit_action: str
    guard: Guard | None = None
    token_phase: TokenPhase | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: QuoteStatus
    states: tuple[QuoteStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[QuoteStatus, ...] = ()

    def transitions_for(self, action: QuoteAction) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.action == action)

    def find(self, from_state: QuoteStatus, action: QuoteAction) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def adjacency(self) -> frozenset[tuple[QuoteStatus, QuoteStatus]]:
        """Every (from, to) pair the table permits."""
        return frozenset((t.from_state, t.to_state) for t in self.transitions)


TECHNICIAN_ACTIVE = Guard(GuardCode.TECHNICIAN_ACTIVE, "technician is active")
TECHNICIAN_ASSIGNED = Guard(GuardCode.TECHNICIAN_ASSIGNED, "no technician assigned")
TOKEN_VALID = Guard(GuardCode.TOKEN_VALID, "token valid for phase and not consumed")
CUSTOMER_TOTAL_PRESENT = Guard(
    GuardCode.CUSTOMER_TOTAL_PRESENT, "customer total has been computed"
)
NOT_CLOSED = Guard(GuardCode.NOT_CLOSED, "quote is already closed")

S = QuoteStatus
A = QuoteAction

_STAFF_AND_TOKEN_TRANSITIONS = (
    Transition(S.DRAFT, S.DRAFT, A.ASSIGN_TECHNICIAN, "technician_assigned", TECHNICIAN_ACTIVE),
    Transition(S.DRAFT, S.SENT_TO_TECH, A.SEND_TO_TECHNICIAN, "sent_to_tech", TECHNICIAN_ASSIGNED),
    Transition(S.UNDER_REVIEW, S.SENT_TO_TECH, A.SEND_TO_TECHNICIAN, "sent_to_tech", TECHNICIAN_ASSIGNED),
    Transition(
        S.SENT_TO_TECH, S.TECH_SUBMITTED, A.TECHNICIAN_SUBMIT, "tech_submitted",
        TOKEN_VALID, TokenPhase.TECH,
    ),
    Transition(
        S.SENT_TO_TECH, S.TECH_DECLINED, A.TECHNICIAN_DECLINE, "tech_declined",
        TOKEN_VALID, TokenPhase.TECH,
    ),
    Transition(S.TECH_SUBMITTED, S.UNDER_REVIEW, A.MARK_UNDER_REVIEW, "under_review", CUSTOMER_TOTAL_PRESENT),
    Transition(S.TECH_SUBMITTED, S.SENT_TO_CLIENT, A.SEND_TO_CLIENT, "sent_to_client", CUSTOMER_TOTAL_PRESENT),
    Transition(S.UNDER_REVIEW, S.SENT_TO_CLIENT, A.SEND_TO_CLIENT, "sent_to_client", CUSTOMER_TOTAL_PRESENT),
    Transition(
        S.SENT_TO_CLIENT, S.ACCEPTED, A.CLIENT_ACCEPT, "accepted",
        TOKEN_VALID, TokenPhase.CLIENT,
    ),
    Transition(
        S.SENT_TO_CLIENT, S.DECLINED, A.CLIENT_DECLINE, "declined",
        TOKEN_VALID, TokenPhase.CLIENT,
    ),
)

_CLOSE_TRANSITIONS = tuple(
    Transition(state, S.CLOSED, A.CLOSE, "closed", NOT_CLOSED)
    for state in QuoteStatus
    if state is not S.CLOSED
)

REPAIR_QUOTE_WORKFLOW = Workflow(
    name="repair_quote",
    description="Damage/repair quote from creation through technician quoting, "
    "internal review, client approval and closure",
    initial_state=S.DRAFT,
    states=tuple(QuoteStatus),
    transitions=_STAFF_AND_TOKEN_TRANSITIONS + _CLOSE_TRANSITIONS,
    terminal_states=(S.CLOSED,),
)

del S, A

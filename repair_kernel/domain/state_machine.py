"""
QuoteStateMachine -- transition legality and status/field agreement.

Responsibility:
    Decides whether an action is legal from a quote's current status given
    the caller's credentials, and checks that a quote's status agrees with
    its timestamps and financial fields.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Only transitions in REPAIR_QUOTE_WORKFLOW are legal.
    - customer_total is present iff tech_submitted_at is present iff
      markup_applied is present.
    - Each status implies the timestamps listed in _REQUIRED_FIELDS.

Failure modes:
    - InvalidTransitionError naming the failed guard.
    - MissingPrerequisiteError when send-to-client / under-review is asked
      for a quote with no customer total.
    - QuoteInvariantError when a snapshot disagrees with its status.
"""

from __future__ import annotations

from dataclasses import dataclass

from repair_kernel.domain.dtos import RepairQuote
from repair_kernel.domain.workflow import (
    REPAIR_QUOTE_WORKFLOW,
    GuardCode,
    QuoteAction,
    QuoteStatus,
    TokenPhase,
    Transition,
    Workflow,
)
from repair_kernel.exceptions import (
    InvalidTransitionError,
    MissingPrerequisiteError,
    QuoteInvariantError,
)


@dataclass(frozen=True)
class TransitionContext:
    """Caller credentials and collaborator facts a guard may need."""

    technician_active: bool | None = None
    token_phase: TokenPhase | None = None


class QuoteStateMachine:
    """Evaluates actions against a workflow table."""

    def __init__(self, workflow: Workflow = REPAIR_QUOTE_WORKFLOW):
        self._workflow = workflow

    @property
    def workflow(self) -> Workflow:
        return self._workflow

    def evaluate(
        self,
        quote: RepairQuote,
        action: QuoteAction,
        context: TransitionContext | None = None,
    ) -> Transition:
        """
        Return the transition ``action`` takes from ``quote.status``.

        Raises:
            InvalidTransitionError: no transition from the status, or its
                guard failed.
            MissingPrerequisiteError: the action needs a customer total
                and the quote has none.
        """
        context = context or TransitionContext()
        quote_id = str(quote.id)

        if quote.status in self._workflow.terminal_states:
            raise InvalidTransitionError(
                quote_id, quote.status.value, action.value, GuardCode.NOT_CLOSED.value
            )

        candidates = self._workflow.transitions_for(action)
        needs_total = any(
            t.guard is not None and t.guard.code is GuardCode.CUSTOMER_TOTAL_PRESENT
            for t in candidates
        )
        if needs_total and quote.customer_total is None:
            raise MissingPrerequisiteError(quote_id, action.value, "customer_total")

        transition = self._workflow.find(quote.status, action)
        if transition is None:
            raise InvalidTransitionError(
                quote_id, quote.status.value, action.value, GuardCode.ILLEGAL_STATE.value
            )

        self._check_guard(quote, transition, context)
        return transition

    def can(
        self,
        quote: RepairQuote,
        action: QuoteAction,
        context: TransitionContext | None = None,
    ) -> bool:
        try:
            self.evaluate(quote, action, context)
        except (InvalidTransitionError, MissingPrerequisiteError):
            return False
        return True

    def allowed_actions(self, quote: RepairQuote) -> tuple[QuoteAction, ...]:
        """Actions with a transition from the current status (guards not evaluated)."""
        return tuple(
            dict.fromkeys(
                t.action for t in self._workflow.transitions if t.from_state == quote.status
            )
        )

    def _check_guard(
        self, quote: RepairQuote, transition: Transition, context: TransitionContext
    ) -> None:
        if transition.guard is None:
            return
        code = transition.guard.code
        failed = False

        if code is GuardCode.TECHNICIAN_ACTIVE:
            failed = context.technician_active is not True
        elif code is GuardCode.TECHNICIAN_ASSIGNED:
            failed = quote.technician_id is None
        elif code is GuardCode.TOKEN_VALID:
            failed = context.token_phase is not transition.token_phase
        elif code is GuardCode.CUSTOMER_TOTAL_PRESENT:
            failed = quote.customer_total is None
        elif code is GuardCode.NOT_CLOSED:
            failed = quote.status is QuoteStatus.CLOSED

        if failed:
            raise InvalidTransitionError(
                str(quote.id),
                quote.status.value,
                transition.action.value,
                code.value,
                detail=transition.guard.description,
            )


# Fields a status requires to be set.  closed additionally forbids a
# missing closed_at and every other status forbids a present one.
_REQUIRED_FIELDS: dict[QuoteStatus, tuple[str, ...]] = {
    QuoteStatus.DRAFT: (),
    QuoteStatus.SENT_TO_TECH: ("technician_id", "expires_at"),
    QuoteStatus.TECH_DECLINED: ("technician_id",),
    QuoteStatus.TECH_SUBMITTED: ("tech_submitted_at",),
    QuoteStatus.UNDER_REVIEW: ("tech_submitted_at",),
    QuoteStatus.SENT_TO_CLIENT: ("tech_submitted_at", "expires_at"),
    QuoteStatus.ACCEPTED: ("tech_submitted_at", "approved_at"),
    QuoteStatus.DECLINED: ("tech_submitted_at", "declined_at"),
    QuoteStatus.CLOSED: ("closed_at",),
}


def check_quote_invariants(quote: RepairQuote) -> None:
    """Raise QuoteInvariantError if ``quote`` is not internally consistent."""
    quote_id = str(quote.id)
    status = quote.status.value

    pricing = {
        "tech_submitted_at": quote.tech_submitted_at is not None,
        "markup_applied": quote.markup_applied is not None,
        "customer_total": quote.customer_total is not None,
    }
    if len(set(pricing.values())) != 1:
        present = sorted(k for k, v in pricing.items() if v)
        raise QuoteInvariantError(
            quote_id,
            status,
            f"customer_total, markup_applied and tech_submitted_at must be set "
            f"together (present: {present or 'none'})",
        )

    for field_name in _REQUIRED_FIELDS[quote.status]:
        if getattr(quote, field_name) is None:
            raise QuoteInvariantError(quote_id, status, f"{field_name} is required")

    if quote.status is not QuoteStatus.CLOSED and quote.closed_at is not None:
        raise QuoteInvariantError(quote_id, status, "closed_at set on an open quote")

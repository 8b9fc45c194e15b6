"""
Quote state machine tests.

Verifies:
- Every legal transition in the workflow table is accepted
- Everything else is refused with the right guard code
- Prerequisites and guards are checked before the transition fires
- Status/field invariants on quote snapshots
"""

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from repair_kernel.domain.dtos import RepairQuote
from repair_kernel.domain.state_machine import (
    QuoteStateMachine,
    TransitionContext,
    check_quote_invariants,
)
from repair_kernel.domain.status_info import get_status_info
from repair_kernel.domain.dtos import StatusInfo
from repair_kernel.domain.workflow import (
    REPAIR_QUOTE_WORKFLOW,
    GuardCode,
    QuoteAction,
    QuoteStatus,
    TokenPhase,
)
from repair_kernel.exceptions import (
    InvalidTransitionError,
    MissingPrerequisiteError,
    QuoteInvariantError,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

EXPECTED_EDGES = {
    (QuoteStatus.DRAFT, QuoteAction.ASSIGN_TECHNICIAN): QuoteStatus.DRAFT,
    (QuoteStatus.DRAFT, QuoteAction.SEND_TO_TECHNICIAN): QuoteStatus.SENT_TO_TECH,
    (QuoteStatus.UNDER_REVIEW, QuoteAction.SEND_TO_TECHNICIAN): QuoteStatus.SENT_TO_TECH,
    (QuoteStatus.SENT_TO_TECH, QuoteAction.TECHNICIAN_SUBMIT): QuoteStatus.TECH_SUBMITTED,
    (QuoteStatus.SENT_TO_TECH, QuoteAction.TECHNICIAN_DECLINE): QuoteStatus.TECH_DECLINED,
    (QuoteStatus.TECH_SUBMITTED, QuoteAction.MARK_UNDER_REVIEW): QuoteStatus.UNDER_REVIEW,
    (QuoteStatus.TECH_SUBMITTED, QuoteAction.SEND_TO_CLIENT): QuoteStatus.SENT_TO_CLIENT,
    (QuoteStatus.UNDER_REVIEW, QuoteAction.SEND_TO_CLIENT): QuoteStatus.SENT_TO_CLIENT,
    (QuoteStatus.SENT_TO_CLIENT, QuoteAction.CLIENT_ACCEPT): QuoteStatus.ACCEPTED,
    (QuoteStatus.SENT_TO_CLIENT, QuoteAction.CLIENT_DECLINE): QuoteStatus.DECLINED,
    **{
        (status, QuoteAction.CLOSE): QuoteStatus.CLOSED
        for status in QuoteStatus
        if status is not QuoteStatus.CLOSED
    },
}

TOKEN_ACTIONS = {
    QuoteAction.TECHNICIAN_SUBMIT: TokenPhase.TECH,
    QuoteAction.TECHNICIAN_DECLINE: TokenPhase.TECH,
    QuoteAction.CLIENT_ACCEPT: TokenPhase.CLIENT,
    QuoteAction.CLIENT_DECLINE: TokenPhase.CLIENT,
}


def _priced(**overrides) -> dict:
    values = dict(
        tech_submitted_at=NOW,
        markup_applied=Decimal("20"),
        customer_total=Decimal("150.00"),
        tech_total=Decimal("125.00"),
    )
    values.update(overrides)
    return values


def make_quote(status: QuoteStatus, **overrides) -> RepairQuote:
    """A snapshot in ``status`` carrying the fields that status implies."""
    fields: dict = {"technician_id": uuid4()}
    if status in (
        QuoteStatus.TECH_SUBMITTED,
        QuoteStatus.UNDER_REVIEW,
        QuoteStatus.SENT_TO_CLIENT,
        QuoteStatus.ACCEPTED,
        QuoteStatus.DECLINED,
    ):
        fields.update(_priced())
    if status in (QuoteStatus.SENT_TO_TECH, QuoteStatus.SENT_TO_CLIENT):
        fields["expires_at"] = NOW + timedelta(days=14)
    if status is QuoteStatus.ACCEPTED:
        fields["approved_at"] = NOW
    if status is QuoteStatus.DECLINED:
        fields["declined_at"] = NOW
    if status is QuoteStatus.CLOSED:
        fields["closed_at"] = NOW
    fields.update(overrides)
    return RepairQuote(
        id=uuid4(),
        account_id=uuid4(),
        status=status,
        created_at=NOW,
        created_by="staff",
        updated_at=NOW,
        version=1,
        **fields,
    )


def context_for(action: QuoteAction) -> TransitionContext:
    return TransitionContext(technician_active=True, token_phase=TOKEN_ACTIONS.get(action))


@pytest.fixture
def machine() -> QuoteStateMachine:
    return QuoteStateMachine()


class TestTransitionTable:
    def test_table_matches_expected_edges(self):
        table = {(t.from_state, t.action): t.to_state for t in REPAIR_QUOTE_WORKFLOW.transitions}
        assert table == EXPECTED_EDGES

    def test_closed_is_the_only_terminal_state(self):
        assert REPAIR_QUOTE_WORKFLOW.terminal_states == (QuoteStatus.CLOSED,)
        assert not any(
            t.from_state is QuoteStatus.CLOSED for t in REPAIR_QUOTE_WORKFLOW.transitions
        )

    @pytest.mark.parametrize(
        ("from_status", "action"), sorted(EXPECTED_EDGES, key=lambda k: (k[0].value, k[1].value))
    )
    def test_legal_transition_accepted(self, machine, from_status, action):
        quote = make_quote(from_status)
        transition = machine.evaluate(quote, action, context_for(action))
        assert transition.to_state is EXPECTED_EDGES[(from_status, action)]

    @pytest.mark.parametrize(
        ("from_status", "action"),
        [
            (status, action)
            for status in QuoteStatus
            for action in QuoteAction
            if (status, action) not in EXPECTED_EDGES
        ],
    )
    def test_everything_else_refused(self, machine, from_status, action):
        quote = make_quote(from_status)
        with pytest.raises((InvalidTransitionError, MissingPrerequisiteError)):
            machine.evaluate(quote, action, context_for(action))
        assert not machine.can(quote, action, context_for(action))

    @given(
        status=st.sampled_from(list(QuoteStatus)),
        action=st.sampled_from(list(QuoteAction)),
    )
    def test_accepted_transitions_stay_inside_the_table(self, status, action):
        machine = QuoteStateMachine()
        quote = make_quote(status)
        try:
            transition = machine.evaluate(quote, action, context_for(action))
        except (InvalidTransitionError, MissingPrerequisiteError):
            return
        assert (status, transition.to_state) in REPAIR_QUOTE_WORKFLOW.adjacency()


class TestGuards:
    def test_closed_quote_refuses_everything(self, machine):
        quote = make_quote(QuoteStatus.CLOSED)
        for action in QuoteAction:
            with pytest.raises(InvalidTransitionError) as exc_info:
                machine.evaluate(quote, action, context_for(action))
            assert exc_info.value.guard_code == GuardCode.NOT_CLOSED.value

    def test_send_to_client_without_total_is_missing_prerequisite(self, machine):
        quote = make_quote(QuoteStatus.DRAFT)
        with pytest.raises(MissingPrerequisiteError) as exc_info:
            machine.evaluate(quote, QuoteAction.SEND_TO_CLIENT)
        assert exc_info.value.prerequisite == "customer_total"
        assert exc_info.value.guard_code == "customer_total_present"

    def test_send_to_technician_needs_assignment(self, machine):
        quote = make_quote(QuoteStatus.DRAFT, technician_id=None)
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.evaluate(quote, QuoteAction.SEND_TO_TECHNICIAN)
        assert exc_info.value.guard_code == GuardCode.TECHNICIAN_ASSIGNED.value

    def test_assign_needs_active_technician(self, machine):
        quote = make_quote(QuoteStatus.DRAFT, technician_id=None)
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.evaluate(
                quote, QuoteAction.ASSIGN_TECHNICIAN, TransitionContext(technician_active=False)
            )
        assert exc_info.value.guard_code == GuardCode.TECHNICIAN_ACTIVE.value

    def test_token_action_needs_matching_phase(self, machine):
        quote = make_quote(QuoteStatus.SENT_TO_TECH)
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.evaluate(
                quote,
                QuoteAction.TECHNICIAN_SUBMIT,
                TransitionContext(token_phase=TokenPhase.CLIENT),
            )
        assert exc_info.value.guard_code == GuardCode.TOKEN_VALID.value

    def test_token_action_without_token_refused(self, machine):
        quote = make_quote(QuoteStatus.SENT_TO_CLIENT)
        assert not machine.can(quote, QuoteAction.CLIENT_ACCEPT)

    def test_illegal_state_guard_code(self, machine):
        quote = make_quote(QuoteStatus.ACCEPTED)
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.evaluate(quote, QuoteAction.SEND_TO_TECHNICIAN)
        assert exc_info.value.guard_code == GuardCode.ILLEGAL_STATE.value
        assert exc_info.value.from_status == "accepted"

    def test_allowed_actions(self, machine):
        quote = make_quote(QuoteStatus.SENT_TO_CLIENT)
        assert set(machine.allowed_actions(quote)) == {
            QuoteAction.CLIENT_ACCEPT,
            QuoteAction.CLIENT_DECLINE,
            QuoteAction.CLOSE,
        }


class TestQuoteInvariants:
    @pytest.mark.parametrize("status", list(QuoteStatus))
    def test_consistent_snapshots_pass(self, status):
        check_quote_invariants(make_quote(status))

    def test_customer_total_without_submission(self):
        quote = make_quote(QuoteStatus.DRAFT, customer_total=Decimal("10.00"))
        with pytest.raises(QuoteInvariantError, match="must be set together"):
            check_quote_invariants(quote)

    def test_submission_without_markup(self):
        quote = make_quote(QuoteStatus.TECH_SUBMITTED)
        with pytest.raises(QuoteInvariantError):
            check_quote_invariants(replace(quote, markup_applied=None))

    def test_accepted_requires_approved_at(self):
        quote = make_quote(QuoteStatus.ACCEPTED, approved_at=None)
        with pytest.raises(QuoteInvariantError, match="approved_at is required"):
            check_quote_invariants(quote)

    def test_closed_at_only_on_closed_quotes(self):
        quote = make_quote(QuoteStatus.UNDER_REVIEW, closed_at=NOW)
        with pytest.raises(QuoteInvariantError, match="closed_at"):
            check_quote_invariants(quote)


class TestStatusInfo:
    @pytest.mark.parametrize(
        ("status", "label", "color"),
        [
            (QuoteStatus.DRAFT, "Draft", "gray"),
            (QuoteStatus.SENT_TO_TECH, "Sent to Tech", "blue"),
            (QuoteStatus.TECH_DECLINED, "Tech Declined", "red"),
            (QuoteStatus.TECH_SUBMITTED, "Tech Submitted", "purple"),
            (QuoteStatus.UNDER_REVIEW, "Under Review", "orange"),
            (QuoteStatus.SENT_TO_CLIENT, "Sent to Client", "indigo"),
            (QuoteStatus.ACCEPTED, "Accepted", "green"),
            (QuoteStatus.DECLINED, "Declined", "red"),
            (QuoteStatus.CLOSED, "Closed", "slate"),
        ],
    )
    def test_known_statuses(self, status, label, color):
        assert get_status_info(status) == StatusInfo(label, color)
        assert get_status_info(status.value) == StatusInfo(label, color)

    def test_unknown_status_echoes_raw_value(self):
        assert get_status_info("on_hold") == StatusInfo("on_hold", "gray")

    def test_override(self):
        overrides = {"draft": StatusInfo("New", "teal")}
        assert get_status_info(QuoteStatus.DRAFT, overrides) == StatusInfo("New", "teal")
        assert get_status_info(QuoteStatus.CLOSED, overrides).label == "Closed"

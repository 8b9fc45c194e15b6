"""
Audit log tests.

Verifies:
- Every workflow step appends exactly one entry, in causal order
- Rejected attempts are recorded with the guard that refused them
- The per-quote hash chain validates and detects tampering
- Entries cannot be updated or deleted through the ORM
"""

from contextlib import contextmanager
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from repair_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from repair_kernel.domain.dtos import ActorDescriptor
from repair_kernel.domain.workflow import QuoteStatus
from repair_kernel.exceptions import (
    AuditChainBrokenError,
    ImmutabilityViolationError,
    MissingPrerequisiteError,
)
from repair_kernel.models.audit_entry import AuditAction, AuditOutcome, QuoteAuditEntryModel
from repair_kernel.services.audit_writer import AuditLogWriter


@contextmanager
def disabled_immutability():
    """Disable the ORM listeners to simulate tampering."""
    unregister_immutability_listeners()
    try:
        yield
    finally:
        register_immutability_listeners()


@pytest.fixture
def audit_writer(session, deterministic_clock) -> AuditLogWriter:
    return AuditLogWriter(session, deterministic_clock)


class TestAuditTrail:
    def test_full_lifecycle_trail(self, workflow, quote_builder):
        quote, _ = quote_builder(QuoteStatus.ACCEPTED)
        trail = workflow.get_audit_trail(quote.id)

        assert [e.action for e in trail] == [
            "created",
            "technician_assigned",
            "sent_to_tech",
            "tech_submitted",
            "sent_to_client",
            "accepted",
        ]
        assert all(e.outcome == AuditOutcome.SUCCEEDED.value for e in trail)
        seqs = [e.seq for e in trail]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == len(seqs)

    def test_newest_first(self, workflow, quote_builder):
        quote, _ = quote_builder(QuoteStatus.SENT_TO_TECH)
        trail = workflow.get_audit_trail(quote.id, newest_first=True)
        assert trail[0].action == "sent_to_tech"
        assert trail[-1].action == "created"

    def test_external_actors_recorded_by_role_only(self, workflow, quote_builder):
        quote, links = quote_builder(QuoteStatus.DECLINED)
        trail = workflow.get_audit_trail(quote.id)
        by_action = {e.action: e for e in trail}

        assert by_action["tech_submitted"].by == "external_technician"
        assert by_action["declined"].by == "external_client"
        for entry in trail:
            assert links["tech"].token not in str(entry.details)
            assert links["client"].token not in str(entry.details)

    def test_staff_actor_recorded(self, workflow, draft_quote, test_actor_id):
        (created,) = workflow.get_audit_trail(draft_quote.id)
        assert created.by == str(test_actor_id)
        assert created.by_name == "Test Staff"

    def test_submission_details(self, workflow, quote_builder):
        quote, _ = quote_builder(QuoteStatus.TECH_SUBMITTED)
        entry = workflow.get_audit_trail(quote.id, newest_first=True)[0]

        assert entry.action == "tech_submitted"
        assert entry.details["tech_total"] == "125.00"
        assert entry.details["customer_total"] == "150.00"
        assert entry.details["markup_applied"] == "20"


class TestRecordRejection:
    def test_rejection_carries_guard_and_status(self, workflow, draft_quote, staff_actor):
        with pytest.raises(MissingPrerequisiteError):
            workflow.send_to_client(draft_quote.id, staff_actor)

        entry = workflow.get_audit_trail(draft_quote.id, newest_first=True)[0]
        assert entry.action == AuditAction.TRANSITION_REJECTED.value
        assert entry.outcome == AuditOutcome.REJECTED.value
        assert entry.details["attempted_action"] == "send_to_client"
        assert entry.details["error_code"] == "MISSING_PREREQUISITE"
        assert entry.details["guard_code"] == "customer_total_present"


class TestHashChain:
    def test_chain_validates(self, workflow, quote_builder, audit_writer):
        quote, _ = quote_builder(QuoteStatus.ACCEPTED)
        assert audit_writer.validate_chain(quote.id) is True

    def test_chains_are_per_quote(self, workflow, quote_builder, audit_writer):
        first, _ = quote_builder(QuoteStatus.SENT_TO_TECH)
        second, _ = quote_builder(QuoteStatus.DRAFT)

        first_trail = workflow.get_audit_trail(first.id)
        (second_created,) = workflow.get_audit_trail(second.id)
        assert first_trail[0].prev_hash is None
        assert second_created.prev_hash is None
        assert all(
            later.prev_hash == earlier.hash
            for earlier, later in zip(first_trail, first_trail[1:])
        )
        assert audit_writer.validate_chain(first.id)
        assert audit_writer.validate_chain(second.id)

    def test_tampered_details_detected(self, session, quote_builder, audit_writer):
        quote, _ = quote_builder(QuoteStatus.TECH_SUBMITTED)
        with disabled_immutability():
            session.execute(
                update(QuoteAuditEntryModel)
                .where(
                    QuoteAuditEntryModel.quote_id == quote.id,
                    QuoteAuditEntryModel.action == "tech_submitted",
                )
                .values(details={"customer_total": "1.00"})
            )
            session.commit()
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            audit_writer.validate_chain(quote.id)

    def test_append_directly(self, session, draft_quote, audit_writer, deterministic_clock):
        deterministic_clock.tick()
        entry = audit_writer.append(
            draft_quote.id, AuditAction.TOKENS_REVOKED, ActorDescriptor.system(), {"count": 0}
        )
        assert entry.by == "system"
        assert entry.prev_hash is not None
        assert audit_writer.validate_chain(draft_quote.id)


class TestAuditImmutability:
    def test_update_refused(self, session, draft_quote):
        entry = session.execute(
            select(QuoteAuditEntryModel).where(QuoteAuditEntryModel.quote_id == draft_quote.id)
        ).scalar_one()
        entry.action = "accepted"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_refused(self, session, draft_quote):
        entry = session.execute(
            select(QuoteAuditEntryModel).where(QuoteAuditEntryModel.quote_id == draft_quote.id)
        ).scalar_one()
        session.delete(entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_unknown_quote_has_empty_trail(self, workflow):
        assert workflow.get_audit_trail(uuid4()) == ()

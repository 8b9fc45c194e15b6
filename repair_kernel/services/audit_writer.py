"""
AuditLogWriter -- append-only, hash-chained quote history.

Responsibility:
    Appends one immutable entry per workflow event: successful transitions,
    link opens, revocations, and refused attempts.  Also reads a quote's
    trail back and validates its hash chain.

Architecture position:
    Kernel > Services.  Called by RepairQuoteWorkflow on both the success
    and the rejection path.

Invariants enforced:
    - Pure append: no method updates or deletes an entry (and the ORM
      listeners in db/immutability.py refuse it anyway).
    - seq comes from SequenceService, so insertion order is causal order.
    - Each entry's hash covers its fields and the previous entry of the
      same quote.

Failure modes:
    - AuditChainBrokenError from validate_chain().

Audit relevance:
    External actors are recorded by role tag only (``external_technician``
    / ``external_client``); raw tokens never reach an entry.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select

from repair_kernel.domain.clock import Clock
from repair_kernel.domain.dtos import ActorDescriptor, AuditLogEntry
from repair_kernel.exceptions import (
    AuditChainBrokenError,
    RepairKernelError,
    TokenInvalidError,
)
from repair_kernel.logging_config import get_logger
from repair_kernel.models.audit_entry import AuditAction, AuditOutcome, QuoteAuditEntryModel
from repair_kernel.services.base import BaseService
from repair_kernel.services.sequence_service import SequenceService
from repair_kernel.utils.hashing import hash_audit_entry, hash_payload, to_json_safe

logger = get_logger("services.audit")


class AuditLogWriter(BaseService):
    """Appends and reads quote audit entries."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session, clock)
        self._sequence_service = sequence_service or SequenceService(session)

    def _last_hash(self, quote_id: UUID) -> str | None:
        return self._session.execute(
            select(QuoteAuditEntryModel.hash)
            .where(QuoteAuditEntryModel.quote_id == quote_id)
            .order_by(QuoteAuditEntryModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(
        self,
        quote_id: UUID,
        action: AuditAction | str,
        actor: ActorDescriptor,
        details: dict[str, Any] | None = None,
        outcome: AuditOutcome = AuditOutcome.SUCCEEDED,
    ) -> AuditLogEntry:
        """Append one entry and return it."""
        action_value = action.value if isinstance(action, AuditAction) else str(action)

        # Taking seq locks the counter row, which also serializes the
        # prev_hash read below.
        seq = self._sequence_service.next_value(SequenceService.AUDIT_ENTRY)
        prev_hash = self._last_hash(quote_id)

        at = self._clock.now()
        safe_details = to_json_safe(details or {})
        entry_hash = hash_audit_entry(
            quote_id=str(quote_id),
            seq=seq,
            action=action_value,
            at=at,
            by=actor.by,
            outcome=outcome.value,
            details_hash=hash_payload(safe_details),
            prev_hash=prev_hash,
        )

        row = QuoteAuditEntryModel(
            seq=seq,
            quote_id=quote_id,
            action=action_value,
            at=at,
            by=actor.by,
            by_name=actor.name,
            details=safe_details,
            outcome=outcome.value,
            prev_hash=prev_hash,
            hash=entry_hash,
        )
        self._session.add(row)
        self._session.flush()

        logger.info(
            "audit_entry_appended",
            extra={
                "quote_id": str(quote_id),
                "audit_action": action_value,
                "outcome": outcome.value,
                "seq": seq,
            },
        )
        return row.to_dto()

    def record_rejection(
        self,
        quote_id: UUID,
        attempted_action: str,
        actor: ActorDescriptor,
        error: RepairKernelError,
    ) -> AuditLogEntry:
        """Record a refused attempt with the guard or reason that refused it."""
        details: dict[str, Any] = {
            "attempted_action": attempted_action,
            "error_code": error.code,
        }
        guard_code = getattr(error, "guard_code", None)
        if guard_code is not None:
            details["guard_code"] = guard_code
        from_status = getattr(error, "from_status", None)
        if from_status is not None:
            details["from_status"] = from_status

        if isinstance(error, TokenInvalidError):
            action = AuditAction.TOKEN_REJECTED
            details["reason"] = error.reason
            if error.phase is not None:
                details["phase"] = error.phase
        else:
            action = AuditAction.TRANSITION_REJECTED
            details["message"] = str(error)

        return self.append(
            quote_id, action, actor, details, outcome=AuditOutcome.REJECTED
        )

    def get_trail(self, quote_id: UUID, newest_first: bool = False) -> tuple[AuditLogEntry, ...]:
        order = QuoteAuditEntryModel.seq.desc() if newest_first else QuoteAuditEntryModel.seq
        rows = self._session.execute(
            select(QuoteAuditEntryModel)
            .where(QuoteAuditEntryModel.quote_id == quote_id)
            .order_by(order)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def validate_chain(self, quote_id: UUID) -> bool:
        """
        Recompute every hash of a quote's trail.

        Raises:
            AuditChainBrokenError: at the first entry whose stored hash or
                prev_hash link does not match.
        """
        entries = self.get_trail(quote_id)
        expected_prev: str | None = None

        for entry in entries:
            if entry.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"quote_id": str(quote_id), "seq": entry.seq, "link": "prev_hash"},
                )
                raise AuditChainBrokenError(
                    str(entry.id), str(expected_prev), str(entry.prev_hash)
                )

            recomputed = hash_audit_entry(
                quote_id=str(entry.quote_id),
                seq=entry.seq,
                action=entry.action,
                at=entry.at,
                by=entry.by,
                outcome=entry.outcome,
                details_hash=hash_payload(entry.details),
                prev_hash=entry.prev_hash,
            )
            if recomputed != entry.hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"quote_id": str(quote_id), "seq": entry.seq, "link": "hash"},
                )
                raise AuditChainBrokenError(str(entry.id), recomputed, entry.hash)
            expected_prev = entry.hash

        return True

"""
Module: repair_kernel.models.audit_entry
Responsibility: Append-only audit trail for repair quotes.

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Entries are append-only; UPDATE and DELETE are refused by ORM
      listeners (db/immutability.py).
    - seq is globally unique and monotonic (SequenceService); ordering by
      seq within a quote is causal order.
    - Per-quote hash chain: hash = H(quote_id | seq | action | at | by |
      outcome | details_hash | prev_hash), validated by AuditLogWriter.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a mismatch.

Audit relevance:
    This table IS the quote history.  Successful transitions and refused
    attempts (token misuse, illegal transitions) are both recorded, with
    distinct action codes and an ``outcome`` column.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from repair_kernel.db.base import Base, UUIDString
from repair_kernel.db.types import ensure_utc
from repair_kernel.domain.dtos import AuditLogEntry


class AuditAction(str, Enum):
    """Action codes written to the quote audit trail."""

    CREATED = "created"
    TECHNICIAN_ASSIGNED = "technician_assigned"
    SENT_TO_TECH = "sent_to_tech"
    TECH_SUBMITTED = "tech_submitted"
    TECH_DECLINED = "tech_declined"
    UNDER_REVIEW = "under_review"
    SENT_TO_CLIENT = "sent_to_client"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CLOSED = "closed"

    # Link lifecycle
    TECH_LINK_OPENED = "tech_link_opened"
    CLIENT_LINK_OPENED = "client_link_opened"
    TOKENS_REVOKED = "tokens_revoked"

    # Refused attempts
    TRANSITION_REJECTED = "transition_rejected"
    TOKEN_REJECTED = "token_rejected"


class AuditOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"


class QuoteAuditEntryModel(Base):
    """
    One immutable audit entry.

    Non-goals:
        Does NOT compute hashes; that is AuditLogWriter's job.
    """

    __tablename__ = "repair_quote_audit_log"

    __table_args__ = (
        CheckConstraint(
            "outcome IN ('succeeded', 'rejected')",
            name="ck_repair_quote_audit_outcome",
        ),
        Index("idx_repair_quote_audit_quote_seq", "quote_id", "seq"),
        Index("idx_repair_quote_audit_action", "action"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    quote_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("repair_quotes.id"), nullable=False
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    at: Mapped[datetime] = mapped_column(nullable=False)

    # Staff UUID or an external-role marker
    by: Mapped[str] = mapped_column(String(64), nullable=False)

    by_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    outcome: Mapped[str] = mapped_column(String(16), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<QuoteAuditEntry {self.seq} {self.action} quote={self.quote_id}>"

    @property
    def is_genesis(self) -> bool:
        """True for the first entry of a quote's chain."""
        return self.prev_hash is None

    def to_dto(self) -> AuditLogEntry:
        return AuditLogEntry(
            id=self.id,
            seq=self.seq,
            quote_id=self.quote_id,
            action=self.action,
            at=ensure_utc(self.at),
            by=self.by,
            by_name=self.by_name,
            details=dict(self.details or {}),
            outcome=self.outcome,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )

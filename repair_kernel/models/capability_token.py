"""
Module: repair_kernel.models.capability_token
Responsibility: Server-side state of external capability tokens.

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Only the SHA-256 digest of a token is stored (unique).
    - A token is usable iff consumed_at and revoked_at are NULL and
      expires_at is in the future.  TokenService flips consumed_at with a
      single conditional UPDATE so exactly one caller can consume it.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from repair_kernel.db.base import Base, UUIDString
from repair_kernel.db.types import ensure_utc
from repair_kernel.domain.dtos import ResolvedToken
from repair_kernel.domain.workflow import TokenPhase


class CapabilityTokenModel(Base):
    __tablename__ = "repair_quote_tokens"

    __table_args__ = (
        CheckConstraint("phase IN ('tech', 'client')", name="ck_repair_quote_tokens_phase"),
        Index("idx_repair_quote_tokens_quote_phase", "quote_id", "phase"),
    )

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    quote_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("repair_quotes.id"), nullable=False
    )
    phase: Mapped[str] = mapped_column(String(16), nullable=False)

    issued_at: Mapped[datetime] = mapped_column(nullable=False)
    issued_by: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    accessed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<CapabilityToken {self.id} quote={self.quote_id} {self.phase}>"

    def to_resolved(self) -> ResolvedToken:
        return ResolvedToken(
            token_id=self.id,
            quote_id=self.quote_id,
            phase=TokenPhase(self.phase),
            expires_at=ensure_utc(self.expires_at),
        )

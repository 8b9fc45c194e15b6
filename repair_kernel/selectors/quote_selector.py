"""
QuoteSelector -- read access to quotes and their outstanding links.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from repair_kernel.domain.dtos import RepairQuote
from repair_kernel.domain.workflow import QuoteStatus, TokenPhase
from repair_kernel.db.types import ensure_utc
from repair_kernel.models.capability_token import CapabilityTokenModel
from repair_kernel.models.repair_quote import RepairQuoteModel
from repair_kernel.selectors.base import BaseSelector


class QuoteSelector(BaseSelector):

    def get(self, quote_id: UUID) -> RepairQuote | None:
        row = self.session.get(RepairQuoteModel, quote_id, populate_existing=True)
        return row.to_dto() if row is not None else None

    def list_for_account(
        self,
        account_id: UUID,
        statuses: Sequence[QuoteStatus] | None = None,
    ) -> tuple[RepairQuote, ...]:
        stmt = select(RepairQuoteModel).where(RepairQuoteModel.account_id == account_id)
        if statuses:
            stmt = stmt.where(RepairQuoteModel.status.in_([s.value for s in statuses]))
        rows = self.session.execute(stmt.order_by(RepairQuoteModel.created_at)).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def list_for_technician(self, technician_id: UUID) -> tuple[RepairQuote, ...]:
        rows = self.session.execute(
            select(RepairQuoteModel)
            .where(RepairQuoteModel.technician_id == technician_id)
            .order_by(RepairQuoteModel.created_at)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def active_token_count(self, quote_id: UUID, phase: TokenPhase | None = None, now=None) -> int:
        """Tokens neither consumed nor revoked (and, given ``now``, not expired)."""
        stmt = select(CapabilityTokenModel).where(
            CapabilityTokenModel.quote_id == quote_id,
            CapabilityTokenModel.consumed_at.is_(None),
            CapabilityTokenModel.revoked_at.is_(None),
        )
        if phase is not None:
            stmt = stmt.where(CapabilityTokenModel.phase == phase.value)
        rows = self.session.execute(stmt).scalars().all()
        if now is not None:
            rows = [r for r in rows if ensure_utc(r.expires_at) > now]
        return len(rows)

"""
Module: repair_kernel.models.repair_quote
Responsibility: ORM persistence for repair quotes and their items.

Architecture position: Kernel > Models.  May import from db/ and domain/
    value types only.

Invariants enforced:
    - Status is one of the nine workflow states (DB check constraint).
    - Optimistic concurrency: ``version`` is a SQLAlchemy version counter;
      a flush against a row another transaction already changed raises
      StaleDataError.
    - Items keep a stable ``position``; the highest position is the item
      that absorbs allocation remainders.
    - Quotes are never deleted and markup_applied is frozen once a
      technician submission exists (db/immutability.py).

Failure modes:
    - IntegrityError on an invalid status value or duplicate item position.
    - StaleDataError on a lost optimistic-lock race.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repair_kernel.db.base import Base, TrackedBase, UUIDString
from repair_kernel.db.types import ensure_utc
from repair_kernel.domain.dtos import RepairQuote, RepairQuoteItem
from repair_kernel.domain.workflow import QuoteStatus

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in QuoteStatus)


class RepairQuoteModel(TrackedBase):
    """Persistent repair quote.

    Contract:
        Mutated only by RepairQuoteWorkflow.  ``status`` changes only along
        REPAIR_QUOTE_WORKFLOW transitions.
    """

    __tablename__ = "repair_quotes"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_STATUS_VALUES})",
            name="ck_repair_quotes_valid_status",
        ),
        CheckConstraint(
            "client_response IS NULL OR client_response IN ('accepted', 'declined')",
            name="ck_repair_quotes_client_response",
        ),
        Index("idx_repair_quotes_account_status", "account_id", "status"),
        Index("idx_repair_quotes_technician", "technician_id"),
    )

    account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    sidemark_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    source_task_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    technician_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=QuoteStatus.DRAFT.value
    )

    tech_labor_hours: Mapped[Decimal | None] = mapped_column(nullable=True)
    tech_labor_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    tech_materials_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    tech_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    tech_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    markup_applied: Mapped[Decimal | None] = mapped_column(nullable=True)
    customer_total: Mapped[Decimal | None] = mapped_column(nullable=True)

    tech_submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    declined_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    client_response: Mapped[str | None] = mapped_column(String(16), nullable=True)
    client_responded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    pricing_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    items: Mapped[list[RepairQuoteItemModel]] = relationship(
        back_populates="quote",
        order_by="RepairQuoteItemModel.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<RepairQuote {self.id} {self.status} v{self.version}>"

    def to_dto(self) -> RepairQuote:
        return RepairQuote(
            id=self.id,
            account_id=self.account_id,
            status=QuoteStatus(self.status),
            created_at=ensure_utc(self.created_at),
            created_by=self.created_by,
            updated_at=ensure_utc(self.updated_at),
            version=self.version,
            sidemark_id=self.sidemark_id,
            source_task_id=self.source_task_id,
            technician_id=self.technician_id,
            tech_labor_hours=self.tech_labor_hours,
            tech_labor_rate=self.tech_labor_rate,
            tech_materials_cost=self.tech_materials_cost,
            tech_total=self.tech_total,
            tech_notes=self.tech_notes,
            markup_applied=self.markup_applied,
            customer_total=self.customer_total,
            tech_submitted_at=ensure_utc(self.tech_submitted_at),
            approved_at=ensure_utc(self.approved_at),
            declined_at=ensure_utc(self.declined_at),
            closed_at=ensure_utc(self.closed_at),
            expires_at=ensure_utc(self.expires_at),
            last_sent_at=ensure_utc(self.last_sent_at),
            client_response=self.client_response,
            client_responded_at=ensure_utc(self.client_responded_at),
            pricing_locked=self.pricing_locked,
            notes=self.notes,
            items=tuple(item.to_dto() for item in self.items),
        )


class RepairQuoteItemModel(Base):
    """One inventory item covered by a quote."""

    __tablename__ = "repair_quote_items"

    __table_args__ = (
        UniqueConstraint("quote_id", "position", name="uq_repair_quote_items_position"),
        Index("idx_repair_quote_items_quote", "quote_id"),
    )

    quote_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("repair_quotes.id"), nullable=False
    )
    item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    item_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    damage_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    damage_photos: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes_public: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes_internal: Mapped[str | None] = mapped_column(Text, nullable=True)

    allocated_tech_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    allocated_customer_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    quote: Mapped[RepairQuoteModel] = relationship(back_populates="items")

    def to_dto(self) -> RepairQuoteItem:
        return RepairQuoteItem(
            item_id=self.item_id,
            position=self.position,
            item_code=self.item_code,
            item_description=self.item_description,
            damage_description=self.damage_description,
            damage_photos=tuple(self.damage_photos or ()),
            notes_public=self.notes_public,
            notes_internal=self.notes_internal,
            allocated_tech_amount=self.allocated_tech_amount,
            allocated_customer_amount=self.allocated_customer_amount,
        )

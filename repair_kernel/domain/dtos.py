"""
Domain Data Transfer Objects for the repair quote kernel.

Responsibility:
    Immutable value objects passed between the orchestrator, services,
    selectors and callers.  ORM models convert to these via ``to_dto()``;
    nothing outside ``models/`` and ``services/`` touches ORM rows.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from repair_kernel.domain.workflow import QuoteStatus, TokenPhase


class ActorKind(str, Enum):
    """Who triggered a workflow event."""

    STAFF = "staff"
    EXTERNAL_TECHNICIAN = "external_technician"
    EXTERNAL_CLIENT = "external_client"
    SYSTEM = "system"


@dataclass(frozen=True)
class ActorDescriptor:
    """
    Identity recorded on audit entries.

    Staff carry an id and display name.  External actors carry only their
    role tag; the token phase already implies everything else.
    """

    kind: ActorKind
    actor_id: str | None = None
    name: str | None = None

    @classmethod
    def staff(cls, actor_id: UUID | str, name: str | None = None) -> ActorDescriptor:
        return cls(ActorKind.STAFF, str(actor_id), name)

    @classmethod
    def external_technician(cls) -> ActorDescriptor:
        return cls(ActorKind.EXTERNAL_TECHNICIAN, None, "Technician")

    @classmethod
    def external_client(cls) -> ActorDescriptor:
        return cls(ActorKind.EXTERNAL_CLIENT, None, "Client")

    @classmethod
    def system(cls) -> ActorDescriptor:
        return cls(ActorKind.SYSTEM, None, "System")

    @classmethod
    def for_phase(cls, phase: TokenPhase) -> ActorDescriptor:
        if phase is TokenPhase.TECH:
            return cls.external_technician()
        return cls.external_client()

    @property
    def is_external(self) -> bool:
        return self.kind in (ActorKind.EXTERNAL_TECHNICIAN, ActorKind.EXTERNAL_CLIENT)

    @property
    def by(self) -> str:
        """Value stored in the audit ``by`` column."""
        if self.kind is ActorKind.STAFF and self.actor_id:
            return self.actor_id
        return self.kind.value


@dataclass(frozen=True)
class Technician:
    """Read-only view of a repair technician."""

    id: UUID
    name: str
    markup_percent: Decimal
    is_active: bool = True
    email: str | None = None
    hourly_rate: Decimal | None = None


@dataclass(frozen=True)
class RepairQuoteItem:
    item_id: UUID
    position: int
    item_code: str | None = None
    item_description: str | None = None
    damage_description: str | None = None
    damage_photos: tuple[str, ...] = ()
    notes_public: str | None = None
    notes_internal: str | None = None
    allocated_tech_amount: Decimal | None = None
    allocated_customer_amount: Decimal | None = None


@dataclass(frozen=True)
class NewQuoteItem:
    """Input for one item when creating a quote."""

    item_id: UUID
    item_code: str | None = None
    item_description: str | None = None
    damage_description: str | None = None
    damage_photos: tuple[str, ...] = ()
    notes_public: str | None = None
    notes_internal: str | None = None


@dataclass(frozen=True)
class RepairQuote:
    """Snapshot of a quote and its items, as returned by every operation."""

    id: UUID
    account_id: UUID
    status: QuoteStatus
    created_at: datetime
    created_by: str
    updated_at: datetime
    version: int
    sidemark_id: UUID | None = None
    source_task_id: UUID | None = None
    technician_id: UUID | None = None
    tech_labor_hours: Decimal | None = None
    tech_labor_rate: Decimal | None = None
    tech_materials_cost: Decimal | None = None
    tech_total: Decimal | None = None
    tech_notes: str | None = None
    markup_applied: Decimal | None = None
    customer_total: Decimal | None = None
    tech_submitted_at: datetime | None = None
    approved_at: datetime | None = None
    declined_at: datetime | None = None
    closed_at: datetime | None = None
    expires_at: datetime | None = None
    last_sent_at: datetime | None = None
    client_response: str | None = None
    client_responded_at: datetime | None = None
    pricing_locked: bool = False
    notes: str | None = None
    items: tuple[RepairQuoteItem, ...] = ()


@dataclass(frozen=True)
class AuditLogEntry:
    id: UUID
    seq: int
    quote_id: UUID
    action: str
    at: datetime
    by: str
    by_name: str | None
    details: dict[str, Any]
    outcome: str
    prev_hash: str | None
    hash: str


@dataclass(frozen=True)
class TechSubmission:
    """
    Figures a technician enters on the quote form.

    ``labor_rate`` defaults to the technician's hourly rate when omitted.
    """

    labor_hours: Decimal
    materials_cost: Decimal
    labor_rate: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted capability token. ``token`` is the only copy."""

    token: str
    quote_id: UUID
    phase: TokenPhase
    expires_at: datetime


@dataclass(frozen=True)
class ResolvedToken:
    token_id: UUID
    quote_id: UUID
    phase: TokenPhase
    expires_at: datetime


@dataclass(frozen=True)
class IssuedLink:
    """External link for the notification layer to deliver."""

    url: str
    token: str
    phase: TokenPhase
    expires_at: datetime
    recipient_name: str | None = None
    recipient_email: str | None = None


@dataclass(frozen=True)
class ItemAllocation:
    item_id: Any
    position: int
    tech_amount: Decimal
    customer_amount: Decimal


@dataclass(frozen=True)
class QuoteFinalization:
    """Hand-off to the billing collaborator when a client accepts."""

    quote_id: UUID
    account_id: UUID
    sidemark_id: UUID | None
    source_task_id: UUID | None
    tech_total: Decimal
    customer_total: Decimal
    allocations: tuple[ItemAllocation, ...]
    approved_at: datetime


@dataclass(frozen=True)
class WorkflowResult:
    quote: RepairQuote
    audit_entry: AuditLogEntry
    link: IssuedLink | None = None
    finalization: QuoteFinalization | None = None


@dataclass(frozen=True)
class StatusInfo:
    label: str
    color: str


@dataclass(frozen=True)
class TechnicianQuoteView:
    """What the technician link shows before submit/decline."""

    quote_id: UUID
    status: QuoteStatus
    technician_name: str | None
    default_labor_rate: Decimal | None
    expires_at: datetime
    items: tuple[RepairQuoteItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ClientQuoteView:
    """Read-only view behind the client review link."""

    quote_id: UUID
    status: QuoteStatus
    customer_total: Decimal
    expires_at: datetime
    items: tuple[RepairQuoteItem, ...] = field(default_factory=tuple)

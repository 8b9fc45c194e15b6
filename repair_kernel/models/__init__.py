"""ORM models for the repair quote kernel."""

from repair_kernel.models.audit_entry import (
    AuditAction,
    AuditOutcome,
    QuoteAuditEntryModel,
)
from repair_kernel.models.capability_token import CapabilityTokenModel
from repair_kernel.models.repair_quote import RepairQuoteItemModel, RepairQuoteModel
from repair_kernel.models.sequence import SequenceCounter
from repair_kernel.models.technician import TechnicianModel

__all__ = [
    "AuditAction",
    "AuditOutcome",
    "QuoteAuditEntryModel",
    "CapabilityTokenModel",
    "RepairQuoteModel",
    "RepairQuoteItemModel",
    "SequenceCounter",
    "TechnicianModel",
]

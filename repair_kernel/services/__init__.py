"""
Kernel services -- the imperative shell around the pure domain.

RepairQuoteWorkflow is the public entry point; the other services are its
building blocks and only ever flush.
"""

from repair_kernel.services.audit_writer import AuditLogWriter
from repair_kernel.services.quote_workflow import RepairQuoteWorkflow
from repair_kernel.services.sequence_service import SequenceService
from repair_kernel.services.token_service import TokenService

__all__ = [
    "AuditLogWriter",
    "RepairQuoteWorkflow",
    "SequenceService",
    "TokenService",
]

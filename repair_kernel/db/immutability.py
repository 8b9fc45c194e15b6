"""
ORM-Level Immutability Enforcement.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
Listeners registered here inspect the pending change and raise
ImmutabilityViolationError before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule
--------------------|------------------------------------------------------
QuoteAuditEntry     | Never updated, never deleted
RepairQuote         | Never deleted; markup_applied changes only together
                    | with a new tech_submitted_at
RepairQuoteItem     | Never deleted
CapabilityToken     | Never deleted; consumed_at / revoked_at are write-once

===============================================================================
USAGE
===============================================================================

init_engine_from_url() registers the listeners.  Registration is idempotent.

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect

from repair_kernel.exceptions import ImmutabilityViolationError
from repair_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_entry_update(mapper, connection, target):
    _block("QuoteAuditEntry", target, "UPDATE", "Audit entries are append-only")


def _check_audit_entry_delete(mapper, connection, target):
    _block("QuoteAuditEntry", target, "DELETE", "Audit entries cannot be deleted")


def _check_quote_update(mapper, connection, target):
    """
    Freeze markup_applied once a technician submission exists.

    A change is allowed only when tech_submitted_at changes in the same
    flush, i.e. a fresh technician submission.
    """
    state = inspect(target)
    markup_hist = state.attrs.markup_applied.history
    if not markup_hist.has_changes():
        return
    old_markup = markup_hist.deleted[0] if markup_hist.deleted else None
    if old_markup is None:
        return
    if state.attrs.tech_submitted_at.history.has_changes() and target.tech_submitted_at is not None:
        return
    _block(
        "RepairQuote",
        target,
        "UPDATE",
        "markup_applied is frozen once a technician submission exists",
        field="markup_applied",
    )


def _check_quote_delete(mapper, connection, target):
    _block("RepairQuote", target, "DELETE", "Repair quotes are never deleted; close them")


def _check_quote_item_delete(mapper, connection, target):
    _block("RepairQuoteItem", target, "DELETE", "Quote items cannot be deleted")


def _check_token_update(mapper, connection, target):
    state = inspect(target)
    for field in ("consumed_at", "revoked_at", "token_hash", "quote_id", "phase"):
        hist = state.attrs[field].history
        if hist.has_changes() and hist.deleted and hist.deleted[0] is not None:
            _block(
                "CapabilityToken",
                target,
                "UPDATE",
                f"{field} is write-once",
                field=field,
            )


def _check_token_delete(mapper, connection, target):
    _block("CapabilityToken", target, "DELETE", "Capability tokens cannot be deleted")


def _listeners():
    from repair_kernel.models.audit_entry import QuoteAuditEntryModel
    from repair_kernel.models.capability_token import CapabilityTokenModel
    from repair_kernel.models.repair_quote import RepairQuoteItemModel, RepairQuoteModel

    return (
        (QuoteAuditEntryModel, "before_update", _check_audit_entry_update),
        (QuoteAuditEntryModel, "before_delete", _check_audit_entry_delete),
        (RepairQuoteModel, "before_update", _check_quote_update),
        (RepairQuoteModel, "before_delete", _check_quote_delete),
        (RepairQuoteItemModel, "before_delete", _check_quote_item_delete),
        (CapabilityTokenModel, "before_update", _check_token_update),
        (CapabilityTokenModel, "before_delete", _check_token_delete),
    )


def register_immutability_listeners():
    """Register all immutability enforcement event listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)

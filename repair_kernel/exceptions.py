"""
Typed Exception Hierarchy for the Repair Quote Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow are staff screens and two unauthenticated external
links. Both need to branch on what went wrong without parsing message text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        workflow.send_to_client(quote_id, actor)
    except MissingPrerequisiteError as e:
        show_banner(f"Quote needs a {e.prerequisite} first")
    except InvalidTransitionError as e:
        api_response(code=e.code, guard=e.guard_code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RepairKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- MissingPrerequisiteError
    |   +-- InvalidSubmissionError
    |   +-- QuoteNotFoundError
    |   +-- TechnicianNotFoundError
    |   +-- QuoteInvariantError
    |
    +-- TokenError
    |   +-- TokenInvalidError
    |
    +-- AllocationError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyLostError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                    | When Raised
--------------|-------------------------|------------------------------------------
Workflow      | INVALID_TRANSITION      | Guard failed or no transition from state
              | MISSING_PREREQUISITE    | Required data (customer total) absent
              | INVALID_SUBMISSION      | Technician figures rejected
              | QUOTE_NOT_FOUND         | Quote id does not exist
              | TECHNICIAN_NOT_FOUND    | Technician id unknown to the directory
              | QUOTE_INVARIANT         | Status/timestamp agreement broken (bug)
--------------|-------------------------|------------------------------------------
Token         | TOKEN_INVALID           | Link unknown, expired, consumed, revoked
--------------|-------------------------|------------------------------------------
Allocation    | ALLOCATION_ERROR        | Bad item weights or empty item set
--------------|-------------------------|------------------------------------------
Concurrency   | CONCURRENCY_LOST        | Another actor won the transition race
--------------|-------------------------|------------------------------------------
Audit         | AUDIT_CHAIN_BROKEN      | Hash chain validation failed
--------------|-------------------------|------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION  | Rewriting an audit entry or frozen field

===============================================================================
TOKEN ERRORS ARE OPAQUE
===============================================================================

TokenInvalidError always renders the same message. The specific cause lives
on ``reason`` and is meant for logs and the audit trail only; it must never
be returned to the holder of the link, otherwise the response becomes an
oracle for guessing tokens.

===============================================================================
"""


class RepairKernelError(Exception):
    """
    Base exception for all repair kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REPAIR_KERNEL_ERROR"


# Workflow-related exceptions


class WorkflowError(RepairKernelError):
    """Base exception for workflow errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """
    A requested transition is not legal from the quote's current status,
    or a guard on the transition failed.

    ``guard_code`` names the guard that refused the transition.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        quote_id: str,
        from_status: str,
        action: str,
        guard_code: str,
        detail: str | None = None,
    ):
        self.quote_id = quote_id
        self.from_status = from_status
        self.action = action
        self.guard_code = guard_code
        self.detail = detail
        message = (
            f"Cannot {action} quote {quote_id} in status {from_status}: "
            f"guard {guard_code} failed"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class MissingPrerequisiteError(WorkflowError):
    """An operation needs data the quote does not have yet."""

    code: str = "MISSING_PREREQUISITE"

    def __init__(self, quote_id: str, action: str, prerequisite: str):
        self.quote_id = quote_id
        self.action = action
        self.prerequisite = prerequisite
        # Rejections carry a guard code like InvalidTransitionError so the
        # audit writer can record both uniformly.
        self.guard_code = f"{prerequisite}_present"
        super().__init__(
            f"Cannot {action} quote {quote_id}: {prerequisite} is missing"
        )


class InvalidSubmissionError(WorkflowError):
    """Technician-submitted figures failed validation."""

    code: str = "INVALID_SUBMISSION"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        self.guard_code = "submission_valid"
        super().__init__(f"Invalid submission ({field}): {reason}")


class QuoteNotFoundError(WorkflowError):
    """Quote with given ID was not found."""

    code: str = "QUOTE_NOT_FOUND"

    def __init__(self, quote_id: str):
        self.quote_id = quote_id
        super().__init__(f"Repair quote not found: {quote_id}")


class TechnicianNotFoundError(WorkflowError):
    """Technician is not known to the technician directory."""

    code: str = "TECHNICIAN_NOT_FOUND"

    def __init__(self, technician_id: str):
        self.technician_id = technician_id
        self.guard_code = "technician_active"
        super().__init__(f"Technician not found: {technician_id}")


class QuoteInvariantError(WorkflowError):
    """
    A quote's status disagrees with its timestamps or financial fields.

    Unreachable through the public operations; raised when a mutation
    would persist an inconsistent quote.
    """

    code: str = "QUOTE_INVARIANT"

    def __init__(self, quote_id: str, status: str, violation: str):
        self.quote_id = quote_id
        self.status = status
        self.violation = violation
        super().__init__(
            f"Quote {quote_id} in status {status} violates invariant: {violation}"
        )


# Token-related exceptions


class TokenError(RepairKernelError):
    """Base exception for capability token errors."""

    code: str = "TOKEN_ERROR"


class TokenInvalidError(TokenError):
    """
    A capability token cannot be used.

    The message is identical for every cause. ``reason`` is one of
    ``malformed``, ``unknown``, ``expired``, ``consumed``, ``revoked``,
    ``phase_mismatch`` or ``quote_state`` and is for internal use only.
    """

    code: str = "TOKEN_INVALID"
    public_message: str = "This link is no longer valid."

    def __init__(
        self,
        reason: str,
        quote_id: str | None = None,
        phase: str | None = None,
    ):
        self.reason = reason
        self.quote_id = quote_id
        self.phase = phase
        self.guard_code = "token_valid"
        super().__init__(self.public_message)


# Allocation


class AllocationError(RepairKernelError):
    """Per-item allocation could not be computed."""

    code: str = "ALLOCATION_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Allocation failed: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(RepairKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyLostError(ConcurrencyError):
    """
    Another actor changed the quote between load and commit.

    The caller should reload the quote and decide again.
    """

    code: str = "CONCURRENCY_LOST"

    def __init__(self, quote_id: str, action: str):
        self.quote_id = quote_id
        self.action = action
        self.guard_code = "concurrency"
        super().__init__(
            f"Concurrent modification of quote {quote_id} during {action}"
        )


# Audit-related exceptions


class AuditError(RepairKernelError):
    """Base exception for audit errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_entry_id: str, expected_hash: str, actual_hash: str):
        self.audit_entry_id = audit_entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability-related exceptions


class ImmutabilityError(RepairKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Audit entries are append-only, quotes are never hard-deleted, and
    ``markup_applied`` is frozen once a technician submission exists.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )

"""
RepairQuoteWorkflow -- the only entry point that mutates repair quotes.

Responsibility:
    Composes QuoteStateMachine, TokenService, the markup calculator and
    AuditLogWriter into the workflow operations called by staff screens and
    by the two external links (technician quote form, client review page).

Architecture position:
    Kernel > Services -- imperative shell.  Owns the transaction boundary:
    every operation commits on success and rolls back on failure when
    ``auto_commit`` is True.  Other services only flush.

Invariants enforced:
    - Every status change is checked against REPAIR_QUOTE_WORKFLOW.
    - Status, financial fields, token consumption and the audit entry of an
      operation are written in one transaction, or not at all.
    - Token consumption happens inside that same transaction, after the
      quote row is locked, so two concurrent uses of one token produce one
      transition and one TokenInvalidError.
    - check_quote_invariants() runs before every commit.
    - Refused attempts are audited (transition_rejected / token_rejected)
      after the failed work has been rolled back.

Failure modes:
    - InvalidTransitionError, MissingPrerequisiteError,
      InvalidSubmissionError, QuoteNotFoundError, TechnicianNotFoundError
      for staff callers.
    - TokenInvalidError for external callers, whatever went wrong with the
      link (including the quote having moved on).
    - ConcurrencyLostError when an optimistic version check fails.

Audit relevance:
    Every operation appends exactly one entry on success and at most one on
    refusal.  Raw tokens are never logged or audited.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from repair_kernel.db.types import round_money
from repair_kernel.domain.clock import Clock, SystemClock
from repair_kernel.domain.dtos import (
    ActorDescriptor,
    AuditLogEntry,
    ClientQuoteView,
    IssuedLink,
    ItemAllocation,
    NewQuoteItem,
    QuoteFinalization,
    RepairQuote,
    RepairQuoteItem,
    StatusInfo,
    Technician,
    TechnicianQuoteView,
    TechSubmission,
    WorkflowResult,
)
from repair_kernel.domain.markup import (
    allocate_across_items,
    compute_quote_totals,
    validate_submission,
)
from repair_kernel.domain.settings import WorkflowSettings
from repair_kernel.domain.state_machine import (
    QuoteStateMachine,
    TransitionContext,
    check_quote_invariants,
)
from repair_kernel.domain.status_info import get_status_info
from repair_kernel.domain.technicians import TechnicianDirectory
from repair_kernel.domain.workflow import QuoteAction, QuoteStatus, TokenPhase
from repair_kernel.exceptions import (
    ConcurrencyLostError,
    InvalidSubmissionError,
    InvalidTransitionError,
    QuoteNotFoundError,
    RepairKernelError,
    TechnicianNotFoundError,
    TokenInvalidError,
)
from repair_kernel.logging_config import LogContext, get_logger
from repair_kernel.models.audit_entry import AuditAction
from repair_kernel.models.repair_quote import RepairQuoteItemModel, RepairQuoteModel
from repair_kernel.services.audit_writer import AuditLogWriter
from repair_kernel.services.token_service import TokenService

logger = get_logger("services.quote_workflow")

T = TypeVar("T")


@dataclass
class _Scope:
    """Quote an operation turned out to touch; set once a token resolves."""

    quote_id: UUID | None = None


class RepairQuoteWorkflow:
    """
    Staff and external-link operations on repair quotes.

    Usage:
        workflow = RepairQuoteWorkflow(session, SqlTechnicianDirectory(session))
        result = workflow.send_to_technician(quote_id, ActorDescriptor.staff(uid, "Pat"))
        deliver(result.link.url)
    """

    def __init__(
        self,
        session: Session,
        technicians: TechnicianDirectory,
        clock: Clock | None = None,
        settings: WorkflowSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._technicians = technicians
        self._clock = clock or SystemClock()
        self._settings = settings or WorkflowSettings()
        self._auto_commit = auto_commit
        self._machine = QuoteStateMachine()
        self._tokens = TokenService(session, self._clock)
        self._audit = AuditLogWriter(session, self._clock)

    # ------------------------------------------------------------------
    # Staff operations
    # ------------------------------------------------------------------

    def create_quote(
        self,
        actor: ActorDescriptor,
        account_id: UUID,
        items: Sequence[NewQuoteItem],
        sidemark_id: UUID | None = None,
        source_task_id: UUID | None = None,
        technician_id: UUID | None = None,
    ) -> WorkflowResult:
        """Open a draft quote covering one or more inventory items."""

        def work(scope: _Scope) -> WorkflowResult:
            if not items:
                raise InvalidSubmissionError("items", "a quote needs at least one item")
            if technician_id is not None:
                self._require_active_technician(technician_id)

            now = self._clock.now()
            row = RepairQuoteModel(
                account_id=account_id,
                sidemark_id=sidemark_id,
                source_task_id=source_task_id,
                technician_id=technician_id,
                status=QuoteStatus.DRAFT.value,
                created_at=now,
                created_by=actor.by,
                updated_at=now,
                items=[
                    RepairQuoteItemModel(
                        item_id=item.item_id,
                        position=position,
                        item_code=item.item_code,
                        item_description=item.item_description,
                        damage_description=item.damage_description,
                        damage_photos=list(item.damage_photos),
                        notes_public=item.notes_public,
                        notes_internal=item.notes_internal,
                    )
                    for position, item in enumerate(items)
                ],
            )
            self._session.add(row)
            self._session.flush()
            scope.quote_id = row.id

            entry = self._audit.append(
                row.id,
                AuditAction.CREATED,
                actor,
                {
                    "item_count": len(items),
                    "source_task_id": source_task_id,
                    "technician_id": technician_id,
                },
            )
            return self._finish(row, entry)

        return self._execute("create_quote", "create", actor, work)

    def assign_technician(
        self, quote_id: UUID, technician_id: UUID, actor: ActorDescriptor
    ) -> WorkflowResult:
        def work(scope: _Scope) -> WorkflowResult:
            row = self._load_for_update(quote_id)
            technician = self._technicians.get_technician(technician_id)
            if technician is None:
                raise TechnicianNotFoundError(str(technician_id))
            self._machine.evaluate(
                row.to_dto(),
                QuoteAction.ASSIGN_TECHNICIAN,
                TransitionContext(technician_active=technician.is_active),
            )

            previous = row.technician_id
            row.technician_id = technician.id
            self._touch(row, actor)
            entry = self._audit.append(
                row.id,
                AuditAction.TECHNICIAN_ASSIGNED,
                actor,
                {
                    "technician_id": technician.id,
                    "technician_name": technician.name,
                    "previous_technician_id": previous,
                },
            )
            return self._finish(row, entry)

        return self._execute(
            "assign_technician", QuoteAction.ASSIGN_TECHNICIAN.value, actor, work, quote_id
        )

    def send_to_technician(self, quote_id: UUID, actor: ActorDescriptor) -> WorkflowResult:
        """Move to sent_to_tech and return a fresh technician link."""

        def work(scope: _Scope) -> WorkflowResult:
            row = self._load_for_update(quote_id)
            self._machine.evaluate(row.to_dto(), QuoteAction.SEND_TO_TECHNICIAN)
            technician = self._technicians.get_technician(row.technician_id)

            issued = self._tokens.issue(
                row.id,
                TokenPhase.TECH,
                self._settings.tech_token_ttl,
                issued_by=actor.by,
                recipient_name=technician.name if technician else None,
                recipient_email=technician.email if technician else None,
            )
            row.status = QuoteStatus.SENT_TO_TECH.value
            row.expires_at = issued.expires_at
            row.last_sent_at = self._clock.now()
            self._touch(row, actor)

            entry = self._audit.append(
                row.id,
                AuditAction.SENT_TO_TECH,
                actor,
                {"technician_id": row.technician_id, "expires_at": issued.expires_at},
            )
            link = IssuedLink(
                url=self._settings.tech_link(issued.token),
                token=issued.token,
                phase=TokenPhase.TECH,
                expires_at=issued.expires_at,
                recipient_name=technician.name if technician else None,
                recipient_email=technician.email if technician else None,
            )
            return self._finish(row, entry, link=link)

        return self._execute(
            "send_to_technician", QuoteAction.SEND_TO_TECHNICIAN.value, actor, work, quote_id
        )

    def mark_under_review(self, quote_id: UUID, actor: ActorDescriptor) -> WorkflowResult:
        def work(scope: _Scope) -> WorkflowResult:
            row = self._load_for_update(quote_id)
            self._machine.evaluate(row.to_dto(), QuoteAction.MARK_UNDER_REVIEW)
            row.status = QuoteStatus.UNDER_REVIEW.value
            self._touch(row, actor)
            entry = self._audit.append(
                row.id,
                AuditAction.UNDER_REVIEW,
                actor,
                {"customer_total": round_money(row.customer_total)},
            )
            return self._finish(row, entry)

        return self._execute(
            "mark_under_review", QuoteAction.MARK_UNDER_REVIEW.value, actor, work, quote_id
        )

    def send_to_client(
        self,
        quote_id: UUID,
        actor: ActorDescriptor,
        recipient_name: str | None = None,
        recipient_email: str | None = None,
    ) -> WorkflowResult:
        """Move to sent_to_client and return a fresh client review link."""

        def work(scope: _Scope) -> WorkflowResult:
            row = self._load_for_update(quote_id)
            self._machine.evaluate(row.to_dto(), QuoteAction.SEND_TO_CLIENT)

            issued = self._tokens.issue(
                row.id,
                TokenPhase.CLIENT,
                self._settings.client_token_ttl,
                issued_by=actor.by,
                recipient_name=recipient_name,
                recipient_email=recipient_email,
            )
            row.status = QuoteStatus.SENT_TO_CLIENT.value
            row.expires_at = issued.expires_at
            row.last_sent_at = self._clock.now()
            self._touch(row, actor)

            entry = self._audit.append(
                row.id,
                AuditAction.SENT_TO_CLIENT,
                actor,
                {"customer_total": round_money(row.customer_total), "expires_at": issued.expires_at},
            )
            link = IssuedLink(
                url=self._settings.client_link(issued.token),
                token=issued.token,
                phase=TokenPhase.CLIENT,
                expires_at=issued.expires_at,
                recipient_name=recipient_name,
                recipient_email=recipient_email,
            )
            return self._finish(row, entry, link=link)

        return self._execute(
            "send_to_client", QuoteAction.SEND_TO_CLIENT.value, actor, work, quote_id
        )

    def close_quote(
        self, quote_id: UUID, actor: ActorDescriptor, reason: str | None = None
    ) -> WorkflowResult:
        """Close from any open status.  Outstanding links are revoked."""

        def work(scope: _Scope) -> WorkflowResult:
            row = self._load_for_update(quote_id)
            self._machine.evaluate(row.to_dto(), QuoteAction.CLOSE)
            previous_status = row.status
            revoked = self._tokens.revoke_for_quote(row.id)

            row.status = QuoteStatus.CLOSED.value
            row.closed_at = self._clock.now()
            self._touch(row, actor)
            entry = self._audit.append(
                row.id,
                AuditAction.CLOSED,
                actor,
                {"reason": reason, "previous_status": previous_status, "tokens_revoked": revoked},
            )
            return self._finish(row, entry)

        return self._execute("close_quote", QuoteAction.CLOSE.value, actor, work, quote_id)

    def revoke_links(
        self, quote_id: UUID, actor: ActorDescriptor, phase: TokenPhase | None = None
    ) -> int:
        """Invalidate outstanding links before they expire.  Returns how many."""

        def work(scope: _Scope) -> int:
            row = self._load_for_update(quote_id)
            count = self._tokens.revoke_for_quote(row.id, phase)
            self._audit.append(
                row.id,
                AuditAction.TOKENS_REVOKED,
                actor,
                {"phase": phase.value if phase else "all", "count": count},
            )
            return count

        return self._execute("revoke_links", "revoke_links", actor, work, quote_id)

    # ------------------------------------------------------------------
    # External (token) operations
    # ------------------------------------------------------------------

    def technician_submit(self, token: str, submission: TechSubmission) -> WorkflowResult:
        """Record the technician's figures and price the quote."""
        actor = ActorDescriptor.external_technician()

        def work(scope: _Scope) -> WorkflowResult:
            row = self._claim(token, TokenPhase.TECH, QuoteAction.TECHNICIAN_SUBMIT, scope)

            technician = self._technicians.get_technician(row.technician_id)
            if technician is None:
                raise TechnicianNotFoundError(str(row.technician_id))

            labor_rate = self._labor_rate(submission, technician)
            validate_submission(submission.labor_hours, labor_rate, submission.materials_cost)
            totals = compute_quote_totals(
                submission.labor_hours,
                labor_rate,
                submission.materials_cost,
                technician.markup_percent,
            ).rounded()

            now = self._clock.now()
            row.tech_labor_hours = submission.labor_hours
            row.tech_labor_rate = labor_rate
            row.tech_materials_cost = submission.materials_cost
            row.tech_total = totals.tech_total
            row.tech_notes = submission.notes
            row.markup_applied = totals.markup_percent
            row.customer_total = totals.customer_total
            row.tech_submitted_at = now
            row.status = QuoteStatus.TECH_SUBMITTED.value
            self._touch(row, actor)

            allocations = allocate_across_items(
                [item.item_id for item in row.items], totals.tech_total, totals.customer_total
            )
            for item, allocation in zip(row.items, allocations):
                item.allocated_tech_amount = allocation.tech_amount
                item.allocated_customer_amount = allocation.customer_amount

            entry = self._audit.append(
                row.id,
                AuditAction.TECH_SUBMITTED,
                actor,
                {
                    "labor_hours": submission.labor_hours,
                    "labor_rate": labor_rate,
                    "materials_cost": submission.materials_cost,
                    "tech_total": totals.tech_total,
                    "markup_applied": totals.markup_percent,
                    "customer_total": totals.customer_total,
                },
            )
            return self._finish(row, entry)

        return self._execute(
            "technician_submit",
            QuoteAction.TECHNICIAN_SUBMIT.value,
            actor,
            work,
            token_phase=TokenPhase.TECH,
        )

    def technician_decline(self, token: str, reason: str | None = None) -> WorkflowResult:
        actor = ActorDescriptor.external_technician()

        def work(scope: _Scope) -> WorkflowResult:
            row = self._claim(token, TokenPhase.TECH, QuoteAction.TECHNICIAN_DECLINE, scope)
            row.status = QuoteStatus.TECH_DECLINED.value
            self._touch(row, actor)
            entry = self._audit.append(row.id, AuditAction.TECH_DECLINED, actor, {"reason": reason})
            return self._finish(row, entry)

        return self._execute(
            "technician_decline",
            QuoteAction.TECHNICIAN_DECLINE.value,
            actor,
            work,
            token_phase=TokenPhase.TECH,
        )

    def client_accept(self, token: str) -> WorkflowResult:
        """Accept the quote; the result carries the billing hand-off."""
        actor = ActorDescriptor.external_client()

        def work(scope: _Scope) -> WorkflowResult:
            row = self._claim(token, TokenPhase.CLIENT, QuoteAction.CLIENT_ACCEPT, scope)
            now = self._clock.now()
            row.status = QuoteStatus.ACCEPTED.value
            row.approved_at = now
            row.client_response = "accepted"
            row.client_responded_at = now
            row.pricing_locked = True
            self._touch(row, actor)

            entry = self._audit.append(
                row.id,
                AuditAction.ACCEPTED,
                actor,
                {"customer_total": round_money(row.customer_total)},
            )
            finalization = QuoteFinalization(
                quote_id=row.id,
                account_id=row.account_id,
                sidemark_id=row.sidemark_id,
                source_task_id=row.source_task_id,
                tech_total=row.tech_total,
                customer_total=row.customer_total,
                allocations=tuple(
                    ItemAllocation(
                        item_id=item.item_id,
                        position=item.position,
                        tech_amount=item.allocated_tech_amount,
                        customer_amount=item.allocated_customer_amount,
                    )
                    for item in row.items
                ),
                approved_at=now,
            )
            return self._finish(row, entry, finalization=finalization)

        return self._execute(
            "client_accept",
            QuoteAction.CLIENT_ACCEPT.value,
            actor,
            work,
            token_phase=TokenPhase.CLIENT,
        )

    def client_decline(self, token: str, reason: str | None = None) -> WorkflowResult:
        actor = ActorDescriptor.external_client()

        def work(scope: _Scope) -> WorkflowResult:
            row = self._claim(token, TokenPhase.CLIENT, QuoteAction.CLIENT_DECLINE, scope)
            now = self._clock.now()
            row.status = QuoteStatus.DECLINED.value
            row.declined_at = now
            row.client_response = "declined"
            row.client_responded_at = now
            if reason:
                note = f"Client decline reason: {reason}"
                row.notes = f"{row.notes}\n\n{note}" if row.notes else note
            self._touch(row, actor)
            entry = self._audit.append(row.id, AuditAction.DECLINED, actor, {"reason": reason})
            return self._finish(row, entry)

        return self._execute(
            "client_decline",
            QuoteAction.CLIENT_DECLINE.value,
            actor,
            work,
            token_phase=TokenPhase.CLIENT,
        )

    def open_technician_link(self, token: str) -> TechnicianQuoteView:
        """What the technician sees before submitting or declining."""
        actor = ActorDescriptor.external_technician()

        def work(scope: _Scope) -> TechnicianQuoteView:
            row, resolved = self._open(
                token, TokenPhase.TECH, QuoteStatus.SENT_TO_TECH, AuditAction.TECH_LINK_OPENED, scope
            )
            technician = self._technicians.get_technician(row.technician_id)
            return TechnicianQuoteView(
                quote_id=row.id,
                status=QuoteStatus(row.status),
                technician_name=technician.name if technician else None,
                default_labor_rate=technician.hourly_rate if technician else None,
                expires_at=resolved.expires_at,
                items=tuple(self._external_item(item) for item in row.items),
            )

        return self._execute(
            "open_technician_link", "open_link", actor, work, token_phase=TokenPhase.TECH
        )

    def open_client_link(self, token: str) -> ClientQuoteView:
        """Read-only review page for the client."""
        actor = ActorDescriptor.external_client()
        limit = self._settings.client_photo_limit

        def work(scope: _Scope) -> ClientQuoteView:
            row, resolved = self._open(
                token, TokenPhase.CLIENT, QuoteStatus.SENT_TO_CLIENT, AuditAction.CLIENT_LINK_OPENED, scope
            )
            return ClientQuoteView(
                quote_id=row.id,
                status=QuoteStatus(row.status),
                customer_total=row.customer_total,
                expires_at=resolved.expires_at,
                items=tuple(self._external_item(item, photo_limit=limit) for item in row.items),
            )

        return self._execute(
            "open_client_link", "open_link", actor, work, token_phase=TokenPhase.CLIENT
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_status_info(self, status: QuoteStatus | str) -> StatusInfo:
        """Display label and color.  Pure; unknown statuses fall back to gray."""
        return get_status_info(status, self._settings.status_labels)

    def get_quote(self, quote_id: UUID) -> RepairQuote:
        row = self._session.get(RepairQuoteModel, quote_id, populate_existing=True)
        if row is None:
            raise QuoteNotFoundError(str(quote_id))
        return row.to_dto()

    def get_audit_trail(self, quote_id: UUID, newest_first: bool = False) -> tuple[AuditLogEntry, ...]:
        return self._audit.get_trail(quote_id, newest_first=newest_first)

    def list_active_technicians(self) -> Sequence[Technician]:
        return self._technicians.list_active_technicians()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        action: str,
        actor: ActorDescriptor,
        work: Callable[[_Scope], T],
        quote_id: UUID | None = None,
        token_phase: TokenPhase | None = None,
    ) -> T:
        """Run ``work`` atomically; audit and re-raise refusals."""
        scope = _Scope(quote_id)
        with LogContext.bind(
            correlation_id=str(uuid4()),
            quote_id=quote_id,
            actor_id=actor.by,
            token_phase=token_phase.value if token_phase else None,
        ):
            logger.info(f"{operation}_started")
            t0 = time.monotonic()
            try:
                try:
                    with self._session.begin_nested():
                        result = work(scope)
                except StaleDataError as exc:
                    raise self._lost_race(scope, action, token_phase) from exc
                if self._auto_commit:
                    self._session.commit()

            except RepairKernelError as exc:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                self._record_rejection(scope, action, actor, exc)
                logger.warning(
                    f"{operation}_rejected",
                    extra={
                        "error_code": exc.code,
                        "guard_code": getattr(exc, "guard_code", None),
                        "reason": getattr(exc, "reason", None),
                        "rejected_quote_id": str(scope.quote_id) if scope.quote_id else None,
                        "duration_ms": duration_ms,
                    },
                )
                raise

            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.error(f"{operation}_failed", extra={"duration_ms": duration_ms}, exc_info=True)
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(f"{operation}_completed", extra={"duration_ms": duration_ms})
            return result

    def _record_rejection(
        self, scope: _Scope, action: str, actor: ActorDescriptor, error: RepairKernelError
    ) -> None:
        quote_id = scope.quote_id
        if quote_id is None and isinstance(error, TokenInvalidError) and error.quote_id:
            quote_id = UUID(error.quote_id)

        if quote_id is not None and self._session.get(RepairQuoteModel, quote_id) is not None:
            self._audit.record_rejection(quote_id, action, actor, error)

        if self._auto_commit:
            self._session.commit()

    def _lost_race(
        self, scope: _Scope, action: str, token_phase: TokenPhase | None
    ) -> RepairKernelError:
        quote_id = str(scope.quote_id) if scope.quote_id else ""
        if token_phase is not None:
            return TokenInvalidError("consumed", quote_id=quote_id or None, phase=token_phase.value)
        return ConcurrencyLostError(quote_id, action)

    def _load_for_update(self, quote_id: UUID) -> RepairQuoteModel:
        row = self._session.execute(
            select(RepairQuoteModel)
            .where(RepairQuoteModel.id == quote_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise QuoteNotFoundError(str(quote_id))
        return row

    def _claim(
        self, token: str, phase: TokenPhase, action: QuoteAction, scope: _Scope
    ) -> RepairQuoteModel:
        """
        Resolve, lock, consume and check a token-gated transition.

        All four steps run in the caller's transaction; if anything later
        in the operation fails, the consumption rolls back with it.
        """
        resolved = self._tokens.resolve(token, phase)
        scope.quote_id = resolved.quote_id
        LogContext.set(quote_id=str(resolved.quote_id))

        row = self._load_for_update(resolved.quote_id)
        self._tokens.consume(token, phase)
        try:
            self._machine.evaluate(row.to_dto(), action, TransitionContext(token_phase=phase))
        except InvalidTransitionError as exc:
            raise TokenInvalidError(
                "quote_state", quote_id=str(row.id), phase=phase.value
            ) from exc
        return row

    def _open(
        self,
        token: str,
        phase: TokenPhase,
        expected_status: QuoteStatus,
        audit_action: AuditAction,
        scope: _Scope,
    ):
        resolved = self._tokens.resolve(token, phase)
        scope.quote_id = resolved.quote_id
        LogContext.set(quote_id=str(resolved.quote_id))

        row = self._load_for_update(resolved.quote_id)
        if row.status != expected_status.value:
            raise TokenInvalidError("quote_state", quote_id=str(row.id), phase=phase.value)

        if self._tokens.mark_accessed(resolved.token_id):
            self._audit.append(
                row.id,
                audit_action,
                ActorDescriptor.for_phase(phase),
                {"expires_at": resolved.expires_at},
            )
        return row, resolved

    def _require_active_technician(self, technician_id: UUID) -> Technician:
        technician = self._technicians.get_technician(technician_id)
        if technician is None:
            raise TechnicianNotFoundError(str(technician_id))
        if not technician.is_active:
            raise InvalidTransitionError(
                "(new)",
                QuoteStatus.DRAFT.value,
                QuoteAction.ASSIGN_TECHNICIAN.value,
                "technician_active",
                detail="technician is not active",
            )
        return technician

    @staticmethod
    def _labor_rate(submission: TechSubmission, technician: Technician):
        if submission.labor_rate is not None:
            return submission.labor_rate
        if technician.hourly_rate is not None:
            return technician.hourly_rate
        if submission.labor_hours:
            raise InvalidSubmissionError("labor_rate", "required when labor hours are entered")
        return Decimal("0")

    @staticmethod
    def _external_item(item: RepairQuoteItemModel, photo_limit: int | None = None) -> RepairQuoteItem:
        """Item as shown through a link: no internal notes, bounded photos."""
        photos = tuple(item.damage_photos or ())
        if photo_limit is not None:
            photos = photos[:photo_limit]
        return RepairQuoteItem(
            item_id=item.item_id,
            position=item.position,
            item_code=item.item_code,
            item_description=item.item_description,
            damage_description=item.damage_description,
            damage_photos=photos,
            notes_public=item.notes_public,
            allocated_tech_amount=item.allocated_tech_amount,
            allocated_customer_amount=item.allocated_customer_amount,
        )

    def _touch(self, row: RepairQuoteModel, actor: ActorDescriptor) -> None:
        row.updated_at = self._clock.now()
        row.updated_by = actor.by

    def _finish(
        self,
        row: RepairQuoteModel,
        entry: AuditLogEntry,
        link: IssuedLink | None = None,
        finalization: QuoteFinalization | None = None,
    ) -> WorkflowResult:
        self._session.flush()
        quote = row.to_dto()
        check_quote_invariants(quote)
        logger.info(
            "quote_transition_applied",
            extra={
                "status": quote.status.value,
                "audit_action": entry.action,
                "version": quote.version,
            },
        )
        return WorkflowResult(quote=quote, audit_entry=entry, link=link, finalization=finalization)

"""
TokenService -- capability token issue, resolution and atomic consumption.

Responsibility:
    Mints single-use, time-limited tokens that stand in for a login for the
    external technician and client, resolves them, and consumes them.

Architecture position:
    Kernel > Services.  Called only by RepairQuoteWorkflow, inside the same
    transaction as the status transition a token gates.

Invariants enforced:
    - Only SHA-256 digests are persisted; the raw token exists only in the
      IssuedToken returned to the caller.
    - Consumption is ONE conditional UPDATE (not consumed, not revoked, not
      expired, matching phase).  Exactly one concurrent caller sees
      rowcount == 1; everyone else gets TokenInvalidError.
    - Expiry is checked lazily against the injected clock.  There is no
      background sweep.
    - Issuing a token for a phase revokes any still-usable token for the
      same quote and phase, so at most one link per phase is live.

Failure modes:
    - TokenInvalidError with an internal ``reason``; the message never
      says which.
"""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import select, update

from repair_kernel.domain.clock import Clock
from repair_kernel.domain.dtos import IssuedToken, ResolvedToken
from repair_kernel.domain.tokens import generate_token, hash_token, is_well_formed
from repair_kernel.domain.workflow import TokenPhase
from repair_kernel.db.types import ensure_utc
from repair_kernel.exceptions import TokenInvalidError
from repair_kernel.logging_config import get_logger
from repair_kernel.models.capability_token import CapabilityTokenModel
from repair_kernel.services.base import BaseService

logger = get_logger("services.token")


class TokenService(BaseService):
    """Issue, resolve, consume and revoke capability tokens."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session, clock)

    def issue(
        self,
        quote_id: UUID,
        phase: TokenPhase,
        ttl: timedelta,
        issued_by: str,
        recipient_name: str | None = None,
        recipient_email: str | None = None,
    ) -> IssuedToken:
        if ttl <= timedelta(0):
            raise ValueError("token ttl must be positive")

        revoked = self.revoke_for_quote(quote_id, phase)

        now = self._clock.now()
        token = generate_token()
        row = CapabilityTokenModel(
            token_hash=hash_token(token),
            quote_id=quote_id,
            phase=phase.value,
            issued_at=now,
            issued_by=issued_by,
            expires_at=now + ttl,
            recipient_name=recipient_name,
            recipient_email=recipient_email,
        )
        self._session.add(row)
        self._session.flush()

        logger.info(
            "token_issued",
            extra={
                "quote_id": str(quote_id),
                "phase": phase.value,
                "token_id": str(row.id),
                "expires_at": row.expires_at,
                "superseded": revoked,
            },
        )
        return IssuedToken(
            token=token,
            quote_id=quote_id,
            phase=phase,
            expires_at=now + ttl,
        )

    def _find(self, token: str) -> CapabilityTokenModel | None:
        return self._session.execute(
            select(CapabilityTokenModel)
            .where(CapabilityTokenModel.token_hash == hash_token(token))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _reject(self, reason: str, row: CapabilityTokenModel | None = None):
        quote_id = str(row.quote_id) if row is not None else None
        phase = row.phase if row is not None else None
        logger.warning(
            "token_rejected",
            extra={"reason": reason, "quote_id": quote_id, "phase": phase},
        )
        raise TokenInvalidError(reason, quote_id=quote_id, phase=phase)

    def resolve(self, token: str, phase: TokenPhase | None = None) -> ResolvedToken:
        """
        Check a token without changing it.

        Raises:
            TokenInvalidError: malformed, unknown, revoked, consumed,
                expired, or issued for another phase.
        """
        if not is_well_formed(token):
            self._reject("malformed")

        row = self._find(token)
        if row is None:
            self._reject("unknown")
        if row.revoked_at is not None:
            self._reject("revoked", row)
        if row.consumed_at is not None:
            self._reject("consumed", row)
        if ensure_utc(row.expires_at) <= self._clock.now():
            self._reject("expired", row)
        if phase is not None and row.phase != phase.value:
            self._reject("phase_mismatch", row)

        return row.to_resolved()

    def consume(self, token: str, phase: TokenPhase) -> ResolvedToken:
        """
        Atomically mark a token consumed.

        Must run inside the transaction that applies the gated transition;
        rolling that transaction back un-consumes the token.
        """
        if not is_well_formed(token):
            self._reject("malformed")

        now = self._clock.now()
        result = self._session.execute(
            update(CapabilityTokenModel)
            .where(
                CapabilityTokenModel.token_hash == hash_token(token),
                CapabilityTokenModel.phase == phase.value,
                CapabilityTokenModel.consumed_at.is_(None),
                CapabilityTokenModel.revoked_at.is_(None),
                CapabilityTokenModel.expires_at > now,
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            # Lost the race or never valid: resolve() names the reason.
            self.resolve(token, phase)
            self._reject("consumed", self._find(token))

        row = self._find(token)
        logger.info(
            "token_consumed",
            extra={"quote_id": str(row.quote_id), "phase": phase.value, "token_id": str(row.id)},
        )
        return row.to_resolved()

    def mark_accessed(self, token_id: UUID) -> bool:
        """Record the first time the link was opened. True on that first open."""
        result = self._session.execute(
            update(CapabilityTokenModel)
            .where(
                CapabilityTokenModel.id == token_id,
                CapabilityTokenModel.accessed_at.is_(None),
            )
            .values(accessed_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def revoke_for_quote(self, quote_id: UUID, phase: TokenPhase | None = None) -> int:
        """Revoke every unconsumed token of a quote (optionally one phase). Returns count."""
        stmt = (
            update(CapabilityTokenModel)
            .where(
                CapabilityTokenModel.quote_id == quote_id,
                CapabilityTokenModel.consumed_at.is_(None),
                CapabilityTokenModel.revoked_at.is_(None),
            )
            .values(revoked_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        if phase is not None:
            stmt = stmt.where(CapabilityTokenModel.phase == phase.value)
        count = self._session.execute(stmt).rowcount or 0
        if count:
            logger.info(
                "tokens_revoked",
                extra={
                    "quote_id": str(quote_id),
                    "phase": phase.value if phase else None,
                    "count": count,
                },
            )
        return count

"""Recovery token lifecycle.

A recovery token is a single-use, time-limited capability that lets an
account replace its second factor without possessing it. Token state::

    Active --redeem success--> Consumed (deleted)
    Active --expiry detected--> Expired (deleted)

Single use is enforced by deleting the record, never by a "used" flag.
Existing factors are left alone until a token is redeemed.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .audit import MfaAuditEvent, MfaEventType
from .boundary import provider_boundary
from .domain import AccountSession, utcnow
from .results import (
    Enrolled,
    Failed,
    MfaErrorCode,
    RecoveryIssued,
    RecoveryResult,
    RedeemResult,
)
from .state_machine import not_authenticated
from .validation import RecoveryTokenInput, parse_input

if TYPE_CHECKING:
    from .notifications.mailer import RecoveryMailer
    from .ports import IMfaAuditStore, IRecoveryTokenStore
    from .state_machine import MfaStateMachine

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # 256 bits


def generate_token() -> str:
    """New URL-safe recovery token value (43 characters)."""
    return secrets.token_urlsafe(TOKEN_BYTES)


class RecoveryTokenManager:
    """Issues and redeems recovery tokens.

    Redemption delegates the factor reset to the state machine, which
    destroys every factor of the account before enrolling a new one.
    """

    def __init__(
        self,
        *,
        token_store: IRecoveryTokenStore,
        state_machine: MfaStateMachine,
        mailer: RecoveryMailer,
        link_builder: Callable[[str], str],
        ttl_seconds: int = 900,
        audit_store: IMfaAuditStore | None = None,
        operation_timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the manager.

        Args:
            token_store: Where tokens are persisted.
            state_machine: Performs the factor reset on redemption.
            mailer: Delivers the recovery link.
            link_builder: Turns a token value into the emailed URL.
            ttl_seconds: Token lifetime.
            audit_store: Optional audit trail.
            operation_timeout: Upper bound for one operation in seconds.
            clock: Returns the current UTC time.
        """
        self.token_store = token_store
        self.state_machine = state_machine
        self.mailer = mailer
        self.link_builder = link_builder
        self.ttl_seconds = ttl_seconds
        self.audit_store = audit_store
        self.operation_timeout = operation_timeout
        self._clock = clock

    async def _audit(self, event: MfaAuditEvent) -> None:
        if self.audit_store is not None:
            await self.audit_store.record(event)

    async def has_pending(self, account_id: str) -> bool:
        """Whether the account holds an unexpired, unredeemed token."""
        now = self._clock()
        tokens = await self.token_store.list_for_account(account_id)
        return any(not t.is_expired(now) for t in tokens)

    async def _supersede(self, account_id: str) -> int:
        outstanding = await self.token_store.list_for_account(account_id)
        for token in outstanding:
            await self.token_store.delete(token.id)
        return len(outstanding)

    @provider_boundary("issue_recovery")
    async def issue(self, account: AccountSession | None) -> RecoveryResult:
        """Create a token and email the recovery link to the account.

        Earlier outstanding tokens of the account are deleted first. If the
        email cannot be delivered the new token is deleted again.
        """
        if account is None:
            return not_authenticated()
        if not account.email:
            return Failed(
                MfaErrorCode.INVALID_INPUT,
                "No email address is associated with this account.",
            )

        superseded = await self._supersede(account.account_id)
        expires_at = self._clock() + timedelta(seconds=self.ttl_seconds)
        token = generate_token()
        record = await self.token_store.insert(account.account_id, token, expires_at)

        delivered = False
        try:
            await self.mailer.send_recovery(
                account.email,
                self.link_builder(token),
                ttl_seconds=self.ttl_seconds,
            )
            delivered = True
        finally:
            if not delivered:
                # the link never reached the user; covers cancellation too
                await asyncio.shield(self.token_store.delete(record.id))

        logger.info(
            "Issued recovery token %s for %s (superseded %d)",
            record.id,
            account.account_id,
            superseded,
        )
        await self._audit(
            MfaAuditEvent(
                MfaEventType.RECOVERY_ISSUED,
                account.account_id,
                metadata={"token_id": record.id, "superseded": superseded},
            )
        )
        return RecoveryIssued(expires_at=expires_at)

    async def _reject(
        self, code: MfaErrorCode, message: str, account_id: str | None = None
    ) -> Failed:
        await self._audit(
            MfaAuditEvent(
                MfaEventType.RECOVERY_REJECTED,
                account_id,
                success=False,
                error_code=code.value,
            )
        )
        return Failed(code, message)

    @provider_boundary("redeem_recovery")
    async def redeem(self, token_value: str) -> RedeemResult:
        """Redeem a token: burn it, then replace the account's factors.

        The token is looked up, checked and claimed by deleting it before any
        factor is touched, so of concurrent redemptions only one succeeds.
        """
        parsed = parse_input(RecoveryTokenInput, token=token_value)

        record = await self.token_store.find_by_token(parsed.token)
        if record is None:
            logger.warning("Rejected unknown or used recovery token")
            return await self._reject(
                MfaErrorCode.TOKEN_INVALID,
                "This recovery link is invalid or has already been used.",
            )

        if record.is_expired(self._clock()):
            await self.token_store.delete(record.id)
            logger.warning(
                "Rejected expired recovery token %s for %s",
                record.id,
                record.account_id,
            )
            return await self._reject(
                MfaErrorCode.TOKEN_EXPIRED,
                "This recovery link has expired. Please request a new one.",
                record.account_id,
            )

        if not await self.token_store.delete(record.id):
            logger.warning("Rejected recovery token %s claimed concurrently", record.id)
            return await self._reject(
                MfaErrorCode.TOKEN_INVALID,
                "This recovery link is invalid or has already been used.",
                record.account_id,
            )

        artifact = await self.state_machine.replace_factors(record.account_id)

        logger.info("Redeemed recovery token %s for %s", record.id, record.account_id)
        await self._audit(
            MfaAuditEvent(
                MfaEventType.RECOVERY_REDEEMED,
                record.account_id,
                metadata={"token_id": record.id, "factor_id": artifact.factor_id},
            )
        )
        return Enrolled(artifact)


__all__: list[str] = ["TOKEN_BYTES", "generate_token", "RecoveryTokenManager"]

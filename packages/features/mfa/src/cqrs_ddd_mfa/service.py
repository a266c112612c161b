"""Caller-facing MFA API.

Every function returns a result object (see :mod:`cqrs_ddd_mfa.results`);
expected failures never raise. Only
:class:`~cqrs_ddd_mfa.exceptions.ConfigurationError` escapes.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from .audit import MfaAuditEvent, MfaEventType
from .boundary import provider_boundary
from .domain import AccountSession
from .limiter import AttemptOutcome
from .results import (
    EnrollmentResult,
    Failed,
    MfaErrorCode,
    RecoveryResult,
    RedeemResult,
    StatusResult,
    UnenrollResult,
    VerificationResult,
)
from .state_machine import not_authenticated

if TYPE_CHECKING:
    from .limiter import AttemptLimiter
    from .ports import IMfaAuditStore
    from .recovery import RecoveryTokenManager
    from .state_machine import MfaStateMachine

logger = logging.getLogger(__name__)


class MfaService:
    """Facade over the state machine, recovery manager and attempt limiter.

    Built by :func:`cqrs_ddd_mfa.factory.create_mfa_service` once at process
    start and shared by all requests.
    """

    def __init__(
        self,
        *,
        state_machine: MfaStateMachine,
        recovery: RecoveryTokenManager,
        limiter: AttemptLimiter | None = None,
        audit_store: IMfaAuditStore | None = None,
        operation_timeout: float = 10.0,
        closers: list[Callable[[], Awaitable[None]]] | None = None,
    ) -> None:
        self.state_machine = state_machine
        self.recovery = recovery
        self.limiter = limiter
        self.audit_store = audit_store
        self.operation_timeout = operation_timeout
        self._closers = list(closers or [])

    async def request_enrollment(
        self, account: AccountSession | None
    ) -> EnrollmentResult:
        return await self.state_machine.request_enrollment(account)

    @provider_boundary("throttled_verification")
    async def submit_verification(
        self, account: AccountSession | None, code: str
    ) -> VerificationResult:
        """Verify a code, throttled by the attempt limiter when configured.

        While locked out the factor store is not contacted. Only wrong codes
        count as failures; malformed input and provider errors do not. A
        failing limiter or audit store yields a retryable ``provider_error``.
        """
        if account is None:
            return not_authenticated()
        if self.limiter is None:
            return await self.state_machine.submit_verification(account, code)

        key = account.account_id
        decision = await self.limiter.check(key)
        if not decision.allowed:
            return Failed(
                MfaErrorCode.RATE_LIMITED,
                decision.message or "Too many failed attempts.",
                retry_after_seconds=decision.wait_seconds,
            )

        result = await self.state_machine.submit_verification(account, code)
        if result.success:
            await self.limiter.record(key, AttemptOutcome.SUCCESS)
        elif isinstance(result, Failed) and result.error is MfaErrorCode.INVALID_CODE:
            after = await self.limiter.record(key, AttemptOutcome.FAILURE)
            if not after.allowed:
                if self.audit_store is not None:
                    await self.audit_store.record(
                        MfaAuditEvent(
                            MfaEventType.VERIFICATION_LOCKED,
                            key,
                            success=False,
                            error_code=MfaErrorCode.RATE_LIMITED.value,
                            metadata={"wait_seconds": after.wait_seconds},
                        )
                    )
                return Failed(
                    MfaErrorCode.INVALID_CODE,
                    f"{result.message} {after.message}",
                    retry_after_seconds=after.wait_seconds,
                )
        return result

    async def unenroll(self, account: AccountSession | None) -> UnenrollResult:
        return await self.state_machine.unenroll(account)

    async def issue_recovery(self, account: AccountSession | None) -> RecoveryResult:
        return await self.recovery.issue(account)

    async def redeem_recovery(self, token_value: str) -> RedeemResult:
        return await self.recovery.redeem(token_value)

    @provider_boundary("status_query")
    async def get_status(self, account: AccountSession | None) -> StatusResult:
        """Enrollment state, factor count and session assurance level."""
        if account is None:
            return not_authenticated()
        pending = await self.recovery.has_pending(account.account_id)
        return await self.state_machine.get_status(account, recovery_pending=pending)

    async def aclose(self) -> None:
        """Release owned resources (database engines, ...)."""
        closers, self._closers = self._closers, []
        for close in reversed(closers):
            await close()
        logger.debug("MFA service closed")


__all__: list[str] = ["MfaService"]

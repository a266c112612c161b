"""TOTP enrollment state machine.

States, derived from the factor store on every call::

    NoFactor --request_enrollment--> PendingVerification
    PendingVerification --submit_verification(ok)--> Enabled
    Enabled --recovery issued--> RecoveryPending
    RecoveryPending --recovery redeemed--> PendingVerification (new factor)
    PendingVerification / Enabled --unenroll--> NoFactor

No state is cached in-process. Concurrent requests for the same account are
tolerated by destroy-then-create: an enrollment deletes unverified leftovers,
creates its factor, then re-reads the account and deletes every pending factor
but the newest (last writer wins).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from .audit import MfaAuditEvent, MfaEventType
from .boundary import provider_boundary
from .domain import AccountSession, EnrollmentArtifact, Factor, as_utc, derive_state
from .exceptions import ChallengeNotFoundError, FactorNotFoundError, MfaInvalidError
from .results import (
    AlreadyEnrolled,
    Enrolled,
    EnrollmentResult,
    Failed,
    MfaErrorCode,
    MfaStatus,
    StatusResult,
    Unenrolled,
    UnenrollResult,
    VerificationResult,
    Verified,
)
from .totp import format_manual_key, render_qr_data_url
from .validation import VerificationCodeInput, parse_input

if TYPE_CHECKING:
    from .domain import FactorEnrollment
    from .ports import IFactorStore, IMfaAuditStore, ISessionGateway

logger = logging.getLogger(__name__)


def not_authenticated() -> Failed:
    return Failed(
        MfaErrorCode.NOT_AUTHENTICATED,
        "Authentication failed. Please log in again.",
    )


def _enrollment_key(factor: Factor) -> tuple[datetime, str]:
    return (as_utc(factor.created_at), factor.id)


def pick_factor_to_verify(factors: list[Factor]) -> Factor | None:
    """Prefer the pending (unverified) factor, else the first one."""
    for factor in factors:
        if not factor.is_verified:
            return factor
    return factors[0] if factors else None


class MfaStateMachine:
    """Governs enroll, verify and unenroll transitions for one factor store.

    Example:
        ```python
        machine = MfaStateMachine(
            factor_store=InMemoryFactorStore(),
            session_gateway=InMemorySessionGateway(),
        )

        result = await machine.request_enrollment(account)
        if isinstance(result, Enrolled):
            print(result.artifact.provisioning_uri)

        result = await machine.submit_verification(account, "123456")
        ```
    """

    def __init__(
        self,
        *,
        factor_store: IFactorStore,
        session_gateway: ISessionGateway,
        audit_store: IMfaAuditStore | None = None,
        render_qr_code: bool = True,
        operation_timeout: float = 10.0,
    ) -> None:
        """Initialize the state machine.

        Args:
            factor_store: Factor storage and TOTP verification.
            session_gateway: Promotes/demotes the caller's session.
            audit_store: Optional audit trail.
            render_qr_code: Render a QR data URL when the store returns none.
            operation_timeout: Upper bound for one operation in seconds.
        """
        self.factor_store = factor_store
        self.session_gateway = session_gateway
        self.audit_store = audit_store
        self.render_qr_code = render_qr_code
        self.operation_timeout = operation_timeout

    async def _audit(self, event: MfaAuditEvent) -> None:
        if self.audit_store is not None:
            await self.audit_store.record(event)

    def build_artifact(self, enrollment: FactorEnrollment) -> EnrollmentArtifact:
        """Turn a store enrollment into what the UI shows."""
        qr_code = enrollment.qr_code
        if qr_code is None and self.render_qr_code:
            qr_code = render_qr_data_url(enrollment.provisioning_uri)
        return EnrollmentArtifact(
            factor_id=enrollment.factor.id,
            provisioning_uri=enrollment.provisioning_uri,
            manual_key=format_manual_key(enrollment.secret),
            qr_code=qr_code,
        )

    async def _delete_factors(self, account_id: str, factors: list[Factor]) -> int:
        for factor in factors:
            await self.factor_store.delete_factor(account_id, factor.id)
        return len(factors)

    async def _settle_enrollment(self, account_id: str, new: Factor) -> int:
        """Reduce the account to one pending factor after an enrollment.

        The pending factor that sorts last by ``(created_at, id)`` survives.
        Concurrent enrollments all apply the same rule, so whichever settles
        last sees every competitor and removes all but the survivor.
        """
        factors = await self.factor_store.list_factors(account_id)
        pending = [f for f in factors if not f.is_verified]
        if len(pending) <= 1:
            return 0
        survivor = max(pending, key=_enrollment_key)
        if survivor.id != new.id:
            logger.warning(
                "Factor %s of %s superseded by concurrent enrollment %s",
                new.id,
                account_id,
                survivor.id,
            )
        losers = [f for f in pending if f.id != survivor.id]
        return await self._delete_factors(account_id, losers)

    async def replace_factors(self, account_id: str) -> EnrollmentArtifact:
        """Destroy every factor of the account, then create a fresh one.

        Used by recovery. Provider errors propagate to the caller's boundary.
        """
        factors = await self.factor_store.list_factors(account_id)
        removed = await self._delete_factors(account_id, factors)
        enrollment = await self.factor_store.enroll(account_id)
        await self._settle_enrollment(account_id, enrollment.factor)
        logger.info(
            "Replaced %d factor(s) of %s with %s",
            removed,
            account_id,
            enrollment.factor.id,
        )
        await self._audit(
            MfaAuditEvent(
                MfaEventType.ENROLLMENT_STARTED,
                account_id,
                metadata={"factor_id": enrollment.factor.id, "replaced": removed},
            )
        )
        return self.build_artifact(enrollment)

    @provider_boundary("request_enrollment")
    async def request_enrollment(
        self, account: AccountSession | None
    ) -> EnrollmentResult:
        """Start TOTP enrollment.

        Returns ``AlreadyEnrolled`` without side effects when a verified
        factor exists. Unverified leftovers are destroyed and replaced.
        """
        if account is None:
            return not_authenticated()

        factors = await self.factor_store.list_factors(account.account_id)
        if any(f.is_verified for f in factors):
            return AlreadyEnrolled()

        stale = await self._delete_factors(account.account_id, factors)
        if stale:
            logger.info(
                "Removed %d unverified factor(s) of %s before re-enrolling",
                stale,
                account.account_id,
            )

        enrollment = await self.factor_store.enroll(account.account_id)
        raced = await self._settle_enrollment(account.account_id, enrollment.factor)
        if raced:
            logger.info(
                "Removed %d competing pending factor(s) of %s",
                raced,
                account.account_id,
            )
        logger.info("Enrolled factor %s for %s", enrollment.factor.id, account.account_id)
        await self._audit(
            MfaAuditEvent(
                MfaEventType.ENROLLMENT_STARTED,
                account.account_id,
                metadata={"factor_id": enrollment.factor.id, "replaced": stale},
            )
        )
        return Enrolled(self.build_artifact(enrollment))

    @provider_boundary("submit_verification")
    async def submit_verification(
        self, account: AccountSession | None, code: str
    ) -> VerificationResult:
        """Verify a code against the account's pending (or first) factor.

        On success the factor is enabled and the session promoted. On failure
        the factor is left untouched.
        """
        if account is None:
            return not_authenticated()

        parsed = parse_input(VerificationCodeInput, code=code)
        factors = await self.factor_store.list_factors(account.account_id)
        factor = pick_factor_to_verify(factors)
        if factor is None:
            return Failed(
                MfaErrorCode.NO_FACTOR_FOUND, "No MFA factor found to verify."
            )

        try:
            challenge = await self.factor_store.challenge(factor.id)
            tokens = await self.factor_store.verify(factor.id, challenge.id, parsed.code)
        except FactorNotFoundError:
            # removed by a concurrent unenroll/recovery
            return Failed(
                MfaErrorCode.NO_FACTOR_FOUND, "No MFA factor found to verify."
            )
        except (MfaInvalidError, ChallengeNotFoundError) as exc:
            logger.warning(
                "Verification failed for %s on %s: %s",
                account.account_id,
                factor.id,
                type(exc).__name__,
            )
            await self._audit(
                MfaAuditEvent(
                    MfaEventType.FACTOR_VERIFY_FAILED,
                    account.account_id,
                    success=False,
                    error_code=MfaErrorCode.INVALID_CODE.value,
                    metadata={"factor_id": factor.id},
                )
            )
            return Failed(
                MfaErrorCode.INVALID_CODE,
                "Invalid verification code. Please try again.",
            )

        await self.session_gateway.promote(account.account_id, tokens)
        logger.info("Verified factor %s for %s", factor.id, account.account_id)
        await self._audit(
            MfaAuditEvent(
                MfaEventType.FACTOR_VERIFIED,
                account.account_id,
                metadata={"factor_id": factor.id, "first": not factor.is_verified},
            )
        )
        return Verified(factor_id=factor.id, session=tokens)

    @provider_boundary("unenroll")
    async def unenroll(self, account: AccountSession | None) -> UnenrollResult:
        """Delete all factors of the account and demote its session."""
        if account is None:
            return not_authenticated()

        factors = await self.factor_store.list_factors(account.account_id)
        removed = await self._delete_factors(account.account_id, factors)
        await self.session_gateway.demote(account.account_id)
        if removed:
            logger.info("Unenrolled %d factor(s) of %s", removed, account.account_id)
            await self._audit(
                MfaAuditEvent(
                    MfaEventType.FACTOR_REMOVED,
                    account.account_id,
                    metadata={"removed": removed},
                )
            )
        return Unenrolled(removed=removed)

    @provider_boundary("get_status")
    async def get_status(
        self,
        account: AccountSession | None,
        *,
        recovery_pending: bool = False,
    ) -> StatusResult:
        """Describe the account's enrollment state and session level."""
        if account is None:
            return not_authenticated()

        factors = await self.factor_store.list_factors(account.account_id)
        level = await self.session_gateway.get_assurance_level(account.account_id)
        return MfaStatus(
            state=derive_state(factors, recovery_pending=recovery_pending),
            factor_count=len(factors),
            assurance_level=level,
        )


__all__: list[str] = [
    "MfaStateMachine",
    "not_authenticated",
    "pick_factor_to_verify",
]

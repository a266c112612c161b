"""MFA ports (protocols) for the collaborators the core depends on.

The factor store and the recovery token store are shared, externally owned
resources. Implementations raise
:class:`~cqrs_ddd_mfa.exceptions.ProviderError` when the backend is
unreachable; "not found" is reported through return values or the specific
exceptions documented per method, never as a provider failure.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .audit import MfaAuditEvent
    from .domain import (
        AssuranceLevel,
        Challenge,
        Factor,
        FactorEnrollment,
        RecoveryToken,
        SessionTokens,
    )
    from .limiter import AttemptState


@runtime_checkable
class IFactorStore(Protocol):
    """Protocol for second-factor storage and TOTP verification.

    A hosted auth provider, or a local table plus pyotp.
    """

    async def enroll(self, account_id: str) -> FactorEnrollment:
        """Create a new TOTP factor in ``unverified`` status.

        Args:
            account_id: Account identifier.

        Returns:
            FactorEnrollment with the factor and provisioning data.

        Raises:
            ProviderError: If no factor could be allocated.
        """
        ...

    async def list_factors(self, account_id: str) -> list[Factor]:
        """List all factors of an account, oldest first.

        Args:
            account_id: Account identifier.

        Returns:
            Factors in any status (empty if none).
        """
        ...

    async def challenge(self, factor_id: str) -> Challenge:
        """Open a single-use challenge against a factor.

        Args:
            factor_id: Factor identifier.

        Returns:
            The new challenge.

        Raises:
            FactorNotFoundError: If the factor does not exist.
        """
        ...

    async def verify(self, factor_id: str, challenge_id: str, code: str) -> SessionTokens:
        """Consume a challenge and verify a TOTP code.

        On success the factor becomes ``verified``. The challenge is
        consumed whether or not the code is correct.

        Args:
            factor_id: Factor identifier.
            challenge_id: Challenge returned by :meth:`challenge`.
            code: 6-digit TOTP code.

        Returns:
            Session tokens at the elevated assurance level.

        Raises:
            ChallengeNotFoundError: Challenge unknown, consumed or expired.
            MfaInvalidError: The code does not match.
        """
        ...

    async def delete_factor(self, account_id: str, factor_id: str) -> None:
        """Delete a factor. Deleting a missing factor is a no-op.

        Args:
            account_id: Owner of the factor.
            factor_id: Factor identifier.
        """
        ...


@runtime_checkable
class IRecoveryTokenStore(Protocol):
    """Protocol for single-use recovery token storage."""

    async def insert(
        self,
        account_id: str,
        token: str,
        expires_at: datetime,
    ) -> RecoveryToken:
        """Persist a new recovery token.

        Args:
            account_id: Account the token resets.
            token: High-entropy token value.
            expires_at: Absolute expiry (UTC).

        Returns:
            The stored record.
        """
        ...

    async def find_by_token(self, token: str) -> RecoveryToken | None:
        """Look up a token by value.

        Args:
            token: Token value from the recovery link.

        Returns:
            The record, or None if unknown (never issued or already used).
        """
        ...

    async def list_for_account(self, account_id: str) -> list[RecoveryToken]:
        """List outstanding tokens of an account (expired ones included).

        Args:
            account_id: Account identifier.
        """
        ...

    async def delete(self, token_id: str) -> bool:
        """Delete a token record. Deleting a missing record is a no-op.

        Used to claim a token: of several concurrent deletes of one record
        exactly one reports a removal.

        Args:
            token_id: Record identifier.

        Returns:
            True if this call removed the record.
        """
        ...


@runtime_checkable
class ISessionGateway(Protocol):
    """Protocol for the caller's session assurance level."""

    async def promote(self, account_id: str, tokens: SessionTokens) -> None:
        """Install elevated session tokens after second-factor success.

        Args:
            account_id: Account identifier.
            tokens: Tokens returned by the factor store.
        """
        ...

    async def demote(self, account_id: str) -> None:
        """Return the session to the baseline assurance level.

        Args:
            account_id: Account identifier.
        """
        ...

    async def get_assurance_level(self, account_id: str) -> AssuranceLevel:
        """Current assurance level of the account's session.

        Args:
            account_id: Account identifier.
        """
        ...


@runtime_checkable
class IAttemptStateStorage(Protocol):
    """Protocol for where limiter state lives (browser storage, cache, ...)."""

    async def load(self, key: str) -> AttemptState | None:
        """Load the state stored under *key*, or None."""
        ...

    async def save(self, key: str, state: AttemptState) -> None:
        """Store *state* under *key*."""
        ...

    async def clear(self, key: str) -> None:
        """Forget the state stored under *key*."""
        ...


@runtime_checkable
class IMfaAuditStore(Protocol):
    """Protocol for recording MFA audit events."""

    async def record(self, event: MfaAuditEvent) -> None:
        """Record an audit event.

        Args:
            event: The audit event to record.
        """
        ...


__all__: list[str] = [
    "IFactorStore",
    "IRecoveryTokenStore",
    "ISessionGateway",
    "IAttemptStateStorage",
    "IMfaAuditStore",
]

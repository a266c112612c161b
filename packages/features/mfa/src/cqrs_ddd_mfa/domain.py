"""Domain types for TOTP enrollment, verification and recovery.

Factors and challenges are owned by the factor store; recovery tokens by the
recovery token store. The types here are the immutable views the core works
with.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FactorType(Enum):
    """Second-factor kinds. Only TOTP is supported."""

    TOTP = "totp"


class FactorStatus(Enum):
    """Verification status of a factor."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"


class AssuranceLevel(Enum):
    """Session assurance level.

    AAL1 is the baseline after password login; AAL2 after a second factor
    has been verified in this session.
    """

    AAL1 = "aal1"
    AAL2 = "aal2"


class MfaState(Enum):
    """Enrollment state of an account, derived from its factors."""

    NO_FACTOR = "no_factor"
    PENDING_VERIFICATION = "pending_verification"
    ENABLED = "enabled"
    RECOVERY_PENDING = "recovery_pending"


class AccountSession(BaseModel):
    """The authenticated caller of an MFA operation.

    Attributes:
        account_id: Account identifier.
        email: Address recovery emails are delivered to.
        assurance_level: Current session assurance level.
    """

    model_config = ConfigDict(frozen=True)

    account_id: str
    email: str | None = None
    assurance_level: AssuranceLevel = AssuranceLevel.AAL1


@dataclass(frozen=True)
class Factor:
    """One second-factor credential bound to an account.

    The shared secret never appears here; it stays inside the factor store.
    """

    id: str
    account_id: str
    status: FactorStatus
    created_at: datetime = field(default_factory=utcnow)
    type: FactorType = FactorType.TOTP
    friendly_name: str | None = None

    @property
    def is_verified(self) -> bool:
        return self.status is FactorStatus.VERIFIED


@dataclass(frozen=True)
class FactorEnrollment:
    """Returned by a factor store when a new factor is created.

    Attributes:
        factor: The new factor, in ``unverified`` status.
        provisioning_uri: otpauth:// URI for authenticator apps.
        secret: Base32 secret for manual entry. Only available at creation.
        qr_code: Pre-rendered QR image (data URL), if the store renders one.
    """

    factor: Factor
    provisioning_uri: str
    secret: str
    qr_code: str | None = None


@dataclass(frozen=True)
class Challenge:
    """Single-use proof-of-possession handle for one factor."""

    id: str
    factor_id: str
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > as_utc(self.expires_at)


@dataclass(frozen=True)
class SessionTokens:
    """Session issued by the factor store after a successful verification."""

    access_token: str
    refresh_token: str
    expires_in: int = 3600
    token_type: str = "bearer"
    assurance_level: AssuranceLevel = AssuranceLevel.AAL2

    @classmethod
    def issue(cls) -> SessionTokens:
        """Opaque elevated tokens minted by the bundled factor stores."""
        return cls(
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(32),
        )


@dataclass(frozen=True)
class RecoveryToken:
    """A stored single-use recovery capability.

    ``token_value`` is a secret; it is delivered only by email and must never
    be logged.
    """

    id: str
    account_id: str
    token_value: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > as_utc(self.expires_at)

    def __repr__(self) -> str:
        return (
            f"RecoveryToken(id={self.id!r}, account_id={self.account_id!r}, "
            f"expires_at={self.expires_at.isoformat()})"
        )


@dataclass(frozen=True)
class EnrollmentArtifact:
    """What the UI needs to let the user add the factor to an authenticator.

    Attributes:
        factor_id: Identifier of the new, unverified factor.
        provisioning_uri: otpauth:// URI (the content of the QR code).
        manual_key: Secret grouped in fours for manual entry.
        qr_code: PNG data URL of the provisioning URI, if rendered.
    """

    factor_id: str
    provisioning_uri: str
    manual_key: str
    qr_code: str | None = None

    def __repr__(self) -> str:
        return f"EnrollmentArtifact(factor_id={self.factor_id!r})"


def derive_state(factors: list[Factor], *, recovery_pending: bool = False) -> MfaState:
    """Derive the enrollment state from an account's factors.

    A verified factor wins over unverified leftovers. An outstanding recovery
    token only matters while a verified factor still exists.
    """
    if any(f.is_verified for f in factors):
        return MfaState.RECOVERY_PENDING if recovery_pending else MfaState.ENABLED
    if factors:
        return MfaState.PENDING_VERIFICATION
    return MfaState.NO_FACTOR


__all__: list[str] = [
    "utcnow",
    "as_utc",
    "FactorType",
    "FactorStatus",
    "AssuranceLevel",
    "MfaState",
    "AccountSession",
    "Factor",
    "FactorEnrollment",
    "Challenge",
    "SessionTokens",
    "RecoveryToken",
    "EnrollmentArtifact",
    "derive_state",
]

"""Result objects returned by every MFA operation.

Each operation returns one variant of a small tagged union instead of raising
for expected outcomes. The ``kind`` tag identifies the variant; ``success``
tells the UI whether to move on; :meth:`to_dict` gives the JSON shape
``{"success": bool, ...}`` used by HTTP handlers.

Usage::

    result = await service.request_enrollment(account)
    if isinstance(result, Enrolled):
        show_qr(result.artifact.qr_code)
    elif isinstance(result, AlreadyEnrolled):
        redirect_to_verify()
    else:
        flash(result.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Literal, Union

from .domain import AssuranceLevel, EnrollmentArtifact, MfaState, SessionTokens


class MfaErrorCode(str, Enum):
    """Machine-readable reason attached to a :class:`Failed` result."""

    INVALID_INPUT = "invalid_input"
    NOT_AUTHENTICATED = "not_authenticated"
    INVALID_CODE = "invalid_code"
    NO_FACTOR_FOUND = "no_factor_found"
    TOKEN_INVALID = "token_invalid"  # noqa: S105
    TOKEN_EXPIRED = "token_expired"  # noqa: S105
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"


@dataclass(frozen=True)
class Enrolled:
    """A fresh unverified factor was created."""

    artifact: EnrollmentArtifact
    kind: Literal["enrolled"] = "enrolled"
    success: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "kind": self.kind,
            "factor_id": self.artifact.factor_id,
            "uri": self.artifact.provisioning_uri,
            "secret": self.artifact.manual_key,
            "qr_code": self.artifact.qr_code,
        }


@dataclass(frozen=True)
class AlreadyEnrolled:
    """The account already has a verified factor; nothing was changed."""

    kind: Literal["already_enrolled"] = "already_enrolled"
    success: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "kind": self.kind, "already_enrolled": True}


@dataclass(frozen=True)
class Verified:
    """The code verified; the factor is enabled and the session elevated."""

    factor_id: str
    session: SessionTokens
    kind: Literal["verified"] = "verified"
    success: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "kind": self.kind,
            "factor_id": self.factor_id,
            "assurance_level": self.session.assurance_level.value,
        }


@dataclass(frozen=True)
class Unenrolled:
    """All factors of the account were removed."""

    removed: int
    kind: Literal["unenrolled"] = "unenrolled"
    success: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "kind": self.kind, "removed": self.removed}


@dataclass(frozen=True)
class RecoveryIssued:
    """A recovery link was emailed."""

    expires_at: datetime
    kind: Literal["recovery_issued"] = "recovery_issued"
    success: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "kind": self.kind,
            "sent": True,
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class MfaStatus:
    """Current MFA state of an account."""

    state: MfaState
    factor_count: int
    assurance_level: AssuranceLevel
    kind: Literal["status"] = "status"
    success: ClassVar[bool] = True

    @property
    def has_mfa(self) -> bool:
        return self.factor_count > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "kind": self.kind,
            "state": self.state.value,
            "has_mfa": self.has_mfa,
            "factor_count": self.factor_count,
            "assurance_level": self.assurance_level.value,
        }


@dataclass(frozen=True)
class Failed:
    """An expected failure, or a provider failure converted at the boundary.

    Attributes:
        error: Machine-readable reason.
        message: User-facing message. Never contains secrets.
        retryable: Whether retrying the same request may succeed.
        retry_after_seconds: Seconds to wait when rate limited.
    """

    error: MfaErrorCode
    message: str
    retryable: bool = False
    retry_after_seconds: int | None = None
    kind: Literal["failed"] = "failed"
    success: ClassVar[bool] = False

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.error.value, "message": self.message}
        if self.retryable:
            error["retryable"] = True
        if self.retry_after_seconds is not None:
            error["retry_after_seconds"] = self.retry_after_seconds
        return {"success": False, "kind": self.kind, "error": error}


EnrollmentResult = Union[Enrolled, AlreadyEnrolled, Failed]
VerificationResult = Union[Verified, Failed]
UnenrollResult = Union[Unenrolled, Failed]
RecoveryResult = Union[RecoveryIssued, Failed]
RedeemResult = Union[Enrolled, Failed]
StatusResult = Union[MfaStatus, Failed]

GENERIC_PROVIDER_MESSAGE = "Something went wrong. Please try again later."


def provider_failure(message: str = GENERIC_PROVIDER_MESSAGE) -> Failed:
    """Build the generic, retryable failure used for provider errors."""
    return Failed(MfaErrorCode.PROVIDER_ERROR, message, retryable=True)


__all__: list[str] = [
    "MfaErrorCode",
    "Enrolled",
    "AlreadyEnrolled",
    "Verified",
    "Unenrolled",
    "RecoveryIssued",
    "MfaStatus",
    "Failed",
    "EnrollmentResult",
    "VerificationResult",
    "UnenrollResult",
    "RecoveryResult",
    "RedeemResult",
    "StatusResult",
    "GENERIC_PROVIDER_MESSAGE",
    "provider_failure",
]

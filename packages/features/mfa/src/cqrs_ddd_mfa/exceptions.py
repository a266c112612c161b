"""MFA-related exceptions.

Expected outcomes of the enrollment and recovery flows (wrong code,
expired token, ...) are *not* raised to callers: the core converts them into
result objects (see :mod:`cqrs_ddd_mfa.results`). The exceptions below are
used at the collaborator boundary and for fatal conditions.
"""

from __future__ import annotations

# ═══════════════════════════════════════════════════════════════
# BASE MFA ERROR
# ═══════════════════════════════════════════════════════════════


class MfaError(Exception):
    """Root exception for the cqrs-ddd-mfa package."""


# ═══════════════════════════════════════════════════════════════
# INPUT ERRORS
# ═══════════════════════════════════════════════════════════════


class UserInputError(MfaError):
    """Raised when caller-supplied input is malformed.

    Carries structured errors: ``{field: [messages]}``.
    """

    def __init__(self, errors: dict[str, list[str]] | str | None = None) -> None:
        if isinstance(errors, str):
            self.errors: dict[str, list[str]] = {"__root__": [errors]}
        elif errors is None:
            self.errors = {}
        else:
            self.errors = errors
        super().__init__(str(self.errors))

    @property
    def first_message(self) -> str:
        """First error message, suitable for showing to a user."""
        for messages in self.errors.values():
            if messages:
                return messages[0]
        return "Invalid input"


# ═══════════════════════════════════════════════════════════════
# FACTOR STORE OUTCOMES
# ═══════════════════════════════════════════════════════════════


class MfaInvalidError(MfaError):
    """Raised by a factor store when a TOTP code does not verify."""


class ChallengeNotFoundError(MfaError):
    """Raised when a challenge is missing, already consumed or expired."""

    def __init__(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        super().__init__(f"Challenge {challenge_id!r} not found or expired")


class FactorNotFoundError(MfaError):
    """Raised when a factor id does not belong to any stored factor."""

    def __init__(self, factor_id: str) -> None:
        self.factor_id = factor_id
        super().__init__(f"Factor {factor_id!r} not found")


# ═══════════════════════════════════════════════════════════════
# FATAL ERRORS
# ═══════════════════════════════════════════════════════════════


class ConfigurationError(MfaError):
    """Raised when required settings are missing or invalid.

    Attributes:
        missing: Names of the offending settings (environment variables).
    """

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = missing or []
        if self.missing:
            message = f"{message}: {', '.join(self.missing)}"
        super().__init__(message)


class ProviderError(MfaError):
    """Raised when a collaborator (store, sender) fails.

    Attributes:
        operation: Collaborator operation that failed (e.g. "challenge").
        retryable: Whether the caller may retry the request as-is.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.retryable = retryable


class NotificationDeliveryError(ProviderError):
    """Raised when an email could not be delivered."""

    def __init__(self, recipient: str, reason: str) -> None:
        self.recipient = recipient
        self.reason = reason
        super().__init__(
            f"Failed to deliver email to {recipient}: {reason}",
            operation="send",
        )


__all__: list[str] = [
    "MfaError",
    "UserInputError",
    "MfaInvalidError",
    "ChallengeNotFoundError",
    "FactorNotFoundError",
    "ConfigurationError",
    "ProviderError",
    "NotificationDeliveryError",
]

"""CQRS-DDD MFA Package

Second factor: "Prove it is still you."

TOTP enrollment, verification and email-based recovery for accounts that
already passed password login. Every caller-facing operation returns a
tagged result object instead of raising for expected failures.

Usage:
    ```python
    from cqrs_ddd_mfa import AccountSession, Enrolled, MfaSettings, create_mfa_service

    service = create_mfa_service(MfaSettings.from_env(), session_gateway=gateway)

    account = AccountSession(account_id="user-123", email="user@example.com")
    result = await service.request_enrollment(account)
    if isinstance(result, Enrolled):
        show_qr(result.artifact.qr_code)

    result = await service.submit_verification(account, "123456")
    return result.to_dict()
    ```

Submodules:
    - `state_machine`: enroll / verify / unenroll transitions
    - `recovery`: single-use recovery tokens
    - `limiter`: client-side attempt throttling
    - `stores`: in-memory and SQLAlchemy collaborators
    - `notifications`: Jinja2 templates and SMTP delivery
"""

from __future__ import annotations

from .audit import InMemoryMfaAuditStore, MfaAuditEvent, MfaEventType
from .config import AttemptPolicy, MfaSettings, SmtpSettings
from .domain import (
    AccountSession,
    AssuranceLevel,
    Challenge,
    EnrollmentArtifact,
    Factor,
    FactorEnrollment,
    FactorStatus,
    FactorType,
    MfaState,
    RecoveryToken,
    SessionTokens,
)
from .exceptions import (
    ChallengeNotFoundError,
    ConfigurationError,
    FactorNotFoundError,
    MfaError,
    MfaInvalidError,
    NotificationDeliveryError,
    ProviderError,
    UserInputError,
)
from .factory import create_mfa_service, create_sqlalchemy_stores
from .limiter import (
    AttemptLimiter,
    AttemptOutcome,
    AttemptState,
    LimiterDecision,
    apply_outcome,
    check_block,
)
from .ports import (
    IAttemptStateStorage,
    IFactorStore,
    IMfaAuditStore,
    IRecoveryTokenStore,
    ISessionGateway,
)
from .recovery import RecoveryTokenManager
from .results import (
    AlreadyEnrolled,
    Enrolled,
    Failed,
    MfaErrorCode,
    MfaStatus,
    RecoveryIssued,
    Unenrolled,
    Verified,
)
from .service import MfaService
from .state_machine import MfaStateMachine

__all__: list[str] = [
    # Domain
    "AccountSession",
    "AssuranceLevel",
    "Challenge",
    "EnrollmentArtifact",
    "Factor",
    "FactorEnrollment",
    "FactorStatus",
    "FactorType",
    "MfaState",
    "RecoveryToken",
    "SessionTokens",
    # Results
    "AlreadyEnrolled",
    "Enrolled",
    "Failed",
    "MfaErrorCode",
    "MfaStatus",
    "RecoveryIssued",
    "Unenrolled",
    "Verified",
    # Core
    "MfaStateMachine",
    "RecoveryTokenManager",
    "MfaService",
    "AttemptLimiter",
    "AttemptOutcome",
    "AttemptState",
    "LimiterDecision",
    "apply_outcome",
    "check_block",
    # Ports
    "IAttemptStateStorage",
    "IFactorStore",
    "IMfaAuditStore",
    "IRecoveryTokenStore",
    "ISessionGateway",
    # Config
    "AttemptPolicy",
    "MfaSettings",
    "SmtpSettings",
    # Audit
    "InMemoryMfaAuditStore",
    "MfaAuditEvent",
    "MfaEventType",
    # Factory
    "create_mfa_service",
    "create_sqlalchemy_stores",
    # Exceptions
    "ChallengeNotFoundError",
    "ConfigurationError",
    "FactorNotFoundError",
    "MfaError",
    "MfaInvalidError",
    "NotificationDeliveryError",
    "ProviderError",
    "UserInputError",
]

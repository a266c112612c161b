"""Test configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cqrs_ddd_mfa import (
    AccountSession,
    AttemptLimiter,
    AttemptPolicy,
    InMemoryMfaAuditStore,
    MfaSettings,
    MfaStateMachine,
    RecoveryTokenManager,
)
from cqrs_ddd_mfa.notifications import (
    InMemorySender,
    JinjaTemplateRenderer,
    RecoveryMailer,
)
from cqrs_ddd_mfa.stores import (
    InMemoryAttemptStorage,
    InMemoryFactorStore,
    InMemoryRecoveryTokenStore,
    InMemorySessionGateway,
)
from cqrs_ddd_mfa.totp import TotpParameters, current_code, verify_code


class FrozenClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def code_for(store: InMemoryFactorStore, factor_id: str) -> str:
    """Currently valid TOTP code of a stored factor."""
    return current_code(store.secret_for(factor_id), store.params)


def wrong_code_for(store: InMemoryFactorStore, factor_id: str) -> str:
    """A well-formed code that does not verify right now."""
    secret = store.secret_for(factor_id)
    for candidate in range(1_000_000):
        code = f"{candidate:06d}"
        if not verify_code(secret, code, store.params):
            return code
    raise AssertionError("no invalid code found")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def account() -> AccountSession:
    return AccountSession(account_id="user-123", email="user@example.com")


@pytest.fixture
def settings() -> MfaSettings:
    return MfaSettings(
        app_url="https://app.example.com",
        app_name="Acme",
        support_email="support@acme.test",
        render_qr_code=False,
        limiter=AttemptPolicy(max_attempts=3, lockout_seconds=600),
    )


@pytest.fixture
def factor_store(clock: FrozenClock) -> InMemoryFactorStore:
    return InMemoryFactorStore(TotpParameters(issuer="Acme"), clock=clock)


@pytest.fixture
def recovery_store() -> InMemoryRecoveryTokenStore:
    return InMemoryRecoveryTokenStore()


@pytest.fixture
def session_gateway() -> InMemorySessionGateway:
    return InMemorySessionGateway()


@pytest.fixture
def audit_store() -> InMemoryMfaAuditStore:
    return InMemoryMfaAuditStore()


@pytest.fixture
def sender() -> InMemorySender:
    return InMemorySender()


@pytest.fixture
def state_machine(
    factor_store: InMemoryFactorStore,
    session_gateway: InMemorySessionGateway,
    audit_store: InMemoryMfaAuditStore,
) -> MfaStateMachine:
    return MfaStateMachine(
        factor_store=factor_store,
        session_gateway=session_gateway,
        audit_store=audit_store,
        render_qr_code=False,
    )


@pytest.fixture
def mailer(sender: InMemorySender, settings: MfaSettings) -> RecoveryMailer:
    return RecoveryMailer(
        sender=sender,
        renderer=JinjaTemplateRenderer(),
        app_name=settings.app_name,
        support_email=settings.support_email,
    )


@pytest.fixture
def recovery_manager(
    recovery_store: InMemoryRecoveryTokenStore,
    state_machine: MfaStateMachine,
    mailer: RecoveryMailer,
    settings: MfaSettings,
    audit_store: InMemoryMfaAuditStore,
    clock: FrozenClock,
) -> RecoveryTokenManager:
    return RecoveryTokenManager(
        token_store=recovery_store,
        state_machine=state_machine,
        mailer=mailer,
        link_builder=settings.recovery_link,
        ttl_seconds=settings.recovery_token_ttl_seconds,
        audit_store=audit_store,
        clock=clock,
    )


@pytest.fixture
def limiter(settings: MfaSettings, clock: FrozenClock) -> AttemptLimiter:
    return AttemptLimiter(InMemoryAttemptStorage(), settings.limiter, clock=clock)


@pytest.fixture
def valid_code(factor_store: InMemoryFactorStore):
    return lambda factor_id: code_for(factor_store, factor_id)


@pytest.fixture
def invalid_code(factor_store: InMemoryFactorStore):
    return lambda factor_id: wrong_code_for(factor_store, factor_id)

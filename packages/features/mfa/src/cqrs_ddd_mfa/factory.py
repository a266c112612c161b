"""Factory functions for MFA service setup.

Build the object graph once at process start and share the resulting
:class:`~cqrs_ddd_mfa.service.MfaService` between requests. Nothing here is a
module-level singleton.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from .domain import utcnow
from .exceptions import ConfigurationError
from .limiter import AttemptLimiter
from .notifications.jinja import JinjaTemplateRenderer
from .notifications.mailer import RecoveryMailer
from .notifications.smtp import SmtpEmailSender
from .recovery import RecoveryTokenManager
from .service import MfaService
from .state_machine import MfaStateMachine
from .stores.memory import InMemoryAttemptStorage
from .stores.sqlalchemy import (
    SQLAlchemyFactorStore,
    SQLAlchemyRecoveryTokenStore,
    create_engine_and_sessions,
)
from .totp import TotpParameters

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from .config import MfaSettings, SmtpSettings
    from .notifications.ports import IEmailSender, ITemplateRenderer
    from .ports import (
        IAttemptStateStorage,
        IFactorStore,
        IMfaAuditStore,
        IRecoveryTokenStore,
        ISessionGateway,
    )

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SqlStores:
    """Engine plus the two SQL-backed stores sharing it."""

    engine: AsyncEngine
    factor_store: SQLAlchemyFactorStore
    recovery_store: SQLAlchemyRecoveryTokenStore


def create_sqlalchemy_stores(
    database_url: str,
    *,
    totp_params: TotpParameters | None = None,
    challenge_ttl_seconds: int = 300,
    clock: Callable[[], datetime] = utcnow,
) -> SqlStores:
    """Create an async engine and both SQL stores on it.

    Tables are not created; call
    :func:`~cqrs_ddd_mfa.stores.sqlalchemy.create_schema` or run migrations.
    """
    engine, sessions = create_engine_and_sessions(database_url)
    return SqlStores(
        engine=engine,
        factor_store=SQLAlchemyFactorStore(
            sessions,
            totp_params,
            challenge_ttl_seconds=challenge_ttl_seconds,
            clock=clock,
        ),
        recovery_store=SQLAlchemyRecoveryTokenStore(sessions),
    )


def create_smtp_sender(smtp: SmtpSettings, app_name: str) -> SmtpEmailSender:
    return SmtpEmailSender(
        host=smtp.host,
        port=smtp.port,
        username=smtp.username,
        password=smtp.password,
        use_tls=smtp.use_tls,
        timeout=smtp.timeout,
        from_email=smtp.from_email,
        from_name=app_name,
    )


def create_mfa_service(
    settings: MfaSettings,
    *,
    session_gateway: ISessionGateway,
    factor_store: IFactorStore | None = None,
    recovery_store: IRecoveryTokenStore | None = None,
    attempt_storage: IAttemptStateStorage | None = None,
    sender: IEmailSender | None = None,
    renderer: ITemplateRenderer | None = None,
    audit_store: IMfaAuditStore | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> MfaService:
    """Wire a complete :class:`MfaService` from settings.

    Stores not passed explicitly are created on ``settings.database_url``;
    the engine is then owned by the service and disposed by ``aclose()``.
    The sender defaults to SMTP from ``settings.smtp``.

    Example:
        ```python
        settings = MfaSettings.from_env()
        service = create_mfa_service(settings, session_gateway=gateway)
        try:
            result = await service.request_enrollment(account)
        finally:
            await service.aclose()
        ```

    Raises:
        ConfigurationError: If a store or the email sender cannot be built.
    """
    closers: list[Callable[[], Awaitable[None]]] = []

    if factor_store is None or recovery_store is None:
        if not settings.database_url:
            raise ConfigurationError(
                "A database is required for the MFA stores", ["DATABASE_URL"]
            )
        sql = create_sqlalchemy_stores(
            settings.database_url,
            totp_params=TotpParameters(issuer=settings.totp_issuer),
            challenge_ttl_seconds=settings.challenge_ttl_seconds,
            clock=clock,
        )
        factor_store = factor_store or sql.factor_store
        recovery_store = recovery_store or sql.recovery_store
        closers.append(sql.engine.dispose)

    if sender is None:
        if settings.smtp is None:
            raise ConfigurationError(
                "Email delivery is required for MFA recovery",
                ["SMTP_HOST", "MFA_EMAIL_FROM"],
            )
        sender = create_smtp_sender(settings.smtp, settings.app_name)

    timeout = settings.operation_timeout_seconds
    state_machine = MfaStateMachine(
        factor_store=factor_store,
        session_gateway=session_gateway,
        audit_store=audit_store,
        render_qr_code=settings.render_qr_code,
        operation_timeout=timeout,
    )
    mailer = RecoveryMailer(
        sender=sender,
        renderer=renderer or JinjaTemplateRenderer(),
        app_name=settings.app_name,
        support_email=settings.support_email,
        logo_url=settings.logo_url,
        login_url=settings.login_url,
    )
    recovery = RecoveryTokenManager(
        token_store=recovery_store,
        state_machine=state_machine,
        mailer=mailer,
        link_builder=settings.recovery_link,
        ttl_seconds=settings.recovery_token_ttl_seconds,
        audit_store=audit_store,
        operation_timeout=timeout,
        clock=clock,
    )
    limiter = AttemptLimiter(
        attempt_storage or InMemoryAttemptStorage(),
        settings.limiter,
        clock=clock,
    )
    logger.debug("MFA service created for %s", settings.app_name)
    return MfaService(
        state_machine=state_machine,
        recovery=recovery,
        limiter=limiter,
        audit_store=audit_store,
        operation_timeout=timeout,
        closers=closers,
    )


__all__: list[str] = [
    "SqlStores",
    "create_sqlalchemy_stores",
    "create_smtp_sender",
    "create_mfa_service",
]

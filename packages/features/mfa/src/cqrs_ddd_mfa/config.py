"""Configuration for the MFA feature.

Settings are plain frozen dataclasses. Applications either construct them
directly or call :meth:`MfaSettings.from_env`, which reads the same
environment variables the web application uses and fails loudly with
:class:`~cqrs_ddd_mfa.exceptions.ConfigurationError` when something required
is missing.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlencode

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class AttemptPolicy:
    """Client-side verification throttling.

    Attributes:
        max_attempts: Consecutive failures that trigger a lockout.
        lockout_seconds: How long the lockout lasts.
    """

    max_attempts: int = 5
    lockout_seconds: int = 300  # 5 minutes

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.lockout_seconds < 1:
            raise ConfigurationError("lockout_seconds must be positive")


@dataclass(frozen=True)
class SmtpSettings:
    """SMTP connection settings for recovery emails.

    Attributes:
        host: SMTP server host.
        from_email: Sender address.
        port: SMTP port (465 implies implicit TLS).
        username: Login user (optional).
        password: Login password (optional).
        use_tls: Upgrade the connection with STARTTLS.
        timeout: Connect/command timeout in seconds.
    """

    host: str
    from_email: str
    port: int = 587
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    timeout: float = 10.0

    def __repr__(self) -> str:
        return (
            f"SmtpSettings(host={self.host!r}, port={self.port}, "
            f"from_email={self.from_email!r}, username={self.username!r})"
        )


@dataclass(frozen=True)
class MfaSettings:
    """Top-level MFA settings.

    Attributes:
        app_url: Public base URL of the web app; recovery links point here.
        app_name: Name shown in emails and authenticator apps.
        issuer: Issuer label in the otpauth URI (defaults to app_name).
        support_email: Contact address printed in recovery emails.
        recovery_token_ttl_seconds: Lifetime of a recovery link.
        recovery_path: Path of the recovery page under app_url.
        operation_timeout_seconds: Upper bound for one core operation.
        challenge_ttl_seconds: Lifetime of a challenge in the bundled stores.
        render_qr_code: Render a PNG data URL for enrollment artifacts.
        limiter: Client-side attempt throttling policy.
        smtp: SMTP settings; None disables email delivery.
        database_url: SQLAlchemy async URL for the bundled SQL stores.
        logo_url: Logo image used in emails.
        login_url: "Go to your dashboard" link used in emails.
    """

    app_url: str
    app_name: str = "Your App"
    issuer: str | None = None
    support_email: str = "support@example.com"
    recovery_token_ttl_seconds: int = 900  # 15 minutes
    recovery_path: str = "/mfa/recover"
    operation_timeout_seconds: float = 10.0
    challenge_ttl_seconds: int = 300
    render_qr_code: bool = True
    limiter: AttemptPolicy = field(default_factory=AttemptPolicy)
    smtp: SmtpSettings | None = None
    database_url: str | None = None
    logo_url: str | None = None
    login_url: str | None = None

    def __post_init__(self) -> None:
        if not self.app_url:
            raise ConfigurationError("Missing required setting", ["APP_URL"])
        if self.recovery_token_ttl_seconds <= 0:
            raise ConfigurationError("recovery_token_ttl_seconds must be positive")
        if self.operation_timeout_seconds <= 0:
            raise ConfigurationError("operation_timeout_seconds must be positive")

    @property
    def totp_issuer(self) -> str:
        return self.issuer or self.app_name

    def recovery_link(self, token: str) -> str:
        """Build the emailed recovery URL for *token*."""
        base = self.app_url.rstrip("/")
        path = "/" + self.recovery_path.lstrip("/")
        return f"{base}{path}?{urlencode({'token': token})}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> MfaSettings:
        """Load settings from environment variables.

        Raises:
            ConfigurationError: Listing every missing or invalid variable.
        """
        env = os.environ if environ is None else environ
        missing: list[str] = []
        invalid: list[str] = []

        def _int(name: str, default: int) -> int:
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                value = int(raw)
            except ValueError:
                invalid.append(name)
                return default
            if value <= 0:
                invalid.append(name)
                return default
            return value

        app_url = env.get("APP_URL", "")
        if not app_url:
            missing.append("APP_URL")

        smtp: SmtpSettings | None = None
        smtp_host = env.get("SMTP_HOST")
        if smtp_host:
            from_email = env.get("MFA_EMAIL_FROM", "")
            if not from_email:
                missing.append("MFA_EMAIL_FROM")
            port = _int("SMTP_PORT", 587)
            smtp = SmtpSettings(
                host=smtp_host,
                from_email=from_email,
                port=port,
                username=env.get("SMTP_USER") or None,
                password=env.get("SMTP_PASS") or None,
                use_tls=port != 465,
            )

        ttl = _int("MFA_RECOVERY_TTL_SECONDS", 900)
        max_attempts = _int("MFA_MAX_ATTEMPTS", 5)
        lockout = _int("MFA_LOCKOUT_SECONDS", 300)

        if missing:
            raise ConfigurationError("Missing required settings", missing)
        if invalid:
            raise ConfigurationError("Invalid numeric settings", invalid)

        return cls(
            app_url=app_url,
            app_name=env.get("APP_NAME") or "Your App",
            support_email=env.get("SUPPORT_EMAIL")
            or env.get("MFA_EMAIL_FROM")
            or "support@example.com",
            recovery_token_ttl_seconds=ttl,
            limiter=AttemptPolicy(max_attempts=max_attempts, lockout_seconds=lockout),
            smtp=smtp,
            database_url=env.get("DATABASE_URL") or None,
            logo_url=env.get("LOGO_IMAGE_URL") or None,
            login_url=env.get("LOGIN_LINK") or None,
        )


__all__: list[str] = ["AttemptPolicy", "SmtpSettings", "MfaSettings"]

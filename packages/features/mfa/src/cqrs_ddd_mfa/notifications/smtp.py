"""SMTP email implementation."""

from __future__ import annotations

import email.message
import email.policy
import email.utils
import logging

import aiosmtplib

from ..exceptions import ConfigurationError
from .delivery import DeliveryRecord, RenderedEmail
from .ports import IEmailSender

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


class SmtpEmailSender(IEmailSender):
    """
    Async SMTP email sender using aiosmtplib.

    Port 465 uses implicit TLS; any other port upgrades with STARTTLS when
    ``use_tls`` is set.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        from_email: str | None = None,
        from_name: str | None = None,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.from_email = from_email
        self.from_name = from_name

    def build_message(
        self, recipient: str, message: RenderedEmail
    ) -> email.message.EmailMessage:
        """MIME message with a text part and, if present, an HTML alternative."""
        if not self.from_email:
            raise ConfigurationError(
                "SMTP sender has no from address", ["MFA_EMAIL_FROM"]
            )
        mime = email.message.EmailMessage(policy=email.policy.default)
        mime["To"] = recipient
        mime["From"] = (
            email.utils.formataddr((self.from_name, self.from_email))
            if self.from_name
            else self.from_email
        )
        mime["Subject"] = message.subject
        mime["Message-ID"] = email.utils.make_msgid()
        mime.set_content(message.text, charset="utf-8")
        if message.html:
            mime.add_alternative(message.html, subtype="html", charset="utf-8")
        return mime

    async def send(self, recipient: str, message: RenderedEmail) -> DeliveryRecord:
        mime = self.build_message(recipient, message)
        implicit_tls = self.port == IMPLICIT_TLS_PORT
        try:
            async with aiosmtplib.SMTP(
                hostname=self.host,
                port=self.port,
                timeout=self.timeout,
                use_tls=implicit_tls,
                start_tls=self.use_tls and not implicit_tls,
            ) as smtp:
                if self.username and self.password:
                    await smtp.login(self.username, self.password)
                await smtp.send_message(mime)
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", recipient, e)
            return DeliveryRecord.failed(recipient, str(e))

        logger.info("Email sent to %s via SMTP", recipient)
        return DeliveryRecord.sent(recipient, message_id=mime["Message-ID"])


__all__: list[str] = ["SmtpEmailSender"]

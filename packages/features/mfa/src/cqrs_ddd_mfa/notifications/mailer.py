"""Recovery email composition and delivery."""

from __future__ import annotations

import logging
import math

from ..exceptions import NotificationDeliveryError
from .ports import EmailTemplate, IEmailSender, ITemplateRenderer
from .templates import RECOVERY_EMAIL

logger = logging.getLogger(__name__)


class RecoveryMailer:
    """Renders the recovery email and hands it to a sender.

    Example:
        ```python
        mailer = RecoveryMailer(
            sender=SmtpEmailSender("smtp.example.com", from_email="mfa@example.com"),
            renderer=JinjaTemplateRenderer(),
            app_name="Acme",
            support_email="support@acme.test",
        )
        await mailer.send_recovery("user@acme.test", link, ttl_seconds=900)
        ```
    """

    def __init__(
        self,
        *,
        sender: IEmailSender,
        renderer: ITemplateRenderer,
        app_name: str,
        support_email: str,
        logo_url: str | None = None,
        login_url: str | None = None,
        template: EmailTemplate = RECOVERY_EMAIL,
    ) -> None:
        self.sender = sender
        self.renderer = renderer
        self.app_name = app_name
        self.support_email = support_email
        self.logo_url = logo_url
        self.login_url = login_url
        self.template = template

    async def send_recovery(
        self,
        recipient: str,
        qr_code_or_link: str,
        *,
        ttl_seconds: int | None = None,
    ) -> None:
        """Send the recovery email.

        Args:
            recipient: Destination address.
            qr_code_or_link: Recovery URL, or a ``data:image/...`` QR code.
            ttl_seconds: Link lifetime mentioned in the email.

        Raises:
            NotificationDeliveryError: If the sender reports a failure.
        """
        context = {
            "qr_code_or_link": qr_code_or_link,
            "support_email": self.support_email,
            "app_name": self.app_name,
            "subject": self.template.subject,
            "logo_url": self.logo_url,
            "login_url": self.login_url,
            "expires_minutes": math.ceil(ttl_seconds / 60) if ttl_seconds else None,
        }
        message = await self.renderer.render(self.template, context)
        record = await self.sender.send(recipient, message)
        if not record.ok:
            raise NotificationDeliveryError(recipient, record.error or "unknown error")
        logger.info("Recovery email delivered to %s", recipient)


__all__: list[str] = ["RecoveryMailer"]

"""Email delivery for MFA recovery links."""

from .delivery import DeliveryRecord, DeliveryStatus, RenderedEmail
from .jinja import JinjaTemplateRenderer
from .mailer import RecoveryMailer
from .memory import InMemorySender, SentEmail
from .ports import EmailTemplate, IEmailSender, ITemplateRenderer
from .smtp import SmtpEmailSender
from .templates import RECOVERY_EMAIL, RECOVERY_SUBJECT

__all__ = [
    "DeliveryRecord",
    "DeliveryStatus",
    "RenderedEmail",
    "EmailTemplate",
    "IEmailSender",
    "ITemplateRenderer",
    "JinjaTemplateRenderer",
    "SmtpEmailSender",
    "InMemorySender",
    "SentEmail",
    "RecoveryMailer",
    "RECOVERY_EMAIL",
    "RECOVERY_SUBJECT",
]

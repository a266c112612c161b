"""Rendered emails and the outcome of handing one to a sender."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..domain import utcnow


class DeliveryStatus(Enum):
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class RenderedEmail:
    """An email ready to send.

    ``text`` is always present; ``html`` is the optional rich alternative.
    """

    subject: str
    text: str
    html: str | None = None


@dataclass(frozen=True)
class DeliveryRecord:
    """What a sender reports after trying to deliver one email."""

    recipient: str
    status: DeliveryStatus
    message_id: str | None = None
    error: str | None = None
    attempted_at: datetime = field(default_factory=utcnow)

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.SENT

    @classmethod
    def sent(cls, recipient: str, message_id: str | None = None) -> DeliveryRecord:
        return cls(recipient, DeliveryStatus.SENT, message_id=message_id)

    @classmethod
    def failed(cls, recipient: str, error: str) -> DeliveryRecord:
        return cls(recipient, DeliveryStatus.FAILED, error=error)


__all__: list[str] = ["DeliveryStatus", "RenderedEmail", "DeliveryRecord"]

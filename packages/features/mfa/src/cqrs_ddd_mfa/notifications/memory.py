"""Outbox sender for tests."""

from __future__ import annotations

from dataclasses import dataclass

from .delivery import DeliveryRecord, RenderedEmail
from .ports import IEmailSender


@dataclass(frozen=True)
class SentEmail:
    recipient: str
    message: RenderedEmail


class InMemorySender(IEmailSender):
    """Keeps every delivered email in ``outbox``.

    Set ``fail_with`` to an error string to make sends fail (nothing is
    added to the outbox then).
    """

    def __init__(self) -> None:
        self.outbox: list[SentEmail] = []
        self.fail_with: str | None = None

    async def send(self, recipient: str, message: RenderedEmail) -> DeliveryRecord:
        if self.fail_with is not None:
            return DeliveryRecord.failed(recipient, self.fail_with)
        self.outbox.append(SentEmail(recipient, message))
        return DeliveryRecord.sent(recipient, message_id=f"outbox-{len(self.outbox)}")

    def sent_to(self, recipient: str) -> list[RenderedEmail]:
        return [m.message for m in self.outbox if m.recipient == recipient]

    def assert_sent(self, recipient: str, count: int = 1) -> None:
        found = len(self.sent_to(recipient))
        if found != count:
            raise AssertionError(
                f"Expected {count} email(s) to {recipient}, found {found}."
            )

    @property
    def last(self) -> SentEmail:
        return self.outbox[-1]

    def clear(self) -> None:
        self.outbox.clear()


__all__: list[str] = ["SentEmail", "InMemorySender"]

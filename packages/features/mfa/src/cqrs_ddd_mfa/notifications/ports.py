"""Email sender and template renderer ports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .delivery import DeliveryRecord, RenderedEmail


@dataclass(frozen=True)
class EmailTemplate:
    """Source of one email.

    Attributes:
        template_id: Name used in errors and logs.
        subject: Subject line template.
        html: HTML body template (autoescaped when rendered).
        text: Plain-text body template. Without it the text part is
            the rendered HTML.
    """

    template_id: str
    subject: str
    html: str
    text: str | None = None


@runtime_checkable
class IEmailSender(Protocol):
    """Port for delivering a rendered email.

    Transport problems are reported through a failed
    :class:`DeliveryRecord`, not raised.
    """

    async def send(self, recipient: str, message: RenderedEmail) -> DeliveryRecord:
        """Deliver *message* to *recipient*.

        Raises:
            ConfigurationError: If the sender itself is misconfigured.
        """
        ...


@runtime_checkable
class ITemplateRenderer(Protocol):
    """Protocol for rendering email templates."""

    async def render(
        self,
        template: EmailTemplate,
        context: dict[str, Any],
    ) -> RenderedEmail:
        """Render template with context."""
        ...


__all__: list[str] = ["EmailTemplate", "IEmailSender", "ITemplateRenderer"]

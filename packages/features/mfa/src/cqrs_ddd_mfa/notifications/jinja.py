"""Jinja2 template renderer."""

from __future__ import annotations

import logging
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from ..exceptions import ConfigurationError
from .delivery import RenderedEmail
from .ports import EmailTemplate, ITemplateRenderer

logger = logging.getLogger(__name__)


class JinjaTemplateRenderer(ITemplateRenderer):
    """Renders email templates using the Jinja2 engine.

    HTML bodies are autoescaped; subjects and plain-text bodies are not.
    Missing context variables fail the render (``StrictUndefined``).
    """

    def __init__(self) -> None:
        self._html = Environment(autoescape=True, undefined=StrictUndefined)
        self._text = Environment(autoescape=False, undefined=StrictUndefined)

    async def render(
        self, template: EmailTemplate, context: dict[str, Any]
    ) -> RenderedEmail:
        """Render template using Jinja2.

        Raises:
            ConfigurationError: If the template is broken or the context
                lacks a variable it uses.
        """
        try:
            subject = self._text.from_string(template.subject).render(**context)
            html = self._html.from_string(template.html).render(**context)
            text = (
                self._text.from_string(template.text).render(**context)
                if template.text
                else html
            )
            return RenderedEmail(subject=subject.strip(), text=text, html=html)
        except TemplateError as e:
            logger.error("Jinja2 rendering of %s failed: %s", template.template_id, e)
            raise ConfigurationError(
                f"Template {template.template_id!r} could not be rendered: {e}"
            ) from e


__all__: list[str] = ["JinjaTemplateRenderer"]

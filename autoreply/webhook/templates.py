"""Rendering of rule reply templates using Jinja2.

Rule templates are written by account owners, so they are rendered in a
sandbox. Available variables: ``username``, ``keyword``, ``product_link``.
A template that fails to render is sent as written.
"""

from functools import lru_cache
from typing import Dict, Optional

from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from autoreply.domain.models import KeywordRule
from autoreply.logging import get_logger

logger = get_logger(__name__, component="webhook")


DEFAULT_CACHE_SIZE = 256


class ResponseComposer:
    """Builds the DM and fallback comment texts for a matched rule.

    Args:
        cache_size: Compiled templates kept, least recently used evicted first
    """

    def __init__(self, cache_size: int = DEFAULT_CACHE_SIZE):
        self.env = SandboxedEnvironment(autoescape=False, undefined=StrictUndefined)
        self._compile = lru_cache(maxsize=cache_size)(self.env.from_string)

    def compose_dm(self, rule: KeywordRule, username: Optional[str] = None) -> str:
        """Render the DM template, then append the product link on its own paragraph.

        The link is not appended again when the rendered text already contains it.
        """
        link = rule.response.effective_product_link
        message = self._render(rule.response.dm_message, self._context(rule, username))
        if link and link not in message:
            message = f"{message}\n\n{link}"
        return message

    def compose_fallback(self, rule: KeywordRule, username: Optional[str] = None) -> str:
        return self._render(rule.response.fallback_comment, self._context(rule, username))

    @staticmethod
    def _context(rule: KeywordRule, username: Optional[str]) -> Dict[str, str]:
        return {
            "username": username or "",
            "keyword": rule.keyword,
            "product_link": rule.response.effective_product_link or "",
        }

    def _render(self, source: str, context: Dict[str, str]) -> str:
        try:
            return self._compile(source).render(context)
        except TemplateError as e:
            logger.warning(
                f"Reply template failed to render, sending it as written: {e}",
                extra={"event": "webhook.template_failed", "error_type": type(e).__name__},
            )
            return source

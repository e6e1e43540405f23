"""Webhook pipeline exceptions."""

from typing import Optional

from autoreply.domain.models import KeywordRule


class WebhookError(Exception):
    """Base exception for webhook processing errors."""

    pass


class ResponderDeliveryError(WebhookError):
    """Raised when no reply channel could deliver a matched rule's response.

    Carries the matched rule so the terminal failure can be attributed to it
    once the queue gives up on the event.
    """

    def __init__(
        self,
        message: str,
        rule: Optional[KeywordRule] = None,
        error_code: Optional[str] = None,
    ):
        self.rule = rule
        self.error_code = error_code
        super().__init__(message)

    @property
    def rule_id(self) -> Optional[str]:
        return self.rule.rule_id if self.rule else None

"""Inbound webhook events and payload extraction.

Platform webhooks arrive as ``{"entry": [{"changes": [...]}]}`` where each
change carries a ``field`` (``comments`` or ``messages``) and a ``value``.
Test tooling may instead post a single flat event with a ``type`` key.
Both shapes are turned into InboundEvent objects here.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from autoreply.domain.models import ActivityType, EventType
from autoreply.logging import get_logger
from autoreply.utils.timestamps import coerce_event_time

logger = get_logger(__name__, component="webhook")


class InboundEvent(BaseModel):
    """One comment or direct message addressed to a post."""

    type: EventType
    post_id: str = Field(..., min_length=1, description="External post id from the payload")
    from_user_id: Optional[str] = None
    from_username: Optional[str] = None
    text: str = ""
    comment_id: Optional[str] = None
    message_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_validator("post_id", "from_user_id", "from_username", "comment_id", "message_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        if v is None:
            return None
        return str(v)

    @field_validator("text", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return "" if v is None else str(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v):
        return coerce_event_time(v)

    @property
    def activity_type(self) -> ActivityType:
        if self.type == EventType.COMMENT:
            return ActivityType.COMMENT_RECEIVED
        return ActivityType.MESSAGE_RECEIVED

    @property
    def is_comment(self) -> bool:
        return self.type == EventType.COMMENT

    def preview(self, length: int = 100) -> str:
        """Text shortened for log lines."""
        if len(self.text) <= length:
            return self.text
        return self.text[:length] + "..."


def extract_events(payload: Any) -> List[InboundEvent]:
    """Turn a webhook payload into InboundEvent objects.

    Accepts a platform payload (``entry[].changes[]``), a single flat event
    (``{"type": "comment", "post_id": ...}``) or a list of either. Changes
    with unknown fields or missing post ids are skipped and logged.

    Args:
        payload: Parsed JSON payload

    Returns:
        Events in payload order
    """
    if isinstance(payload, list):
        events: List[InboundEvent] = []
        for element in payload:
            events.extend(extract_events(element))
        return events

    if not isinstance(payload, dict):
        logger.warning(
            "Ignoring webhook payload that is not an object",
            extra={"event": "webhook.payload_invalid", "payload_type": type(payload).__name__},
        )
        return []

    if "entry" not in payload:
        event = _build_event(payload, source="flat")
        return [event] if event else []

    events = []
    for entry in payload.get("entry") or []:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            if not isinstance(change, dict) or not isinstance(change.get("value"), dict):
                continue
            field_name = change.get("field")
            if field_name == "comments":
                event = _build_event(_comment_fields(change["value"]), source="comments")
            elif field_name == "messages":
                event = _build_event(_message_fields(change["value"]), source="messages")
            else:
                logger.debug(
                    f"Skipping unsupported webhook field: {field_name}",
                    extra={"event": "webhook.change_skipped", "field": field_name},
                )
                continue
            if event:
                events.append(event)

    return events


def _comment_fields(value: Dict[str, Any]) -> Dict[str, Any]:
    sender = value.get("from") or {}
    return {
        "type": EventType.COMMENT,
        "post_id": (value.get("media") or {}).get("id"),
        "from_user_id": sender.get("id"),
        "from_username": sender.get("username"),
        "text": value.get("text"),
        "comment_id": value.get("id"),
        "timestamp": value.get("created_time"),
    }


def _message_fields(value: Dict[str, Any]) -> Dict[str, Any]:
    sender = value.get("from") or {}
    message = value.get("message") or {}
    return {
        "type": EventType.MESSAGE,
        "post_id": value.get("post_id"),
        "from_user_id": sender.get("id"),
        "from_username": sender.get("username"),
        "text": message.get("text"),
        "message_id": message.get("mid"),
        "timestamp": value.get("timestamp"),
    }


def _build_event(fields: Dict[str, Any], source: str) -> Optional[InboundEvent]:
    try:
        return InboundEvent.model_validate(fields)
    except ValidationError as e:
        logger.warning(
            f"Skipping malformed webhook event: {e.error_count()} validation error(s)",
            extra={
                "event": "webhook.event_invalid",
                "source": source,
                "errors": [" -> ".join(str(loc) for loc in err["loc"]) for err in e.errors()],
            },
        )
        return None

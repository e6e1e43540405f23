"""Webhook event handling: extraction, processing and reply delivery.

Public API:
    - extract_events(payload) -> List[InboundEvent]
    - WebhookDispatcher: enqueues events and records their terminal outcomes
    - WebhookEventProcessor: queue processor matching and replying to one event
    - ResponseComposer: renders rule reply templates
    - SimulatedResponder: stand-in delivery channel
    - Ports: RuleStore, Responder, ActivitySink, PostDirectory
"""

from .dispatcher import WebhookDispatcher
from .events import InboundEvent, extract_events
from .exceptions import ResponderDeliveryError, WebhookError
from .ports import ActivitySink, PostDirectory, Responder, RuleStore
from .processor import (
    IGNORED_REASON,
    KEYWORD_MATCHING_ERROR,
    PROCESSING_ERROR,
    ProcessingAction,
    ProcessingOutcome,
    WebhookEventProcessor,
    build_activity,
)
from .responder import SimulatedResponder
from .templates import ResponseComposer

__all__ = [
    "InboundEvent",
    "extract_events",
    "WebhookDispatcher",
    "WebhookEventProcessor",
    "ProcessingAction",
    "ProcessingOutcome",
    "build_activity",
    "ResponseComposer",
    "SimulatedResponder",
    "RuleStore",
    "Responder",
    "ActivitySink",
    "PostDirectory",
    "WebhookError",
    "ResponderDeliveryError",
    "IGNORED_REASON",
    "KEYWORD_MATCHING_ERROR",
    "PROCESSING_ERROR",
]

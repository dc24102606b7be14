"""
GA Tracker - Measurement Protocol client

Turns application events (page views, transactions, exceptions, timings,
social interactions) into hits against a measurement collection endpoint,
optionally batching them to cut request volume.

Usage:
    from ga_tracker import Tracker, TrackerConfig, RequestContext

    config = TrackerConfig(web_tracking_id="UA-1234567-8", batching=True)

    async with Tracker(config) as tracker:
        await tracker.track_page_view(
            cid,
            "example.com",
            "/",
            "home",
            request=RequestContext.from_request(request),
        )
"""

from .builder import EventBuilder
from .config import TrackerConfig
from .context import ClientContext, ClientContextResolver, RequestContext
from .errors import (
    ConfigurationError,
    DebugValidationError,
    NotEnabledError,
    NotInitializedError,
    TrackerError,
    TransportError,
    ValidationError,
)
from .events import CapturedError, Event, EventKind, Message, describe_exception
from .flusher import Flusher
from .queue import HitQueue
from .tracker import Tracker
from .transport import HttpxTransport, Transport, TransportResponse
from .validation import (
    validate_guid,
    validate_ip,
    validate_metrics,
    validate_props,
    validate_tracking_id,
)

__version__ = "0.1.0"

__all__ = [
    # Core classes
    "Tracker",
    "TrackerConfig",
    "EventBuilder",
    "HitQueue",
    "Flusher",
    # Request context
    "RequestContext",
    "ClientContext",
    "ClientContextResolver",
    # Events
    "Event",
    "EventKind",
    "Message",
    "CapturedError",
    "describe_exception",
    # Transport
    "Transport",
    "TransportResponse",
    "HttpxTransport",
    # Validators
    "validate_props",
    "validate_metrics",
    "validate_tracking_id",
    "validate_guid",
    "validate_ip",
    # Exceptions
    "TrackerError",
    "ConfigurationError",
    "NotInitializedError",
    "NotEnabledError",
    "ValidationError",
    "TransportError",
    "DebugValidationError",
]

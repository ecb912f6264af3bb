"""
Integration Framework

Shared machinery for vendor clients: configuration validation, single-flight
initialization, request dispatch with a fail-safe mock responder, webhook
verification and normalization, and the error taxonomy.
"""

from .client import IntegrationClient, compact, unwrap_list, unwrap_single
from .config import Environment, VendorConfig, validate_config
from .descriptor import ProbeRequest, VendorDescriptor, bearer_headers, extract_error_message
from .dispatcher import OperationRequest, RequestDispatcher
from .errors import (
    ConfigurationError,
    InitializationError,
    IntegrationError,
    OperationError,
    RequestError,
    WebhookError,
)
from .events import EventSink, IntegrationEvent, RecordingSink, log_event
from .lifecycle import ClientState, LifecycleController
from .mock import MockCall, MockResponder, MockRoute
from .models import AnalyticsReport, ConnectionInfo, HealthStatus, Timeframe
from .transport import HttpxTransport, Transport, TransportResponse
from .webhooks import (
    Base64HmacSha256,
    HexHmacSha256,
    TimestampedHmacSha256,
    WebhookEvent,
    WebhookFieldMap,
    WebhookProcessor,
)

__all__ = [
    "AnalyticsReport",
    "Base64HmacSha256",
    "ClientState",
    "ConfigurationError",
    "ConnectionInfo",
    "Environment",
    "EventSink",
    "HealthStatus",
    "HexHmacSha256",
    "HttpxTransport",
    "InitializationError",
    "IntegrationClient",
    "IntegrationError",
    "IntegrationEvent",
    "LifecycleController",
    "MockCall",
    "MockResponder",
    "MockRoute",
    "OperationError",
    "OperationRequest",
    "ProbeRequest",
    "RecordingSink",
    "RequestDispatcher",
    "RequestError",
    "Timeframe",
    "TimestampedHmacSha256",
    "Transport",
    "TransportResponse",
    "VendorConfig",
    "VendorDescriptor",
    "WebhookError",
    "WebhookEvent",
    "WebhookFieldMap",
    "WebhookProcessor",
    "bearer_headers",
    "compact",
    "extract_error_message",
    "log_event",
    "unwrap_list",
    "unwrap_single",
    "validate_config",
]

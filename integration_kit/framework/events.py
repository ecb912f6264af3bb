"""
Structured integration events.

Clients report lifecycle, dispatch and webhook activity through an injected
EventSink instead of writing to a global logger, so callers can route these
events into their own observability pipeline. The default sink forwards to
structlog.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from integration_kit.core.logging import get_logger

logger = get_logger(__name__)

_WARNING_EVENTS = {
    "client.initialization_failed",
    "request.failed",
    "webhook.rejected",
    "operation.failed",
}


@dataclass(frozen=True)
class IntegrationEvent:
    """A single structured event emitted by a client."""
    name: str
    vendor: str
    fields: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventSink = Callable[[IntegrationEvent], None]


def log_event(event: IntegrationEvent) -> None:
    """Default sink: forward the event to structlog under its dotted name."""
    log = logger.warning if event.name in _WARNING_EVENTS else logger.info
    log(event.name, vendor=event.vendor, **event.fields)


class RecordingSink:
    """Sink that keeps every event in memory; handy for assertions and debugging."""

    def __init__(self) -> None:
        self.events: List[IntegrationEvent] = []

    def __call__(self, event: IntegrationEvent) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [event.name for event in self.events]

    def of(self, name: str) -> List[IntegrationEvent]:
        return [event for event in self.events if event.name == name]

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class WebhookEventRead(ORMModel):
    vendor: str
    kind: str
    data: dict[str, Any]
    timestamp: str
    webhook_id: str | None = None
    object_id: str | None = None


class WebhookAck(BaseModel):
    received: bool = True
    event: WebhookEventRead


class ConnectionInfoRead(ORMModel):
    vendor: str
    environment: str
    base_url: str
    test_mode: bool
    has_webhook_secret: bool
    state: str
    ready: bool
    timeout_ms: int
    last_transition_at: datetime | None = None


class HealthStatusRead(ORMModel):
    vendor: str | None = None
    healthy: bool
    message: str
    checked_at: datetime

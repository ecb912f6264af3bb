"""
Webhook ingestion and integration status routes.

Routes are built around a fixed set of clients, keyed by vendor name, with
at most one client per vendor. The raw request body and the vendor's signature
header are forwarded unchanged to ``process_webhook_event``.
"""

from typing import Iterable

from fastapi import APIRouter, HTTPException, Request, status

from integration_kit.core.logging import get_logger
from integration_kit.framework import ConfigurationError, IntegrationClient, WebhookError

from .schemas import ConnectionInfoRead, HealthStatusRead, WebhookAck, WebhookEventRead

logger = get_logger(__name__)


def create_webhook_router(clients: Iterable[IntegrationClient]) -> APIRouter:
    registry: dict[str, IntegrationClient] = {}
    for client in clients:
        if client.vendor in registry:
            raise ValueError(f"Duplicate client for vendor: {client.vendor}")
        registry[client.vendor] = client
    router = APIRouter(tags=["integrations"])

    def get_client(vendor: str) -> IntegrationClient:
        client = registry.get(vendor.lower())
        if client is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown vendor: {vendor}")
        return client

    @router.post("/webhooks/{vendor}", response_model=WebhookAck)
    async def receive_webhook(vendor: str, request: Request) -> WebhookAck:
        client = get_client(vendor)
        body = await request.body()
        signature = request.headers.get(client.descriptor.signature_header)
        try:
            event = client.process_webhook_event(body, signature)
        except WebhookError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.error_message) from exc
        except ConfigurationError as exc:
            logger.error("webhook.misconfigured", vendor=client.vendor, missing_field=exc.missing_field)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.error_message) from exc
        return WebhookAck(event=WebhookEventRead.model_validate(event.to_dict()))

    @router.get("/integrations", response_model=list[ConnectionInfoRead])
    async def list_integrations() -> list[ConnectionInfoRead]:
        return [
            ConnectionInfoRead.model_validate(client.get_connection_info().to_dict())
            for client in registry.values()
        ]

    @router.get("/integrations/{vendor}/health", response_model=HealthStatusRead)
    async def integration_health(vendor: str) -> HealthStatusRead:
        result = await get_client(vendor).health_check()
        return HealthStatusRead.model_validate(result)

    return router

"""HTTP surface for inbound webhooks and integration health."""
from typing import Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from integration_kit.core.config import get_settings
from integration_kit.core.logging import configure_logging, get_logger
from integration_kit.framework import IntegrationClient

from .webhooks import create_webhook_router

logger = get_logger(__name__)


def create_application(clients: Iterable[IntegrationClient]) -> FastAPI:
    configure_logging()
    settings = get_settings()
    clients = list(clients)

    application = FastAPI(title=settings.app_name)
    application.include_router(create_webhook_router(clients))

    if settings.allowed_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.allowed_origins],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @application.on_event("startup")
    async def startup_event() -> None:  # pragma: no cover - side effect
        logger.info("application.startup", environment=settings.environment)

    @application.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - side effect
        for client in clients:
            await client.close()
        logger.info("application.shutdown")

    logger.info("application.created", vendors=[client.vendor for client in clients])
    return application

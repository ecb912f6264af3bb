"""HTTP surface for inbound webhooks and integration health."""

from .app import create_application

__all__ = ["create_application"]

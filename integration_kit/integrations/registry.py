"""
Client factory.

Maps a VendorType to its IntegrationClient subclass so callers can build
clients from configuration data without importing each vendor module.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Type

from integration_kit.framework import IntegrationClient, VendorConfig

from .accounting import QuickBooksClient, XeroClient
from .backend import SupabaseClient
from .crm import HubSpotClient
from .messaging import SlickTextClient
from .payments import StripeClient
from .pos import SquareClient


class VendorType(str, Enum):
    """Supported vendors."""
    STRIPE = "stripe"
    SQUARE = "square"
    HUBSPOT = "hubspot"
    QUICKBOOKS = "quickbooks"
    XERO = "xero"
    SLICKTEXT = "slicktext"
    SUPABASE = "supabase"


class IntegrationClientFactory:
    """Factory for creating integration client instances."""

    _clients: Dict[VendorType, Type[IntegrationClient]] = {}

    @classmethod
    def register_client(cls, vendor: VendorType, client_class: Type[IntegrationClient]) -> None:
        """Register a client implementation, replacing any previous one."""
        cls._clients[VendorType(vendor)] = client_class

    @classmethod
    def create_client(cls, vendor: VendorType, config: Any = None, **options: Any) -> IntegrationClient:
        """
        Create a client for a vendor.

        Args:
            vendor: VendorType or its string value
            config: A VendorConfig, or a mapping of options merged under the keyword options
            **options: Credentials and config options passed to the client

        Raises:
            ValueError: If no client is registered for the vendor
            ConfigurationError: If the configuration is invalid
        """
        try:
            vendor = VendorType(vendor)
        except ValueError:
            raise ValueError(f"Unsupported vendor: {vendor}") from None
        if vendor not in cls._clients:
            raise ValueError(f"Unsupported vendor: {vendor.value}")

        client_class = cls._clients[vendor]
        if isinstance(config, VendorConfig):
            return client_class(config, **options)
        if isinstance(config, Mapping):
            options = {**config, **options}
        return client_class(**options)

    @classmethod
    def create_from_env(cls, vendor: VendorType, **overrides: Any) -> IntegrationClient:
        """Create a client from the vendor's environment variables."""
        vendor = VendorType(vendor)
        if vendor not in cls._clients:
            raise ValueError(f"Unsupported vendor: {vendor.value}")
        return cls._clients[vendor].from_env(**overrides)

    @classmethod
    def get_supported_vendors(cls) -> List[VendorType]:
        return list(cls._clients.keys())


def _register_builtin_clients() -> None:
    IntegrationClientFactory.register_client(VendorType.STRIPE, StripeClient)
    IntegrationClientFactory.register_client(VendorType.SQUARE, SquareClient)
    IntegrationClientFactory.register_client(VendorType.HUBSPOT, HubSpotClient)
    IntegrationClientFactory.register_client(VendorType.QUICKBOOKS, QuickBooksClient)
    IntegrationClientFactory.register_client(VendorType.XERO, XeroClient)
    IntegrationClientFactory.register_client(VendorType.SLICKTEXT, SlickTextClient)
    IntegrationClientFactory.register_client(VendorType.SUPABASE, SupabaseClient)


_register_builtin_clients()

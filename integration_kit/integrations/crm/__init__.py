"""CRM clients."""

from .hubspot import (
    HUBSPOT,
    CreateCompanyRequest,
    CreateContactRequest,
    CreateDealRequest,
    HubSpotClient,
    HubSpotCompany,
    HubSpotContact,
    HubSpotDeal,
)

__all__ = [
    "HUBSPOT",
    "CreateCompanyRequest",
    "CreateContactRequest",
    "CreateDealRequest",
    "HubSpotClient",
    "HubSpotCompany",
    "HubSpotContact",
    "HubSpotDeal",
]

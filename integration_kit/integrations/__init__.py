"""
Vendor clients.

- Payments (Stripe)
- Point of sale (Square)
- CRM (HubSpot)
- Accounting (QuickBooks, Xero)
- SMS messaging (SlickText)
- Backend-as-a-service (Supabase)
"""

from .registry import IntegrationClientFactory, VendorType

__all__ = ["IntegrationClientFactory", "VendorType"]

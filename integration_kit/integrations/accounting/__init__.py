"""
Accounting Integration Package

Clients for QuickBooks Online and Xero sharing one set of customer, invoice
and line-item types.
"""

from .base import (
    AccountingCustomer,
    AccountingInvoice,
    CustomerDetails,
    InvoiceRequest,
    InvoiceStatus,
    LineItem,
    summarize_invoices,
)
from .quickbooks import QUICKBOOKS, QuickBooksClient
from .xero import XERO, XeroClient

__all__ = [
    "AccountingCustomer",
    "AccountingInvoice",
    "CustomerDetails",
    "InvoiceRequest",
    "InvoiceStatus",
    "LineItem",
    "summarize_invoices",
    "QUICKBOOKS",
    "QuickBooksClient",
    "XERO",
    "XeroClient",
]

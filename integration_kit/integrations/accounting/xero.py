"""
Xero Accounting Client

Contacts and invoices against the Xero accounting API. Xero wraps every
request and response in a plural collection (``{"Contacts": [...]}``), even
when a single record is created; the client sends one-element collections
and returns the first record back.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from integration_kit.framework import (
    AnalyticsReport,
    Environment,
    IntegrationClient,
    MockRoute,
    ProbeRequest,
    Timeframe,
    VendorDescriptor,
    compact,
    unwrap_list,
    unwrap_single,
)

from .base import (
    AccountingCustomer,
    AccountingInvoice,
    CustomerDetails,
    InvoiceRequest,
    InvoiceStatus,
    summarize_invoices,
    to_decimal,
)

XERO_API_URL = "https://api.xero.com"
API_ROOT = "/api.xro/2.0"
PAGE_SIZE = 100

_STATUS_MAP = {
    "DRAFT": InvoiceStatus.DRAFT,
    "SUBMITTED": InvoiceStatus.SUBMITTED,
    "AUTHORISED": InvoiceStatus.AUTHORISED,
    "PAID": InvoiceStatus.PAID,
    "VOIDED": InvoiceStatus.VOID,
    "DELETED": InvoiceStatus.VOID,
}


def _collection_route(fragment: str, collection: str, id_field: str, prefix: str, **kwargs: Any) -> MockRoute:
    return MockRoute(
        fragment=fragment,
        id_prefix=prefix,
        list_envelope=(collection,),
        item_envelope=(collection,),
        item_as_list=True,
        unwrap_payload=(collection, 0),
        id_field=id_field,
        created_field=None,
        updated_field="UpdatedDateUTC",
        **kwargs,
    )


MOCK_ROUTES = (
    _collection_route(
        "/Organisation",
        "Organisations",
        "OrganisationID",
        "org",
        sample={"Name": "Demo Company", "BaseCurrency": "USD", "OrganisationStatus": "ACTIVE"},
    ),
    _collection_route(
        "/Contacts",
        "Contacts",
        "ContactID",
        "contact",
        sample={
            "Name": "Example Contact",
            "EmailAddress": "contact@example.com",
            "ContactStatus": "ACTIVE",
            "IsCustomer": True,
            "IsSupplier": False,
            "DefaultCurrency": "USD",
        },
        defaults={"ContactStatus": "ACTIVE"},
    ),
    _collection_route(
        "/Invoices",
        "Invoices",
        "InvoiceID",
        "invoice",
        sample={
            "Type": "ACCREC",
            "InvoiceNumber": "INV-0001",
            "Contact": {"ContactID": "contact_1", "Name": "Example Contact"},
            "LineItems": [{"Description": "Consulting", "Quantity": 1.0, "UnitAmount": 100.0}],
            "Total": 100.0,
            "AmountDue": 100.0,
            "AmountPaid": 0.0,
            "Status": "AUTHORISED",
            "CurrencyCode": "USD",
        },
        defaults={"Status": "DRAFT"},
    ),
)

XERO = VendorDescriptor(
    name="xero",
    display_name="Xero",
    required_fields=("client_id", "access_token", "tenant_id"),
    optional_fields=("client_secret", "refresh_token"),
    base_urls={Environment.SANDBOX: XERO_API_URL, Environment.PRODUCTION: XERO_API_URL},
    build_headers=lambda config: {
        "Authorization": f"Bearer {config.credential('access_token')}",
        "Xero-tenant-id": config.credential("tenant_id"),
    },
    health_probe=lambda config: ProbeRequest(f"{API_ROOT}/Organisation"),
    mock_routes=MOCK_ROUTES,
)


def _to_contact(body: Mapping[str, Any]) -> AccountingCustomer:
    return AccountingCustomer(
        id=str(body.get("ContactID", "")),
        name=body.get("Name", ""),
        email=body.get("EmailAddress"),
        phone=next(
            (phone.get("PhoneNumber") for phone in body.get("Phones") or [] if phone.get("PhoneNumber")),
            None,
        ),
        company_name=body.get("CompanyName") or body.get("Name"),
        balance=to_decimal((body.get("Balances") or {}).get("AccountsReceivable", {}).get("Outstanding")),
        currency=body.get("DefaultCurrency"),
        created_at=body.get("UpdatedDateUTC"),
        updated_at=body.get("UpdatedDateUTC"),
        raw=dict(body),
    )


def _to_invoice(body: Mapping[str, Any]) -> AccountingInvoice:
    lines = list(body.get("LineItems") or [])
    if body.get("Total") is not None:
        total = to_decimal(body.get("Total"))
    else:
        total = sum(
            (to_decimal(line.get("Quantity", 1)) * to_decimal(line.get("UnitAmount")) for line in lines),
            Decimal("0"),
        )
    amount_due = to_decimal(body["AmountDue"]) if body.get("AmountDue") is not None else total
    contact = body.get("Contact") or {}
    return AccountingInvoice(
        id=str(body.get("InvoiceID", "")),
        customer_id=contact.get("ContactID"),
        total_amount=total,
        balance=amount_due,
        status=_STATUS_MAP.get(str(body.get("Status", "DRAFT")).upper(), InvoiceStatus.DRAFT),
        number=body.get("InvoiceNumber"),
        invoice_date=body.get("Date") or body.get("DateString"),
        due_date=body.get("DueDate") or body.get("DueDateString"),
        currency=body.get("CurrencyCode"),
        line_items=lines,
        created_at=body.get("UpdatedDateUTC"),
        updated_at=body.get("UpdatedDateUTC"),
        raw=dict(body),
    )


class XeroClient(IntegrationClient):
    """Xero accounting client."""

    descriptor = XERO

    async def create_contact(self, contact: CustomerDetails) -> AccountingCustomer:
        """
        Create a contact.

        Args:
            contact: Contact details; ``is_customer``/``is_supplier`` set the contact's roles

        Returns:
            The first contact of the returned collection

        Raises:
            OperationError: If validation, initialization or the request fails
        """
        async with self._operation("create_contact"):
            if not contact.name or not contact.name.strip():
                raise ValueError("contact name is required")
            record = compact({
                "Name": contact.name,
                "FirstName": contact.first_name,
                "LastName": contact.last_name,
                "EmailAddress": contact.email,
                "CompanyName": contact.company_name,
                "Phones": [{"PhoneType": "DEFAULT", "PhoneNumber": contact.phone}] if contact.phone else None,
                "IsCustomer": contact.is_customer,
                "IsSupplier": contact.is_supplier,
            })
            body = await self._dispatch(f"{API_ROOT}/Contacts", "POST", {"Contacts": [record]})
            return _to_contact(unwrap_single(body, "Contacts"))

    async def create_customer(self, customer: CustomerDetails) -> AccountingCustomer:
        """Create a contact flagged as a customer."""
        async with self._operation("create_customer"):
            return await self.create_contact(replace(customer, is_customer=True))

    async def create_invoice(self, request: InvoiceRequest, invoice_type: str = "ACCREC") -> AccountingInvoice:
        async with self._operation("create_invoice"):
            if not request.line_items:
                raise ValueError("an invoice needs at least one line item")
            if invoice_type not in ("ACCREC", "ACCPAY"):
                raise ValueError(f"invoice_type must be ACCREC or ACCPAY, got {invoice_type!r}")
            record = compact({
                "Type": invoice_type,
                "Contact": {"ContactID": request.customer_id},
                "LineItems": [
                    compact({
                        "Description": item.description,
                        "Quantity": float(item.quantity),
                        "UnitAmount": float(item.unit_price),
                        "AccountCode": item.account_code,
                        "TaxType": item.tax_type,
                    })
                    for item in request.line_items
                ],
                "Date": request.invoice_date.isoformat() if request.invoice_date else None,
                "DueDate": request.due_date.isoformat() if request.due_date else None,
                "CurrencyCode": request.currency,
                "Reference": request.reference,
            })
            body = await self._dispatch(f"{API_ROOT}/Invoices", "POST", {"Invoices": [record]})
            return _to_invoice(unwrap_single(body, "Invoices"))

    async def get_contacts(self, limit: int = 100) -> List[AccountingCustomer]:
        async with self._operation("get_contacts"):
            page = max(1, -(-limit // PAGE_SIZE))
            body = await self._dispatch(f"{API_ROOT}/Contacts", params={"page": page})
            return [_to_contact(record) for record in unwrap_list(body, "Contacts")][:limit]

    async def get_invoices(self, limit: int = 100, where: Optional[str] = None) -> List[AccountingInvoice]:
        async with self._operation("get_invoices"):
            page = max(1, -(-limit // PAGE_SIZE))
            params: Dict[str, Any] = compact({"page": page, "where": where})
            body = await self._dispatch(f"{API_ROOT}/Invoices", params=params)
            return [_to_invoice(record) for record in unwrap_list(body, "Invoices")][:limit]

    async def get_analytics(self, timeframe: Optional[Timeframe] = None) -> AnalyticsReport:
        """Revenue and invoice metrics for a timeframe (last 30 days by default)."""
        async with self._operation("get_analytics"):
            timeframe = timeframe or Timeframe.last_days(30)
            start, end = timeframe.start.date(), timeframe.end.date()
            where = (
                f"Date >= DateTime({start.year},{start.month:02d},{start.day:02d}) && "
                f"Date <= DateTime({end.year},{end.month:02d},{end.day:02d})"
            )
            invoices = await self.get_invoices(limit=1000, where=where)
            contacts = await self.get_contacts(limit=1000)
            return summarize_invoices(timeframe, invoices, contacts)

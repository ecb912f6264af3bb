"""
QuickBooks Online Client

Customers and invoices against the QuickBooks Online v3 accounting API.
Writes use PascalCase entity fields and come back wrapped in a singular
envelope (``{"Customer": {...}}``); reads go through the query endpoint and
come back under ``QueryResponse.<Entity>``.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from integration_kit.framework import (
    AnalyticsReport,
    Environment,
    IntegrationClient,
    MockCall,
    MockResponder,
    MockRoute,
    ProbeRequest,
    Timeframe,
    VendorDescriptor,
    bearer_headers,
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
    parse_date,
    summarize_invoices,
    to_decimal,
)

_ENTITY_PATTERN = re.compile(r"\bfrom\s+(\w+)", re.IGNORECASE)

_QUERY_SAMPLES: Dict[str, Dict[str, Any]] = {
    "Customer": {
        "DisplayName": "Example Customer",
        "CompanyName": "Example Corp",
        "PrimaryEmailAddr": {"Address": "customer@example.com"},
        "PrimaryPhone": {"FreeFormNumber": "+1234567890"},
        "Balance": 0,
        "CurrencyRef": {"value": "USD"},
        "Active": True,
    },
    "Invoice": {
        "DocNumber": "INV-001",
        "CustomerRef": {"value": "1"},
        "Line": [{"Description": "Example Service", "Amount": 100.0, "DetailType": "SalesItemLineDetail"}],
        "TotalAmt": 100.0,
        "Balance": 100.0,
        "CurrencyRef": {"value": "USD"},
    },
}


def _mock_query(call: MockCall, responder: MockResponder) -> Dict[str, Any]:
    query = (call.params or {}).get("query", "")
    match = _ENTITY_PATTERN.search(query)
    entity = match.group(1).capitalize() if match else "Customer"
    today = responder.now().date()
    record = dict(_QUERY_SAMPLES.get(entity, {}))
    record["Id"] = responder.generate_id(entity.lower())
    record["MetaData"] = {"CreateTime": responder.timestamp(), "LastUpdatedTime": responder.timestamp()}
    if entity == "Invoice":
        record["TxnDate"] = today.isoformat()
        record["DueDate"] = today.isoformat()
    return {
        "QueryResponse": {entity: [record], "startPosition": 1, "maxResults": 1},
        "time": responder.timestamp(),
    }


def _entity_route(fragment: str, entity: str, prefix: str, **kwargs: Any) -> MockRoute:
    return MockRoute(
        fragment=fragment,
        id_prefix=prefix,
        item_envelope=(entity,),
        id_field="Id",
        created_field="MetaData.CreateTime",
        updated_field="MetaData.LastUpdatedTime",
        **kwargs,
    )


MOCK_ROUTES = (
    MockRoute(fragment="/query", id_prefix="query", handler=_mock_query),
    _entity_route(
        "/companyinfo",
        "CompanyInfo",
        "company",
        sample={"CompanyName": "Sandbox Company", "Country": "US"},
        read_single=True,
    ),
    _entity_route("/customer", "Customer", "customer", defaults={"Active": True, "Balance": 0}),
    _entity_route("/invoice", "Invoice", "invoice"),
)


def _company_path(config: Any) -> str:
    return f"/v3/company/{config.credential('company_id')}"


QUICKBOOKS = VendorDescriptor(
    name="quickbooks",
    display_name="QuickBooks",
    required_fields=("client_id", "access_token", "company_id"),
    optional_fields=("client_secret", "refresh_token"),
    base_urls={
        Environment.SANDBOX: "https://sandbox-quickbooks.api.intuit.com",
        Environment.PRODUCTION: "https://quickbooks.api.intuit.com",
    },
    build_headers=bearer_headers("access_token"),
    health_probe=lambda config: ProbeRequest(
        f"{_company_path(config)}/companyinfo/{config.credential('company_id')}"
    ),
    mock_routes=MOCK_ROUTES,
    env_prefix="QUICKBOOKS_",
)


def _ref(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        return value.get("value")
    return value


def _to_customer(body: Mapping[str, Any]) -> AccountingCustomer:
    meta = body.get("MetaData") or {}
    return AccountingCustomer(
        id=str(body.get("Id", "")),
        name=body.get("DisplayName") or body.get("Name") or "",
        email=(body.get("PrimaryEmailAddr") or {}).get("Address"),
        phone=(body.get("PrimaryPhone") or {}).get("FreeFormNumber"),
        company_name=body.get("CompanyName"),
        balance=to_decimal(body.get("Balance")),
        currency=_ref(body.get("CurrencyRef")),
        created_at=meta.get("CreateTime"),
        updated_at=meta.get("LastUpdatedTime"),
        raw=dict(body),
    )


def _to_invoice(body: Mapping[str, Any]) -> AccountingInvoice:
    meta = body.get("MetaData") or {}
    lines = list(body.get("Line") or [])
    if body.get("TotalAmt") is not None:
        total = to_decimal(body.get("TotalAmt"))
    else:
        total = sum((to_decimal(line.get("Amount")) for line in lines), Decimal("0"))
    balance = to_decimal(body["Balance"]) if body.get("Balance") is not None else total

    due = parse_date(body.get("DueDate"))
    if total > 0 and balance <= 0:
        status = InvoiceStatus.PAID
    elif balance > 0 and due is not None and due < date.today():
        status = InvoiceStatus.OVERDUE
    else:
        status = InvoiceStatus.SUBMITTED

    return AccountingInvoice(
        id=str(body.get("Id", "")),
        customer_id=_ref(body.get("CustomerRef")),
        total_amount=total,
        balance=balance,
        status=status,
        number=body.get("DocNumber"),
        invoice_date=body.get("TxnDate"),
        due_date=body.get("DueDate"),
        currency=_ref(body.get("CurrencyRef")),
        line_items=lines,
        created_at=meta.get("CreateTime"),
        updated_at=meta.get("LastUpdatedTime"),
        raw=dict(body),
    )


class QuickBooksClient(IntegrationClient):
    """QuickBooks Online accounting client."""

    descriptor = QUICKBOOKS

    @property
    def company_path(self) -> str:
        return _company_path(self.config)

    async def _query(self, entity: str, limit: int) -> List[Dict[str, Any]]:
        query = f"select * from {entity} maxresults {int(limit)}"
        body = await self._dispatch(f"{self.company_path}/query", params={"query": query})
        return unwrap_list(body, "QueryResponse", entity)

    async def create_customer(self, customer: CustomerDetails) -> AccountingCustomer:
        """
        Create a customer.

        Args:
            customer: Customer details; ``name`` becomes the DisplayName

        Returns:
            The created AccountingCustomer

        Raises:
            OperationError: If validation, initialization or the request fails
        """
        async with self._operation("create_customer"):
            if not customer.name or not customer.name.strip():
                raise ValueError("customer name is required")
            payload = compact({
                "DisplayName": customer.name,
                "GivenName": customer.first_name,
                "FamilyName": customer.last_name,
                "CompanyName": customer.company_name,
                "PrimaryEmailAddr": {"Address": customer.email} if customer.email else None,
                "PrimaryPhone": {"FreeFormNumber": customer.phone} if customer.phone else None,
            })
            body = await self._dispatch(f"{self.company_path}/customer", "POST", payload)
            return _to_customer(unwrap_single(body, "Customer"))

    async def create_invoice(self, request: InvoiceRequest) -> AccountingInvoice:
        async with self._operation("create_invoice"):
            if not request.line_items:
                raise ValueError("an invoice needs at least one line item")
            lines = [
                compact({
                    "LineNum": index,
                    "Description": item.description,
                    "Amount": float(item.line_total),
                    "DetailType": "SalesItemLineDetail",
                    "SalesItemLineDetail": {"Qty": float(item.quantity), "UnitPrice": float(item.unit_price)},
                })
                for index, item in enumerate(request.line_items, start=1)
            ]
            payload = compact({
                "CustomerRef": {"value": request.customer_id},
                "Line": lines,
                "TxnDate": request.invoice_date.isoformat() if request.invoice_date else None,
                "DueDate": request.due_date.isoformat() if request.due_date else None,
                "CurrencyRef": {"value": request.currency} if request.currency else None,
                "PrivateNote": request.reference,
            })
            body = await self._dispatch(f"{self.company_path}/invoice", "POST", payload)
            return _to_invoice(unwrap_single(body, "Invoice"))

    async def get_customers(self, limit: int = 100) -> List[AccountingCustomer]:
        async with self._operation("get_customers"):
            return [_to_customer(record) for record in await self._query("Customer", limit)]

    async def get_invoices(self, limit: int = 100) -> List[AccountingInvoice]:
        async with self._operation("get_invoices"):
            return [_to_invoice(record) for record in await self._query("Invoice", limit)]

    async def get_analytics(self, timeframe: Optional[Timeframe] = None) -> AnalyticsReport:
        """Revenue and invoice metrics for a timeframe (last 30 days by default)."""
        async with self._operation("get_analytics"):
            timeframe = timeframe or Timeframe.last_days(30)
            invoices = await self.get_invoices(limit=1000)
            customers = await self.get_customers(limit=1000)
            return summarize_invoices(timeframe, invoices, customers)

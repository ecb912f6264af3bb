"""
Accounting Client Shared Types

Request and result types used by both accounting clients, and the invoice
summary both compute their analytics from.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from integration_kit.framework import AnalyticsReport, Timeframe


class InvoiceStatus(str, Enum):
    """Invoice status normalized across accounting systems."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    AUTHORISED = "authorised"
    PAID = "paid"
    OVERDUE = "overdue"
    VOID = "void"


@dataclass
class CustomerDetails:
    """Customer information for an accounting system."""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_customer: bool = True
    is_supplier: bool = False


@dataclass
class LineItem:
    """Invoice line item."""
    description: str
    unit_price: Decimal
    quantity: Decimal = Decimal("1")
    account_code: Optional[str] = None
    tax_type: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass
class InvoiceRequest:
    """Request for creating an invoice."""
    customer_id: str
    line_items: List[LineItem]
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[str] = None
    reference: Optional[str] = None

    def __post_init__(self):
        if self.invoice_date is None:
            self.invoice_date = date.today()

    @property
    def total_amount(self) -> Decimal:
        return sum((item.line_total for item in self.line_items), Decimal("0"))


@dataclass
class AccountingCustomer:
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    balance: Optional[Decimal] = None
    currency: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class AccountingInvoice:
    id: str
    customer_id: Optional[str]
    total_amount: Decimal
    balance: Decimal
    status: InvoiceStatus
    number: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    currency: Optional[str] = None
    line_items: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def is_overdue(self, today: Optional[date] = None) -> bool:
        if self.status is InvoiceStatus.OVERDUE:
            return True
        if self.balance <= 0 or not self.due_date:
            return False
        due = parse_date(self.due_date)
        return due is not None and due < (today or date.today())


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def parse_date(value: Any) -> Optional[date]:
    """Parse ISO dates, ISO datetimes and Xero's ``/Date(ms)/`` form."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.startswith("/Date(") and text.endswith(")/"):
        millis = int(text[6:-2].split("+")[0].split("-")[0])
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).date()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def in_timeframe(value: Any, timeframe: Timeframe) -> bool:
    parsed = parse_date(value)
    if parsed is None:
        return False
    return timeframe.start.date() <= parsed <= timeframe.end.date()


def summarize_invoices(
    timeframe: Timeframe,
    invoices: Iterable[AccountingInvoice],
    customers: Iterable[AccountingCustomer],
) -> AnalyticsReport:
    """
    Build an analytics report from invoices and customers.

    Invoices dated outside the timeframe are ignored (undated ones are taken
    to belong to it, as returned by a date-filtered query); ``new_customers`` counts
    customers created inside it.
    """
    invoices = [
        invoice for invoice in invoices
        if invoice.invoice_date is None or in_timeframe(invoice.invoice_date, timeframe)
    ]
    customers = list(customers)

    revenue = sum((invoice.total_amount for invoice in invoices), Decimal("0"))
    paid = [invoice for invoice in invoices if invoice.status is InvoiceStatus.PAID or invoice.balance <= 0]
    overdue = [invoice for invoice in invoices if invoice.is_overdue()]

    by_customer: Dict[str, Decimal] = {}
    for invoice in invoices:
        key = invoice.customer_id or "unknown"
        by_customer[key] = by_customer.get(key, Decimal("0")) + invoice.total_amount

    return AnalyticsReport(
        timeframe=timeframe,
        metrics={
            "total_revenue": float(revenue),
            "total_invoices": len(invoices),
            "paid_invoices": len(paid),
            "overdue_invoices": len(overdue),
            "average_invoice_amount": float(revenue / len(invoices)) if invoices else 0.0,
            "total_customers": len(customers),
            "new_customers": sum(1 for customer in customers if in_timeframe(customer.created_at, timeframe)),
        },
        breakdowns={
            "top_customers": [
                {"customer_id": customer_id, "revenue": float(amount)}
                for customer_id, amount in sorted(by_customer.items(), key=lambda item: item[1], reverse=True)[:10]
            ],
        },
    )

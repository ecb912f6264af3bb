"""
Square POS Client

Payments, customers, orders and locations against the Square Connect v2 API.
Webhooks are signed with a base64 HMAC-SHA256 over the notification URL
followed by the body, and a signature key is mandatory.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from integration_kit.framework import (
    AnalyticsReport,
    Base64HmacSha256,
    Environment,
    IntegrationClient,
    MockRoute,
    ProbeRequest,
    Timeframe,
    VendorDescriptor,
    WebhookFieldMap,
    compact,
    unwrap_list,
    unwrap_single,
)

SQUARE_VERSION = "2023-10-18"


@dataclass
class Money:
    amount: int
    currency: str = "USD"

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": self.amount, "currency": self.currency}

    @classmethod
    def from_dict(cls, value: Any, default_currency: str = "USD") -> "Money":
        if not isinstance(value, Mapping):
            return cls(amount=0, currency=default_currency)
        return cls(amount=value.get("amount", 0), currency=value.get("currency", default_currency))


@dataclass
class CreatePaymentRequest:
    amount: int
    currency: str
    source_id: str
    location_id: str
    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    note: Optional[str] = None
    reference_id: Optional[str] = None
    autocomplete: Optional[bool] = None
    buyer_email_address: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass
class SquareCustomerRequest:
    email_address: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    phone_number: Optional[str] = None
    company_name: Optional[str] = None
    address: Optional[Dict[str, str]] = None
    reference_id: Optional[str] = None
    note: Optional[str] = None


@dataclass
class OrderLineItem:
    name: str
    quantity: int
    base_price: Money

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": str(self.quantity),
            "itemType": "ITEM",
            "basePriceMoney": self.base_price.to_dict(),
        }


@dataclass
class CreateOrderRequest:
    location_id: str
    line_items: List[OrderLineItem]
    customer_id: Optional[str] = None
    reference_id: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass
class SquarePayment:
    id: str
    status: str
    amount_money: Money
    source_type: Optional[str] = None
    location_id: Optional[str] = None
    customer_id: Optional[str] = None
    order_id: Optional[str] = None
    refunded_money: Optional[Money] = None
    receipt_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class SquareCustomer:
    id: str
    email_address: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    phone_number: Optional[str] = None
    company_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class SquareOrder:
    id: str
    location_id: Optional[str]
    state: str
    line_items: List[Dict[str, Any]] = field(default_factory=list)
    total_money: Optional[Money] = None
    version: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class SquareLocation:
    id: str
    name: Optional[str] = None
    status: Optional[str] = None
    currency: Optional[str] = None


MOCK_ROUTES = (
    MockRoute(
        fragment="/payments",
        id_prefix="payment",
        sample={
            "status": "COMPLETED",
            "sourceType": "CARD",
            "amountMoney": {"amount": 2000, "currency": "USD"},
            "totalMoney": {"amount": 2000, "currency": "USD"},
            "refundedMoney": {"amount": 0, "currency": "USD"},
        },
        defaults={"status": "COMPLETED", "sourceType": "CARD"},
        list_envelope=("payments",),
        item_envelope=("payment",),
    ),
    MockRoute(
        fragment="/customers",
        id_prefix="customer",
        sample={
            "emailAddress": "customer@example.com",
            "givenName": "John",
            "familyName": "Doe",
            "phoneNumber": "+1234567890",
        },
        list_envelope=("customers",),
        item_envelope=("customer",),
    ),
    MockRoute(
        fragment="/orders",
        id_prefix="order",
        sample={
            "locationId": "location_main",
            "state": "OPEN",
            "version": 1,
            "lineItems": [
                {"name": "Coffee", "quantity": "1", "basePriceMoney": {"amount": 450, "currency": "USD"}},
            ],
            "totalMoney": {"amount": 450, "currency": "USD"},
        },
        defaults={"state": "OPEN", "version": 1},
        item_envelope=("order",),
        unwrap_payload=("order",),
        read_single=True,
    ),
    MockRoute(
        fragment="/locations",
        id_prefix="location",
        sample={"name": "Main Street", "status": "ACTIVE", "currency": "USD"},
        list_envelope=("locations",),
        created_field="createdAt",
        updated_field=None,
    ),
)

SQUARE = VendorDescriptor(
    name="square",
    display_name="Square",
    required_fields=("application_id", "access_token"),
    optional_fields=("notification_url",),
    base_urls={
        Environment.SANDBOX: "https://connect.squareupsandbox.com/v2",
        Environment.PRODUCTION: "https://connect.squareup.com/v2",
    },
    build_headers=lambda config: {
        "Authorization": f"Bearer {config.credential('access_token')}",
        "Square-Version": SQUARE_VERSION,
    },
    health_probe=lambda config: ProbeRequest("/locations"),
    mock_routes=MOCK_ROUTES,
    webhook_fields=WebhookFieldMap(
        kind=("type",),
        data=("data.object", "data"),
        timestamp=("created_at", "createdAt"),
        webhook_id=("event_id", "eventId"),
        object_id=("data.id", "object_id"),
    ),
    signature_scheme=Base64HmacSha256(url_credential="notification_url"),
    signature_header="X-Square-HmacSha256-Signature",
    requires_webhook_secret=True,
)


def _to_payment(body: Mapping[str, Any]) -> SquarePayment:
    refunded = body.get("refundedMoney")
    return SquarePayment(
        id=body.get("id", ""),
        status=body.get("status", ""),
        amount_money=Money.from_dict(body.get("amountMoney") or body.get("totalMoney")),
        source_type=body.get("sourceType"),
        location_id=body.get("locationId"),
        customer_id=body.get("customerId"),
        order_id=body.get("orderId"),
        refunded_money=Money.from_dict(refunded) if refunded else None,
        receipt_url=body.get("receiptUrl"),
        created_at=body.get("createdAt"),
        updated_at=body.get("updatedAt"),
    )


def _to_customer(body: Mapping[str, Any]) -> SquareCustomer:
    return SquareCustomer(
        id=body.get("id", ""),
        email_address=body.get("emailAddress"),
        given_name=body.get("givenName"),
        family_name=body.get("familyName"),
        phone_number=body.get("phoneNumber"),
        company_name=body.get("companyName"),
        created_at=body.get("createdAt"),
        updated_at=body.get("updatedAt"),
    )


def _to_order(body: Mapping[str, Any]) -> SquareOrder:
    total = body.get("totalMoney")
    return SquareOrder(
        id=body.get("id", ""),
        location_id=body.get("locationId"),
        state=body.get("state", ""),
        line_items=list(body.get("lineItems") or []),
        total_money=Money.from_dict(total) if total else None,
        version=body.get("version"),
        created_at=body.get("createdAt"),
        updated_at=body.get("updatedAt"),
    )


class SquareClient(IntegrationClient):
    """Square point-of-sale client."""

    descriptor = SQUARE

    async def create_payment(self, request: CreatePaymentRequest) -> SquarePayment:
        """
        Take a payment from a card nonce or other source.

        Args:
            request: Amount, currency, source and location of the payment

        Returns:
            The created SquarePayment

        Raises:
            OperationError: If validation, initialization or the request fails
        """
        async with self._operation("create_payment"):
            if request.amount <= 0:
                raise ValueError(f"amount must be positive, got {request.amount!r}")
            payload = compact({
                "idempotencyKey": request.idempotency_key or str(uuid.uuid4()),
                "sourceId": request.source_id,
                "amountMoney": Money(request.amount, request.currency).to_dict(),
                "locationId": request.location_id,
                "orderId": request.order_id,
                "customerId": request.customer_id,
                "note": request.note,
                "referenceId": request.reference_id,
                "autocomplete": request.autocomplete,
                "buyerEmailAddress": request.buyer_email_address,
            })
            body = await self._dispatch("/payments", "POST", payload)
            return _to_payment(unwrap_single(body, "payment"))

    async def create_customer(self, request: SquareCustomerRequest) -> SquareCustomer:
        async with self._operation("create_customer"):
            payload = compact({
                "emailAddress": request.email_address,
                "givenName": request.given_name,
                "familyName": request.family_name,
                "phoneNumber": request.phone_number,
                "companyName": request.company_name,
                "address": request.address,
                "referenceId": request.reference_id,
                "note": request.note,
            })
            if not payload:
                raise ValueError("at least one customer field is required")
            body = await self._dispatch("/customers", "POST", payload)
            return _to_customer(unwrap_single(body, "customer"))

    async def get_payments(
        self,
        limit: int = 100,
        begin_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> List[SquarePayment]:
        async with self._operation("get_payments"):
            params = compact({
                "limit": limit,
                "begin_time": begin_time.isoformat() if begin_time else None,
                "end_time": end_time.isoformat() if end_time else None,
            })
            body = await self._dispatch("/payments", params=params)
            return [_to_payment(record) for record in unwrap_list(body, "payments")]

    async def get_customers(self, limit: int = 100) -> List[SquareCustomer]:
        async with self._operation("get_customers"):
            body = await self._dispatch("/customers", params={"limit": limit})
            return [_to_customer(record) for record in unwrap_list(body, "customers")]

    async def create_order(self, request: CreateOrderRequest) -> SquareOrder:
        async with self._operation("create_order"):
            if not request.line_items:
                raise ValueError("an order needs at least one line item")
            order = compact({
                "locationId": request.location_id,
                "customerId": request.customer_id,
                "referenceId": request.reference_id,
                "lineItems": [item.to_dict() for item in request.line_items],
            })
            payload = {
                "idempotencyKey": request.idempotency_key or str(uuid.uuid4()),
                "order": order,
            }
            body = await self._dispatch("/orders", "POST", payload)
            return _to_order(unwrap_single(body, "order"))

    async def get_order(self, order_id: str) -> SquareOrder:
        async with self._operation("get_order"):
            body = await self._dispatch(f"/orders/{order_id}")
            return _to_order(unwrap_single(body, "order"))

    async def list_locations(self) -> List[SquareLocation]:
        async with self._operation("list_locations"):
            body = await self._dispatch("/locations")
            return [
                SquareLocation(
                    id=record.get("id", ""),
                    name=record.get("name"),
                    status=record.get("status"),
                    currency=record.get("currency"),
                )
                for record in unwrap_list(body, "locations")
            ]

    async def get_analytics(self, timeframe: Optional[Timeframe] = None) -> AnalyticsReport:
        """
        Summarize sales for a timeframe from the payments in it.

        Defaults to the last 30 days. Nothing is cached; every call re-reads
        the payments.
        """
        async with self._operation("get_analytics"):
            timeframe = timeframe or Timeframe.last_days(30)
            payments = await self.get_payments(begin_time=timeframe.start, end_time=timeframe.end)

            completed = [payment for payment in payments if payment.status == "COMPLETED"]
            gross = sum(payment.amount_money.amount for payment in completed)
            refunds = sum(payment.refunded_money.amount for payment in completed if payment.refunded_money)

            by_method: Dict[str, Dict[str, Any]] = defaultdict(lambda: {"count": 0, "total_amount": 0})
            for payment in completed:
                bucket = by_method[payment.source_type or "UNKNOWN"]
                bucket["count"] += 1
                bucket["total_amount"] += payment.amount_money.amount

            return AnalyticsReport(
                timeframe=timeframe,
                metrics={
                    "total_transactions": len(completed),
                    "gross_sales": gross,
                    "total_refunds": refunds,
                    "net_sales": gross - refunds,
                    "average_order_value": gross / len(completed) if completed else 0,
                },
                breakdowns={
                    "payment_methods": sorted(
                        ({"method": method, **totals} for method, totals in by_method.items()),
                        key=lambda row: row["total_amount"],
                        reverse=True,
                    ),
                },
            )

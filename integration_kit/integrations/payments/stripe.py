"""
Stripe Payments Client

Payment intents, customers, subscriptions and refunds against the Stripe REST
API, plus verification of ``Stripe-Signature`` webhooks.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from integration_kit.framework import (
    Environment,
    IntegrationClient,
    MockCall,
    MockResponder,
    MockRoute,
    ProbeRequest,
    TimestampedHmacSha256,
    VendorDescriptor,
    WebhookFieldMap,
    bearer_headers,
    compact,
)

STRIPE_API_URL = "https://api.stripe.com"


@dataclass
class CreatePaymentIntentRequest:
    """Parameters for a new payment intent. ``amount`` is in the smallest currency unit."""
    amount: int
    currency: str
    customer_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    payment_method_types: Optional[List[str]] = None
    capture_method: str = "automatic"


@dataclass
class StripeCustomerRequest:
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Dict[str, str]] = None
    metadata: Optional[Dict[str, str]] = None


@dataclass
class CreateSubscriptionRequest:
    customer_id: str
    price_ids: List[str]
    quantity: int = 1
    trial_period_days: Optional[int] = None
    metadata: Optional[Dict[str, str]] = None


@dataclass
class PaymentIntent:
    id: str
    amount: int
    currency: str
    status: str
    client_secret: Optional[str] = None
    customer_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    created: Optional[int] = None


@dataclass
class StripeCustomer:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Dict[str, str]] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    created: Optional[int] = None


@dataclass
class Subscription:
    id: str
    customer_id: Optional[str]
    status: str
    price_ids: List[str] = field(default_factory=list)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class Refund:
    id: str
    payment_intent_id: Optional[str]
    amount: Optional[int]
    status: str
    reason: Optional[str] = None
    created: Optional[int] = None


def _intent_segment(call: MockCall) -> str:
    # /v1/payment_intents/<id>/confirm
    parts = call.path.rstrip("/").split("/")
    return parts[-2] if len(parts) >= 2 else ""


def _mock_create_intent(call: MockCall, responder: MockResponder) -> Dict[str, Any]:
    payload = dict(call.payload or {})
    intent_id = responder.generate_id("pi")
    return {
        "id": intent_id,
        "object": "payment_intent",
        "status": "requires_payment_method",
        "client_secret": f"{intent_id}_secret_mock",
        "created": responder.timestamp("unix"),
        **payload,
    }


def _mock_confirm_intent(call: MockCall, responder: MockResponder) -> Dict[str, Any]:
    return {
        "id": _intent_segment(call),
        "object": "payment_intent",
        "status": "succeeded",
        "amount": 2000,
        "currency": "usd",
        "created": responder.timestamp("unix"),
    }


def _mock_subscription(call: MockCall, responder: MockResponder) -> Dict[str, Any]:
    payload = dict(call.payload or {})
    now = responder.timestamp("unix")
    if call.method == "DELETE":
        return {
            "id": call.last_segment,
            "object": "subscription",
            "status": "canceled",
            "canceled_at": now,
        }
    if call.last_segment != "subscriptions":
        return {"id": call.last_segment, "object": "subscription", "status": "active", **payload}
    return {
        "id": responder.generate_id("sub"),
        "object": "subscription",
        "status": "trialing" if payload.get("trial_period_days") else "active",
        "current_period_start": now,
        "current_period_end": now + 30 * 24 * 60 * 60,
        **payload,
    }


MOCK_ROUTES = (
    MockRoute(fragment="/confirm", id_prefix="pi", handler=_mock_confirm_intent),
    MockRoute(fragment="/v1/payment_intents", id_prefix="pi", methods=("POST",), handler=_mock_create_intent),
    MockRoute(
        fragment="/v1/customers",
        id_prefix="cus",
        sample={"object": "customer", "email": "customer@example.com", "name": "Example Customer"},
        defaults={"object": "customer"},
        read_single=True,
        created_field="created",
        updated_field=None,
        timestamp_format="unix",
    ),
    MockRoute(fragment="/v1/subscriptions", id_prefix="sub", handler=_mock_subscription),
    MockRoute(
        fragment="/v1/refunds",
        id_prefix="re",
        defaults={"object": "refund", "status": "succeeded"},
        created_field="created",
        updated_field=None,
        timestamp_format="unix",
    ),
    MockRoute(
        fragment="/v1/balance",
        id_prefix="bal",
        sample={"object": "balance", "available": [{"amount": 0, "currency": "usd"}], "livemode": False},
        read_single=True,
        created_field=None,
        updated_field=None,
    ),
)

STRIPE = VendorDescriptor(
    name="stripe",
    display_name="Stripe",
    required_fields=("secret_key", "publishable_key"),
    base_urls={Environment.SANDBOX: STRIPE_API_URL, Environment.PRODUCTION: STRIPE_API_URL},
    build_headers=bearer_headers("secret_key"),
    health_probe=lambda config: ProbeRequest("/v1/balance"),
    mock_routes=MOCK_ROUTES,
    webhook_fields=WebhookFieldMap(
        kind=("type",),
        data=("data.object",),
        timestamp=("created",),
        webhook_id=("id",),
        object_id=("data.object.id",),
    ),
    signature_scheme=TimestampedHmacSha256(),
    signature_header="Stripe-Signature",
)


def _metadata(body: Mapping[str, Any]) -> Dict[str, str]:
    return dict(body.get("metadata") or {})


class StripeClient(IntegrationClient):
    """
    Stripe payments client.

    Example:
        client = StripeClient(secret_key="sk_test_...", publishable_key="pk_test_...")
        intent = await client.create_payment_intent(
            CreatePaymentIntentRequest(amount=2000, currency="usd")
        )
    """

    descriptor = STRIPE

    async def create_payment_intent(self, request: CreatePaymentIntentRequest) -> PaymentIntent:
        """
        Create a payment intent.

        Args:
            request: Amount, currency and optional customer details

        Returns:
            The created PaymentIntent

        Raises:
            OperationError: If validation, initialization or the request fails
        """
        async with self._operation("create_payment_intent"):
            if isinstance(request.amount, bool) or not isinstance(request.amount, int) or request.amount <= 0:
                raise ValueError(f"amount must be a positive integer, got {request.amount!r}")
            payload = compact({
                "amount": request.amount,
                "currency": request.currency.lower(),
                "customer": request.customer_id,
                "description": request.description,
                "metadata": request.metadata,
                "payment_method_types": request.payment_method_types,
                "capture_method": request.capture_method,
            })
            body = await self._dispatch("/v1/payment_intents", "POST", payload)
            return self._to_intent(body)

    async def confirm_payment_intent(
        self,
        payment_intent_id: str,
        payment_method: Optional[str] = None,
    ) -> PaymentIntent:
        async with self._operation("confirm_payment_intent"):
            payload = compact({"payment_method": payment_method})
            body = await self._dispatch(f"/v1/payment_intents/{payment_intent_id}/confirm", "POST", payload)
            return self._to_intent(body)

    async def create_customer(self, request: StripeCustomerRequest) -> StripeCustomer:
        async with self._operation("create_customer"):
            payload = compact({
                "email": request.email,
                "name": request.name,
                "phone": request.phone,
                "address": request.address,
                "metadata": request.metadata,
            })
            body = await self._dispatch("/v1/customers", "POST", payload)
            return self._to_customer(body)

    async def get_customer(self, customer_id: str) -> StripeCustomer:
        async with self._operation("get_customer"):
            body = await self._dispatch(f"/v1/customers/{customer_id}")
            return self._to_customer(body)

    async def create_subscription(self, request: CreateSubscriptionRequest) -> Subscription:
        async with self._operation("create_subscription"):
            if not request.price_ids:
                raise ValueError("at least one price id is required")
            payload = compact({
                "customer": request.customer_id,
                "items": [{"price": price_id, "quantity": request.quantity} for price_id in request.price_ids],
                "trial_period_days": request.trial_period_days,
                "metadata": request.metadata,
            })
            body = await self._dispatch("/v1/subscriptions", "POST", payload)
            return self._to_subscription(body)

    async def cancel_subscription(self, subscription_id: str, at_period_end: bool = False) -> Subscription:
        """
        Cancel a subscription immediately, or flag it to end with the current period.
        """
        async with self._operation("cancel_subscription"):
            if at_period_end:
                body = await self._dispatch(
                    f"/v1/subscriptions/{subscription_id}", "POST", {"cancel_at_period_end": True}
                )
            else:
                body = await self._dispatch(f"/v1/subscriptions/{subscription_id}", "DELETE")
            subscription = self._to_subscription(body)
            if not subscription.id:
                subscription.id = subscription_id
            return subscription

    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Refund:
        """Refund a payment intent in full, or partially when ``amount`` is given."""
        async with self._operation("refund_payment"):
            if amount is not None and amount <= 0:
                raise ValueError(f"refund amount must be positive, got {amount!r}")
            payload = compact({"payment_intent": payment_intent_id, "amount": amount, "reason": reason})
            body = await self._dispatch("/v1/refunds", "POST", payload)
            return Refund(
                id=body.get("id", ""),
                payment_intent_id=body.get("payment_intent", payment_intent_id),
                amount=body.get("amount"),
                status=body.get("status", "pending"),
                reason=body.get("reason"),
                created=body.get("created"),
            )

    @staticmethod
    def _to_intent(body: Mapping[str, Any]) -> PaymentIntent:
        return PaymentIntent(
            id=body.get("id", ""),
            amount=body.get("amount", 0),
            currency=body.get("currency", ""),
            status=body.get("status", ""),
            client_secret=body.get("client_secret"),
            customer_id=body.get("customer"),
            description=body.get("description"),
            metadata=_metadata(body),
            created=body.get("created"),
        )

    @staticmethod
    def _to_customer(body: Mapping[str, Any]) -> StripeCustomer:
        return StripeCustomer(
            id=body.get("id", ""),
            email=body.get("email"),
            name=body.get("name"),
            phone=body.get("phone"),
            address=body.get("address"),
            metadata=_metadata(body),
            created=body.get("created"),
        )

    @staticmethod
    def _to_subscription(body: Mapping[str, Any]) -> Subscription:
        items = body.get("items") or []
        if isinstance(items, Mapping):
            items = items.get("data") or []
        price_ids = []
        for item in items:
            price = item.get("price")
            price_ids.append(price.get("id") if isinstance(price, Mapping) else price)
        return Subscription(
            id=body.get("id", ""),
            customer_id=body.get("customer"),
            status=body.get("status", ""),
            price_ids=[price_id for price_id in price_ids if price_id],
            current_period_start=body.get("current_period_start"),
            current_period_end=body.get("current_period_end"),
            cancel_at_period_end=bool(body.get("cancel_at_period_end", False)),
            metadata=_metadata(body),
        )

"""
Stripe client tests.
"""

import json

import pytest

from integration_kit.framework import ConfigurationError, OperationError, WebhookError
from integration_kit.integrations.payments import (
    CreatePaymentIntentRequest,
    CreateSubscriptionRequest,
    StripeClient,
    StripeCustomerRequest,
)
from tests.conftest import RecordingTransport, json_response


class TestStripeClient:
    """Stripe operations against the mock responder."""

    @pytest.fixture
    def stripe_config(self):
        return {
            "secret_key": "sk_test_123456789",
            "publishable_key": "pk_test_123456789",
            "webhook_secret": "whsec_test_123456789",
        }

    @pytest.fixture
    def stripe_client(self, stripe_config):
        return StripeClient(**stripe_config)

    def test_empty_secret_key_is_rejected(self, stripe_config):
        stripe_config["secret_key"] = ""
        with pytest.raises(ConfigurationError) as exc_info:
            StripeClient(**stripe_config)
        assert exc_info.value.missing_field == "secret_key"

    def test_missing_publishable_key_is_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            StripeClient(secret_key="sk_test_1")
        assert exc_info.value.missing_field == "publishable_key"

    @pytest.mark.asyncio
    async def test_create_payment_intent(self, stripe_client):
        intent = await stripe_client.create_payment_intent(
            CreatePaymentIntentRequest(amount=2000, currency="USD", metadata={"order": "42"})
        )
        assert intent.id.startswith("pi_")
        assert intent.amount == 2000
        assert intent.currency == "usd"
        assert intent.status == "requires_payment_method"
        assert intent.client_secret.startswith(intent.id)
        assert intent.metadata == {"order": "42"}
        assert isinstance(intent.created, int)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, 10.5, True])
    async def test_invalid_amount(self, stripe_client, amount):
        with pytest.raises(OperationError) as exc_info:
            await stripe_client.create_payment_intent(CreatePaymentIntentRequest(amount=amount, currency="usd"))
        assert exc_info.value.operation == "create_payment_intent"
        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.asyncio
    async def test_confirm_payment_intent(self, stripe_client):
        intent = await stripe_client.confirm_payment_intent("pi_123", payment_method="pm_card_visa")
        assert intent.id == "pi_123"
        assert intent.status == "succeeded"

    @pytest.mark.asyncio
    async def test_customers(self, stripe_client):
        created = await stripe_client.create_customer(StripeCustomerRequest(email="a@b.com", name="Ada"))
        assert created.id.startswith("cus_")
        assert created.email == "a@b.com"
        assert created.name == "Ada"
        assert isinstance(created.created, int)

        fetched = await stripe_client.get_customer("cus_42")
        assert fetched.id == "cus_42"
        assert fetched.email

    @pytest.mark.asyncio
    async def test_subscription_lifecycle(self, stripe_client):
        subscription = await stripe_client.create_subscription(
            CreateSubscriptionRequest(customer_id="cus_1", price_ids=["price_basic"], trial_period_days=14)
        )
        assert subscription.id.startswith("sub_")
        assert subscription.status == "trialing"
        assert subscription.price_ids == ["price_basic"]
        assert subscription.customer_id == "cus_1"

        canceled = await stripe_client.cancel_subscription(subscription.id)
        assert canceled.id == subscription.id
        assert canceled.status == "canceled"

        scheduled = await stripe_client.cancel_subscription("sub_77", at_period_end=True)
        assert scheduled.id == "sub_77"
        assert scheduled.cancel_at_period_end is True

    @pytest.mark.asyncio
    async def test_subscription_needs_prices(self, stripe_client):
        with pytest.raises(OperationError):
            await stripe_client.create_subscription(CreateSubscriptionRequest(customer_id="cus_1", price_ids=[]))

    @pytest.mark.asyncio
    async def test_refund_payment(self, stripe_client):
        refund = await stripe_client.refund_payment("pi_123", amount=500, reason="requested_by_customer")
        assert refund.id.startswith("re_")
        assert refund.payment_intent_id == "pi_123"
        assert refund.amount == 500
        assert refund.status == "succeeded"

    @pytest.mark.asyncio
    async def test_refund_rejects_non_positive_amount(self, stripe_client):
        with pytest.raises(OperationError):
            await stripe_client.refund_payment("pi_123", amount=0)

    def test_webhook_event(self, stripe_client):
        body = json.dumps({
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "created": 1700000000,
            "data": {"object": {"id": "pi_1", "amount": 2000}},
        }).encode()
        signature = stripe_client.webhooks.sign(body, timestamp=1700000000)

        event = stripe_client.process_webhook_event(body, signature)

        assert event.vendor == "stripe"
        assert event.kind == "payment_intent.succeeded"
        assert event.object_id == "pi_1"
        with pytest.raises(WebhookError):
            stripe_client.process_webhook_event(body, signature.replace("v1=", "v1=0"))

    @pytest.mark.asyncio
    async def test_live_request_shape(self, stripe_config):
        transport = RecordingTransport(
            json_response({"object": "balance"}),
            json_response({"id": "pi_live", "amount": 100, "currency": "usd", "status": "requires_confirmation"}),
        )
        client = StripeClient(test_mode=False, transport=transport, **stripe_config)

        intent = await client.create_payment_intent(CreatePaymentIntentRequest(amount=100, currency="usd"))

        assert intent.id == "pi_live"
        assert transport.requests[0]["url"] == "https://api.stripe.com/v1/balance"
        assert transport.last["url"] == "https://api.stripe.com/v1/payment_intents"
        assert transport.last["headers"]["Authorization"] == "Bearer sk_test_123456789"
        assert transport.last["payload"]["capture_method"] == "automatic"

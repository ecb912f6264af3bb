"""
Square client tests.
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime, timezone

import pytest

from integration_kit.framework import OperationError, Timeframe, WebhookError
from integration_kit.integrations.pos import (
    CreateOrderRequest,
    CreatePaymentRequest,
    Money,
    OrderLineItem,
    SquareClient,
    SquareCustomerRequest,
)
from tests.conftest import RecordingTransport, json_response

NOTIFICATION_URL = "https://hooks.example.test/square"


class TestSquareClient:
    """Square operations against the mock responder."""

    @pytest.fixture
    def square_client(self):
        return SquareClient(
            application_id="sq0idp-test",
            access_token="EAAA-test",
            notification_url=NOTIFICATION_URL,
            webhook_secret="square_signature_key",
        )

    @pytest.mark.asyncio
    async def test_create_payment(self, square_client):
        payment = await square_client.create_payment(
            CreatePaymentRequest(amount=1500, currency="USD", source_id="cnon:card-nonce-ok", location_id="L1")
        )
        assert payment.id.startswith("payment_")
        assert payment.status == "COMPLETED"
        assert payment.amount_money == Money(1500, "USD")
        assert payment.location_id == "L1"
        assert payment.created_at

    @pytest.mark.asyncio
    async def test_payment_amount_must_be_positive(self, square_client):
        with pytest.raises(OperationError):
            await square_client.create_payment(
                CreatePaymentRequest(amount=0, currency="USD", source_id="cnon", location_id="L1")
            )

    @pytest.mark.asyncio
    async def test_create_customer(self, square_client):
        customer = await square_client.create_customer(
            SquareCustomerRequest(email_address="a@b.com", given_name="Ada", family_name="Lovelace")
        )
        assert customer.id.startswith("customer_")
        assert customer.email_address == "a@b.com"
        assert customer.given_name == "Ada"

    @pytest.mark.asyncio
    async def test_create_customer_needs_a_field(self, square_client):
        with pytest.raises(OperationError):
            await square_client.create_customer(SquareCustomerRequest())

    @pytest.mark.asyncio
    async def test_lists(self, square_client):
        payments = await square_client.get_payments(limit=10)
        customers = await square_client.get_customers()
        locations = await square_client.list_locations()
        assert payments[0].amount_money.amount == 2000
        assert customers[0].family_name == "Doe"
        assert locations[0].name == "Main Street"

    @pytest.mark.asyncio
    async def test_orders(self, square_client):
        order = await square_client.create_order(
            CreateOrderRequest(
                location_id="L1",
                line_items=[OrderLineItem(name="Latte", quantity=2, base_price=Money(450))],
            )
        )
        assert order.id.startswith("order_")
        assert order.location_id == "L1"
        assert order.state == "OPEN"
        assert order.line_items[0]["quantity"] == "2"

        fetched = await square_client.get_order("order_42")
        assert fetched.id == "order_42"

    @pytest.mark.asyncio
    async def test_order_needs_line_items(self, square_client):
        with pytest.raises(OperationError):
            await square_client.create_order(CreateOrderRequest(location_id="L1", line_items=[]))

    @pytest.mark.asyncio
    async def test_analytics(self, square_client):
        report = await square_client.get_analytics()
        assert report.metrics["total_transactions"] == 1
        assert report.metrics["gross_sales"] == 2000
        assert report.metrics["net_sales"] == 2000
        assert report.breakdowns["payment_methods"] == [{"method": "CARD", "count": 1, "total_amount": 2000}]

    def test_webhook_signature(self, square_client):
        body = json.dumps({
            "merchant_id": "M1",
            "type": "payment.updated",
            "event_id": "evt_sq_1",
            "created_at": "2024-03-01T12:00:00Z",
            "data": {"type": "payment", "id": "pay_1", "object": {"payment": {"id": "pay_1"}}},
        }).encode()
        digest = hmac.new(b"square_signature_key", NOTIFICATION_URL.encode() + body, hashlib.sha256).digest()

        event = square_client.process_webhook_event(body, base64.b64encode(digest).decode())

        assert event.kind == "payment.updated"
        assert event.webhook_id == "evt_sq_1"
        assert event.object_id == "pay_1"
        assert event.data == {"payment": {"id": "pay_1"}}
        assert event.timestamp == "2024-03-01T12:00:00+00:00"
        with pytest.raises(WebhookError):
            square_client.process_webhook_event(body)

    @pytest.mark.asyncio
    async def test_live_headers(self):
        transport = RecordingTransport(json_response({"locations": []}), json_response({"payments": []}))
        client = SquareClient(application_id="app", access_token="tok", test_mode=False, transport=transport)

        await client.get_payments(
            begin_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
            end_time=datetime(2024, 1, 31, tzinfo=timezone.utc),
        )

        assert transport.requests[0]["url"] == "https://connect.squareupsandbox.com/v2/locations"
        assert transport.last["headers"]["Square-Version"] == "2023-10-18"
        assert transport.last["params"]["begin_time"] == "2024-01-01T00:00:00+00:00"

    def test_timeframe_must_be_ordered(self):
        with pytest.raises(ValueError):
            Timeframe(start=datetime(2024, 2, 1), end=datetime(2024, 1, 1))

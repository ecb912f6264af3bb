"""
Tests for webhook verification and normalization.
"""

import base64
import hashlib
import hmac
import json

import pytest

from integration_kit.framework import (
    Base64HmacSha256,
    ConfigurationError,
    HexHmacSha256,
    TimestampedHmacSha256,
    VendorConfig,
    WebhookError,
    WebhookProcessor,
)
from integration_kit.framework.webhooks import normalize_timestamp
from integration_kit.integrations.payments import STRIPE
from integration_kit.integrations.pos import SQUARE
from tests.conftest import ACME

SECRET = "whsec_test_secret"


def hex_signature(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def payload():
    return {
        "event_type": "widget.created",
        "timestamp": 1700000000,
        "event_id": "evt_1",
        "data": {"id": "widget_1", "name": "Widget"},
    }


@pytest.fixture
def body(payload):
    return json.dumps(payload).encode()


@pytest.fixture
def processor():
    return WebhookProcessor(ACME, VendorConfig(credentials={"api_key": "k"}, webhook_secret=SECRET))


@pytest.fixture
def unsigned_processor():
    return WebhookProcessor(ACME, VendorConfig(credentials={"api_key": "k"}))


class TestNormalization:
    """Canonical event envelope."""

    def test_normalizes_payload(self, processor, body):
        event = processor.process(body, hex_signature(body))
        assert event.vendor == "acme"
        assert event.kind == "widget.created"
        assert event.data == {"id": "widget_1", "name": "Widget"}
        assert event.timestamp == "2023-11-14T22:13:20+00:00"
        assert event.webhook_id == "evt_1"
        assert event.object_id == "widget_1"
        assert event.signature == hex_signature(body)

    def test_processing_is_idempotent(self, processor, body):
        signature = hex_signature(body)
        assert processor.process(body, signature) == processor.process(body, signature)

    def test_decoded_payload_is_not_mutated(self, unsigned_processor, payload):
        original = json.loads(json.dumps(payload))
        event = unsigned_processor.process(payload)
        event.to_dict()["data"]["name"] = "changed"
        assert payload == original
        assert event.data["name"] == "Widget"

    def test_event_data_is_read_only(self, unsigned_processor, payload):
        event = unsigned_processor.process(payload)
        with pytest.raises(TypeError):
            event.data["name"] = "changed"
        assert event.data == {"id": "widget_1", "name": "Widget"}
        assert payload["data"]["name"] == "Widget"

    def test_equal_events_for_same_input(self, unsigned_processor, payload):
        first = unsigned_processor.process(payload)
        second = unsigned_processor.process(payload)
        assert first == second
        assert first.to_dict() == second.to_dict()
        assert isinstance(first.to_dict()["data"], dict)

    def test_whole_payload_used_when_data_missing(self, unsigned_processor):
        event = unsigned_processor.process({"type": "ping", "created_at": "2024-01-01T00:00:00Z", "x": 1})
        assert event.kind == "ping"
        assert event.data["x"] == 1
        assert event.timestamp == "2024-01-01T00:00:00+00:00"

    @pytest.mark.parametrize(
        "value",
        [1700000000, 1700000000000, "1700000000", "2023-11-14T22:13:20Z", "2023-11-14T22:13:20+00:00"],
    )
    def test_timestamp_forms(self, value):
        assert normalize_timestamp(value) == "2023-11-14T22:13:20+00:00"

    def test_offset_timestamps_converted_to_utc(self):
        assert normalize_timestamp("2023-11-14T23:13:20+01:00") == "2023-11-14T22:13:20+00:00"

    def test_missing_event_type(self, unsigned_processor):
        with pytest.raises(WebhookError) as exc_info:
            unsigned_processor.process({"timestamp": 1700000000})
        assert exc_info.value.error_code == "webhook_event_type_missing"

    def test_missing_timestamp(self, unsigned_processor):
        with pytest.raises(WebhookError) as exc_info:
            unsigned_processor.process({"event_type": "x"})
        assert exc_info.value.error_code == "webhook_timestamp_missing"

    def test_invalid_timestamp(self, unsigned_processor):
        with pytest.raises(WebhookError) as exc_info:
            unsigned_processor.process({"event_type": "x", "timestamp": "yesterday"})
        assert exc_info.value.error_code == "webhook_timestamp_invalid"

    def test_invalid_json(self, unsigned_processor):
        with pytest.raises(WebhookError) as exc_info:
            unsigned_processor.process(b"{not json")
        assert exc_info.value.error_code == "webhook_payload_invalid"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_non_object_json(self, unsigned_processor):
        with pytest.raises(WebhookError) as exc_info:
            unsigned_processor.process("[1, 2, 3]")
        assert exc_info.value.error_code == "webhook_payload_invalid"

    def test_unsupported_payload_type(self, unsigned_processor):
        with pytest.raises(WebhookError):
            unsigned_processor.process(42)


class TestSignatureEnforcement:
    """Signature checks against the configured secret."""

    def test_missing_signature(self, processor, body):
        with pytest.raises(WebhookError) as exc_info:
            processor.process(body)
        assert exc_info.value.error_code == "webhook_signature_missing"

    def test_wrong_signature(self, processor, body):
        with pytest.raises(WebhookError) as exc_info:
            processor.process(body, hex_signature(body, "other_secret"))
        assert exc_info.value.error_code == "webhook_signature_invalid"

    def test_tampered_body(self, processor, body):
        signature = hex_signature(body)
        with pytest.raises(WebhookError):
            processor.process(body.replace(b"Widget", b"Gadget"), signature)

    def test_signature_without_secret(self, unsigned_processor, body):
        with pytest.raises(ConfigurationError) as exc_info:
            unsigned_processor.process(body, "deadbeef")
        assert exc_info.value.missing_field == "webhook_secret"

    def test_sign_requires_secret(self, unsigned_processor, body):
        with pytest.raises(ConfigurationError):
            unsigned_processor.sign(body)

    def test_sign_matches_verify(self, processor, body):
        assert processor.process(body, processor.sign(body)).kind == "widget.created"


class TestSignatureSchemes:
    """Vendor signature formats."""

    def test_hex_accepts_prefix(self):
        scheme = HexHmacSha256()
        body = b'{"a":1}'
        assert scheme.verify(SECRET, body, "sha256=" + hex_signature(body))
        assert scheme.verify(SECRET, body, hex_signature(body).upper())

    def test_timestamped_signature(self):
        scheme = TimestampedHmacSha256()
        body = b'{"id":"evt_1"}'
        signature = scheme.sign(SECRET, body, timestamp=1700000000)
        expected = hex_signature(b"1700000000." + body)
        assert signature == f"t=1700000000,v1={expected}"
        assert scheme.verify(SECRET, body, signature)

    def test_timestamped_signature_with_rotated_secrets(self):
        scheme = TimestampedHmacSha256()
        body = b'{"id":"evt_1"}'
        good = hex_signature(b"1700000000." + body)
        stale = hex_signature(b"1700000000." + body, "old_secret")
        assert scheme.verify(SECRET, body, f"t=1700000000,v1={stale},v1={good}")

    def test_timestamped_signature_rejects_malformed(self):
        scheme = TimestampedHmacSha256()
        assert not scheme.verify(SECRET, b"{}", "v1=abc")
        assert not scheme.verify(SECRET, b"{}", "t=1700000000")

    def test_base64_signature_over_url_and_body(self):
        scheme = Base64HmacSha256(url_credential="notification_url")
        config = VendorConfig(credentials={"notification_url": "https://hooks.example.test/square"})
        body = b'{"type":"payment.created"}'
        digest = hmac.new(SECRET.encode(), b"https://hooks.example.test/square" + body, hashlib.sha256).digest()
        assert scheme.sign(SECRET, body, config) == base64.b64encode(digest).decode()
        assert scheme.verify(SECRET, body, base64.b64encode(digest).decode(), config)

    def test_stripe_webhook(self):
        config = VendorConfig(credentials={"secret_key": "sk", "publishable_key": "pk"}, webhook_secret=SECRET)
        processor = WebhookProcessor(STRIPE, config)
        body = json.dumps({
            "id": "evt_123",
            "type": "payment_intent.succeeded",
            "created": 1700000000,
            "data": {"object": {"id": "pi_123", "amount": 2000}},
        }).encode()

        event = processor.process(body, processor.sign(body, timestamp=1700000000))
        assert event.kind == "payment_intent.succeeded"
        assert event.data == {"id": "pi_123", "amount": 2000}
        assert event.object_id == "pi_123"
        assert event.webhook_id == "evt_123"

    def test_square_requires_secret(self):
        config = VendorConfig(credentials={"application_id": "a", "access_token": "t"})
        processor = WebhookProcessor(SQUARE, config)
        with pytest.raises(ConfigurationError) as exc_info:
            processor.process({"type": "payment.created", "created_at": "2024-01-01T00:00:00Z"})
        assert exc_info.value.missing_field == "webhook_secret"


class TestMalformedSignatures:
    """Signatures that are not valid for the scheme are rejected, never crash."""

    @pytest.mark.parametrize(
        "scheme, signature",
        [
            (HexHmacSha256(), "é" * 64),
            (HexHmacSha256(), "sha256=zz-not-hex"),
            (HexHmacSha256(), "☃"),
            (Base64HmacSha256(), "ébad=="),
            (Base64HmacSha256(), "!!!not base64!!!"),
            (TimestampedHmacSha256(), "t=1700000000,v1=é"),
            (TimestampedHmacSha256(), "t=é,v1=" + "0" * 64),
        ],
    )
    def test_scheme_returns_false(self, scheme, signature):
        assert scheme.verify(SECRET, b'{"a":1}', signature) is False

    @pytest.mark.parametrize("signature", ["é", "sha256=ÿþ", "not-a-digest"])
    def test_processor_raises_invalid_signature(self, processor, body, signature):
        with pytest.raises(WebhookError) as exc_info:
            processor.process(body, signature)
        assert exc_info.value.error_code == "webhook_signature_invalid"

    def test_timestamped_vendor_with_non_ascii_signature(self):
        config = VendorConfig(credentials={"secret_key": "sk", "publishable_key": "pk"}, webhook_secret=SECRET)
        processor = WebhookProcessor(STRIPE, config)
        with pytest.raises(WebhookError) as exc_info:
            processor.process(b'{"type": "charge.succeeded", "created": 1700000000}', "t=1700000000,v1=ñ")
        assert exc_info.value.error_code == "webhook_signature_invalid"

    def test_base64_vendor_with_non_ascii_signature(self):
        config = VendorConfig(
            credentials={"application_id": "a", "access_token": "t"},
            webhook_secret=SECRET,
        )
        processor = WebhookProcessor(SQUARE, config)
        with pytest.raises(WebhookError) as exc_info:
            processor.process(b'{"type": "payment.created", "created_at": "2024-01-01T00:00:00Z"}', "ü" * 44)
        assert exc_info.value.error_code == "webhook_signature_invalid"

"""
Webhook Processor

Verifies inbound webhook signatures and normalizes vendor payloads into the
canonical WebhookEvent envelope. Processing is pure: the same raw payload and
signature always produce an equal event, and the raw payload is never
mutated.
"""

import base64
import copy
import hashlib
import hmac
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple, Union

from .config import VendorConfig
from .errors import ConfigurationError, WebhookError

if TYPE_CHECKING:
    from .descriptor import VendorDescriptor


RawPayload = Union[bytes, bytearray, str, Mapping[str, Any]]

# Unix timestamps above this are taken to be in milliseconds.
_MILLISECOND_THRESHOLD = 100_000_000_000


def _hmac_digest(secret: str, message: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def _digests_match(expected: str, candidate: str) -> bool:
    # compare_digest only accepts ASCII str, so compare the encoded bytes.
    return hmac.compare_digest(expected.encode("ascii"), candidate.encode("utf-8", "replace"))


class HexHmacSha256:
    """Hex HMAC-SHA256 of the raw body; an optional ``sha256=`` prefix is accepted."""

    def sign(self, secret: str, body: bytes, config: Optional[VendorConfig] = None) -> str:
        return _hmac_digest(secret, body).hex()

    def verify(self, secret: str, body: bytes, signature: str, config: Optional[VendorConfig] = None) -> bool:
        candidate = signature.strip()
        if candidate.startswith("sha256="):
            candidate = candidate[len("sha256="):]
        return _digests_match(self.sign(secret, body, config), candidate.lower())


class Base64HmacSha256:
    """
    Base64 HMAC-SHA256, optionally over the notification URL followed by the body.

    The URL is read from the credential named ``url_credential`` when present.
    """

    def __init__(self, url_credential: Optional[str] = None):
        self.url_credential = url_credential

    def _message(self, body: bytes, config: Optional[VendorConfig]) -> bytes:
        prefix = ""
        if self.url_credential and config is not None:
            prefix = config.credential(self.url_credential) or ""
        return prefix.encode("utf-8") + body

    def sign(self, secret: str, body: bytes, config: Optional[VendorConfig] = None) -> str:
        return base64.b64encode(_hmac_digest(secret, self._message(body, config))).decode("ascii")

    def verify(self, secret: str, body: bytes, signature: str, config: Optional[VendorConfig] = None) -> bool:
        return _digests_match(self.sign(secret, body, config), signature.strip())


class TimestampedHmacSha256:
    """
    ``t=<unix>,v1=<hex>`` signatures computed over ``"<t>.<body>"``.

    Several ``v1`` entries may be present (secret rotation); any match passes.
    No tolerance window is applied so verification does not depend on the clock.
    """

    def sign(
        self,
        secret: str,
        body: bytes,
        config: Optional[VendorConfig] = None,
        timestamp: int = 0,
    ) -> str:
        signed = f"{timestamp}.".encode("utf-8") + body
        return f"t={timestamp},v1={_hmac_digest(secret, signed).hex()}"

    def verify(self, secret: str, body: bytes, signature: str, config: Optional[VendorConfig] = None) -> bool:
        timestamp = None
        candidates = []
        for item in signature.split(","):
            key, _, value = item.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                candidates.append(value)
        if not timestamp or not candidates:
            return False
        expected = _hmac_digest(secret, f"{timestamp}.".encode("utf-8") + body).hex()
        return any(_digests_match(expected, candidate) for candidate in candidates)


@dataclass(frozen=True)
class WebhookFieldMap:
    """Dotted field paths tried in order when normalizing a payload."""
    kind: Tuple[str, ...] = ("event_type", "type", "event", "subscriptionType")
    data: Tuple[str, ...] = ("data",)
    timestamp: Tuple[str, ...] = ("timestamp", "created_at", "createdAt", "created", "occurredAt", "occurred_at")
    webhook_id: Tuple[str, ...] = ("webhook_id", "event_id", "eventId", "id")
    object_id: Tuple[str, ...] = ("object_id", "objectId", "data.id")


@dataclass(frozen=True)
class WebhookEvent:
    """Canonical, vendor-agnostic webhook event."""
    vendor: str
    kind: str
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    timestamp: str = ""
    signature: Optional[str] = None
    webhook_id: Optional[str] = None
    object_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor": self.vendor,
            "kind": self.kind,
            "data": copy.deepcopy(dict(self.data)),
            "timestamp": self.timestamp,
            "signature": self.signature,
            "webhook_id": self.webhook_id,
            "object_id": self.object_id,
        }


def lookup(payload: Mapping[str, Any], dotted: str) -> Any:
    current: Any = payload
    for part in dotted.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def first_present(payload: Mapping[str, Any], paths: Tuple[str, ...]) -> Any:
    for path in paths:
        value = lookup(payload, path)
        if value is not None and value != "":
            return value
    return None


def normalize_timestamp(value: Any) -> str:
    """
    Convert a unix (seconds or milliseconds) or ISO-8601 timestamp to ISO-8601 UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value.strip())
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _MILLISECOND_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc).isoformat()
    raise ValueError(f"not a timestamp: {value!r}")


class WebhookProcessor:
    """Verifies and normalizes webhooks for one client."""

    def __init__(self, descriptor: "VendorDescriptor", config: VendorConfig):
        self.descriptor = descriptor
        self.config = config

    @property
    def vendor(self) -> str:
        return self.descriptor.name

    def process(self, raw_payload: RawPayload, signature: Optional[str] = None) -> WebhookEvent:
        """
        Verify and normalize a raw webhook payload.

        Args:
            raw_payload: Raw request body (bytes or str) or an already-decoded object
            signature: Signature header value, forwarded unchanged

        Returns:
            The canonical WebhookEvent

        Raises:
            ConfigurationError: If verification is requested or required but no secret is configured
            WebhookError: If the signature is missing or wrong, or the payload cannot be normalized
        """
        body = self._to_bytes(raw_payload)
        self.verify(body, signature)
        payload = self._parse(raw_payload, body)
        return self._normalize(payload, signature)

    def sign(self, raw_payload: RawPayload, **kwargs: Any) -> str:
        """Compute the signature the vendor would send for this payload."""
        if not self.config.webhook_secret:
            raise ConfigurationError(
                f"{self.descriptor.display_name} webhook secret is required to sign payloads",
                missing_field="webhook_secret",
                provider=self.vendor,
            )
        body = self._to_bytes(raw_payload)
        return self.descriptor.signature_scheme.sign(self.config.webhook_secret, body, self.config, **kwargs)

    def verify(self, body: bytes, signature: Optional[str]) -> None:
        secret = self.config.webhook_secret
        if not secret:
            if self.descriptor.requires_webhook_secret:
                raise ConfigurationError(
                    f"{self.descriptor.display_name} webhook secret is required for webhook verification",
                    missing_field="webhook_secret",
                    provider=self.vendor,
                )
            if signature:
                raise ConfigurationError(
                    f"{self.descriptor.display_name} webhook signature supplied but no webhook secret is configured",
                    missing_field="webhook_secret",
                    provider=self.vendor,
                )
            return

        if not signature:
            raise WebhookError(
                "Webhook signature is missing",
                error_code="webhook_signature_missing",
                provider=self.vendor,
            )
        if not self.descriptor.signature_scheme.verify(secret, body, signature, self.config):
            raise WebhookError(
                "Invalid webhook signature",
                error_code="webhook_signature_invalid",
                provider=self.vendor,
            )

    def _to_bytes(self, raw_payload: RawPayload) -> bytes:
        if isinstance(raw_payload, (bytes, bytearray)):
            return bytes(raw_payload)
        if isinstance(raw_payload, str):
            return raw_payload.encode("utf-8")
        if isinstance(raw_payload, Mapping):
            return json.dumps(raw_payload, separators=(",", ":")).encode("utf-8")
        raise WebhookError(
            f"Unsupported webhook payload type: {type(raw_payload).__name__}",
            error_code="webhook_payload_invalid",
            provider=self.vendor,
        )

    def _parse(self, raw_payload: RawPayload, body: bytes) -> Mapping[str, Any]:
        if isinstance(raw_payload, Mapping):
            return raw_payload
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise WebhookError(
                "Webhook payload is not valid JSON",
                error_code="webhook_payload_invalid",
                provider=self.vendor,
                cause=exc,
            ) from exc
        if not isinstance(payload, Mapping):
            raise WebhookError(
                "Webhook payload must be a JSON object",
                error_code="webhook_payload_invalid",
                provider=self.vendor,
            )
        return payload

    def _normalize(self, payload: Mapping[str, Any], signature: Optional[str]) -> WebhookEvent:
        fields = self.descriptor.webhook_fields

        kind = first_present(payload, fields.kind)
        if not isinstance(kind, str):
            raise WebhookError(
                "Webhook payload has no event type",
                error_code="webhook_event_type_missing",
                provider=self.vendor,
            )

        raw_timestamp = first_present(payload, fields.timestamp)
        if raw_timestamp is None:
            raise WebhookError(
                "Webhook payload has no timestamp",
                error_code="webhook_timestamp_missing",
                provider=self.vendor,
            )
        try:
            timestamp = normalize_timestamp(raw_timestamp)
        except (ValueError, OverflowError, OSError) as exc:
            raise WebhookError(
                f"Webhook timestamp is not valid: {raw_timestamp!r}",
                error_code="webhook_timestamp_invalid",
                provider=self.vendor,
                cause=exc,
            ) from exc

        data = first_present(payload, fields.data)
        if not isinstance(data, Mapping):
            data = payload

        webhook_id = first_present(payload, fields.webhook_id)
        object_id = first_present(payload, fields.object_id)

        return WebhookEvent(
            vendor=self.vendor,
            kind=kind,
            data=MappingProxyType(copy.deepcopy(dict(data))),
            timestamp=timestamp,
            signature=signature,
            webhook_id=str(webhook_id) if webhook_id is not None else None,
            object_id=str(object_id) if object_id is not None else None,
        )

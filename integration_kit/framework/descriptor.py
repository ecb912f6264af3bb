"""
Vendor descriptors.

A VendorDescriptor is the declarative description of one vendor: required
credentials, base URLs per environment, how to build authentication headers,
which endpoint to probe for readiness, how test-mode responses look, and how
its webhooks are signed and shaped. One generic client implementation
consumes it.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .config import Environment, VendorConfig
from .mock import MockRoute
from .webhooks import HexHmacSha256, WebhookFieldMap


@dataclass(frozen=True)
class ProbeRequest:
    """Lightweight request used as the readiness probe."""
    endpoint: str
    method: str = "GET"
    params: Optional[Mapping[str, Any]] = None


def bearer_headers(credential: str) -> Callable[[VendorConfig], Dict[str, str]]:
    """Header builder sending ``Authorization: Bearer <credential>``."""

    def build(config: VendorConfig) -> Dict[str, str]:
        return {"Authorization": f"Bearer {config.credential(credential)}"}

    return build


def extract_error_message(body: Any) -> Optional[str]:
    """Pull a human-readable message out of a typical vendor error body."""
    if isinstance(body, (bytes, bytearray)):
        text = bytes(body).decode("utf-8", errors="replace").strip()
        return text or None
    if isinstance(body, str):
        return body.strip() or None
    if not isinstance(body, Mapping):
        return None

    for key in ("message", "error_description", "msg", "detail", "Message"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value

    error = body.get("error")
    if isinstance(error, str) and error:
        return error
    if isinstance(error, Mapping):
        nested = extract_error_message(error)
        if nested:
            return nested

    errors = body.get("errors") or body.get("Errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, Mapping):
            return first.get("detail") or first.get("message") or first.get("Message")
        if isinstance(first, str):
            return first

    fault = body.get("Fault")
    if isinstance(fault, Mapping):
        fault_errors = fault.get("Error")
        if isinstance(fault_errors, list) and fault_errors:
            first = fault_errors[0]
            if isinstance(first, Mapping):
                return first.get("Detail") or first.get("Message")
    return None


@dataclass(frozen=True)
class VendorDescriptor:
    """Everything that distinguishes one vendor from another."""
    name: str
    display_name: str
    required_fields: Tuple[str, ...]
    base_urls: Mapping[Environment, str]
    build_headers: Callable[[VendorConfig], Dict[str, str]]
    health_probe: Callable[[VendorConfig], ProbeRequest]
    optional_fields: Tuple[str, ...] = ()
    mock_routes: Tuple[MockRoute, ...] = ()
    webhook_fields: WebhookFieldMap = field(default_factory=WebhookFieldMap)
    signature_scheme: Any = field(default_factory=HexHmacSha256)
    signature_header: str = "X-Webhook-Signature"
    requires_webhook_secret: bool = False
    env_prefix: Optional[str] = None
    base_url_credential: Optional[str] = None
    extract_error: Callable[[Any], Optional[str]] = extract_error_message

    @property
    def credential_fields(self) -> Tuple[str, ...]:
        return self.required_fields + tuple(f for f in self.optional_fields if f not in self.required_fields)

    @property
    def environment_prefix(self) -> str:
        return self.env_prefix or f"{self.name.upper()}_"

    def base_url_for(self, config: VendorConfig) -> str:
        if config.base_url:
            return config.base_url
        if self.base_url_credential and config.credential(self.base_url_credential):
            return config.credential(self.base_url_credential).rstrip("/")
        return self.base_urls.get(config.environment) or self.base_urls[Environment.PRODUCTION]

    def headers_for(self, config: VendorConfig) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        headers.update(self.build_headers(config))
        return headers

"""
Shared fixtures for the integration kit test suite.
"""

import json
from typing import Any, Dict, List, Mapping, Optional

import pytest

from integration_kit.core.config import clear_settings_cache
from integration_kit.framework import (
    Environment,
    IntegrationClient,
    MockRoute,
    ProbeRequest,
    RecordingSink,
    TransportResponse,
    VendorDescriptor,
    bearer_headers,
    unwrap_list,
    unwrap_single,
)


class RecordingTransport:
    """
    Fake live transport.

    Records every request and answers from a queue of canned responses,
    falling back to an empty JSON object once the queue runs dry. An
    Exception in the queue is raised instead of returned.
    """

    def __init__(self, *responses: Any):
        self.requests: List[Dict[str, Any]] = []
        self._responses = list(responses)

    def queue(self, *responses: Any) -> None:
        self._responses.extend(responses)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        payload: Any = None,
        params: Any = None,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        self.requests.append({
            "method": method,
            "url": url,
            "headers": dict(headers),
            "payload": payload,
            "params": params,
            "timeout": timeout,
        })
        response = self._responses.pop(0) if self._responses else json_response({})
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last(self) -> Dict[str, Any]:
        return self.requests[-1]


def json_response(body: Any, status_code: int = 200) -> TransportResponse:
    return TransportResponse(
        status_code=status_code,
        content=json.dumps(body).encode("utf-8"),
        headers={"content-type": "application/json"},
    )


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Every test starts from default settings."""
    monkeypatch.delenv("INTEGRATION_KIT_DEFAULT_ENVIRONMENT", raising=False)
    monkeypatch.delenv("INTEGRATION_KIT_DEFAULT_TIMEOUT_MS", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def transport():
    return RecordingTransport()


ACME = VendorDescriptor(
    name="acme",
    display_name="Acme",
    required_fields=("api_key", "account_id"),
    base_urls={Environment.SANDBOX: "https://sandbox.acme.test", Environment.PRODUCTION: "https://api.acme.test"},
    build_headers=bearer_headers("api_key"),
    health_probe=lambda config: ProbeRequest("/ping"),
    mock_routes=(
        MockRoute(
            fragment="/widgets",
            id_prefix="widget",
            sample={"name": "Sample"},
            list_envelope=("widgets",),
            item_envelope=("widget",),
        ),
    ),
)


class AcmeClient(IntegrationClient):
    """Minimal client used to exercise the framework."""

    descriptor = ACME

    async def create_widget(self, name: str) -> dict:
        async with self._operation("create_widget"):
            if not name:
                raise ValueError("widget name is required")
            body = await self._dispatch("/widgets", "POST", {"name": name})
            return unwrap_single(body, "widget")

    async def list_widgets(self) -> list:
        async with self._operation("list_widgets"):
            return unwrap_list(await self._dispatch("/widgets", params={"limit": 10}), "widgets")


@pytest.fixture
def acme_options():
    return {"api_key": "key_123", "account_id": "acct_1"}


@pytest.fixture
def live_acme(acme_options, transport, sink):
    return AcmeClient(test_mode=False, transport=transport, event_sink=sink, **acme_options)

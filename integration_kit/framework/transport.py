"""
Live transport abstraction.

The dispatcher talks to vendors through any object implementing Transport.
HttpxTransport is the default implementation; tests and callers with their
own HTTP stack inject a different one.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, Tuple, Union

import httpx

# Query parameters as a mapping, or as pairs when a name repeats.
QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


@dataclass
class TransportResponse:
    """Status, body and headers of one live response."""
    status_code: int
    content: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.content)

    def payload(self) -> Any:
        """Decoded JSON body, the raw bytes when the body is not JSON, None when empty."""
        if not self.content:
            return None
        try:
            return self.json()
        except ValueError:
            return self.content


class Transport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        payload: Any = None,
        params: Optional[QueryParams] = None,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        ...


class HttpxTransport:
    """Transport backed by httpx.AsyncClient."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        payload: Any = None,
        params: Optional[QueryParams] = None,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        body: Dict[str, Any] = {}
        if isinstance(payload, (bytes, bytearray)):
            body["content"] = bytes(payload)
        elif payload is not None:
            body["json"] = payload

        response = await self._get_client().request(
            method,
            url,
            headers=dict(headers),
            params=params or None,
            timeout=timeout,
            **body,
        )
        return TransportResponse(
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

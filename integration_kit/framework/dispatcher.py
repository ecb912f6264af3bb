"""
Request Dispatcher

Single chokepoint through which every vendor operation is sent. Requests go to
the Mock Responder unless the client was explicitly promoted out of test mode,
in which case they go through the injected live transport.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from .config import VendorConfig
from .descriptor import VendorDescriptor
from .errors import RequestError
from .lifecycle import LifecycleController
from .mock import MockResponder
from .transport import QueryParams, Transport

Emit = Callable[..., None]

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass(frozen=True)
class OperationRequest:
    """One request on its way to a vendor; built per call and not retained."""
    endpoint: str
    method: str = "GET"
    payload: Any = None
    params: Optional[QueryParams] = None
    headers: Dict[str, str] = field(default_factory=dict, repr=False)


class RequestDispatcher:
    """Routes requests to the mock responder or the live transport."""

    def __init__(
        self,
        descriptor: VendorDescriptor,
        config: VendorConfig,
        lifecycle: LifecycleController,
        mock: MockResponder,
        transport_factory: Callable[[], Transport],
        emit: Optional[Emit] = None,
    ):
        self.descriptor = descriptor
        self.config = config
        self.lifecycle = lifecycle
        self.mock = mock
        self._transport_factory = transport_factory
        self._emit = emit or (lambda *args, **kwargs: None)

    @property
    def base_url(self) -> str:
        return self.descriptor.base_url_for(self.config)

    def build_request(
        self,
        endpoint: str,
        method: str = "GET",
        payload: Any = None,
        params: Optional[QueryParams] = None,
        extra_headers: Optional[Mapping[str, str]] = None,
    ) -> OperationRequest:
        method = method.upper()
        if method not in METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        headers = self.descriptor.headers_for(self.config)
        if extra_headers:
            headers.update(extra_headers)
        return OperationRequest(endpoint=endpoint, method=method, payload=payload, params=params, headers=headers)

    async def dispatch(
        self,
        endpoint: str,
        method: str = "GET",
        payload: Any = None,
        params: Optional[QueryParams] = None,
        extra_headers: Optional[Mapping[str, str]] = None,
        raw: bool = False,
    ) -> Any:
        """
        Send a request once the client is ready.

        Args:
            endpoint: Path relative to the vendor base URL
            method: GET, POST, PUT, PATCH or DELETE
            payload: Opaque request body
            params: Query parameters
            extra_headers: Per-call headers merged over the vendor's auth headers
            raw: Return the raw response bytes instead of decoded JSON

        Returns:
            The decoded response body

        Raises:
            InitializationError: If the client cannot become ready
            RequestError: If the live transport fails or answers with a non-success status
        """
        await self.lifecycle.ensure_ready()
        request = self.build_request(endpoint, method, payload, params, extra_headers)
        return await self.send(request, raw=raw)

    async def send(self, request: OperationRequest, raw: bool = False) -> Any:
        """Send a request without the readiness precondition (used by the probe)."""
        if self.config.is_test_mode:
            self._emit("request.mocked", method=request.method, endpoint=request.endpoint)
            return self.mock.respond(request.endpoint, request.method, request.payload, request.params)
        return await self._send_live(request, raw)

    async def _send_live(self, request: OperationRequest, raw: bool) -> Any:
        url = f"{self.base_url}{request.endpoint}"
        transport = self._transport_factory()
        try:
            response = await transport.request(
                request.method,
                url,
                headers=request.headers,
                payload=request.payload,
                params=request.params,
                timeout=self.config.timeout_seconds,
            )
        except Exception as exc:
            self._emit("request.failed", method=request.method, endpoint=request.endpoint, error=str(exc))
            raise RequestError(
                f"{self.descriptor.display_name} API request failed: {exc}",
                endpoint=request.endpoint,
                method=request.method,
                provider=self.descriptor.name,
                cause=exc,
            ) from exc

        if not response.ok:
            body = response.payload()
            vendor_message = self.descriptor.extract_error(body)
            self._emit(
                "request.failed",
                method=request.method,
                endpoint=request.endpoint,
                status_code=response.status_code,
                vendor_message=vendor_message,
            )
            raise RequestError(
                f"{self.descriptor.display_name} API error: {response.status_code} - {vendor_message or 'Unknown error'}",
                status_code=response.status_code,
                vendor_message=vendor_message,
                endpoint=request.endpoint,
                method=request.method,
                provider=self.descriptor.name,
                response_data=body,
            )

        self._emit(
            "request.dispatched",
            method=request.method,
            endpoint=request.endpoint,
            status_code=response.status_code,
        )
        if raw:
            return response.content
        return response.payload()

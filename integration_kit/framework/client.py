"""
Generic Integration Client

Every vendor client is this class plus a VendorDescriptor and a handful of
typed operations. The base wires together configuration validation, the
lifecycle controller, the request dispatcher, the mock responder and the
webhook processor, and reports what it does through an injected event sink.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, ClassVar, Dict, List, Mapping, Optional

from integration_kit.core.config import vendor_env_settings

from .config import VendorConfig, validate_config
from .descriptor import VendorDescriptor
from .dispatcher import RequestDispatcher
from .errors import IntegrationError, OperationError
from .events import EventSink, IntegrationEvent, log_event
from .lifecycle import ClientState, LifecycleController
from .mock import MockResponder
from .models import ConnectionInfo, HealthStatus
from .transport import HttpxTransport, QueryParams, Transport
from .webhooks import RawPayload, WebhookEvent, WebhookProcessor


def compact(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None."""
    return {key: value for key, value in values.items() if value is not None}


def unwrap_single(body: Any, *keys: str) -> Dict[str, Any]:
    """
    Return the single record inside a response envelope.

    Missing keys are skipped and a list yields its first element, so singular
    (``{"Customer": {...}}``), plural (``{"Contacts": [{...}]}``) and bare
    records all resolve to the record itself.
    """
    current = body
    for key in keys:
        if isinstance(current, Mapping) and key in current:
            current = current[key]
    if isinstance(current, list):
        current = current[0] if current else {}
    return dict(current) if isinstance(current, Mapping) else {}


def unwrap_list(body: Any, *keys: str) -> List[Dict[str, Any]]:
    """Return the records inside a collection envelope; a missing key means no records."""
    current = body
    for key in keys:
        if not isinstance(current, Mapping) or key not in current:
            return []
        current = current[key]
    if isinstance(current, Mapping):
        current = [current]
    if not isinstance(current, list):
        return []
    return [dict(item) for item in current if isinstance(item, Mapping)]


class IntegrationClient:
    """
    Base class for vendor clients.

    Subclasses set ``descriptor``. Construction validates the configuration
    and performs no I/O; the first operation (or an explicit ``initialize()``)
    runs the readiness probe. Unless ``test_mode`` is explicitly False every
    request is answered by the mock responder.
    """

    descriptor: ClassVar[VendorDescriptor]

    def __init__(
        self,
        config: Optional[VendorConfig] = None,
        *,
        transport: Optional[Transport] = None,
        event_sink: EventSink = log_event,
        **options: Any,
    ):
        if config is None:
            config = VendorConfig.from_options(**options)
        elif options:
            raise TypeError("pass either a VendorConfig or keyword options, not both")
        validate_config(config, self.descriptor.required_fields, self.descriptor.display_name)

        self.config = config
        self._event_sink = event_sink
        self._transport = transport
        self._owns_transport = transport is None

        self.mock = MockResponder(self.descriptor.mock_routes, vendor=self.vendor)
        self.lifecycle = LifecycleController(
            self._probe,
            vendor=self.descriptor.display_name,
            on_transition=self._on_transition,
        )
        self.dispatcher = RequestDispatcher(
            self.descriptor,
            config,
            self.lifecycle,
            self.mock,
            self._get_transport,
            emit=self._emit,
        )
        self.webhooks = WebhookProcessor(self.descriptor, config)

    @classmethod
    def from_env(
        cls,
        *,
        transport: Optional[Transport] = None,
        event_sink: EventSink = log_event,
        **overrides: Any,
    ) -> "IntegrationClient":
        """
        Build a client from ``<PREFIX>_*`` environment variables and ``.env``.

        Credentials are read from ``<PREFIX>_<CREDENTIAL>`` for every credential
        the vendor declares; keyword overrides win over the environment.

        Raises:
            ConfigurationError: If a required credential is missing
        """
        credential_fields = cls.descriptor.credential_fields
        values = vendor_env_settings(cls.descriptor.environment_prefix, credential_fields).model_dump()

        credentials = compact({name: values.pop(name) for name in credential_fields})
        options = compact(values)
        options.update(overrides)
        config = VendorConfig.from_options(credentials=credentials, **options)
        return cls(config, transport=transport, event_sink=event_sink)

    @property
    def vendor(self) -> str:
        return self.descriptor.name

    @property
    def state(self) -> ClientState:
        return self.lifecycle.state

    @property
    def is_ready(self) -> bool:
        return self.lifecycle.is_ready

    def _emit(self, name: str, **fields: Any) -> None:
        self._event_sink(IntegrationEvent(name=name, vendor=self.vendor, fields=fields))

    def _on_transition(
        self,
        previous: ClientState,
        target: ClientState,
        error: Optional[BaseException],
    ) -> None:
        if target is ClientState.INITIALIZING:
            self._emit(
                "client.initializing",
                attempt=self.lifecycle.attempts,
                environment=self.config.environment.value,
                test_mode=self.config.is_test_mode,
            )
        elif target is ClientState.READY:
            self._emit("client.ready", attempt=self.lifecycle.attempts)
        elif target is ClientState.FAILED:
            self._emit("client.initialization_failed", attempt=self.lifecycle.attempts, error=str(error))

    def _get_transport(self) -> Transport:
        if self._transport is None:
            self._transport = HttpxTransport()
        return self._transport

    async def _probe(self) -> Any:
        probe = self.descriptor.health_probe(self.config)
        request = self.dispatcher.build_request(probe.endpoint, probe.method, params=probe.params)
        return await self.dispatcher.send(request)

    async def _dispatch(
        self,
        endpoint: str,
        method: str = "GET",
        payload: Any = None,
        params: Optional[QueryParams] = None,
        extra_headers: Optional[Mapping[str, str]] = None,
        raw: bool = False,
    ) -> Any:
        return await self.dispatcher.dispatch(endpoint, method, payload, params, extra_headers, raw)

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncIterator[None]:
        """Wrap any failure inside the block in an OperationError named ``name``."""
        try:
            yield
        except OperationError:
            raise
        except Exception as exc:
            self._emit(
                "operation.failed",
                operation=name,
                error=str(exc),
                error_code=getattr(exc, "error_code", None),
            )
            raise OperationError(name, exc, provider=self.vendor) from exc

    async def initialize(self) -> None:
        """
        Bring the client to READY.

        Concurrent calls share one probe. Calling this on a ready client is a
        no-op; after a failure the next call starts a fresh attempt.

        Raises:
            InitializationError: If the readiness probe fails
        """
        await self.lifecycle.ensure_ready()

    async def health_check(self) -> HealthStatus:
        """Probe the vendor; failures are reported in the result instead of raised."""
        try:
            if self.lifecycle.is_ready:
                await self._probe()
            else:
                await self.lifecycle.ensure_ready()
        except IntegrationError as exc:
            return HealthStatus(healthy=False, message=exc.error_message, vendor=self.vendor)
        return HealthStatus(
            healthy=True,
            message=f"{self.descriptor.display_name} connection is healthy",
            vendor=self.vendor,
        )

    def get_connection_info(self) -> ConnectionInfo:
        return ConnectionInfo(
            vendor=self.vendor,
            environment=self.config.environment,
            base_url=self.descriptor.base_url_for(self.config),
            test_mode=self.config.is_test_mode,
            has_webhook_secret=self.config.has_webhook_secret,
            state=self.lifecycle.state,
            ready=self.lifecycle.is_ready,
            timeout_ms=self.config.timeout_ms,
            last_transition_at=self.lifecycle.transitioned_at,
        )

    def process_webhook_event(self, raw_payload: RawPayload, signature: Optional[str] = None) -> WebhookEvent:
        """
        Verify and normalize an inbound webhook.

        Args:
            raw_payload: Raw request body, or an already-decoded JSON object
            signature: Value of the vendor's signature header

        Returns:
            The canonical WebhookEvent

        Raises:
            ConfigurationError: If signature verification needs a secret that is not configured
            WebhookError: If the signature is missing or invalid, or the payload is malformed
        """
        try:
            event = self.webhooks.process(raw_payload, signature)
        except IntegrationError as exc:
            self._emit("webhook.rejected", error_code=exc.error_code, error=exc.error_message)
            raise
        self._emit("webhook.processed", kind=event.kind, webhook_id=event.webhook_id)
        self._after_webhook(event)
        return event

    def _after_webhook(self, event: WebhookEvent) -> None:
        """Hook for clients that react to inbound events."""

    async def close(self) -> None:
        """Close the default transport if this client created it."""
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()
            self._transport = None

    async def __aenter__(self) -> "IntegrationClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(environment={self.config.environment.value!r}, state={self.state.value!r})"

"""
Mock Responder

Synthesizes deterministic, shape-correct responses for clients running in
test mode. Responses are built from a vendor's route table: each route
matches an endpoint fragment and describes the envelope and field names the
vendor uses, so calling code can exercise full round-trips without a live
vendor account.
"""

import copy
import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from integration_kit.core.logging import get_logger

from .transport import QueryParams

logger = get_logger(__name__)

# Shared across responders so identifiers stay unique process-wide.
_SEQUENCE = itertools.count(1)

PathPart = Union[str, int]


@dataclass(frozen=True)
class MockCall:
    """One request as seen by the mock responder."""
    endpoint: str
    method: str
    payload: Any = None
    params: Optional[QueryParams] = None

    @property
    def path(self) -> str:
        return self.endpoint.split("?", 1)[0]

    @property
    def last_segment(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class MockRoute:
    """
    Describes how one endpoint family answers in test mode.

    ``list_envelope`` and ``item_envelope`` are key paths wrapping collection
    reads and writes respectively (empty means unwrapped). ``unwrap_payload``
    points at the record inside a write payload for vendors that wrap their
    request bodies. ``created_field`` / ``updated_field`` accept dotted paths.
    """
    fragment: str
    id_prefix: str
    sample: Mapping[str, Any] = field(default_factory=dict)
    defaults: Mapping[str, Any] = field(default_factory=dict)
    list_envelope: Tuple[PathPart, ...] = ()
    item_envelope: Tuple[PathPart, ...] = ()
    item_as_list: bool = False
    unwrap_payload: Tuple[PathPart, ...] = ()
    read_single: bool = False
    deleted_shape: Optional[Mapping[str, Any]] = None
    id_field: str = "id"
    created_field: Optional[str] = "createdAt"
    updated_field: Optional[str] = "updatedAt"
    timestamp_format: str = "iso"
    methods: Optional[Tuple[str, ...]] = None
    handler: Optional[Callable[[MockCall, "MockResponder"], Any]] = None

    def matches(self, call: MockCall) -> bool:
        if self.methods is not None and call.method not in self.methods:
            return False
        return self.fragment in call.path


def get_path(obj: Any, path: Sequence[PathPart]) -> Any:
    """Follow a key/index path; returns None when any step is missing."""
    current = obj
    for part in path:
        if isinstance(part, int):
            if not isinstance(current, (list, tuple)) or len(current) <= part:
                return None
            current = current[part]
        else:
            if not isinstance(current, Mapping) or part not in current:
                return None
            current = current[part]
    return current


def set_dotted(record: Dict[str, Any], dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    target = record
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


def wrap(value: Any, envelope: Sequence[PathPart]) -> Any:
    for part in reversed(envelope):
        value = [value] if isinstance(part, int) else {part: value}
    return value


class MockResponder:
    """
    Deterministic stand-in for a vendor API.

    Never raises for well-formed route tables and performs no I/O; the only
    external input is the current time, used for identifiers and timestamps.
    """

    def __init__(self, routes: Sequence[MockRoute] = (), vendor: str = "vendor"):
        self.routes = tuple(routes)
        self.vendor = vendor

    def generate_id(self, prefix: str) -> str:
        return f"{prefix}_{int(time.time() * 1000)}{next(_SEQUENCE):04d}"

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self, fmt: str = "iso") -> Any:
        now = self.now()
        if fmt == "unix":
            return int(now.timestamp())
        return now.isoformat()

    def stamp(self, record: Dict[str, Any], route: MockRoute, created: bool = True) -> Dict[str, Any]:
        value = self.timestamp(route.timestamp_format)
        if created and route.created_field:
            set_dotted(record, route.created_field, value)
        if route.updated_field:
            set_dotted(record, route.updated_field, value)
        return record

    def find_route(self, call: MockCall) -> Optional[MockRoute]:
        for route in self.routes:
            if route.matches(call):
                return route
        return None

    def respond(
        self,
        endpoint: str,
        method: str = "GET",
        payload: Any = None,
        params: Optional[QueryParams] = None,
    ) -> Any:
        """
        Answer a request without touching the network.

        Args:
            endpoint: Logical endpoint path (query string allowed)
            method: HTTP method
            payload: Request payload, echoed back for writes
            params: Query parameters

        Returns:
            A synthetic response shaped like the vendor's
        """
        call = MockCall(endpoint=endpoint, method=method.upper(), payload=payload, params=params)
        logger.debug("mock.request", vendor=self.vendor, method=call.method, endpoint=call.path)

        if "/health" in call.path:
            return {"status": "healthy", "vendor": self.vendor, "timestamp": self.timestamp()}

        route = self.find_route(call)
        if route is None:
            return {}
        if route.handler is not None:
            return route.handler(call, self)

        if call.method == "GET":
            return self._read(call, route)
        if call.method == "DELETE":
            return self._delete(call, route)
        if call.method in ("PUT", "PATCH"):
            return self._update(call, route)
        return self._create(call, route)

    def sample_record(self, route: MockRoute, record_id: Optional[str] = None) -> Dict[str, Any]:
        record = copy.deepcopy(dict(route.sample))
        record[route.id_field] = record_id or self.generate_id(route.id_prefix)
        return self.stamp(record, route)

    def _read(self, call: MockCall, route: MockRoute) -> Any:
        if route.read_single:
            return wrap(self.sample_record(route, call.last_segment), route.item_envelope)
        return wrap([self.sample_record(route)], route.list_envelope)

    def _echo(self, call: MockCall, route: MockRoute) -> Dict[str, Any]:
        source = call.payload
        if route.unwrap_payload:
            source = get_path(source, route.unwrap_payload)
        record = copy.deepcopy(dict(route.defaults))
        if isinstance(source, Mapping):
            record.update(copy.deepcopy(dict(source)))
        return record

    def _single_result(self, record: Dict[str, Any], route: MockRoute) -> Any:
        if route.item_as_list:
            record = [record]
        return wrap(record, route.item_envelope)

    def _create(self, call: MockCall, route: MockRoute) -> Any:
        record = self._echo(call, route)
        record[route.id_field] = self.generate_id(route.id_prefix)
        return self._single_result(self.stamp(record, route), route)

    def _update(self, call: MockCall, route: MockRoute) -> Any:
        record = self._echo(call, route)
        record.setdefault(route.id_field, call.last_segment)
        return self._single_result(self.stamp(record, route, created=False), route)

    def _delete(self, call: MockCall, route: MockRoute) -> Any:
        shape = dict(route.deleted_shape) if route.deleted_shape is not None else {"deleted": True}
        return {route.id_field: call.last_segment, **shape}

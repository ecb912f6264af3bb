"""
Supabase Backend Client

Auth (GoTrue), table access through PostgREST, remote procedure calls,
storage objects, and fan-out of database-change webhooks to in-process
subscribers.

Unlike the other clients this one holds session state: signing in stores the
returned session and later requests are authorized with its access token
until ``sign_out()``.
"""

import itertools
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote

from integration_kit.core.logging import get_logger
from integration_kit.framework import (
    IntegrationClient,
    MockCall,
    MockResponder,
    MockRoute,
    ProbeRequest,
    VendorDescriptor,
    WebhookEvent,
    WebhookFieldMap,
    compact,
    unwrap_list,
    unwrap_single,
)

logger = get_logger(__name__)

AUTH_ROOT = "/auth/v1"
REST_ROOT = "/rest/v1"
STORAGE_ROOT = "/storage/v1"

FILTER_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "in")

Row = Dict[str, Any]
ChangeCallback = Callable[["DatabaseChange"], None]


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    created_at: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthSession:
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    user: Optional[AuthUser] = None


@dataclass
class AuthResult:
    user: Optional[AuthUser]
    session: Optional[AuthSession]


@dataclass
class QueryResult:
    data: Any
    count: Optional[int] = None


@dataclass
class StoredObject:
    bucket: str
    path: str
    key: str
    id: Optional[str] = None


@dataclass(frozen=True)
class DatabaseChange:
    """One row change delivered by a database webhook."""
    type: str
    table: str
    schema: str = "public"
    record: Optional[Row] = None
    old_record: Optional[Row] = None
    commit_timestamp: Optional[str] = None


def _to_user(body: Any) -> Optional[AuthUser]:
    if not isinstance(body, Mapping) or not body.get("id"):
        return None
    return AuthUser(
        id=str(body["id"]),
        email=body.get("email"),
        created_at=body.get("created_at"),
        user_metadata=dict(body.get("user_metadata") or {}),
    )


def _to_session(body: Any) -> Optional[AuthSession]:
    if not isinstance(body, Mapping) or not body.get("access_token"):
        return None
    return AuthSession(
        access_token=body["access_token"],
        refresh_token=body.get("refresh_token"),
        token_type=body.get("token_type", "bearer"),
        expires_in=body.get("expires_in"),
        expires_at=body.get("expires_at"),
        user=_to_user(body.get("user")),
    )


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _like_pattern(expected: str, ignore_case: bool) -> "re.Pattern[str]":
    """Translate a LIKE pattern; ``*`` is accepted as an alias for ``%``."""
    translated = []
    for char in expected:
        if char in "%*":
            translated.append(".*")
        elif char == "_":
            translated.append(".")
        else:
            translated.append(re.escape(char))
    flags = re.DOTALL | (re.IGNORECASE if ignore_case else 0)
    return re.compile("".join(translated), flags)


def _compare(actual: Any, operator: str, expected: str) -> bool:
    if operator == "in":
        options = [item.strip() for item in expected.strip("()").split(",")]
        return _format_value(actual) in options
    if operator == "eq":
        return _format_value(actual) == expected
    if operator == "neq":
        return _format_value(actual) != expected
    if operator in ("like", "ilike"):
        if actual is None:
            return False
        pattern = _like_pattern(expected, ignore_case=operator == "ilike")
        return pattern.fullmatch(_format_value(actual)) is not None
    try:
        left, right = float(actual), float(expected)
    except (TypeError, ValueError):
        left, right = _format_value(actual), expected
    if operator == "gt":
        return left > right
    if operator == "gte":
        return left >= right
    if operator == "lt":
        return left < right
    if operator == "lte":
        return left <= right
    raise ValueError(f"unsupported filter operator: {operator}")


def parse_filter(expression: str) -> Tuple[str, str, str]:
    """Split a ``column=op.value`` filter into its parts."""
    column, sep, rest = expression.partition("=")
    operator, dot, value = rest.partition(".")
    if not sep or not dot or not column or operator not in FILTER_OPERATORS:
        raise ValueError(f"invalid filter expression: {expression!r}")
    return column.strip(), operator, value


class Subscription:
    """Handle returned by ``subscribe()``; call ``unsubscribe()`` to stop receiving changes."""

    def __init__(
        self,
        registry: "SubscriptionRegistry",
        key: int,
        table: str,
        callback: ChangeCallback,
        filter: Optional[str] = None,
    ):
        self._registry = registry
        self.key = key
        self.table = table
        self.callback = callback
        self.filter = parse_filter(filter) if filter else None

    @property
    def active(self) -> bool:
        return self.key in self._registry

    def matches(self, change: DatabaseChange) -> bool:
        if self.table not in ("*", change.table):
            return False
        if self.filter is None:
            return True
        column, operator, value = self.filter
        record = change.record if change.record is not None else change.old_record
        return record is not None and column in record and _compare(record[column], operator, value)

    def unsubscribe(self) -> None:
        self._registry.remove(self.key)


class SubscriptionRegistry:
    """In-process table subscriptions fed by database-change webhooks."""

    def __init__(self) -> None:
        self._subscriptions: Dict[int, Subscription] = {}
        self._keys = itertools.count(1)

    def __contains__(self, key: int) -> bool:
        return key in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def add(self, table: str, callback: ChangeCallback, filter: Optional[str] = None) -> Subscription:
        subscription = Subscription(self, next(self._keys), table, callback, filter)
        self._subscriptions[subscription.key] = subscription
        return subscription

    def remove(self, key: int) -> None:
        self._subscriptions.pop(key, None)

    def publish(self, change: DatabaseChange) -> int:
        """Deliver a change to every matching subscriber, in subscription order."""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.matches(change):
                subscription.callback(change)
                delivered += 1
        return delivered


class TableQuery:
    """
    Chainable PostgREST query for one table.

    Example:
        result = await client.from_("todos").select("id,title").eq("done", False).limit(10).execute()
    """

    def __init__(self, client: "SupabaseClient", table: str):
        if not table or not table.strip():
            raise ValueError("table name is required")
        self._client = client
        self.table = table
        self.action = "select"
        self.method = "GET"
        self.payload: Any = None
        self.params: List[Tuple[str, str]] = []
        self.headers: Dict[str, str] = {}
        self.is_single = False

    def _set_action(self, action: str, method: str, payload: Any = None) -> "TableQuery":
        self.action = action
        self.method = method
        self.payload = payload
        if method != "GET":
            self.headers["Prefer"] = "return=representation"
        return self

    def select(self, columns: str = "*", count: Optional[str] = None) -> "TableQuery":
        self.params.append(("select", columns))
        if count:
            self.headers["Prefer"] = f"count={count}"
        return self._set_action("select", "GET")

    def insert(self, rows: Union[Row, Sequence[Row]], upsert: bool = False) -> "TableQuery":
        self._set_action("insert", "POST", rows if isinstance(rows, Mapping) else list(rows))
        if upsert:
            self.headers["Prefer"] = "return=representation,resolution=merge-duplicates"
        return self

    def update(self, values: Row) -> "TableQuery":
        return self._set_action("update", "PATCH", dict(values))

    def delete(self) -> "TableQuery":
        return self._set_action("delete", "DELETE")

    def _filter(self, column: str, operator: str, value: str) -> "TableQuery":
        self.params.append((column, f"{operator}.{value}"))
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "eq", _format_value(value))

    def neq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "neq", _format_value(value))

    def gt(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "gt", _format_value(value))

    def gte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "gte", _format_value(value))

    def lt(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "lt", _format_value(value))

    def lte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "lte", _format_value(value))

    def like(self, column: str, pattern: str) -> "TableQuery":
        return self._filter(column, "like", pattern)

    def ilike(self, column: str, pattern: str) -> "TableQuery":
        return self._filter(column, "ilike", pattern)

    def in_(self, column: str, values: Sequence[Any]) -> "TableQuery":
        return self._filter(column, "in", "(" + ",".join(_format_value(v) for v in values) + ")")

    def order(self, column: str, ascending: bool = True) -> "TableQuery":
        self.params.append(("order", f"{column}.{'asc' if ascending else 'desc'}"))
        return self

    def limit(self, count: int) -> "TableQuery":
        if count < 0:
            raise ValueError("limit must not be negative")
        self.params.append(("limit", str(count)))
        return self

    def range(self, start: int, end: int) -> "TableQuery":
        """Rows ``start`` through ``end`` inclusive."""
        if start < 0 or end < start:
            raise ValueError(f"invalid range {start}-{end}")
        self.params.append(("offset", str(start)))
        self.params.append(("limit", str(end - start + 1)))
        return self

    def single(self) -> "TableQuery":
        self.is_single = True
        self.headers["Accept"] = "application/vnd.pgrst.object+json"
        return self

    async def execute(self) -> QueryResult:
        return await self._client._execute_query(self)


def _mock_rest(call: MockCall, responder: MockResponder) -> Any:
    # /rest/v1/<table>
    params = dict(call.params or [])
    now = responder.timestamp()
    if call.method == "GET":
        row = {"id": responder.generate_id("row"), "created_at": now, "updated_at": now}
        for column, expression in params.items():
            if column not in ("select", "order", "limit", "offset") and expression.startswith("eq."):
                row[column] = expression[3:]
        return [row]
    if call.method == "POST":
        rows = call.payload if isinstance(call.payload, list) else [call.payload or {}]
        return [
            {"id": responder.generate_id("row"), **dict(row), "created_at": now, "updated_at": now}
            for row in rows
        ]
    if call.method in ("PATCH", "PUT"):
        row = dict(call.payload or {})
        if "id" in params and params["id"].startswith("eq."):
            row.setdefault("id", params["id"][3:])
        row["updated_at"] = now
        return [row]
    record_id = params.get("id", "")
    return [{"id": record_id[3:] if record_id.startswith("eq.") else record_id, "deleted": True}]


def _mock_rpc(call: MockCall, responder: MockResponder) -> Any:
    return {"function": call.last_segment, "args": call.payload or {}, "executed_at": responder.timestamp()}


def _mock_user(email: str, responder: MockResponder) -> Dict[str, Any]:
    return {
        "id": responder.generate_id("user"),
        "email": email,
        "created_at": responder.timestamp(),
        "user_metadata": {},
    }


def _mock_session(user: Dict[str, Any], responder: MockResponder) -> Dict[str, Any]:
    return {
        "access_token": responder.generate_id("access"),
        "refresh_token": responder.generate_id("refresh"),
        "token_type": "bearer",
        "expires_in": 3600,
        "expires_at": responder.timestamp("unix") + 3600,
        "user": user,
    }


def _mock_auth(call: MockCall, responder: MockResponder) -> Any:
    payload = call.payload or {}
    email = payload.get("email", "user@example.com")
    if call.path.endswith("/signup"):
        user = _mock_user(email, responder)
        user["user_metadata"] = dict(payload.get("data") or {})
        return {"user": user, "session": _mock_session(user, responder)}
    if call.path.endswith("/token"):
        return _mock_session(_mock_user(email, responder), responder)
    if call.path.endswith("/user"):
        return _mock_user(email, responder)
    return {}


def _mock_storage(call: MockCall, responder: MockResponder) -> Any:
    # /storage/v1/object/<bucket>/<path>
    location = call.path.split("/object/", 1)[-1]
    if call.method == "GET":
        return f"mock content of {location}".encode("utf-8")
    if call.method == "DELETE":
        prefixes = (call.payload or {}).get("prefixes", [])
        return [{"name": prefix, "bucket_id": location} for prefix in prefixes]
    return {"Key": location, "Id": responder.generate_id("obj")}


MOCK_ROUTES = (
    MockRoute(fragment=f"{REST_ROOT}/rpc/", id_prefix="rpc", handler=_mock_rpc),
    MockRoute(fragment=REST_ROOT, id_prefix="row", handler=_mock_rest),
    MockRoute(fragment=f"{STORAGE_ROOT}/object", id_prefix="obj", handler=_mock_storage),
    MockRoute(fragment=AUTH_ROOT, id_prefix="user", handler=_mock_auth),
)

SUPABASE = VendorDescriptor(
    name="supabase",
    display_name="Supabase",
    required_fields=("url", "anon_key"),
    optional_fields=("service_key",),
    base_urls={},
    base_url_credential="url",
    build_headers=lambda config: {
        "apikey": config.credential("anon_key"),
        "Authorization": f"Bearer {config.credential('service_key') or config.credential('anon_key')}",
    },
    health_probe=lambda config: ProbeRequest(f"{AUTH_ROOT}/health"),
    mock_routes=MOCK_ROUTES,
    webhook_fields=WebhookFieldMap(
        kind=("type",),
        data=(),
        timestamp=("commit_timestamp", "timestamp", "record.updated_at", "record.created_at", "old_record.updated_at"),
        webhook_id=("id", "event_id"),
        object_id=("record.id", "old_record.id"),
    ),
)


class SupabaseClient(IntegrationClient):
    """Supabase auth, database, storage and change-subscription client."""

    descriptor = SUPABASE

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._session: Optional[AuthSession] = None
        self.subscriptions = SubscriptionRegistry()

    def _session_headers(self) -> Dict[str, str]:
        if self._session is None:
            return {}
        return {"Authorization": f"Bearer {self._session.access_token}"}

    async def sign_up(
        self,
        email: str,
        password: str,
        data: Optional[Dict[str, Any]] = None,
        redirect_to: Optional[str] = None,
    ) -> AuthResult:
        """
        Register a new user.

        Args:
            email: User email
            password: User password
            data: Extra user metadata
            redirect_to: Where the confirmation email should send the user

        Returns:
            The new user, plus a session when email confirmation is disabled

        Raises:
            OperationError: If validation, initialization or the request fails
        """
        async with self._operation("sign_up"):
            if not email or not password:
                raise ValueError("email and password are required")
            payload = compact({"email": email, "password": password, "data": data})
            params = {"redirect_to": redirect_to} if redirect_to else None
            body = await self._dispatch(f"{AUTH_ROOT}/signup", "POST", payload, params=params)
            session = _to_session(body.get("session")) if isinstance(body, Mapping) else None
            user = _to_user(body.get("user")) if isinstance(body, Mapping) and "user" in body else _to_user(body)
            if session is not None:
                self._session = session
            return AuthResult(user=user or (session.user if session else None), session=session)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Sign in with email and password and keep the returned session."""
        async with self._operation("sign_in"):
            if not email or not password:
                raise ValueError("email and password are required")
            body = await self._dispatch(
                f"{AUTH_ROOT}/token",
                "POST",
                {"email": email, "password": password},
                params={"grant_type": "password"},
            )
            session = _to_session(body)
            if session is None:
                raise ValueError("sign in response did not contain a session")
            self._session = session
            return AuthResult(user=session.user, session=session)

    async def sign_out(self) -> None:
        async with self._operation("sign_out"):
            if self._session is None:
                return
            await self._dispatch(f"{AUTH_ROOT}/logout", "POST", extra_headers=self._session_headers())
            self._session = None

    async def reset_password(self, email: str, redirect_to: Optional[str] = None) -> None:
        async with self._operation("reset_password"):
            if not email:
                raise ValueError("email is required")
            params = {"redirect_to": redirect_to} if redirect_to else None
            await self._dispatch(f"{AUTH_ROOT}/recover", "POST", {"email": email}, params=params)

    def get_session(self) -> Optional[AuthSession]:
        return self._session

    async def get_user(self) -> Optional[AuthUser]:
        """Fetch the signed-in user, or None when there is no session."""
        async with self._operation("get_user"):
            if self._session is None:
                return None
            body = await self._dispatch(f"{AUTH_ROOT}/user", extra_headers=self._session_headers())
            return _to_user(body)

    def from_(self, table: str) -> TableQuery:
        return TableQuery(self, table)

    async def _execute_query(self, query: TableQuery) -> QueryResult:
        async with self._operation(f"{query.action} {query.table}"):
            headers = {**self._session_headers(), **query.headers}
            body = await self._dispatch(
                f"{REST_ROOT}/{quote(query.table)}",
                query.method,
                query.payload,
                params=list(query.params),
                extra_headers=headers,
            )
            if query.is_single:
                if isinstance(body, list):
                    if len(body) != 1:
                        raise ValueError(f"expected a single row from {query.table}, got {len(body)}")
                    body = body[0]
                return QueryResult(data=body, count=1 if body else 0)
            rows = unwrap_list(body)
            return QueryResult(data=rows, count=len(rows))

    async def rpc(self, function_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with self._operation("rpc"):
            if not function_name:
                raise ValueError("function name is required")
            return await self._dispatch(
                f"{REST_ROOT}/rpc/{quote(function_name)}",
                "POST",
                params or {},
                extra_headers=self._session_headers(),
            )

    async def upload_file(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> StoredObject:
        async with self._operation("upload_file"):
            if not isinstance(content, (bytes, bytearray)):
                raise TypeError("file content must be bytes")
            headers = {
                **self._session_headers(),
                "Content-Type": content_type,
                "x-upsert": "true" if upsert else "false",
            }
            body = await self._dispatch(
                f"{STORAGE_ROOT}/object/{bucket}/{path.lstrip('/')}",
                "POST",
                bytes(content),
                extra_headers=headers,
            )
            record = unwrap_single(body)
            return StoredObject(
                bucket=bucket,
                path=path.lstrip("/"),
                key=record.get("Key", f"{bucket}/{path.lstrip('/')}"),
                id=record.get("Id"),
            )

    async def download_file(self, bucket: str, path: str) -> bytes:
        async with self._operation("download_file"):
            body = await self._dispatch(
                f"{STORAGE_ROOT}/object/{bucket}/{path.lstrip('/')}",
                extra_headers=self._session_headers(),
                raw=True,
            )
            if isinstance(body, str):
                return body.encode("utf-8")
            return bytes(body or b"")

    def get_public_url(self, bucket: str, path: str) -> str:
        base_url = self.descriptor.base_url_for(self.config)
        return f"{base_url}{STORAGE_ROOT}/object/public/{bucket}/{path.lstrip('/')}"

    async def delete_file(self, bucket: str, paths: Sequence[str]) -> List[str]:
        async with self._operation("delete_file"):
            if not paths:
                raise ValueError("at least one path is required")
            body = await self._dispatch(
                f"{STORAGE_ROOT}/object/{bucket}",
                "DELETE",
                {"prefixes": list(paths)},
                extra_headers=self._session_headers(),
            )
            return [record.get("name", "") for record in unwrap_list(body)]

    def subscribe(self, table: str, callback: ChangeCallback, filter: Optional[str] = None) -> Subscription:
        """
        Register a callback for row changes on ``table`` (``"*"`` for every table).

        Changes arrive through database webhooks passed to
        ``process_webhook_event``. ``filter`` takes the ``column=op.value``
        form, e.g. ``"status=eq.active"``.
        """
        subscription = self.subscriptions.add(table, callback, filter)
        logger.debug("supabase.subscribed", table=table, filter=filter, key=subscription.key)
        return subscription

    def _after_webhook(self, event: WebhookEvent) -> None:
        payload = event.data
        table = payload.get("table")
        if not table:
            return
        change = DatabaseChange(
            type=event.kind,
            table=table,
            schema=payload.get("schema", "public"),
            record=payload.get("record"),
            old_record=payload.get("old_record"),
            commit_timestamp=event.timestamp,
        )
        delivered = self.subscriptions.publish(change)
        self._emit("webhook.fanned_out", table=table, kind=event.kind, subscribers=delivered)

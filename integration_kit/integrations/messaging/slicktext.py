"""
SlickText SMS Client

Messages, subscribers, campaigns and keyword auto-replies against the
SlickText REST API. Every response wraps its payload in ``{"data": ...}``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from integration_kit.framework import (
    Environment,
    IntegrationClient,
    MockCall,
    MockResponder,
    MockRoute,
    ProbeRequest,
    VendorDescriptor,
    WebhookFieldMap,
    bearer_headers,
    compact,
    unwrap_list,
    unwrap_single,
)

SLICKTEXT_API_URL = "https://api.slicktext.com/v1"

# Webhook event kinds SlickText delivers.
MESSAGE_DELIVERED = "message.delivered"
MESSAGE_FAILED = "message.failed"
SUBSCRIBER_OPTED_IN = "subscriber.opted_in"
SUBSCRIBER_OPTED_OUT = "subscriber.opted_out"


@dataclass
class SendMessageRequest:
    """A message to one phone number or to every subscriber of a list."""
    message: str
    phone_number: Optional[str] = None
    list_id: Optional[str] = None
    scheduled_for: Optional[datetime] = None


@dataclass
class ContactRequest:
    phone_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    list_id: Optional[str] = None
    subscribed: bool = True
    custom_fields: Dict[str, str] = field(default_factory=dict)


@dataclass
class CampaignRequest:
    name: str
    content: str
    list_id: Optional[str] = None
    scheduled_for: Optional[datetime] = None


@dataclass
class SlickTextMessage:
    id: str
    content: Optional[str]
    status: str
    phone_number: Optional[str] = None
    list_id: Optional[str] = None
    scheduled_for: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class SlickTextContact:
    id: str
    phone_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    list_id: Optional[str] = None
    subscribed: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class SlickTextCampaign:
    id: str
    name: Optional[str]
    status: str
    content: Optional[str] = None
    list_id: Optional[str] = None
    sent_count: int = 0
    delivered_count: int = 0
    failed_count: int = 0
    clicked_count: int = 0
    unsubscribed_count: int = 0
    created_at: Optional[str] = None
    sent_at: Optional[str] = None

    @property
    def delivery_rate(self) -> float:
        return self.delivered_count / self.sent_count if self.sent_count else 0.0


@dataclass
class AutoReply:
    id: str
    keyword: str
    message: str
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class AccountBalance:
    balance: float
    currency: str
    last_updated: Optional[str] = None


def _mock_campaign_stats(call: MockCall, responder: MockResponder) -> Dict[str, Any]:
    # /campaigns/<id>/stats
    campaign_id = call.path.rstrip("/").split("/")[-2]
    return {
        "data": {
            "id": campaign_id,
            "name": "Example Campaign",
            "status": "completed",
            "sent_count": 100,
            "delivered_count": 97,
            "failed_count": 3,
            "clicked_count": 12,
            "unsubscribed_count": 1,
            "sent_at": responder.timestamp(),
        }
    }


def _mock_balance(call: MockCall, responder: MockResponder) -> Dict[str, Any]:
    return {"data": {"balance": 100.0, "currency": "USD", "last_updated": responder.timestamp()}}


def _data_route(fragment: str, prefix: str, **kwargs: Any) -> MockRoute:
    return MockRoute(
        fragment=fragment,
        id_prefix=prefix,
        list_envelope=("data",),
        item_envelope=("data",),
        created_field="created_at",
        updated_field="updated_at",
        deleted_shape={"status": "deleted"},
        **kwargs,
    )


MOCK_ROUTES = (
    MockRoute(fragment="/account/balance", id_prefix="balance", handler=_mock_balance),
    MockRoute(fragment="/stats", id_prefix="campaign", handler=_mock_campaign_stats),
    _data_route(
        "/messages",
        "msg",
        sample={"content": "Thanks for subscribing!", "status": "delivered", "list_id": "list_1"},
        defaults={"status": "sent"},
    ),
    _data_route(
        "/subscribers",
        "contact",
        sample={"phone": "+15555550100", "status": "active", "list_id": "list_1"},
        defaults={"status": "active"},
    ),
    _data_route(
        "/contacts",
        "contact",
        sample={"phone": "+15555550100", "first_name": "Jane", "last_name": "Doe", "status": "active"},
    ),
    _data_route(
        "/campaigns",
        "campaign",
        sample={"name": "Spring Sale", "content": "20% off this week", "status": "sent", "sent_count": 100},
        defaults={
            "status": "draft",
            "sent_count": 0,
            "delivered_count": 0,
            "failed_count": 0,
            "clicked_count": 0,
            "unsubscribed_count": 0,
        },
    ),
    _data_route(
        "/auto-replies",
        "reply",
        sample={"keyword": "HOURS", "message": "We are open 9-5", "is_active": True},
        defaults={"is_active": True},
    ),
)

SLICKTEXT = VendorDescriptor(
    name="slicktext",
    display_name="SlickText",
    required_fields=("api_key", "textword"),
    base_urls={Environment.SANDBOX: SLICKTEXT_API_URL, Environment.PRODUCTION: SLICKTEXT_API_URL},
    build_headers=bearer_headers("api_key"),
    health_probe=lambda config: ProbeRequest("/account/balance"),
    mock_routes=MOCK_ROUTES,
    webhook_fields=WebhookFieldMap(
        kind=("type", "event"),
        data=("data",),
        timestamp=("timestamp", "created_at"),
        webhook_id=("id", "event_id"),
        object_id=("data.id", "object_id"),
    ),
    signature_header="X-SlickText-Signature",
)


def _to_message(body: Mapping[str, Any]) -> SlickTextMessage:
    return SlickTextMessage(
        id=str(body.get("id", "")),
        content=body.get("content"),
        status=body.get("status", ""),
        phone_number=body.get("phone"),
        list_id=body.get("list_id"),
        scheduled_for=body.get("scheduled_for"),
        created_at=body.get("created_at"),
    )


def _to_contact(body: Mapping[str, Any]) -> SlickTextContact:
    return SlickTextContact(
        id=str(body.get("id", "")),
        phone_number=body.get("phone", ""),
        first_name=body.get("first_name"),
        last_name=body.get("last_name"),
        email=body.get("email"),
        list_id=body.get("list_id"),
        subscribed=body.get("status", "active") == "active",
        created_at=body.get("created_at"),
        updated_at=body.get("updated_at"),
    )


def _to_campaign(body: Mapping[str, Any]) -> SlickTextCampaign:
    return SlickTextCampaign(
        id=str(body.get("id", "")),
        name=body.get("name"),
        status=body.get("status", ""),
        content=body.get("content"),
        list_id=body.get("list_id"),
        sent_count=int(body.get("sent_count") or 0),
        delivered_count=int(body.get("delivered_count") or 0),
        failed_count=int(body.get("failed_count") or 0),
        clicked_count=int(body.get("clicked_count") or 0),
        unsubscribed_count=int(body.get("unsubscribed_count") or 0),
        created_at=body.get("created_at"),
        sent_at=body.get("sent_at"),
    )


def _to_auto_reply(body: Mapping[str, Any]) -> AutoReply:
    return AutoReply(
        id=str(body.get("id", "")),
        keyword=body.get("keyword", ""),
        message=body.get("message", ""),
        is_active=bool(body.get("is_active", True)),
        created_at=body.get("created_at"),
        updated_at=body.get("updated_at"),
    )


class SlickTextClient(IntegrationClient):
    """SlickText SMS marketing client."""

    descriptor = SLICKTEXT

    @property
    def textword(self) -> str:
        return self.config.credential("textword")

    async def send_message(self, request: SendMessageRequest) -> SlickTextMessage:
        """
        Send, or schedule, an SMS message.

        Args:
            request: Message text and either a phone number or a list id

        Returns:
            The queued or sent SlickTextMessage

        Raises:
            OperationError: If validation, initialization or the request fails
        """
        async with self._operation("send_message"):
            if not request.message or not request.message.strip():
                raise ValueError("message text is required")
            if not request.phone_number and not request.list_id:
                raise ValueError("either phone_number or list_id is required")
            payload = compact({
                "content": request.message,
                "phone": request.phone_number,
                "list_id": request.list_id,
                "textword": self.textword,
                "scheduled_for": request.scheduled_for.isoformat() if request.scheduled_for else None,
            })
            body = await self._dispatch("/messages", "POST", payload)
            return _to_message(unwrap_single(body, "data"))

    async def add_contact(self, request: ContactRequest) -> SlickTextContact:
        """Subscribe a phone number to the textword (or to a specific list)."""
        async with self._operation("add_contact"):
            if not request.phone_number or not request.phone_number.strip():
                raise ValueError("phone number is required")
            payload = compact({
                "phone": request.phone_number,
                "first_name": request.first_name,
                "last_name": request.last_name,
                "email": request.email,
                "list_id": request.list_id,
                "textword": self.textword,
                "status": "active" if request.subscribed else "inactive",
                **request.custom_fields,
            })
            body = await self._dispatch("/subscribers", "POST", payload)
            return _to_contact(unwrap_single(body, "data"))

    async def delete_subscriber(self, subscriber_id: str) -> bool:
        async with self._operation("delete_subscriber"):
            body = await self._dispatch(f"/subscribers/{subscriber_id}", "DELETE")
            record = unwrap_single(body, "data")
            return record.get("status") == "deleted" or bool(record.get("deleted"))

    async def create_campaign(self, request: CampaignRequest) -> SlickTextCampaign:
        async with self._operation("create_campaign"):
            if not request.name or not request.content:
                raise ValueError("campaign name and content are required")
            payload = compact({
                "name": request.name,
                "content": request.content,
                "list_id": request.list_id,
                "textword": self.textword,
                "scheduled_for": request.scheduled_for.isoformat() if request.scheduled_for else None,
            })
            body = await self._dispatch("/campaigns", "POST", payload)
            return _to_campaign(unwrap_single(body, "data"))

    async def get_campaigns(self) -> List[SlickTextCampaign]:
        async with self._operation("get_campaigns"):
            body = await self._dispatch("/campaigns")
            return [_to_campaign(record) for record in unwrap_list(body, "data")]

    async def get_campaign_stats(self, campaign_id: str) -> SlickTextCampaign:
        async with self._operation("get_campaign_stats"):
            body = await self._dispatch(f"/campaigns/{campaign_id}/stats")
            return _to_campaign(unwrap_single(body, "data"))

    async def get_contacts(
        self,
        limit: int = 50,
        offset: int = 0,
        tags: Optional[List[str]] = None,
    ) -> List[SlickTextContact]:
        async with self._operation("get_contacts"):
            params = compact({"limit": limit, "offset": offset, "tags": ",".join(tags) if tags else None})
            body = await self._dispatch("/contacts", params=params)
            return [_to_contact(record) for record in unwrap_list(body, "data")]

    async def get_message_history(self, limit: int = 50, offset: int = 0) -> List[SlickTextMessage]:
        async with self._operation("get_message_history"):
            body = await self._dispatch("/messages", params={"limit": limit, "offset": offset})
            return [_to_message(record) for record in unwrap_list(body, "data")]

    async def create_auto_reply(self, keyword: str, message: str, is_active: bool = True) -> AutoReply:
        async with self._operation("create_auto_reply"):
            if not keyword or not keyword.strip():
                raise ValueError("keyword is required")
            payload = {"keyword": keyword.strip().upper(), "message": message, "is_active": is_active}
            body = await self._dispatch("/auto-replies", "POST", payload)
            return _to_auto_reply(unwrap_single(body, "data"))

    async def get_auto_replies(self) -> List[AutoReply]:
        async with self._operation("get_auto_replies"):
            body = await self._dispatch("/auto-replies")
            return [_to_auto_reply(record) for record in unwrap_list(body, "data")]

    async def get_account_balance(self) -> AccountBalance:
        async with self._operation("get_account_balance"):
            body = await self._dispatch("/account/balance")
            record = unwrap_single(body, "data")
            return AccountBalance(
                balance=float(record.get("balance") or 0),
                currency=record.get("currency", "USD"),
                last_updated=record.get("last_updated"),
            )

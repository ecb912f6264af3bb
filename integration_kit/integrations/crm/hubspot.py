"""
HubSpot CRM Client

Contacts, companies and deals against the HubSpot CRM v3 objects API.
Records are sent as ``{"properties": {...}}`` and returned unwrapped with
``id``, ``properties``, ``createdAt`` and ``updatedAt``; the client flattens
the well-known properties onto typed results.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from integration_kit.framework import (
    AnalyticsReport,
    Environment,
    IntegrationClient,
    MockRoute,
    ProbeRequest,
    Timeframe,
    VendorDescriptor,
    WebhookFieldMap,
    bearer_headers,
    compact,
    unwrap_list,
)

HUBSPOT_API_URL = "https://api.hubapi.com"
OBJECTS_ROOT = "/crm/v3/objects"

# HubSpot-defined association type ids for deal -> company and deal -> contact.
DEAL_TO_COMPANY = 5
DEAL_TO_CONTACT = 3


@dataclass
class CreateContactRequest:
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreateCompanyRequest:
    name: str
    domain: Optional[str] = None
    industry: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreateDealRequest:
    deal_name: str
    amount: Optional[float] = None
    deal_stage: Optional[str] = None
    pipeline: Optional[str] = None
    close_date: Optional[str] = None
    owner_id: Optional[str] = None
    associated_company_ids: List[str] = field(default_factory=list)
    associated_contact_ids: List[str] = field(default_factory=list)
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HubSpotContact:
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    lifecycle_stage: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class HubSpotCompany:
    id: str
    name: Optional[str] = None
    domain: Optional[str] = None
    industry: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class HubSpotDeal:
    id: str
    deal_name: Optional[str] = None
    amount: Optional[float] = None
    deal_stage: Optional[str] = None
    pipeline: Optional[str] = None
    close_date: Optional[str] = None
    owner_id: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _object_route(name: str, prefix: str, sample_properties: Dict[str, Any]) -> MockRoute:
    return MockRoute(
        fragment=f"{OBJECTS_ROOT}/{name}",
        id_prefix=prefix,
        sample={"properties": sample_properties, "archived": False},
        defaults={"archived": False},
        list_envelope=("results",),
        read_single=False,
    )


MOCK_ROUTES = (
    _object_route(
        "contacts",
        "contact",
        {
            "email": "john@example.com",
            "firstname": "John",
            "lastname": "Doe",
            "phone": "+1234567890",
            "company": "Example Corp",
            "lifecyclestage": "lead",
        },
    ),
    _object_route(
        "companies",
        "company",
        {
            "name": "Example Corp",
            "domain": "example.com",
            "industry": "Technology",
            "city": "San Francisco",
            "state": "CA",
            "country": "US",
        },
    ),
    _object_route(
        "deals",
        "deal",
        {
            "dealname": "Example Deal",
            "amount": "50000",
            "dealstage": "qualifiedtobuy",
            "pipeline": "default",
        },
    ),
)

HUBSPOT = VendorDescriptor(
    name="hubspot",
    display_name="HubSpot",
    required_fields=("access_token", "portal_id"),
    base_urls={Environment.SANDBOX: HUBSPOT_API_URL, Environment.PRODUCTION: HUBSPOT_API_URL},
    build_headers=bearer_headers("access_token"),
    health_probe=lambda config: ProbeRequest(f"{OBJECTS_ROOT}/contacts", params={"limit": 1}),
    mock_routes=MOCK_ROUTES,
    webhook_fields=WebhookFieldMap(
        kind=("subscriptionType", "eventType"),
        data=("properties",),
        timestamp=("occurredAt",),
        webhook_id=("eventId",),
        object_id=("objectId",),
    ),
    signature_header="X-HubSpot-Signature",
)


def _properties(body: Mapping[str, Any]) -> Dict[str, Any]:
    return dict(body.get("properties") or {})


def _amount(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_contact(body: Mapping[str, Any]) -> HubSpotContact:
    props = _properties(body)
    return HubSpotContact(
        id=str(body.get("id", "")),
        email=props.get("email"),
        first_name=props.get("firstname"),
        last_name=props.get("lastname"),
        phone=props.get("phone"),
        company=props.get("company"),
        lifecycle_stage=props.get("lifecyclestage"),
        properties=props,
        created_at=body.get("createdAt"),
        updated_at=body.get("updatedAt"),
    )


def _to_company(body: Mapping[str, Any]) -> HubSpotCompany:
    props = _properties(body)
    return HubSpotCompany(
        id=str(body.get("id", "")),
        name=props.get("name"),
        domain=props.get("domain"),
        industry=props.get("industry"),
        city=props.get("city"),
        state=props.get("state"),
        country=props.get("country"),
        properties=props,
        created_at=body.get("createdAt"),
        updated_at=body.get("updatedAt"),
    )


def _to_deal(body: Mapping[str, Any]) -> HubSpotDeal:
    props = _properties(body)
    return HubSpotDeal(
        id=str(body.get("id", "")),
        deal_name=props.get("dealname"),
        amount=_amount(props.get("amount")),
        deal_stage=props.get("dealstage"),
        pipeline=props.get("pipeline"),
        close_date=props.get("closedate"),
        owner_id=props.get("hubspot_owner_id"),
        properties=props,
        created_at=body.get("createdAt"),
        updated_at=body.get("updatedAt"),
    )


def _created_within(value: Optional[str], timeframe: Timeframe) -> bool:
    if not value:
        return False
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        created = datetime.fromisoformat(text)
    except ValueError:
        return False
    if created.tzinfo is None:
        created = created.replace(tzinfo=timeframe.start.tzinfo)
    return timeframe.start <= created <= timeframe.end


def _association(object_id: str, type_id: int) -> Dict[str, Any]:
    return {
        "to": {"id": object_id},
        "types": [{"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": type_id}],
    }


class HubSpotClient(IntegrationClient):
    """
    HubSpot CRM client.

    Example:
        client = HubSpotClient(access_token="...", portal_id="12345")
        contact = await client.create_contact(CreateContactRequest(email="a@b.com"))
    """

    descriptor = HUBSPOT

    async def create_contact(self, request: CreateContactRequest) -> HubSpotContact:
        """
        Create a contact.

        Args:
            request: Email plus optional name, phone, company and extra properties

        Returns:
            The created HubSpotContact

        Raises:
            OperationError: If validation, initialization or the request fails
        """
        async with self._operation("create_contact"):
            if not request.email or not request.email.strip():
                raise ValueError("contact email is required")
            properties = compact({
                "email": request.email,
                "firstname": request.first_name,
                "lastname": request.last_name,
                "phone": request.phone,
                "company": request.company,
                **request.properties,
            })
            body = await self._dispatch(f"{OBJECTS_ROOT}/contacts", "POST", {"properties": properties})
            return _to_contact(body)

    async def create_company(self, request: CreateCompanyRequest) -> HubSpotCompany:
        async with self._operation("create_company"):
            if not request.name or not request.name.strip():
                raise ValueError("company name is required")
            properties = compact({
                "name": request.name,
                "domain": request.domain,
                "industry": request.industry,
                "city": request.city,
                "state": request.state,
                "country": request.country,
                **request.properties,
            })
            body = await self._dispatch(f"{OBJECTS_ROOT}/companies", "POST", {"properties": properties})
            return _to_company(body)

    async def create_deal(self, request: CreateDealRequest) -> HubSpotDeal:
        """Create a deal, associating it with the given companies and contacts."""
        async with self._operation("create_deal"):
            if not request.deal_name or not request.deal_name.strip():
                raise ValueError("deal name is required")
            properties = compact({
                "dealname": request.deal_name,
                "amount": request.amount,
                "dealstage": request.deal_stage,
                "pipeline": request.pipeline,
                "closedate": request.close_date,
                "hubspot_owner_id": request.owner_id,
                **request.properties,
            })
            associations = [_association(i, DEAL_TO_COMPANY) for i in request.associated_company_ids]
            associations += [_association(i, DEAL_TO_CONTACT) for i in request.associated_contact_ids]
            payload: Dict[str, Any] = {"properties": properties}
            if associations:
                payload["associations"] = associations
            body = await self._dispatch(f"{OBJECTS_ROOT}/deals", "POST", payload)
            return _to_deal(body)

    async def get_contacts(self, limit: int = 100) -> List[HubSpotContact]:
        async with self._operation("get_contacts"):
            body = await self._dispatch(f"{OBJECTS_ROOT}/contacts", params={"limit": limit})
            return [_to_contact(record) for record in unwrap_list(body, "results")]

    async def get_companies(self, limit: int = 100) -> List[HubSpotCompany]:
        async with self._operation("get_companies"):
            body = await self._dispatch(f"{OBJECTS_ROOT}/companies", params={"limit": limit})
            return [_to_company(record) for record in unwrap_list(body, "results")]

    async def get_deals(self, limit: int = 100) -> List[HubSpotDeal]:
        async with self._operation("get_deals"):
            body = await self._dispatch(f"{OBJECTS_ROOT}/deals", params={"limit": limit})
            return [_to_deal(record) for record in unwrap_list(body, "results")]

    async def get_analytics(self, timeframe: Optional[Timeframe] = None) -> AnalyticsReport:
        """
        CRM growth and pipeline metrics for a timeframe (last 30 days by default).

        Computed from the current contacts, companies and deals on every call.
        """
        async with self._operation("get_analytics"):
            timeframe = timeframe or Timeframe.last_days(30)
            contacts = await self.get_contacts()
            companies = await self.get_companies()
            deals = await self.get_deals()

            won = [deal for deal in deals if deal.deal_stage == "closedwon"]
            stage_counts = Counter(deal.deal_stage or "unknown" for deal in deals)
            stage_values: Dict[str, float] = {}
            for deal in deals:
                stage = deal.deal_stage or "unknown"
                stage_values[stage] = stage_values.get(stage, 0.0) + (deal.amount or 0.0)

            return AnalyticsReport(
                timeframe=timeframe,
                metrics={
                    "total_contacts": len(contacts),
                    "new_contacts": sum(1 for c in contacts if _created_within(c.created_at, timeframe)),
                    "total_companies": len(companies),
                    "new_companies": sum(1 for c in companies if _created_within(c.created_at, timeframe)),
                    "total_deals": len(deals),
                    "new_deals": sum(1 for d in deals if _created_within(d.created_at, timeframe)),
                    "total_revenue": sum(deal.amount or 0.0 for deal in won),
                    "conversion_rate": len(won) / len(deals) if deals else 0.0,
                },
                breakdowns={
                    "deal_stage_performance": [
                        {"stage": stage, "count": count, "value": stage_values[stage]}
                        for stage, count in stage_counts.most_common()
                    ],
                },
            )

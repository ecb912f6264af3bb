"""
HubSpot client tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from integration_kit.framework import ClientState, OperationError, Timeframe
from integration_kit.integrations.crm import (
    CreateCompanyRequest,
    CreateContactRequest,
    CreateDealRequest,
    HubSpotClient,
)
from tests.conftest import RecordingTransport, json_response


def _parse_iso(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class TestHubSpotClient:
    """HubSpot CRM operations."""

    @pytest.fixture
    def hubspot_client(self, sink):
        return HubSpotClient(access_token="pat-na1-test", portal_id="12345", event_sink=sink)

    @pytest.mark.asyncio
    async def test_create_contact_from_fresh_client(self, hubspot_client):
        before = datetime.now(timezone.utc)

        contact = await hubspot_client.create_contact(CreateContactRequest(email="a@b.com"))

        assert hubspot_client.state is ClientState.READY
        assert contact.id
        assert contact.email == "a@b.com"
        created = _parse_iso(contact.created_at)
        updated = _parse_iso(contact.updated_at)
        assert before - timedelta(seconds=1) <= created <= datetime.now(timezone.utc)
        assert updated == created

    @pytest.mark.asyncio
    async def test_contact_properties_are_flattened(self, hubspot_client):
        contact = await hubspot_client.create_contact(
            CreateContactRequest(email="ada@example.com", first_name="Ada", last_name="Lovelace", company="Engines")
        )
        assert contact.first_name == "Ada"
        assert contact.last_name == "Lovelace"
        assert contact.company == "Engines"
        assert contact.properties["firstname"] == "Ada"

    @pytest.mark.asyncio
    async def test_contact_email_required(self, hubspot_client, sink):
        with pytest.raises(OperationError) as exc_info:
            await hubspot_client.create_contact(CreateContactRequest(email="  "))
        assert exc_info.value.operation == "create_contact"
        assert sink.of("operation.failed")[0].fields["operation"] == "create_contact"

    @pytest.mark.asyncio
    async def test_create_company_and_deal(self, hubspot_client):
        company = await hubspot_client.create_company(CreateCompanyRequest(name="Engines Ltd", domain="engines.test"))
        assert company.name == "Engines Ltd"
        assert company.domain == "engines.test"

        deal = await hubspot_client.create_deal(
            CreateDealRequest(
                deal_name="Big one",
                amount=12000.0,
                deal_stage="closedwon",
                associated_company_ids=[company.id],
            )
        )
        assert deal.id
        assert deal.deal_name == "Big one"
        assert deal.amount == 12000.0
        assert deal.deal_stage == "closedwon"

    @pytest.mark.asyncio
    async def test_lists(self, hubspot_client):
        contacts = await hubspot_client.get_contacts(limit=5)
        companies = await hubspot_client.get_companies()
        deals = await hubspot_client.get_deals()
        assert contacts[0].email == "john@example.com"
        assert companies[0].industry == "Technology"
        assert deals[0].amount == 50000.0

    @pytest.mark.asyncio
    async def test_analytics(self, hubspot_client):
        timeframe = Timeframe.last_days(7, end=datetime.now(timezone.utc) + timedelta(minutes=1))
        report = await hubspot_client.get_analytics(timeframe)
        assert report.metrics["total_contacts"] == 1
        assert report.metrics["new_contacts"] == 1
        assert report.metrics["total_deals"] == 1
        assert report.metrics["conversion_rate"] == 0.0
        assert report.breakdowns["deal_stage_performance"] == [
            {"stage": "qualifiedtobuy", "count": 1, "value": 50000.0}
        ]

    @pytest.mark.asyncio
    async def test_live_deal_associations(self):
        transport = RecordingTransport(
            json_response({"results": []}),
            json_response({"id": "9", "properties": {"dealname": "D"}, "createdAt": "2024-01-01T00:00:00Z"}),
        )
        client = HubSpotClient(access_token="pat", portal_id="1", test_mode=False, transport=transport)

        deal = await client.create_deal(
            CreateDealRequest(deal_name="D", associated_company_ids=["c1"], associated_contact_ids=["p1"])
        )

        assert deal.id == "9"
        assert transport.requests[0]["params"] == {"limit": 1}
        associations = transport.last["payload"]["associations"]
        assert associations[0]["to"] == {"id": "c1"}
        assert associations[0]["types"][0]["associationTypeId"] == 5
        assert associations[1]["types"][0]["associationTypeId"] == 3
        assert transport.last["url"] == "https://api.hubapi.com/crm/v3/objects/deals"

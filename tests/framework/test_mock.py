"""
Tests for the mock responder.
"""

import pytest

from integration_kit.framework import MockCall, MockResponder, MockRoute


@pytest.fixture
def responder():
    return MockResponder(
        (
            MockRoute(
                fragment="/things",
                id_prefix="thing",
                sample={"name": "Sample"},
                defaults={"active": True},
                list_envelope=("things",),
                item_envelope=("thing",),
            ),
            MockRoute(
                fragment="/Widgets",
                id_prefix="widget",
                item_envelope=("Widgets",),
                item_as_list=True,
                unwrap_payload=("Widgets", 0),
                id_field="WidgetID",
                created_field="Meta.Created",
                updated_field=None,
            ),
            MockRoute(
                fragment="/profile",
                id_prefix="profile",
                sample={"plan": "pro"},
                read_single=True,
                created_field="created",
                updated_field=None,
                timestamp_format="unix",
            ),
            MockRoute(
                fragment="/echo",
                id_prefix="echo",
                handler=lambda call, responder: {"method": call.method, "last": call.last_segment},
            ),
        ),
        vendor="acme",
    )


class TestMockResponder:
    """Shape-correct synthetic responses."""

    def test_ids_are_unique_over_many_calls(self, responder):
        ids = {responder.respond("/things", "POST", {"name": f"n{i}"})["thing"]["id"] for i in range(1000)}
        assert len(ids) == 1000

    def test_generated_ids_carry_prefix(self, responder):
        generated = [responder.generate_id("cus") for _ in range(1000)]
        assert len(set(generated)) == 1000
        assert all(value.startswith("cus_") for value in generated)

    def test_create_echoes_payload_over_defaults(self, responder):
        body = responder.respond("/things", "POST", {"name": "Widget", "active": False})
        thing = body["thing"]
        assert thing["name"] == "Widget"
        assert thing["active"] is False
        assert thing["id"].startswith("thing_")
        assert thing["createdAt"] == thing["updatedAt"]

    def test_create_does_not_mutate_payload(self, responder):
        payload = {"name": "Widget", "tags": ["a"]}
        body = responder.respond("/things", "POST", payload)
        body["thing"]["tags"].append("b")
        assert payload == {"name": "Widget", "tags": ["a"]}

    def test_list_read_uses_list_envelope(self, responder):
        body = responder.respond("/things", "GET", params={"limit": 5})
        assert isinstance(body["things"], list)
        assert body["things"][0]["name"] == "Sample"

    def test_plural_envelope_with_wrapped_payload(self, responder):
        body = responder.respond("/Widgets", "POST", {"Widgets": [{"Name": "W"}]})
        assert len(body["Widgets"]) == 1
        widget = body["Widgets"][0]
        assert widget["Name"] == "W"
        assert widget["WidgetID"].startswith("widget_")
        assert "Created" in widget["Meta"]

    def test_single_read_uses_path_id_and_unix_time(self, responder):
        body = responder.respond("/profile/prof_42", "GET")
        assert body["id"] == "prof_42"
        assert body["plan"] == "pro"
        assert isinstance(body["created"], int)

    def test_update_keeps_path_id(self, responder):
        body = responder.respond("/things/thing_9", "PATCH", {"name": "Renamed"})
        assert body["thing"]["id"] == "thing_9"
        assert "createdAt" not in body["thing"]

    def test_delete_shape(self, responder):
        assert responder.respond("/things/thing_9", "DELETE") == {"id": "thing_9", "deleted": True}

    def test_handler_routes(self, responder):
        assert responder.respond("/echo/abc?x=1", "put") == {"method": "PUT", "last": "abc"}

    def test_health_and_unknown_endpoints(self, responder):
        health = responder.respond("/v1/health")
        assert health["status"] == "healthy"
        assert health["vendor"] == "acme"
        assert responder.respond("/unknown") == {}

    def test_route_method_filter(self):
        route = MockRoute(fragment="/x", id_prefix="x", methods=("POST",))
        assert route.matches(MockCall("/x", "POST"))
        assert not route.matches(MockCall("/x", "GET"))

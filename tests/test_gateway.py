"""Tests for tool invocation, envelope unwrapping, and response minimization."""

import json
from types import SimpleNamespace

import pytest

from booking_orchestrator.tools import catalog
from booking_orchestrator.tools.gateway import ToolGateway, minimize, unwrap_payload
from booking_orchestrator.tools.sandbox import envelope


class StaticExecutor:
    """Returns a fixed raw response, or raises it when it is an exception."""

    def __init__(self, response):
        self.response = response
        self.calls = []

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class TestUnwrapPayload:
    def test_content_array_with_json_text(self):
        assert unwrap_payload(envelope({"a": 1})) == {"a": 1}

    def test_sdk_object_with_text_items(self):
        raw = SimpleNamespace(content=[SimpleNamespace(type="text", text='{"b": 2}')])
        assert unwrap_payload(raw) == {"b": 2}

    def test_non_json_text_falls_back_to_string(self):
        raw = {"content": [{"type": "text", "text": "Cart not found"}]}
        assert unwrap_payload(raw) == "Cart not found"

    def test_plain_dict_passes_through(self):
        assert unwrap_payload({"cartId": "x"}) == {"cartId": "x"}

    def test_json_string(self):
        assert unwrap_payload('[1, 2]') == [1, 2]


class TestMinimize:
    def test_locations_from_edges(self):
        payload = {"locations": {"edges": [
            {"node": {"id": "L1", "name": "Sandbox Location", "address": {"city": "LA"}, "tz": "x"}},
        ]}}
        assert minimize(catalog.GET_LOCATIONS, payload) == [{"id": "L1", "name": "Sandbox Location", "city": "LA"}]

    def test_locations_from_flat_array(self):
        payload = [{"id": "L1", "name": "Sandbox Location"}]
        assert minimize(catalog.GET_LOCATIONS, payload) == [{"id": "L1", "name": "Sandbox Location", "city": None}]

    def test_services_flatten_categories_and_convert_price(self):
        payload = {"cart": {"availableCategories": [
            {"name": "Facials", "availableItems": [{"id": "S1", "name": "Hydra Facial", "listPrice": 12000}]},
        ]}}
        assert minimize(catalog.AVAILABLE_SERVICES, payload) == [
            {"id": "S1", "name": "Hydra Facial", "category": "Facials", "price": 120.0},
        ]

    def test_dates(self):
        payload = {"cartBookableDates": [{"date": "2025-11-04"}, {"date": "2025-11-05"}]}
        assert minimize(catalog.BOOKABLE_DATES, payload) == ["2025-11-04", "2025-11-05"]

    def test_times_drop_extra_fields(self):
        payload = {"cartBookableTimes": [{"id": "t1", "score": 3, "startTime": "2025-11-05T10:00:00"}]}
        assert minimize(catalog.BOOKABLE_TIMES, payload) == [{"id": "t1", "startTime": "2025-11-05T10:00:00"}]

    def test_staff_names(self):
        payload = {"cartBookableStaffVariants": [
            {"id": "V1", "staff": {"displayName": "Sarah Johnson"}},
            {"id": "V2", "staff": {"firstName": "Emily", "lastName": "Chen"}},
        ]}
        assert minimize(catalog.STAFF_VARIANTS, payload) == [
            {"id": "V1", "name": "Sarah Johnson"},
            {"id": "V2", "name": "Emily Chen"},
        ]

    def test_summary_in_major_units(self):
        payload = {"cart": {"id": "C1", "summary": {"subtotal": 12000, "taxAmount": 1200, "total": 13200}}}
        assert minimize(catalog.CART_SUMMARY, payload) == {
            "cartId": "C1", "subtotal": 120.0, "taxAmount": 12.0, "total": 132.0,
        }

    def test_unknown_tool_gets_generic_shape(self):
        assert minimize("somethingElse", {"id": "x", "status": "done", "secret": 1}) == {
            "status": "done", "id": "x", "message": None,
        }

    def test_unexpected_shape_falls_back_to_generic(self):
        assert minimize(catalog.AVAILABLE_SERVICES, {"cart": {"availableCategories": ["oops"]}}) == {
            "status": "ok", "id": None, "message": None,
        }

    def test_string_payload_for_known_tool(self):
        assert minimize(catalog.CHECKOUT, "done") == "done"


class TestToolGateway:
    @pytest.mark.asyncio
    async def test_invoke_sandbox_locations(self, gateway):
        result = await gateway.invoke(catalog.GET_LOCATIONS)
        assert result.ok
        assert [loc["name"] for loc in result.data] == ["Sandbox Location", "Downtown Studio"]
        assert "locations" in result.payload

    @pytest.mark.asyncio
    async def test_arguments_passed_as_given(self):
        executor = StaticExecutor(envelope({}))
        await ToolGateway(executor).invoke("anyTool", {"cartId": "urn:blvd:Cart:9"})
        assert executor.calls == [("anyTool", {"cartId": "urn:blvd:Cart:9"})]

    @pytest.mark.asyncio
    async def test_exception_becomes_error_envelope(self):
        result = await ToolGateway(StaticExecutor(RuntimeError("boom"))).invoke(catalog.GET_LOCATIONS)
        assert not result.ok
        assert result.error == "boom"
        assert json.loads(result.to_output()) == {"error": True, "message": "boom"}

    @pytest.mark.asyncio
    async def test_is_error_result_becomes_error_envelope(self):
        raw = {"content": [{"type": "text", "text": "Cart expired"}], "isError": True}
        result = await ToolGateway(StaticExecutor(raw)).invoke(catalog.CHECKOUT, {"cartId": "c"})
        assert not result.ok
        assert result.error == "Cart expired"

    @pytest.mark.asyncio
    async def test_output_is_minimized_json(self):
        raw = envelope({"cart": {"id": "C1", "summary": {"subtotal": 100, "taxAmount": 10, "total": 110}}})
        result = await ToolGateway(StaticExecutor(raw)).invoke(catalog.CART_SUMMARY, {"cartId": "C1"})
        assert json.loads(result.to_output()) == {"cartId": "C1", "subtotal": 1.0, "taxAmount": 0.1, "total": 1.1}

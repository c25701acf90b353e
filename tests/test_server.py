"""Tests for the MCP tools, rate limiting and the health endpoint."""

import pytest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

import pcparts_catalog.server as srv
from pcparts_catalog import __version__


def _fn(tool):
    """The coroutine behind a registered tool."""
    return getattr(tool, "fn", tool)


@pytest.fixture
def catalog(seeded_db, monkeypatch):
    monkeypatch.setattr(srv, "get_db", lambda: seeded_db)
    return seeded_db


class TestParseParams:
    def test_list_passthrough(self):
        assert srv._parse_list_param(["a", "b"]) == ["a", "b"]

    def test_list_from_json_string(self):
        assert srv._parse_list_param('["a", "b"]') == ["a", "b"]

    def test_list_invalid(self):
        assert srv._parse_list_param("a, b") is None
        assert srv._parse_list_param('{"a": 1}') is None
        assert srv._parse_list_param(None) is None

    def test_dict_from_json_string(self):
        assert srv._parse_dict_param('{"socketType": "AM5"}') == {"socketType": "AM5"}
        assert srv._parse_dict_param("[1]") is None


class TestHealth:
    def test_health(self):
        client = TestClient(srv.app)
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "pcparts-catalog", "version": __version__}

    def test_rest_routes_mounted(self):
        paths = {getattr(route, "path", None) for route in srv.app.routes}
        assert "/api/products/compatibility/builds" in paths
        assert "/health" in paths


class TestRateLimit:
    def _client(self, limit):
        async def ok(request):
            return PlainTextResponse("ok")

        app = Starlette(
            routes=[Route("/x", ok), Route("/health", ok)],
            middleware=[Middleware(srv.RateLimitMiddleware, requests_per_minute=limit)],
        )
        return TestClient(app)

    def test_limit_exceeded(self):
        client = self._client(2)
        assert client.get("/x").status_code == 200
        assert client.get("/x").status_code == 200
        response = client.get("/x")
        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert response.json()["error"] == "Rate limit exceeded"

    def test_health_exempt(self):
        client = self._client(1)
        for _ in range(3):
            assert client.get("/health").status_code == 200

    def test_forwarded_for_rightmost(self):
        client = self._client(1)
        assert client.get("/x", headers={"x-forwarded-for": "1.1.1.1, 2.2.2.2"}).status_code == 200
        assert client.get("/x", headers={"x-forwarded-for": "3.3.3.3, 2.2.2.2"}).status_code == 429
        assert client.get("/x", headers={"x-forwarded-for": "2.2.2.2, 4.4.4.4"}).status_code == 200


@pytest.mark.asyncio
class TestCompatibilityTools:
    async def test_find_compatible(self, catalog):
        result = await _fn(srv.find_compatible_products)(product_id="cpu-7800x3d")
        assert result["mode"] == "rule_based"
        assert [p["id"] for p in result["compatibleProducts"]] == ["mb-b650"]

    async def test_bad_mode(self, catalog):
        result = await _fn(srv.find_compatible_products)(product_id="cpu-7800x3d", mode="fuzzy")
        assert "Unknown mode" in result["error"]

    async def test_overview_defaults_to_overlap(self, catalog):
        result = await _fn(srv.compatibility_overview)()
        assert result["mode"] == "generic_overlap"

    async def test_check(self, catalog):
        result = await _fn(srv.check_compatibility)(product_id="gpu-4070", other_product_id="mb-z790")
        assert result["compatible"] is False

    async def test_list_builds(self, catalog):
        assert (await _fn(srv.list_builds)())["totalBuilds"] == 1
        anchored = await _fn(srv.list_builds)(product_id="cpu-14700k")
        assert [b["motherboard"]["id"] for b in anchored["builds"]] == ["mb-z790"]

    async def test_narrow_selection_json_string(self, catalog):
        result = await _fn(srv.narrow_selection)(selected_product_ids='["mb-b650"]')
        assert result["state"] == "motherboard_only"

    async def test_narrow_selection_empty(self, catalog):
        result = await _fn(srv.narrow_selection)(selected_product_ids=[])
        assert result["error"] == "No products selected"


@pytest.mark.asyncio
class TestCatalogTools:
    async def test_search(self, catalog):
        result = await _fn(srv.search_products)(query="ryzen")
        assert [p["id"] for p in result["products"]] == ["cpu-7800x3d"]

    async def test_search_query_too_long(self, catalog):
        result = await _fn(srv.search_products)(query="x" * 501)
        assert "too long" in result["error"]

    async def test_get_product_missing(self, catalog):
        assert (await _fn(srv.get_product)(product_id="nope"))["error"] == "Product not found: nope"

    async def test_list_categories(self, catalog):
        result = await _fn(srv.list_categories)(category="motherboard")
        assert [s["name"] for s in result["subcategories"]] == ["ATX", "Micro-ATX"]
        assert "error" in await _fn(srv.list_categories)(category="Toaster")

    async def test_template(self, catalog):
        result = await _fn(srv.get_attribute_template)(category="psu")
        assert result["category"] == "PSU"
        assert "wattage" in result["attributes"]

    async def test_create_product_with_json_attributes(self, catalog):
        result = await _fn(srv.create_product)(
            name="Ryzen 5 7600", category="CPU", selling_rate=199, attributes='{"socketType": "AM5"}'
        )
        assert result["attributes"] == {"socketType": "AM5"}

    async def test_create_product_error(self, catalog):
        result = await _fn(srv.create_product)(name="X", category="Toaster", selling_rate=1)
        assert "Unknown category" in result["error"]

    async def test_manage_category(self, catalog):
        created = await _fn(srv.manage_category)(action="create", name="Cooling")
        assert created["name"] == "Cooling"
        deleted = await _fn(srv.manage_category)(action="delete", category_id=created["id"])
        assert deleted == {"deleted": created["id"]}
        cpu = catalog.find_category_by_name("CPU")
        refused = await _fn(srv.manage_category)(action="delete", category_id=cpu["id"])
        assert "products" in refused["error"]


@pytest.mark.asyncio
class TestCartAndOrderTools:
    async def test_cart_flow(self, catalog):
        cart = _fn(srv.cart)
        await cart(session_id="s1", action="add", product_id="ssd-990", quantity=2)
        result = await cart(session_id="s1", action="update", product_id="ssd-990", quantity=1)
        assert result["items"][0]["quantity"] == 1
        assert (await cart(session_id="s1", action="remove", product_id="gpu-4070"))["items"]
        assert "error" in await cart(session_id="s1", action="add")

        quote = await _fn(srv.create_quotation_from_cart)(
            session_id="s1", customer_name="Dana Reyes", address="12 Elm St"
        )
        assert quote["quote_id"] == "Q-001"
        assert (await cart(session_id="s1"))["items"] == []

    async def test_order_flow(self, catalog):
        order = await _fn(srv.create_order)(
            customer_name="Dana Reyes",
            address="12 Elm St",
            customer_email="dana@example.com",
            items='[{"product_id": "gpu-4070", "quantity": 1}]',
        )
        assert order["order_id"] == "O-001"

        fetched = await _fn(srv.get_order)(order_id="O-001")
        assert fetched["id"] == order["id"]

        updated = await _fn(srv.update_order)(id=order["id"], status="Confirmed")
        assert updated["status"] == "Confirmed"

        customers = await _fn(srv.customers)()
        assert customers["customers"][0]["customer_email"] == "dana@example.com"

        deleted = await _fn(srv.delete_order)(id=order["id"])
        assert deleted == {"deleted": order["id"], "soft": False}

    async def test_order_errors(self, catalog):
        result = await _fn(srv.create_order)(customer_name="Dana", address="x", items="not a list")
        assert result["error"] == "items must be a list"
        result = await _fn(srv.create_order)(customer_name="Dana", address="x", items='["gpu-4070"]')
        assert "must be an object" in result["error"]
        result = await _fn(srv.update_order)(id=9999, status="Confirmed")
        assert result["error"] == "Order not found: 9999"

    async def test_quotation_restore(self, catalog):
        quote = await _fn(srv.create_order)(
            customer_name="Dana", address="x", type="Quotation",
            items=[{"product_id": "gpu-4070", "quantity": 1}],
        )
        assert (await _fn(srv.delete_order)(id=quote["id"]))["soft"] is True
        assert len((await _fn(srv.list_orders)(deleted=True))["orders"]) == 1
        restored = await _fn(srv.delete_order)(id=quote["id"], restore=True)
        assert restored["is_deleted"] is False

    async def test_dashboard(self, catalog):
        assert (await _fn(srv.dashboard_stats)())["total_products"] == 8

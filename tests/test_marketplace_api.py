"""
HTTP tests for the /marketplace endpoints.

Outbound marketplace calls go through ``set_marketplace_handler`` so the
sync endpoint runs end to end without the network.
"""
from decimal import Decimal

import httpx
import pytest

from billing.models.marketplace_config import MarketplaceConfig
from factories import MEESHO_CREDENTIALS, meesho_order, orders_handler


@pytest.fixture
def synced(api, admin_headers, make_config, set_marketplace_handler):
    """Three Meesho orders synced through the API."""
    make_config("meesho")
    set_marketplace_handler(
        orders_handler(
            {
                "orders": [
                    meesho_order("M1", order_date="2024-01-01"),
                    meesho_order("M2", order_date="2024-01-02", status="delivered"),
                    meesho_order("M3", order_date="2024-01-03"),
                ]
            }
        )
    )
    resp = api.post("/marketplace/sync/meesho", headers=admin_headers)
    assert resp.status_code == 200
    return resp.json()


# =============================================================================
# Auth
# =============================================================================


class TestAuthRequired:
    @pytest.mark.parametrize(
        "method, path",
        [
            ("get", "/marketplace/configs"),
            ("post", "/marketplace/sync/meesho"),
            ("get", "/marketplace/sales"),
            ("post", "/marketplace/sales/1/convert"),
            ("get", "/marketplace/analytics"),
        ],
    )
    def test_requires_token(self, api, method, path):
        assert getattr(api, method)(path).status_code == 401

    def test_rejects_garbage_token(self, api):
        resp = api.get("/marketplace/configs", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# =============================================================================
# Configs
# =============================================================================


class TestConfigs:
    def test_list_masks_credentials(self, api, staff_headers, make_config):
        make_config("meesho")

        resp = api.get("/marketplace/configs", headers=staff_headers)

        assert resp.status_code == 200
        [config] = resp.json()
        assert config["marketplace"] == "meesho"
        assert config["credentials"]["secret"] == "****"
        assert config["credentials"]["merchant_id"] == "MER-1"
        assert config["sync_settings"]["sync_interval_minutes"] == 30
        assert config["mapping_settings"]["default_payment_method"] == "online"

    def test_admin_creates_config(self, api, admin_headers, db):
        resp = api.put(
            "/marketplace/configs/meesho",
            json={"credentials": MEESHO_CREDENTIALS, "is_active": True},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["is_active"] is True
        assert body["status"] == "active"
        assert body["credentials"]["secret"] == "****"

        stored = db.query(MarketplaceConfig).filter_by(marketplace="meesho").one()
        assert stored.credentials["secret"] == "meesho-secret"

    def test_partial_update_keeps_secret(self, api, admin_headers, db, make_config):
        make_config("meesho")

        resp = api.put(
            "/marketplace/configs/meesho",
            json={
                "credentials": {"merchant_id": "MER-2"},
                "sync_settings": {"sync_interval_minutes": 60},
                "mapping_settings": {"default_payment_method": "upi"},
            },
            headers=admin_headers,
        )

        assert resp.status_code == 200
        db.expire_all()
        stored = db.query(MarketplaceConfig).filter_by(marketplace="meesho").one()
        assert stored.credentials["merchant_id"] == "MER-2"
        assert stored.credentials["secret"] == "meesho-secret"
        assert stored.sync_interval_minutes == 60
        assert stored.default_payment_method == "upi"

    def test_saving_listed_config_keeps_secret(self, api, admin_headers, db, make_config):
        make_config("meesho")
        [listed] = api.get("/marketplace/configs", headers=admin_headers).json()
        credentials = {**listed["credentials"], "supplier_identifier": "SUP-9"}

        resp = api.put(
            "/marketplace/configs/meesho",
            json={"credentials": credentials, "is_active": True},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        db.expire_all()
        stored = db.query(MarketplaceConfig).filter_by(marketplace="meesho").one()
        assert stored.credentials["secret"] == "meesho-secret"
        assert stored.credentials["supplier_identifier"] == "SUP-9"

    def test_staff_cannot_update(self, api, staff_headers):
        resp = api.put("/marketplace/configs/meesho", json={"is_active": False}, headers=staff_headers)
        assert resp.status_code == 403

    def test_unsupported_marketplace(self, api, admin_headers):
        resp = api.put("/marketplace/configs/snapdeal", json={"is_active": False}, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"]["kind"] == "unsupported_marketplace"

    def test_activation_requires_valid_credentials(self, api, admin_headers, db):
        resp = api.put(
            "/marketplace/configs/flipkart",
            json={"credentials": {"api_url": "https://fk"}, "is_active": True},
            headers=admin_headers,
        )

        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["kind"] == "validation_error"
        assert "application_id" in detail["message"]
        assert db.query(MarketplaceConfig).count() == 0


# =============================================================================
# Sync
# =============================================================================


class TestSync:
    def test_sync_returns_summary(self, synced):
        assert synced["success"] is True
        assert synced["orders_processed"] == 3
        assert synced["orders_failed"] == 0
        assert [o["external_order_id"] for o in synced["orders"]] == ["M1", "M2", "M3"]
        assert Decimal(synced["orders"][0]["net_amount"]) == Decimal("950")

    def test_sync_twice_is_idempotent(self, api, admin_headers, synced):
        resp = api.post("/marketplace/sync/meesho", headers=admin_headers)

        assert resp.json()["orders_processed"] == 3
        assert api.get("/marketplace/sales", headers=admin_headers).json()["total"] == 3

    def test_inactive_config_is_404(self, api, staff_headers, make_config, set_marketplace_handler):
        make_config("amazon", is_active=False)
        set_marketplace_handler(orders_handler({}))

        resp = api.post("/marketplace/sync/amazon", headers=staff_headers)

        assert resp.status_code == 404
        assert resp.json()["detail"]["kind"] == "config_not_found_or_inactive"

    def test_unknown_marketplace_is_400(self, api, staff_headers, set_marketplace_handler):
        set_marketplace_handler(orders_handler({}))
        resp = api.post("/marketplace/sync/snapdeal", headers=staff_headers)
        assert resp.status_code == 400

    def test_upstream_error_is_502(self, api, staff_headers, make_config, set_marketplace_handler):
        make_config("meesho")
        set_marketplace_handler(orders_handler({"error": "denied"}, status_code=401))

        resp = api.post("/marketplace/sync/meesho", headers=staff_headers)

        assert resp.status_code == 502
        assert resp.json()["detail"]["kind"] == "marketplace_api_error"

        configs = api.get("/marketplace/configs", headers=staff_headers).json()
        assert configs[0]["status"] == "error"
        assert configs[0]["last_error"]["message"].startswith("meesho API error")

    def test_upstream_timeout_is_504(self, api, staff_headers, make_config, set_marketplace_handler):
        make_config("meesho")

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        set_marketplace_handler(handler)

        resp = api.post("/marketplace/sync/meesho", headers=staff_headers)

        assert resp.status_code == 504
        assert resp.json()["detail"]["kind"] == "marketplace_timeout"

    def test_bad_date_is_400(self, api, staff_headers, make_config, set_marketplace_handler):
        make_config("meesho")
        set_marketplace_handler(orders_handler({"orders": []}))

        resp = api.post("/marketplace/sync/meesho?fromDate=yesterday", headers=staff_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"]["kind"] == "validation_error"

    def test_date_range_forwarded(self, api, staff_headers, make_config, set_marketplace_handler):
        make_config("meesho")
        requests = []
        set_marketplace_handler(orders_handler({"orders": []}, requests))

        resp = api.post(
            "/marketplace/sync/meesho?fromDate=2024-01-01T00:00:00Z&toDate=2024-01-05T00:00:00Z",
            headers=staff_headers,
        )

        assert resp.status_code == 200
        assert requests[0].url.params["from_date"] == "2024-01-01T00:00:00"
        assert requests[0].url.params["to_date"] == "2024-01-05T00:00:00"


# =============================================================================
# Sales listing
# =============================================================================


class TestSalesListing:
    def test_newest_first_with_pagination(self, api, staff_headers, synced):
        resp = api.get("/marketplace/sales?page=1&limit=2", headers=staff_headers)

        body = resp.json()
        assert [o["external_order_id"] for o in body["sales"]] == ["M3", "M2"]
        assert body["total"] == 3
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

        page_two = api.get("/marketplace/sales?page=2&limit=2", headers=staff_headers).json()
        assert [o["external_order_id"] for o in page_two["sales"]] == ["M1"]

    def test_filters(self, api, staff_headers, synced):
        by_status = api.get("/marketplace/sales?status=delivered", headers=staff_headers).json()
        assert [o["external_order_id"] for o in by_status["sales"]] == ["M2"]

        by_date = api.get(
            "/marketplace/sales?fromDate=2024-01-02T00:00:00&toDate=2024-01-03T00:00:00",
            headers=staff_headers,
        ).json()
        assert by_date["total"] == 2

        other = api.get("/marketplace/sales?marketplace=amazon", headers=staff_headers).json()
        assert other["total"] == 0

    def test_items_included(self, api, staff_headers, synced):
        order = api.get("/marketplace/sales?limit=1", headers=staff_headers).json()["sales"][0]
        assert order["items"][0]["sku"] == "SH1"
        assert order["customer"]["phone"] == "9876543210"

    @pytest.mark.parametrize(
        "query",
        ["status=lost", "marketplace=snapdeal", "page=0", "limit=0", "limit=500", "fromDate=soon"],
    )
    def test_bad_parameters_are_400(self, api, staff_headers, query):
        resp = api.get(f"/marketplace/sales?{query}", headers=staff_headers)
        assert resp.status_code == 400


# =============================================================================
# Conversion
# =============================================================================


class TestConvert:
    def test_convert_then_reject_second(self, api, staff_headers, synced):
        order_id = synced["orders"][1]["id"]

        first = api.post(f"/marketplace/sales/{order_id}/convert", headers=staff_headers)

        assert first.status_code == 200
        body = first.json()
        assert body["success"] is True
        assert body["sale"]["marketplace_order_id"] == order_id
        assert body["sale"]["status"] == "completed"
        assert body["sale"]["invoice_number"].startswith("INV")

        second = api.post(f"/marketplace/sales/{order_id}/convert", headers=staff_headers)
        assert second.status_code == 400
        assert second.json()["detail"]["kind"] == "already_converted"

    def test_missing_order_is_404(self, api, staff_headers):
        resp = api.post("/marketplace/sales/4242/convert", headers=staff_headers)

        assert resp.status_code == 404
        assert resp.json()["detail"]["kind"] == "order_not_found"


# =============================================================================
# Analytics
# =============================================================================


class TestAnalyticsEndpoint:
    def test_summary(self, api, staff_headers, synced):
        body = api.get("/marketplace/analytics", headers=staff_headers).json()

        assert body["summary"]["total_orders"] == 3
        assert Decimal(body["summary"]["total_revenue"]) == Decimal("3000")
        assert Decimal(body["summary"]["net_revenue"]) == Decimal("2850")
        assert [s["marketplace"] for s in body["by_marketplace"]] == ["meesho"]
        assert len(body["trends"]["daily"]) == 3

    def test_reversed_range_is_400(self, api, staff_headers):
        resp = api.get(
            "/marketplace/analytics?fromDate=2024-02-01T00:00:00&toDate=2024-01-01T00:00:00",
            headers=staff_headers,
        )
        assert resp.status_code == 400

"""
Tests for the marketplace sync cycle.

Covers:
- Idempotent upsert by (marketplace, external order id)
- Per-order failure isolation
- Fetch failures aborting the cycle and marking the config
- Default date window and last-sync bookkeeping
"""
from datetime import datetime, timedelta
from decimal import Decimal

import httpx
import pytest

from billing.core.errors import ConfigNotFoundOrInactive, MarketplaceApiError, UnsupportedMarketplace, ValidationError
from billing.models.marketplace_order import MarketplaceOrder
from billing.services.order_sync import sync_orders
from factories import flipkart_order, meesho_order, mock_client, orders_handler


def _orders(db):
    db.expire_all()
    return db.query(MarketplaceOrder).order_by(MarketplaceOrder.id).all()


class TestIdempotentSync:
    @pytest.mark.asyncio
    async def test_reference_order_synced(self, db, make_config):
        make_config("meesho")
        client = mock_client(orders_handler({"orders": [meesho_order()]}))

        outcome = await sync_orders(db, "meesho", client=client)

        assert outcome.orders_processed == 1
        assert outcome.orders_failed == 0
        [order] = _orders(db)
        assert order.external_order_id == "M100"
        assert order.order_status == "shipped"
        assert order.payment_status == "paid"
        assert order.total_amount == Decimal("1000")
        assert order.net_amount == Decimal("950")
        assert order.customer["name"] == "Asha"
        assert order.raw_data["order_id"] == "M100"
        assert order.sync_status == "synced"
        assert [i.sku for i in order.items] == ["SH1"]

    @pytest.mark.asyncio
    async def test_resync_updates_in_place(self, db, make_config):
        make_config("meesho")

        await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": [meesho_order()]})))
        [first] = _orders(db)
        first_id = first.id

        changed = meesho_order(status="delivered", commission_fee=80)
        outcome = await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": [changed]})))

        assert outcome.orders_processed == 1
        [order] = _orders(db)
        assert order.id == first_id
        assert order.order_status == "delivered"
        assert order.net_amount == Decimal("920")
        assert len(order.items) == 1

    @pytest.mark.asyncio
    async def test_overlapping_batches_do_not_duplicate(self, db, make_config):
        make_config("meesho")
        batch_one = [meesho_order("A"), meesho_order("B")]
        batch_two = [meesho_order("B"), meesho_order("C")]

        await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": batch_one})))
        await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": batch_two})))

        assert [o.external_order_id for o in _orders(db)] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_same_external_id_on_other_marketplace_is_separate(self, db, make_config):
        make_config("meesho")
        make_config("flipkart")

        await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": [meesho_order("X1")]})))
        await sync_orders(
            db, "flipkart", client=mock_client(orders_handler({"orderItems": [flipkart_order("X1")]}))
        )

        assert sorted(o.marketplace for o in _orders(db)) == ["flipkart", "meesho"]

    @pytest.mark.asyncio
    async def test_multi_item_flipkart_order_stored_once(self, db, make_config):
        make_config("flipkart")
        items = [
            flipkart_order("OD1"),
            flipkart_order(
                "OD1",
                orderItemId="OI2",
                sku="CUP-02",
                fsn="FSN456",
                totalPrice=400,
                commissionAmount=40,
                shippingFee=0,
            ),
        ]

        outcome = await sync_orders(db, "flipkart", client=mock_client(orders_handler({"orderItems": items})))

        assert outcome.orders_processed == 1
        [order] = _orders(db)
        assert sorted(i.sku for i in order.items) == ["CUP-02", "MUG-01"]
        assert order.total_amount == Decimal("1000")
        assert order.net_amount == Decimal("860")

    @pytest.mark.asyncio
    async def test_resync_keeps_local_product_links(self, db, make_config):
        from billing.models.product import Product

        make_config("meesho")
        await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": [meesho_order()]})))

        product = Product(name="Shirt", sku="SH1")
        db.add(product)
        db.commit()
        [order] = _orders(db)
        order.items[0].local_product_id = product.id
        db.commit()

        await sync_orders(
            db,
            "meesho",
            client=mock_client(orders_handler({"orders": [meesho_order(status="delivered")]})),
        )

        [order] = _orders(db)
        assert order.items[0].local_product_id == product.id


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_bad_order_is_skipped(self, db, make_config):
        make_config("meesho")
        broken = meesho_order("M3")
        del broken["order_id"]
        batch = [meesho_order("M1"), meesho_order("M2"), broken, meesho_order("M4"), meesho_order("M5")]

        outcome = await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": batch})))

        assert outcome.orders_processed == 4
        assert outcome.orders_failed == 1
        assert [o.external_order_id for o in _orders(db)] == ["M1", "M2", "M4", "M5"]

    @pytest.mark.asyncio
    async def test_invalid_amount_is_skipped(self, db, make_config):
        make_config("meesho")
        batch = [meesho_order("M1", total_amount="not-a-number"), meesho_order("M2")]

        outcome = await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": batch})))

        assert outcome.orders_processed == 1
        assert [o.external_order_id for o in _orders(db)] == ["M2"]

    @pytest.mark.asyncio
    async def test_orders_kept_in_adapter_order(self, db, make_config):
        make_config("meesho")
        batch = [meesho_order("Z"), meesho_order("A"), meesho_order("M")]

        outcome = await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": batch})))

        assert [o.external_order_id for o in outcome.orders] == ["Z", "A", "M"]


class TestSyncBookkeeping:
    @pytest.mark.asyncio
    async def test_last_sync_updated(self, db, make_config):
        config = make_config("meesho")
        before = datetime.utcnow()

        await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": []})))

        db.refresh(config)
        assert config.last_sync_at >= before
        assert config.status == "active"

    @pytest.mark.asyncio
    async def test_default_window_is_seven_days(self, db, make_config):
        make_config("meesho")
        requests = []

        await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": []}, requests)))

        params = requests[0].url.params
        from_date = datetime.fromisoformat(params["from_date"])
        to_date = datetime.fromisoformat(params["to_date"])
        assert to_date - from_date == timedelta(days=7)

    @pytest.mark.asyncio
    async def test_explicit_window_passed_through(self, db, make_config):
        make_config("meesho")
        requests = []

        await sync_orders(
            db,
            "meesho",
            datetime(2024, 1, 1),
            datetime(2024, 1, 31),
            client=mock_client(orders_handler({"orders": []}, requests)),
        )

        params = requests[0].url.params
        assert params["from_date"] == "2024-01-01T00:00:00"
        assert params["to_date"] == "2024-01-31T00:00:00"

    @pytest.mark.asyncio
    async def test_reversed_window_rejected(self, db, make_config):
        make_config("meesho")
        with pytest.raises(ValidationError):
            await sync_orders(db, "meesho", datetime(2024, 2, 1), datetime(2024, 1, 1))


class TestSyncFailures:
    @pytest.mark.asyncio
    async def test_fetch_failure_aborts_and_marks_config(self, db, make_config):
        config = make_config("meesho")
        client = mock_client(orders_handler({"error": "bad token"}, status_code=403))

        with pytest.raises(MarketplaceApiError):
            await sync_orders(db, "meesho", client=client)

        db.refresh(config)
        assert config.status == "error"
        assert "403" in config.last_error_message
        assert config.last_error_at is not None
        assert config.last_sync_at is None
        assert _orders(db) == []

    @pytest.mark.asyncio
    async def test_success_clears_previous_error(self, db, make_config):
        config = make_config("meesho")
        config.mark_error("boom", datetime.utcnow())
        db.commit()

        await sync_orders(db, "meesho", client=mock_client(orders_handler({"orders": []})))

        db.refresh(config)
        assert config.status == "active"
        assert config.last_error_message is None

    @pytest.mark.asyncio
    async def test_inactive_config(self, db, make_config):
        make_config("amazon", is_active=False)
        with pytest.raises(ConfigNotFoundOrInactive):
            await sync_orders(db, "amazon", client=mock_client(orders_handler({})))

    @pytest.mark.asyncio
    async def test_unsupported_marketplace(self, db):
        with pytest.raises(UnsupportedMarketplace):
            await sync_orders(db, "snapdeal", client=mock_client(orders_handler({})))

    @pytest.mark.asyncio
    async def test_timeout_propagates(self, db, make_config):
        make_config("meesho")

        def handler(request):
            raise httpx.ConnectTimeout("slow", request=request)

        with pytest.raises(MarketplaceApiError) as exc_info:
            await sync_orders(db, "meesho", client=mock_client(handler))

        assert exc_info.value.kind == "marketplace_timeout"

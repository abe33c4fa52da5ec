"""
Marketplace order sync: fetch -> normalize -> upsert, one marketplace at a time.

A failed fetch aborts the whole cycle. Once orders are fetched, each one is
normalized and upserted on its own; a bad order is logged and skipped and
never takes the rest of the batch down with it. Upserts are keyed by
(marketplace, external_order_id), so overlapping syncs update in place.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing.core.config import get_settings
from billing.core.errors import MarketplaceApiError, ValidationError
from billing.models.marketplace_order import MarketplaceOrder, MarketplaceOrderItem
from billing.schemas.marketplace import NormalizedOrder
from billing.services import marketplace_registry
from billing.services.marketplace_client import parse_datetime
from billing.services.order_totals import FeeBreakdown

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    orders_processed: int = 0
    orders_failed: int = 0
    orders: List[MarketplaceOrder] = field(default_factory=list)


def find_order(db: Session, marketplace: str, external_order_id: str) -> Optional[MarketplaceOrder]:
    return (
        db.query(MarketplaceOrder)
        .filter(
            MarketplaceOrder.marketplace == marketplace,
            MarketplaceOrder.external_order_id == external_order_id,
        )
        .first()
    )


def apply_normalized(order: MarketplaceOrder, normalized: NormalizedOrder, synced_at: datetime) -> None:
    """Merge a normalized order into a stored one (new or existing)."""
    order.marketplace = normalized.marketplace
    order.external_order_id = normalized.external_order_id
    order.order_date = parse_datetime(normalized.order_date)
    order.customer = normalized.customer.model_dump(mode="json")

    fees = normalized.fees
    order.set_amounts(
        normalized.total_amount,
        FeeBreakdown(
            commission=fees.commission,
            shipping=fees.shipping,
            tax=fees.tax,
            other=fees.other,
        ),
    )

    order.order_status = normalized.order_status
    order.payment_status = normalized.payment_status

    shipping = normalized.shipping
    order.shipping_method = shipping.method
    order.shipping_carrier = shipping.carrier
    order.tracking_number = shipping.tracking_number
    order.shipped_at = parse_datetime(shipping.shipped_at) if shipping.shipped_at else None
    order.delivered_at = parse_datetime(shipping.delivered_at) if shipping.delivered_at else None

    # keep catalogue links made by an earlier conversion
    links = {
        item.external_product_id: item.local_product_id
        for item in order.items
        if item.local_product_id is not None
    }
    order.items = [
        MarketplaceOrderItem(
            position=position,
            external_product_id=item.external_product_id,
            product_name=item.product_name,
            sku=item.sku,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            local_product_id=links.get(item.external_product_id),
        )
        for position, item in enumerate(normalized.items)
    ]

    order.sync_status = "synced"
    order.last_synced_at = synced_at
    order.raw_data = normalized.raw_data


def upsert_order(db: Session, normalized: NormalizedOrder, synced_at: datetime) -> MarketplaceOrder:
    """
    Insert or update by (marketplace, external_order_id) and commit.

    A concurrent sync may insert the same key between our lookup and commit;
    the unique constraint rejects the second insert and we retry as an update.
    """
    order = find_order(db, normalized.marketplace, normalized.external_order_id)
    if order is None:
        order = MarketplaceOrder()
        db.add(order)
    apply_normalized(order, normalized, synced_at)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        order = find_order(db, normalized.marketplace, normalized.external_order_id)
        if order is None:
            raise
        apply_normalized(order, normalized, synced_at)
        db.commit()

    db.refresh(order)
    return order


def _raw_order_ref(raw) -> str:
    if not isinstance(raw, dict):
        return repr(raw)[:50]
    for key in ("order_id", "AmazonOrderId", "orderId"):
        if raw.get(key):
            return str(raw[key])
    return "<unknown>"


async def sync_orders(
    db: Session,
    marketplace: str,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> SyncOutcome:
    settings = get_settings()

    marketplace_registry.ensure_supported(marketplace)
    config = marketplace_registry.get_active_config(db, marketplace)
    adapter = marketplace_registry.get_adapter(
        marketplace,
        config,
        client=client,
        timeout=settings.marketplace_request_timeout,
    )

    now = datetime.utcnow()
    to_date = parse_datetime(to_date) if to_date else now
    from_date = parse_datetime(from_date) if from_date else now - timedelta(days=settings.sync_default_days)
    if from_date > to_date:
        raise ValidationError("fromDate must not be after toDate")

    logger.info("Syncing %s orders from %s to %s", marketplace, from_date.isoformat(), to_date.isoformat())

    try:
        raw_orders = await adapter.fetch_orders(from_date, to_date)
    except MarketplaceApiError as e:
        config.mark_error(e.message, datetime.utcnow())
        db.commit()
        raise

    logger.info("%s returned %d orders", marketplace, len(raw_orders))

    outcome = SyncOutcome()
    for raw in raw_orders:
        try:
            normalized = adapter.normalize_order(raw)
            order = upsert_order(db, normalized, datetime.utcnow())
        except Exception:
            db.rollback()
            outcome.orders_failed += 1
            logger.exception("Error processing %s order %s", marketplace, _raw_order_ref(raw))
            continue
        outcome.orders.append(order)

    outcome.orders_processed = len(outcome.orders)

    config.mark_synced(datetime.utcnow())
    db.commit()

    logger.info(
        "%s sync done: %d processed, %d failed",
        marketplace,
        outcome.orders_processed,
        outcome.orders_failed,
    )
    return outcome

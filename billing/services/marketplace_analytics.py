"""
Revenue and fee statistics over synced marketplace orders.
"""
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from billing.models.marketplace_order import MarketplaceOrder
from billing.schemas.marketplace import MarketplaceAnalytics, MarketplaceStats, TrendBucket, Trends
from billing.services.order_totals import to_money


def _date_filters(from_date: Optional[datetime], to_date: Optional[datetime]):
    filters = []
    if from_date:
        filters.append(MarketplaceOrder.order_date >= from_date)
    if to_date:
        filters.append(MarketplaceOrder.order_date <= to_date)
    return filters


def _stats(marketplace, total_orders, total_revenue, total_fees, net_revenue) -> MarketplaceStats:
    total_orders = int(total_orders or 0)
    revenue = to_money(total_revenue)
    return MarketplaceStats(
        marketplace=marketplace,
        total_orders=total_orders,
        total_revenue=revenue,
        total_fees=to_money(total_fees),
        net_revenue=to_money(net_revenue),
        avg_order_value=to_money(revenue / total_orders) if total_orders else Decimal("0.00"),
    )


def _trend_buckets(rows, fmt: str):
    buckets = OrderedDict()
    for order_date, total_amount, net_amount in rows:
        period = order_date.strftime(fmt)
        bucket = buckets.setdefault(period, [0, Decimal("0.00"), Decimal("0.00")])
        bucket[0] += 1
        bucket[1] += to_money(total_amount)
        bucket[2] += to_money(net_amount)
    return [
        TrendBucket(period=period, total_orders=count, total_revenue=revenue, net_revenue=net)
        for period, (count, revenue, net) in sorted(buckets.items())
    ]


def get_analytics(
    db: Session,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
) -> MarketplaceAnalytics:
    filters = _date_filters(from_date, to_date)

    aggregates = (
        func.count(MarketplaceOrder.id),
        func.sum(MarketplaceOrder.total_amount),
        func.sum(MarketplaceOrder.total_fees),
        func.sum(MarketplaceOrder.net_amount),
    )

    per_marketplace = (
        db.query(MarketplaceOrder.marketplace, *aggregates)
        .filter(*filters)
        .group_by(MarketplaceOrder.marketplace)
        .order_by(MarketplaceOrder.marketplace)
        .all()
    )
    by_marketplace = [_stats(*row) for row in per_marketplace]

    summary_row = db.query(*aggregates).filter(*filters).one()
    summary = _stats(None, *summary_row)

    # trends are bucketed in Python to stay portable across SQL dialects
    trend_rows = (
        db.query(
            MarketplaceOrder.order_date,
            MarketplaceOrder.total_amount,
            MarketplaceOrder.net_amount,
        )
        .filter(*filters)
        .all()
    )

    return MarketplaceAnalytics(
        by_marketplace=by_marketplace,
        summary=summary,
        trends=Trends(
            daily=_trend_buckets(trend_rows, "%Y-%m-%d"),
            monthly=_trend_buckets(trend_rows, "%Y-%m"),
        ),
    )

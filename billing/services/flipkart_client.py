# billing/services/flipkart_client.py
"""
Flipkart seller order adapter.

Flipkart's search returns order *items*; fetch_orders folds them into one
payload per orderId (`{"orderId", "orderItems": [...]}`) so multi-item
orders keep all their lines. Totals and fees are summed over the lines.
Customer email is not exposed.
"""
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from billing.schemas.marketplace import FlipkartCredentials, NormalizedOrder
from billing.services.marketplace_client import (
    DEFAULT_TIMEOUT,
    map_status,
    marketplace_get,
    optional_str,
    parse_datetime,
)
from billing.services.order_totals import to_money

FLIPKART_STATUS_MAP = {
    "APPROVED": "confirmed",
    "PACKING_IN_PROGRESS": "packed",
    "PACKED": "packed",
    "READY_TO_DISPATCH": "packed",
    "SHIPPED": "shipped",
    "DELIVERED": "delivered",
    "CANCELLED": "cancelled",
    "RETURNED": "returned",
}


class FlipkartClient:
    marketplace = "flipkart"
    status_map = FLIPKART_STATUS_MAP

    def __init__(
        self,
        credentials: FlipkartCredentials,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.credentials = credentials
        self.client = client
        self.timeout = timeout

    async def fetch_orders(self, from_date: datetime, to_date: datetime) -> List[Dict[str, Any]]:
        creds = self.credentials
        search_filter = {
            "orderDate": {
                "fromDate": from_date.date().isoformat(),
                "toDate": to_date.date().isoformat(),
            }
        }
        data = await marketplace_get(
            self.marketplace,
            f"{creds.api_url.rstrip('/')}/v3/orders/search",
            token=creds.access_token or creds.application_secret,
            params={"filter": json.dumps(search_filter)},
            client=self.client,
            timeout=self.timeout,
        )
        return group_order_items((data or {}).get("orderItems") or [])

    def normalize_order(self, raw: Dict[str, Any]) -> NormalizedOrder:
        # a bare order item is accepted as a one-line order
        lines = raw.get("orderItems") or [raw]
        first = lines[0]
        address = first.get("shippingAddress") or {}
        return NormalizedOrder(
            marketplace=self.marketplace,
            external_order_id=str(raw["orderId"]),
            order_date=parse_datetime(first.get("orderDate")),
            customer={
                "name": address.get("name") or "Flipkart Customer",
                "phone": optional_str(address.get("phone")),
                "address": {
                    "street": address.get("addressLine1"),
                    "city": address.get("city"),
                    "state": address.get("state"),
                    "pincode": optional_str(address.get("pincode")),
                },
            },
            items=[self._normalize_line(line) for line in lines],
            total_amount=_sum(lines, "totalPrice"),
            fees={
                "commission": _sum(lines, "commissionAmount"),
                "shipping": _sum(lines, "shippingFee"),
                "tax": _sum(lines, "taxAmount"),
            },
            order_status=map_status(self.marketplace, self.status_map, first.get("orderItemStatus")),
            payment_status="pending" if first.get("paymentType") == "COD" else "paid",
            shipping={
                "tracking_number": optional_str(first.get("trackingId")),
                "carrier": first.get("courierName"),
            },
            raw_data=raw,
        )

    @staticmethod
    def _normalize_line(line: Dict[str, Any]) -> Dict[str, Any]:
        sku = optional_str(line.get("sku"))
        external_product_id = optional_str(line.get("fsn")) or sku or str(line.get("orderItemId") or line["orderId"])
        return {
            "external_product_id": external_product_id,
            "product_name": line.get("productTitle") or external_product_id,
            "sku": sku,
            "quantity": line.get("quantity"),
            "unit_price": line.get("sellingPrice"),
            "total_price": line.get("totalPrice"),
        }


def _sum(lines: List[Dict[str, Any]], key: str) -> Decimal:
    return sum((to_money(line.get(key)) for line in lines), Decimal("0.00"))


def group_order_items(order_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Fold Flipkart's per-item search results into one payload per order.

    Orders keep the position of their first item; items without an
    ``orderId`` stay on their own so normalization rejects them.
    """
    orders: Dict[str, Dict[str, Any]] = {}
    grouped = []
    for line in order_items:
        order_id = line.get("orderId") if isinstance(line, dict) else None
        if order_id is None:
            grouped.append(line)
            continue
        key = str(order_id)
        if key not in orders:
            orders[key] = {"orderId": order_id, "orderItems": []}
            grouped.append(orders[key])
        orders[key]["orderItems"].append(line)
    return grouped

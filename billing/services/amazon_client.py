# billing/services/amazon_client.py
"""
Amazon SP-API order adapter.

The orders listing does not carry line items (those come from a separate
order-items call) nor any fee data (that lives in settlement reports), so
normalized Amazon orders have no items and all fees at 0. Buyer phone is
never returned.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from billing.schemas.marketplace import AmazonCredentials, NormalizedOrder
from billing.services.marketplace_client import (
    DEFAULT_TIMEOUT,
    map_status,
    marketplace_get,
    optional_str,
    parse_datetime,
)

AMAZON_STATUS_MAP = {
    "Pending": "pending",
    "PendingAvailability": "pending",
    "Unshipped": "confirmed",
    "PartiallyShipped": "packed",
    "Shipped": "shipped",
    "Delivered": "delivered",
    "Canceled": "cancelled",
    "Unfulfillable": "cancelled",
}


class AmazonClient:
    marketplace = "amazon"
    status_map = AMAZON_STATUS_MAP

    def __init__(
        self,
        credentials: AmazonCredentials,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.credentials = credentials
        self.client = client
        self.timeout = timeout

    async def fetch_orders(self, from_date: datetime, to_date: datetime) -> List[Dict[str, Any]]:
        creds = self.credentials
        data = await marketplace_get(
            self.marketplace,
            f"{creds.api_url.rstrip('/')}/orders/v0/orders",
            token=creds.access_token,
            params={
                "MarketplaceIds": creds.marketplace_id,
                "CreatedAfter": from_date.isoformat(),
                "CreatedBefore": to_date.isoformat(),
            },
            client=self.client,
            timeout=self.timeout,
        )
        data = data or {}
        # SP-API wraps results in "payload"; older gateways return them flat
        payload = data.get("payload") or data
        return payload.get("Orders") or []

    def normalize_order(self, raw: Dict[str, Any]) -> NormalizedOrder:
        buyer = raw.get("BuyerInfo") or {}
        address = raw.get("ShippingAddress") or {}
        order_total = raw.get("OrderTotal") or {}
        return NormalizedOrder(
            marketplace=self.marketplace,
            external_order_id=str(raw["AmazonOrderId"]),
            order_date=parse_datetime(raw.get("PurchaseDate")),
            customer={
                "name": buyer.get("BuyerName") or "Amazon Customer",
                "email": optional_str(buyer.get("BuyerEmail")),
                "address": {
                    "street": address.get("AddressLine1"),
                    "city": address.get("City"),
                    "state": address.get("StateOrRegion"),
                    "pincode": optional_str(address.get("PostalCode")),
                    "country": address.get("CountryCode") or "India",
                },
            },
            items=[],
            total_amount=order_total.get("Amount") or 0,
            order_status=map_status(self.marketplace, self.status_map, raw.get("OrderStatus")),
            payment_status="pending" if raw.get("PaymentMethod") == "COD" else "paid",
            shipping={
                "method": raw.get("ShipmentServiceLevelCategory"),
            },
            raw_data=raw,
        )

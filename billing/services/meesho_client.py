# billing/services/meesho_client.py
"""
Meesho supplier order adapter.

Fields Meesho does not provide and that stay empty after normalization:
customer email, shipping carrier/tracking, ship/deliver dates. Fees are
order-level (commission_fee, shipping_fee, tax_amount) and default to zero.
Quantities, prices and the order total are passed through as sent, so a
missing or zero quantity rejects the order.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from billing.schemas.marketplace import MeeshoCredentials, NormalizedOrder
from billing.services.marketplace_client import (
    DEFAULT_TIMEOUT,
    map_status,
    marketplace_get,
    optional_str,
    parse_datetime,
)

MEESHO_STATUS_MAP = {
    "new": "pending",
    "confirmed": "confirmed",
    "packed": "packed",
    "shipped": "shipped",
    "delivered": "delivered",
    "cancelled": "cancelled",
    "returned": "returned",
}


class MeeshoClient:
    marketplace = "meesho"
    status_map = MEESHO_STATUS_MAP

    def __init__(
        self,
        credentials: MeeshoCredentials,
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
            f"{creds.api_url.rstrip('/')}/api/v1/orders",
            token=creds.secret,
            params={
                "merchant_id": creds.merchant_id,
                "supplier_identifier": creds.supplier_identifier,
                "from_date": from_date.isoformat(),
                "to_date": to_date.isoformat(),
            },
            client=self.client,
            timeout=self.timeout,
        )
        return (data or {}).get("orders") or []

    def normalize_order(self, raw: Dict[str, Any]) -> NormalizedOrder:
        address = raw.get("shipping_address") or {}
        return NormalizedOrder(
            marketplace=self.marketplace,
            external_order_id=str(raw["order_id"]),
            order_date=parse_datetime(raw.get("order_date")),
            customer={
                "name": raw.get("customer_name") or "Meesho Customer",
                "phone": optional_str(raw.get("customer_phone")),
                "address": {
                    "street": address.get("address_line_1"),
                    "city": address.get("city"),
                    "state": address.get("state"),
                    "pincode": optional_str(address.get("pincode")),
                },
            },
            items=[
                {
                    "external_product_id": str(item["product_id"]),
                    "product_name": item.get("product_name") or str(item["product_id"]),
                    "sku": optional_str(item.get("sku")),
                    "quantity": item.get("quantity"),
                    "unit_price": item.get("unit_price"),
                    "total_price": item.get("total_price"),
                }
                for item in raw.get("items") or []
            ],
            total_amount=raw.get("total_amount"),
            fees={
                "commission": raw.get("commission_fee") or 0,
                "shipping": raw.get("shipping_fee") or 0,
                "tax": raw.get("tax_amount") or 0,
            },
            order_status=map_status(self.marketplace, self.status_map, raw.get("status")),
            payment_status="paid" if raw.get("payment_status") == "paid" else "pending",
            raw_data=raw,
        )

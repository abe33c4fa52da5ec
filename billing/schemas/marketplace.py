from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

MarketplaceName = Literal["meesho", "amazon", "flipkart"]
OrderStatus = Literal["pending", "confirmed", "packed", "shipped", "delivered", "cancelled", "returned"]
PaymentStatus = Literal["pending", "paid", "failed"]

ORDER_STATUSES = ("pending", "confirmed", "packed", "shipped", "delivered", "cancelled", "returned")


# ---------------------------------------------------------
# Credentials: one variant per marketplace
# ---------------------------------------------------------
class MeeshoCredentials(BaseModel):
    marketplace: Literal["meesho"] = "meesho"
    merchant_id: str
    supplier_identifier: str
    secret: str
    api_url: str
    api_version: Optional[str] = None


class AmazonCredentials(BaseModel):
    marketplace: Literal["amazon"] = "amazon"
    access_token: str
    marketplace_id: str
    api_url: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    api_version: Optional[str] = None


class FlipkartCredentials(BaseModel):
    marketplace: Literal["flipkart"] = "flipkart"
    application_id: str
    application_secret: str
    api_url: str
    access_token: Optional[str] = None
    api_version: Optional[str] = None


MarketplaceCredentials = Annotated[
    Union[MeeshoCredentials, AmazonCredentials, FlipkartCredentials],
    Field(discriminator="marketplace"),
]

SECRET_FIELDS = {"secret", "access_token", "client_secret", "refresh_token", "application_secret"}


# ---------------------------------------------------------
# Config
# ---------------------------------------------------------
class SyncSettings(BaseModel):
    auto_sync: bool = True
    sync_interval_minutes: int = Field(default=30, ge=1)
    last_sync_at: Optional[datetime] = None
    sync_orders_from: Optional[datetime] = None


class MappingSettings(BaseModel):
    auto_map_products: bool = True
    default_customer_group: Optional[str] = None
    default_payment_method: str = "online"


class SyncSettingsUpdate(BaseModel):
    auto_sync: Optional[bool] = None
    sync_interval_minutes: Optional[int] = Field(default=None, ge=1)
    sync_orders_from: Optional[datetime] = None


class MappingSettingsUpdate(BaseModel):
    auto_map_products: Optional[bool] = None
    default_customer_group: Optional[str] = None
    default_payment_method: Optional[str] = None


class MarketplaceConfigUpdate(BaseModel):
    is_active: Optional[bool] = None
    # validated against the marketplace's credential variant by the registry
    credentials: Optional[Dict[str, Any]] = None
    sync_settings: Optional[SyncSettingsUpdate] = None
    mapping_settings: Optional[MappingSettingsUpdate] = None
    status: Optional[Literal["active", "inactive", "error"]] = None


class LastError(BaseModel):
    message: Optional[str] = None
    timestamp: Optional[datetime] = None


class MarketplaceConfigRead(BaseModel):
    id: int
    marketplace: str
    is_active: bool
    credentials: Dict[str, Any]
    sync_settings: SyncSettings
    mapping_settings: MappingSettings
    status: str
    last_error: Optional[LastError] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------
# Normalized (canonical) order, produced by adapters
# ---------------------------------------------------------
class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: Optional[str] = "India"


class CustomerSnapshot(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Address = Field(default_factory=Address)


class NormalizedItem(BaseModel):
    external_product_id: str
    product_name: str
    sku: Optional[str] = None
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)
    total_price: Decimal = Field(ge=0)


class Fees(BaseModel):
    commission: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    other: Decimal = Decimal("0")


class ShippingInfo(BaseModel):
    method: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class NormalizedOrder(BaseModel):
    marketplace: MarketplaceName
    external_order_id: str = Field(min_length=1)
    order_date: datetime
    customer: CustomerSnapshot
    items: List[NormalizedItem] = []
    total_amount: Decimal = Field(ge=0)
    fees: Fees = Field(default_factory=Fees)
    order_status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)
    raw_data: Dict[str, Any] = {}


# ---------------------------------------------------------
# Stored order (API output)
# ---------------------------------------------------------
class MarketplaceOrderItemRead(BaseModel):
    id: int
    external_product_id: str
    product_name: str
    sku: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    local_product_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class MarketplaceOrderRead(BaseModel):
    id: int
    marketplace: str
    external_order_id: str
    order_date: datetime
    customer: Dict[str, Any]
    items: List[MarketplaceOrderItemRead] = []
    total_amount: Decimal
    commission_fee: Decimal
    shipping_fee: Decimal
    tax_fee: Decimal
    other_fee: Decimal
    total_fees: Decimal
    net_amount: Decimal
    order_status: str
    payment_status: str
    shipping_method: Optional[str] = None
    shipping_carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    sync_status: str
    last_synced_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SyncResult(BaseModel):
    success: bool = True
    orders_processed: int
    orders_failed: int = 0
    orders: List[MarketplaceOrderRead] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class MarketplaceOrderPage(BaseModel):
    sales: List[MarketplaceOrderRead]
    total: int
    pagination: Pagination


# ---------------------------------------------------------
# Analytics
# ---------------------------------------------------------
class MarketplaceStats(BaseModel):
    marketplace: Optional[str] = None
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0.00")
    total_fees: Decimal = Decimal("0.00")
    net_revenue: Decimal = Decimal("0.00")
    avg_order_value: Decimal = Decimal("0.00")


class TrendBucket(BaseModel):
    period: str
    total_orders: int
    total_revenue: Decimal
    net_revenue: Decimal


class Trends(BaseModel):
    daily: List[TrendBucket] = []
    monthly: List[TrendBucket] = []


class MarketplaceAnalytics(BaseModel):
    by_marketplace: List[MarketplaceStats]
    summary: MarketplaceStats
    trends: Trends

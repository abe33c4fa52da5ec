from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    ForeignKey,
    JSON,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from billing.core.database import Base
from billing.services.order_totals import FeeBreakdown, compute_totals


class MarketplaceOrder(Base):
    __tablename__ = "marketplace_orders"

    id = Column(Integer, primary_key=True, index=True)

    marketplace = Column(String(20), nullable=False, index=True)
    external_order_id = Column(String(100), nullable=False, index=True)
    order_date = Column(DateTime, nullable=False, index=True)

    # embedded snapshot: {"name", "phone", "email", "address": {...}}
    customer = Column(JSON, nullable=False, default=dict)

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    commission_fee = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_fee = Column(Numeric(12, 2), nullable=False, default=0)
    tax_fee = Column(Numeric(12, 2), nullable=False, default=0)
    other_fee = Column(Numeric(12, 2), nullable=False, default=0)

    # derived, written only through set_amounts()
    total_fees = Column(Numeric(12, 2), nullable=False, default=0)
    net_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # pending/confirmed/packed/shipped/delivered/cancelled/returned
    order_status = Column(String(20), nullable=False, default="pending", index=True)
    # pending/paid/failed
    payment_status = Column(String(20), nullable=False, default="pending", index=True)

    shipping_method = Column(String(50), nullable=True)
    shipping_carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    # synced/pending/failed
    sync_status = Column(String(20), nullable=False, default="synced", index=True)
    last_synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # payload exactly as the marketplace returned it
    raw_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    items = relationship(
        "MarketplaceOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="MarketplaceOrderItem.position",
    )

    __table_args__ = (
        UniqueConstraint("marketplace", "external_order_id", name="uq_marketplace_orders_marketplace_external_id"),
        CheckConstraint("total_amount >= 0", name="ck_marketplace_orders_total_non_negative"),
    )

    @property
    def fees(self) -> FeeBreakdown:
        return FeeBreakdown(
            commission=self.commission_fee or 0,
            shipping=self.shipping_fee or 0,
            tax=self.tax_fee or 0,
            other=self.other_fee or 0,
        )

    def set_amounts(self, total_amount, fees: FeeBreakdown) -> None:
        """Write total and fees together and recompute the derived columns."""
        totals = compute_totals(total_amount, fees)
        self.total_amount = totals.total_amount
        self.commission_fee = totals.fees.commission
        self.shipping_fee = totals.fees.shipping
        self.tax_fee = totals.fees.tax
        self.other_fee = totals.fees.other
        self.total_fees = totals.total_fees
        self.net_amount = totals.net_amount

    def __repr__(self):
        return f"<MarketplaceOrder {self.marketplace}#{self.external_order_id}>"


class MarketplaceOrderItem(Base):
    __tablename__ = "marketplace_order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("marketplace_orders.id", ondelete="CASCADE"), index=True, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    external_product_id = Column(String(100), nullable=False)
    product_name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)

    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)

    # link to the local catalogue once the order has been converted
    local_product_id = Column(Integer, ForeignKey("products.id"), nullable=True)

    order = relationship("MarketplaceOrder", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_marketplace_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_marketplace_order_items_unit_price_non_negative"),
        CheckConstraint("total_price >= 0", name="ck_marketplace_order_items_total_non_negative"),
    )

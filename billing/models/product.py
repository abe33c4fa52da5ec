from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    String,
    Text,
    Numeric,
    DateTime,
)

from billing.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default="General")

    # stored upper-cased; see services.catalog.normalize_sku
    sku = Column(String(100), unique=True, nullable=False, index=True)

    cost_price = Column(Numeric(10, 2), nullable=False, default=0)
    selling_price = Column(Numeric(10, 2), nullable=False, default=0)

    stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=5)
    unit = Column(String(20), nullable=False, default="piece")

    # 'manual' or the marketplace the product was auto-created from
    source = Column(String(20), nullable=False, default="manual")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    @property
    def stock_status(self) -> str:
        if self.stock <= 0:
            return "out_of_stock"
        if self.stock <= self.min_stock:
            return "low_stock"
        return "in_stock"

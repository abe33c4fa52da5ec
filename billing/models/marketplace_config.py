from datetime import datetime, timedelta

from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime, JSON

from billing.core.database import Base


def _default_sync_from():
    return datetime.utcnow() - timedelta(days=30)


class MarketplaceConfig(Base):
    __tablename__ = "marketplace_configs"

    id = Column(Integer, primary_key=True, index=True)

    # 'meesho' / 'amazon' / 'flipkart'
    marketplace = Column(String(20), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=False)

    # credential bag, validated per marketplace by services.marketplace_registry
    credentials = Column(JSON, nullable=False, default=dict)

    # sync settings
    auto_sync = Column(Boolean, nullable=False, default=True)
    sync_interval_minutes = Column(Integer, nullable=False, default=30)
    last_sync_at = Column(DateTime, nullable=True)
    sync_orders_from = Column(DateTime, nullable=True, default=_default_sync_from)

    # mapping settings
    auto_map_products = Column(Boolean, nullable=False, default=True)
    default_customer_group = Column(String(50), nullable=True)
    default_payment_method = Column(String(20), nullable=False, default="online")

    # 'active' | 'inactive' | 'error'
    status = Column(String(20), nullable=False, default="inactive")
    last_error_message = Column(Text, nullable=True)
    last_error_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def mark_synced(self, when: datetime) -> None:
        self.last_sync_at = when
        self.status = "active"
        self.last_error_message = None
        self.last_error_at = None

    def mark_error(self, message: str, when: datetime) -> None:
        self.status = "error"
        self.last_error_message = message
        self.last_error_at = when

from datetime import datetime

from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship

from billing.core.database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True, index=True)
    email = Column(String(150), nullable=True, index=True)

    # {"street", "city", "state", "pincode", "country"}
    address = Column(JSON, nullable=True)

    # 'manual' or the marketplace the customer was imported from
    source = Column(String(20), nullable=False, default="manual")
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    sales = relationship("Sale", back_populates="customer")

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductBase(BaseModel):
    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: str = Field(default="General", max_length=100)
    sku: str = Field(min_length=1, max_length=100)
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    selling_price: Decimal = Field(default=Decimal("0"), ge=0)
    stock: int = Field(default=0, ge=0)
    min_stock: int = Field(default=5, ge=0)
    unit: str = Field(default="piece", max_length=20)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100)
    sku: Optional[str] = Field(default=None, min_length=1, max_length=100)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    selling_price: Optional[Decimal] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    min_stock: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = Field(default=None, max_length=20)
    is_active: Optional[bool] = None


class ProductRead(ProductBase):
    id: int
    source: str
    is_active: bool
    stock_status: str = "in_stock"
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

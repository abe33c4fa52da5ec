from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class SaleItemRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class SaleRead(BaseModel):
    id: int
    invoice_number: str
    customer_id: Optional[int] = None
    customer_name: str
    customer_phone: Optional[str] = None
    subtotal: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    payment_method: str
    payment_status: str
    status: str
    sale_date: datetime
    source: str
    marketplace_order_id: Optional[int] = None
    external_order_id: Optional[str] = None
    items: List[SaleItemRead] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SaleConversionResult(BaseModel):
    success: bool = True
    sale: SaleRead
    message: str = "Marketplace sale converted to local sale successfully"

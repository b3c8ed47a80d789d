from datetime import datetime
from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    qty: int
    unit_price_cents_snapshot: int
    title_snapshot: str
    variant_snapshot: Dict[str, Any] = {}
    line_total_cents: int

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    status: str
    customer_email: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address_snapshot: Dict[str, Any]
    subtotal_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int
    currency: str
    coupon_code: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut]

    class Config:
        from_attributes = True


class TotalsOut(BaseModel):
    subtotal_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int

    class Config:
        from_attributes = True


class OrderTotalsReport(BaseModel):
    order_id: int
    order_number: str
    stored: TotalsOut
    computed: TotalsOut
    consistent: bool


class OrderStatusUpdate(BaseModel):
    status: str

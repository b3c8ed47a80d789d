from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class InvoiceCreate(BaseModel):
    customer_id: Optional[int] = None
    customer_snapshot: Dict[str, Any] = {}


class InvoiceLineCreate(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    qty: int = Field(ge=1)
    # Defaults to the catalog price
    unit_price_cents: Optional[int] = Field(default=None, ge=0)
    title_snapshot: Optional[str] = Field(default=None, min_length=1, max_length=200)


class InvoiceLineUpdate(BaseModel):
    qty: Optional[int] = Field(default=None, ge=1)
    unit_price_cents: Optional[int] = Field(default=None, ge=0)


class InvoiceAdjustments(BaseModel):
    delivery_cents: Optional[int] = Field(default=None, ge=0)
    discount_cents: Optional[int] = Field(default=None, ge=0)


class InvoiceLineOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    qty: int
    unit_price_cents: int
    line_total_cents: int
    title_snapshot: str
    variant_snapshot: Dict[str, Any] = {}

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: int
    invoice_number: Optional[str] = None
    status: str
    customer_id: Optional[int] = None
    customer_snapshot: Dict[str, Any] = {}
    subtotal_cents: int
    delivery_cents: int
    discount_cents: int
    total_cents: int
    currency: str
    created_at: datetime
    issued_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    lines: List[InvoiceLineOut]

    class Config:
        from_attributes = True


class RecalculateResponse(BaseModel):
    drift: bool
    invoice: InvoiceOut

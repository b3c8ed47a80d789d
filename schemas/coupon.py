from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional


class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    discount_type: str
    discount_value: int
    min_order_value_cents: Optional[int] = Field(default=None, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=0)
    expires_at: Optional[datetime] = None
    active: bool = True


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    discount_type: Optional[str] = None
    discount_value: Optional[int] = None
    min_order_value_cents: Optional[int] = Field(default=None, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=0)
    expires_at: Optional[datetime] = None
    active: Optional[bool] = None


class CouponOut(BaseModel):
    id: int
    code: str
    discount_type: str
    discount_value: int
    min_order_value_cents: Optional[int] = None
    max_uses: Optional[int] = None
    usage_count: int
    expires_at: Optional[datetime] = None
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True

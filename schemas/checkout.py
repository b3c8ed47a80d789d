from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Optional


class CartItemIn(BaseModel):
    product_id: int = Field(alias="productId")
    variant_id: Optional[int] = Field(default=None, alias="variantId")
    qty: int = Field(ge=1, le=99)

    model_config = {"populate_by_name": True}


class CustomerIn(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = Field(default=None, min_length=5)

    @field_validator("name", "phone", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class ShippingAddressIn(BaseModel):
    line1: str = Field(min_length=1)
    line2: Optional[str] = None
    city: str = Field(min_length=1)
    province: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(default="ZA", min_length=2)

    @field_validator("line1", "line2", "city", "province", "postal_code", "country", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class CreateOrderRequest(BaseModel):
    customer: CustomerIn
    shipping_address: ShippingAddressIn = Field(alias="shippingAddress")
    items: List[CartItemIn] = Field(min_length=1)
    coupon_code: Optional[str] = Field(default=None, alias="couponCode", min_length=1, max_length=64)

    model_config = {"populate_by_name": True}

    @field_validator("coupon_code", mode="before")
    @classmethod
    def _strip_code(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class CouponPreviewRequest(BaseModel):
    items: List[CartItemIn] = Field(min_length=1)
    coupon_code: str = Field(alias="couponCode", min_length=1, max_length=64)
    province: str = Field(min_length=1)

    model_config = {"populate_by_name": True}

    @field_validator("coupon_code", "province", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class AppliedCouponOut(BaseModel):
    code: str
    discount_cents: int


class CouponPreviewResponse(BaseModel):
    ok: bool = True
    coupon: AppliedCouponOut
    subtotal_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int


class CreateOrderResponse(BaseModel):
    order_id: int
    order_number: str
    total_cents: int

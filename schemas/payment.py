from pydantic import BaseModel, Field
from typing import Optional

from schemas.order import OrderOut


class PayOrderRequest(BaseModel):
    order_id: int = Field(alias="orderId")

    model_config = {"populate_by_name": True}


class PendingCheckoutRequest(BaseModel):
    pending_checkout_id: str = Field(alias="pendingCheckoutId", min_length=1, max_length=36)

    model_config = {"populate_by_name": True}


class PayOrderResponse(BaseModel):
    redirect_url: str = Field(serialization_alias="redirectUrl")


class StartCheckoutResponse(BaseModel):
    redirect_url: str = Field(serialization_alias="redirectUrl")
    pending_checkout_id: str = Field(serialization_alias="pendingCheckoutId")


class PendingCheckoutOut(BaseModel):
    id: str
    status: str
    amount_cents: int
    currency: str

    class Config:
        from_attributes = True


class PaymentStatusResponse(BaseModel):
    status: str
    pending_checkout: PendingCheckoutOut
    order: Optional[OrderOut] = None


class FinalizeResponse(BaseModel):
    status: str
    order_id: Optional[int] = None
    order_number: Optional[str] = None

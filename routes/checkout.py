from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.db import get_db
from schemas.checkout import (
    AppliedCouponOut,
    CouponPreviewRequest,
    CouponPreviewResponse,
    CreateOrderRequest,
    CreateOrderResponse,
)
from schemas.order import OrderOut
from security.auth import get_optional_user_id
from services.checkout import create_order, quote_checkout
from services.notifications import notify_safely, send_bank_transfer_email
from services.orders import find_order_for_customer


router = APIRouter(tags=["checkout"])


@router.post("/checkout/coupon", response_model=CouponPreviewResponse)
def preview_coupon(data: CouponPreviewRequest, db: Session = Depends(get_db)):
    """Price the cart with the coupon exactly as checkout would."""
    quote = quote_checkout(db, data.items, data.province, data.coupon_code)
    totals = quote.totals
    return CouponPreviewResponse(
        coupon=AppliedCouponOut(code=quote.coupon_code, discount_cents=totals.discount_cents),
        **totals.as_dict(),
    )


@router.post("/orders/create", response_model=CreateOrderResponse, status_code=201)
def create_bank_transfer_order(
    data: CreateOrderRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    order = create_order(
        db,
        customer=data.customer.model_dump(),
        shipping_address=data.shipping_address.model_dump(),
        items=data.items,
        coupon_code=data.coupon_code,
        user_id=user_id,
    )
    notify_safely(send_bank_transfer_email, order)
    return CreateOrderResponse(order_id=order.id, order_number=order.order_number, total_cents=order.total_cents)


@router.get("/orders/{order_number}", response_model=OrderOut)
def track_order(order_number: str, email: str = Query(..., min_length=3), db: Session = Depends(get_db)):
    return find_order_for_customer(db, order_number, email)

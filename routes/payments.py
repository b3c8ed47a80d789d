from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.db import get_db
from core.errors import StorefrontError
from schemas.checkout import CreateOrderRequest
from schemas.payment import (
    FinalizeResponse,
    PaymentStatusResponse,
    PayOrderRequest,
    PayOrderResponse,
    PendingCheckoutOut,
    PendingCheckoutRequest,
    StartCheckoutResponse,
)
from schemas.order import OrderOut
from security.auth import get_optional_user_id
from services.payments import (
    finalize_pending_checkout,
    payment_status,
    start_guest_checkout,
    start_payment_for_order,
)
from services.webhooks import handle_webhook


router = APIRouter(prefix="/payments/yoco", tags=["payments"])

WEBHOOK_STATUSES = (403, 500)


@router.post("/create", response_model=PayOrderResponse)
def pay_existing_order(data: PayOrderRequest, db: Session = Depends(get_db)):
    session = start_payment_for_order(db, data.order_id)
    return PayOrderResponse(redirect_url=session.redirect_url)


@router.post("/start", response_model=StartCheckoutResponse)
def start_checkout(
    data: CreateOrderRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    session = start_guest_checkout(
        db,
        customer=data.customer.model_dump(),
        shipping_address=data.shipping_address.model_dump(),
        items=data.items,
        coupon_code=data.coupon_code,
        user_id=user_id,
    )
    return StartCheckoutResponse(redirect_url=session.redirect_url, pending_checkout_id=session.pending_checkout_id)


@router.post("/status", response_model=PaymentStatusResponse)
def checkout_status(data: PendingCheckoutRequest, db: Session = Depends(get_db)):
    pending, order = payment_status(db, data.pending_checkout_id)
    return PaymentStatusResponse(
        status=pending.status,
        pending_checkout=PendingCheckoutOut.model_validate(pending),
        order=OrderOut.model_validate(order) if order else None,
    )


@router.post("/finalize", response_model=FinalizeResponse)
def finalize_checkout(data: PendingCheckoutRequest, db: Session = Depends(get_db)):
    result = finalize_pending_checkout(db, data.pending_checkout_id)
    order = result.order
    return FinalizeResponse(
        status=result.status,
        order_id=order.id if order else None,
        order_number=order.order_number if order else None,
    )


@router.post("/webhook")
async def yoco_webhook(request: Request, db: Session = Depends(get_db)):
    # Signature covers the exact bytes, so read before any JSON parsing
    raw_body = await request.body()
    try:
        outcome = await run_in_threadpool(handle_webhook, db, raw_body, request.headers)
    except StorefrontError as exc:
        # The provider only understands 200, 403 and 500
        status_code = exc.status_code if exc.status_code in WEBHOOK_STATUSES else 500
        return JSONResponse(status_code=status_code, content={"error": exc.code})
    return {"ok": True, "result": outcome.result}

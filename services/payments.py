"""
Card payments through the hosted Yoco checkout.

Two entry points reach the provider:

* ``start_payment_for_order`` pays an order that already exists
  (bank-transfer orders switched to card). A local ``initiated`` Payment is
  committed before the provider is called so a lost response still leaves a
  record to reconcile.
* ``start_guest_checkout`` prices a cart and parks it in a PendingCheckout.
  The order is only created once the payment is confirmed, by the webhook
  or by ``finalize_pending_checkout`` when the webhook is late.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.db import is_unique_violation
from core.errors import InvalidStatus, NotFound, OrderNotPayable, RequestInvalid
from models.order import Order, OrderStatus
from models.payment import Payment, PaymentStatus
from models.pending_checkout import PendingCheckout, PendingCheckoutStatus
from services import yoco
from services.catalog import CartItem, ResolvedLine
from services.checkout import persist_order, quote_checkout
from services.fulfillment import apply_payment_success
from services.notifications import notify_safely, send_order_paid_email
from services.totals import compute_totals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    redirect_url: str
    checkout_id: str
    payment_id: Optional[int] = None
    pending_checkout_id: Optional[str] = None


@dataclass(frozen=True)
class FinalizeResult:
    status: str
    order: Optional[Order] = None


def _site_url(path: str) -> str:
    return f"{settings.SITE_URL}{path}"


def start_payment_for_order(db: Session, order_id: int) -> CheckoutSession:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found", code="order_not_found")
    if order.status != OrderStatus.PENDING_PAYMENT:
        raise OrderNotPayable(f"Order {order.order_number} is {order.status}")
    if order.currency != settings.STORE_CURRENCY:
        raise OrderNotPayable(f"Currency {order.currency} is not supported", code="unsupported_currency")

    payment = Payment(
        order_id=order.id,
        provider=yoco.PROVIDER,
        amount_cents=order.total_cents,
        currency=order.currency,
        status=PaymentStatus.INITIATED,
    )
    db.add(payment)
    db.commit()

    # On GatewayError the initiated payment stays behind as the audit trail
    body = yoco.create_checkout(
        amount_cents=order.total_cents,
        currency=order.currency,
        success_url=_site_url(f"/checkout/success?orderId={order.id}"),
        cancel_url=_site_url(f"/checkout/cancelled?orderId={order.id}"),
        failure_url=_site_url(f"/checkout/failed?orderId={order.id}"),
        metadata={"orderId": str(order.id), "paymentId": str(payment.id)},
    )

    payment.provider_payment_id = body["id"]
    payment.raw_payload = body
    db.commit()

    logger.info("Started Yoco checkout %s for order %s", body["id"], order.order_number)
    return CheckoutSession(redirect_url=body["redirectUrl"], checkout_id=body["id"], payment_id=payment.id)


def start_guest_checkout(
    db: Session,
    customer: dict[str, Any],
    shipping_address: dict[str, Any],
    items: Sequence[CartItem],
    coupon_code: Optional[str] = None,
    user_id: Optional[str] = None,
) -> CheckoutSession:
    quote = quote_checkout(db, items, shipping_address.get("province"), coupon_code)
    totals = quote.totals

    pending = PendingCheckout(
        user_id=user_id,
        customer_email=customer["email"],
        customer_name=customer.get("name"),
        customer_phone=customer.get("phone"),
        shipping_address_snapshot=dict(shipping_address),
        items=[line.to_json() for line in quote.lines],
        subtotal_cents=totals.subtotal_cents,
        shipping_cents=totals.shipping_cents,
        discount_cents=totals.discount_cents,
        amount_cents=totals.total_cents,
        coupon_code=quote.coupon_code,
        currency=settings.STORE_CURRENCY,
        status=PendingCheckoutStatus.INITIATED,
    )
    db.add(pending)
    db.commit()

    try:
        body = yoco.create_checkout(
            amount_cents=pending.amount_cents,
            currency=pending.currency,
            success_url=_site_url(f"/checkout/success?pendingCheckoutId={pending.id}"),
            cancel_url=_site_url(f"/checkout?cancelled=1&pendingCheckoutId={pending.id}"),
            failure_url=_site_url(f"/checkout?failed=1&pendingCheckoutId={pending.id}"),
            metadata={"pendingCheckoutId": pending.id},
        )
    except Exception:
        pending.status = PendingCheckoutStatus.FAILED
        db.commit()
        raise

    pending.checkout_id = body["id"]
    db.commit()

    logger.info("Started Yoco checkout %s for pending checkout %s", body["id"], pending.id)
    return CheckoutSession(redirect_url=body["redirectUrl"], checkout_id=body["id"], pending_checkout_id=pending.id)


def find_order_for_checkout(db: Session, checkout_id: Optional[str]) -> Optional[Order]:
    if not checkout_id:
        return None
    payment = db.execute(
        select(Payment).where(
            Payment.provider == yoco.PROVIDER,
            Payment.provider_payment_id == checkout_id,
            Payment.order_id.is_not(None),
        )
    ).scalars().first()
    return payment.order if payment else None


def complete_pending_checkout(db: Session, pending: PendingCheckout, raw_payload: dict[str, Any]) -> Order:
    """Turn a paid pending checkout into a paid order.

    Prices come from the frozen line snapshots, never the live catalog.
    Runs inside the caller's transaction; a concurrent completion of the
    same checkout fails on the payments unique constraint at flush.
    """
    lines = [ResolvedLine.from_json(item) for item in pending.items]
    totals = compute_totals(lines, pending.shipping_cents, pending.discount_cents)
    if totals.total_cents != pending.amount_cents:
        logger.warning(
            "Pending checkout %s amount %d differs from recomputed total %d",
            pending.id, pending.amount_cents, totals.total_cents,
        )

    order = persist_order(
        db,
        lines,
        totals,
        customer={"email": pending.customer_email, "name": pending.customer_name, "phone": pending.customer_phone},
        shipping_address=pending.shipping_address_snapshot,
        status=OrderStatus.PENDING_PAYMENT,
        coupon_code=pending.coupon_code,
        user_id=pending.user_id,
    )
    db.add(
        Payment(
            order_id=order.id,
            provider=yoco.PROVIDER,
            provider_payment_id=pending.checkout_id,
            amount_cents=order.total_cents,
            currency=pending.currency,
            status=PaymentStatus.SUCCEEDED,
            raw_payload=raw_payload,
        )
    )
    pending.status = PendingCheckoutStatus.COMPLETED
    apply_payment_success(db, order)
    db.flush()
    return order


def get_pending_checkout(db: Session, pending_checkout_id: str) -> PendingCheckout:
    pending = db.get(PendingCheckout, pending_checkout_id)
    if pending is None:
        raise NotFound("Pending checkout not found", code="pending_checkout_not_found")
    return pending


def payment_status(db: Session, pending_checkout_id: str) -> tuple[PendingCheckout, Optional[Order]]:
    pending = get_pending_checkout(db, pending_checkout_id)
    return pending, find_order_for_checkout(db, pending.checkout_id)


def finalize_pending_checkout(db: Session, pending_checkout_id: str, now: Optional[datetime] = None) -> FinalizeResult:
    """Create the order for a paid checkout whose webhook has not landed.

    The provider only sends the customer to the success page after a
    successful payment, which is what makes this fallback safe. Calling it
    again, or after the webhook, returns the existing order.
    """
    pending = get_pending_checkout(db, pending_checkout_id)

    if pending.status == PendingCheckoutStatus.COMPLETED:
        return FinalizeResult(pending.status, find_order_for_checkout(db, pending.checkout_id))

    if not pending.checkout_id:
        raise RequestInvalid("Checkout was never sent to the provider", code="no_checkout_id")

    if pending.status != PendingCheckoutStatus.INITIATED:
        raise InvalidStatus(
            f"Pending checkout is {pending.status}",
            code="checkout_not_in_initiated_state",
            extra={"status": pending.status},
        )

    now = now or datetime.utcnow()
    if now - pending.created_at > timedelta(hours=settings.PENDING_CHECKOUT_TTL_HOURS):
        raise RequestInvalid("Pending checkout has expired", code="checkout_expired")

    existing = find_order_for_checkout(db, pending.checkout_id)
    if existing is not None:
        pending.status = PendingCheckoutStatus.COMPLETED
        db.commit()
        return FinalizeResult(pending.status, existing)

    logger.info("Finalizing pending checkout %s without webhook (checkout %s)", pending.id, pending.checkout_id)
    try:
        order = complete_pending_checkout(
            db, pending, {"source": "finalize_fallback", "checkout_id": pending.checkout_id}
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not is_unique_violation(exc, "provider_payment_id"):
            raise
        # The webhook won the race
        return FinalizeResult(PendingCheckoutStatus.COMPLETED, find_order_for_checkout(db, pending.checkout_id))
    except Exception:
        db.rollback()
        raise

    notify_safely(send_order_paid_email, order)
    return FinalizeResult(pending.status, order)

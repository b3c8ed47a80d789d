"""
Checkout: pricing a cart and turning it into a persisted order.

``quote_checkout`` is the single pricing path. The coupon preview, the
bank-transfer order endpoint and the card checkout start all go through it,
so a preview can never disagree with the order that follows.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.db import is_unique_violation
from core.errors import Conflict, RequestInvalid
from models.order import Order, OrderStatus
from models.order_item import OrderItem
from services.catalog import CartItem, ResolvedLine, resolve_prices
from services.coupons import validate_coupon
from services.delivery import effective_shipping_cents
from services.totals import Totals, compute_totals

logger = logging.getLogger(__name__)

MAX_QTY = 99


@dataclass(frozen=True)
class CheckoutQuote:
    lines: Sequence[ResolvedLine]
    totals: Totals
    coupon_code: Optional[str] = None


def validate_cart(items: Sequence[CartItem]) -> None:
    if not items:
        raise RequestInvalid("Cart is empty", code="empty_cart")
    for item in items:
        if not isinstance(item.qty, int) or not 1 <= item.qty <= MAX_QTY:
            raise RequestInvalid(f"Quantity must be between 1 and {MAX_QTY}", code="invalid_quantity")


def quote_checkout(
    db: Session,
    items: Sequence[CartItem],
    province: Optional[str],
    coupon_code: Optional[str] = None,
) -> CheckoutQuote:
    validate_cart(items)
    lines = resolve_prices(db, items)
    shipping = effective_shipping_cents(db, province)

    discount = 0
    applied_code = None
    if coupon_code:
        subtotal = sum(line.line_total_cents for line in lines)
        # Fails closed: a bad coupon rejects the checkout
        applied = validate_coupon(db, coupon_code, subtotal)
        discount = applied.discount_cents
        applied_code = applied.code

    return CheckoutQuote(
        lines=lines,
        totals=compute_totals(lines, shipping, discount),
        coupon_code=applied_code,
    )


def format_order_number(seq: int) -> str:
    return f"ORD-{seq}"


def next_order_seq(db: Session) -> int:
    current = db.execute(select(func.max(Order.order_seq))).scalar()
    if current is None:
        return settings.ORDER_NUMBER_START
    return max(current + 1, settings.ORDER_NUMBER_START)


def persist_order(
    db: Session,
    lines: Iterable[ResolvedLine],
    totals: Totals,
    customer: dict[str, Any],
    shipping_address: dict[str, Any],
    status: str = OrderStatus.PENDING_PAYMENT,
    coupon_code: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Order:
    """Insert an order and its lines in one savepoint, retrying on number clashes.

    The caller owns the surrounding transaction and commits it.
    """
    lines = list(lines)
    for attempt in range(1, settings.ORDER_NUMBER_MAX_ATTEMPTS + 1):
        seq = next_order_seq(db)
        order = Order(
            order_seq=seq,
            order_number=format_order_number(seq),
            user_id=user_id,
            customer_email=customer["email"],
            customer_name=customer.get("name"),
            customer_phone=customer.get("phone"),
            shipping_address_snapshot=dict(shipping_address),
            status=status,
            subtotal_cents=totals.subtotal_cents,
            shipping_cents=totals.shipping_cents,
            discount_cents=totals.discount_cents,
            total_cents=totals.total_cents,
            currency=settings.STORE_CURRENCY,
            coupon_code=coupon_code,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    qty=line.qty,
                    unit_price_cents_snapshot=line.unit_price_cents,
                    title_snapshot=line.title,
                    variant_snapshot=line.variant_snapshot,
                )
                for line in lines
            ],
        )
        try:
            with db.begin_nested():
                db.add(order)
        except IntegrityError as exc:
            if not is_unique_violation(exc, "order_seq", "order_number"):
                raise
            logger.info("Order number %s taken, retrying (attempt %d)", order.order_number, attempt)
            continue
        return order

    raise Conflict("Could not allocate an order number", code="order_number_conflict")


def create_order(
    db: Session,
    customer: dict[str, Any],
    shipping_address: dict[str, Any],
    items: Sequence[CartItem],
    coupon_code: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Order:
    """Validate, price and persist a ``pending_payment`` order.

    Stock is untouched here; it only moves once a payment is confirmed.
    """
    quote = quote_checkout(db, items, shipping_address.get("province"), coupon_code)
    try:
        order = persist_order(
            db,
            quote.lines,
            quote.totals,
            customer,
            shipping_address,
            status=OrderStatus.PENDING_PAYMENT,
            coupon_code=quote.coupon_code,
            user_id=user_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Created order %s total=%d", order.order_number, order.total_cents)
    return order

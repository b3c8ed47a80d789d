"""
Side effects of a confirmed payment: stock, customer record, coupon usage.

Only the payment success path (webhook, finalize fallback, manual
confirmation) calls in here. Everything runs inside the caller's
transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.db import is_unique_violation
from models.customer import Customer
from models.order import Order, OrderStatus
from models.product import Product
from models.variant import ProductVariant
from services.coupons import record_redemption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockShortfall:
    product_id: int
    variant_id: Optional[int]
    requested: int


def decrement_stock(db: Session, model, row_id: int, qty: int) -> bool:
    """Take ``qty`` off one stock counter; False when it had to be floored at zero.

    The first statement only matches while enough stock is left, so two
    concurrent payments cannot drive the counter negative.
    """
    taken = db.execute(
        update(model)
        .where(model.id == row_id, model.stock_qty >= qty)
        .values(stock_qty=model.stock_qty - qty)
    ).rowcount
    if taken:
        return True

    db.execute(
        update(model)
        .where(model.id == row_id, model.stock_qty < qty)
        .values(stock_qty=0)
    )
    return False


def decrement_order_stock(db: Session, order: Order) -> list[StockShortfall]:
    shortfalls = []
    for item in order.items:
        if item.variant_id is not None:
            ok = decrement_stock(db, ProductVariant, item.variant_id, item.qty)
        else:
            ok = decrement_stock(db, Product, item.product_id, item.qty)
        if not ok:
            shortfall = StockShortfall(item.product_id, item.variant_id, item.qty)
            logger.warning(
                "Insufficient stock for order %s: product=%s variant=%s qty=%d, floored at zero",
                order.order_number, item.product_id, item.variant_id, item.qty,
            )
            shortfalls.append(shortfall)
    return shortfalls


def upsert_customer_from_order(db: Session, order: Order, is_paid: bool = True) -> Customer:
    email = order.customer_email.strip().lower()
    orders_inc = 1 if is_paid else 0
    spent_inc = order.total_cents if is_paid else 0

    customer = db.execute(select(Customer).where(Customer.email == email)).scalars().first()
    if customer is None:
        customer = Customer(
            email=email,
            user_id=order.user_id,
            full_name=order.customer_name,
            phone=order.customer_phone,
            total_orders=orders_inc,
            total_spent_cents=spent_inc,
            last_order_at=order.created_at if is_paid else None,
        )
        try:
            with db.begin_nested():
                db.add(customer)
            return customer
        except IntegrityError as exc:
            if not is_unique_violation(exc, "email"):
                raise
            # Created concurrently; fall through to the increment
            customer = db.execute(select(Customer).where(Customer.email == email)).scalars().one()

    customer.user_id = order.user_id or customer.user_id
    customer.full_name = order.customer_name or customer.full_name
    customer.phone = order.customer_phone or customer.phone
    customer.total_orders = (customer.total_orders or 0) + orders_inc
    customer.total_spent_cents = (customer.total_spent_cents or 0) + spent_inc
    if is_paid:
        customer.last_order_at = order.created_at or datetime.utcnow()
    return customer


def apply_payment_success(db: Session, order: Order) -> list[StockShortfall]:
    """Mark ``order`` paid and apply the paid-order side effects once."""
    order.status = OrderStatus.PAID
    shortfalls = decrement_order_stock(db, order)
    upsert_customer_from_order(db, order, is_paid=True)
    if order.coupon_code and not record_redemption(db, order.coupon_code):
        logger.warning("Coupon %s on order %s was already fully redeemed", order.coupon_code, order.order_number)
    return shortfalls

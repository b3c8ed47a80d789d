import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import InvalidStatus, NotFound, RequestInvalid
from models.order import Order, OrderStatus
from services.fulfillment import apply_payment_success
from services.notifications import notify_safely, send_order_paid_email
from services.totals import Line, Totals, compute_totals

logger = logging.getLogger(__name__)

# Administrative overrides; pending -> paid is a confirmed bank transfer
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING_PAYMENT: (OrderStatus.CANCELLED, OrderStatus.PAID),
    OrderStatus.PAID: (OrderStatus.REFUNDED,),
}


@dataclass(frozen=True)
class TotalsReport:
    order: Order
    stored: Totals
    computed: Totals

    @property
    def consistent(self) -> bool:
        return self.stored == self.computed


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found", code="order_not_found")
    return order


def find_order_for_customer(db: Session, order_number: str, email: str) -> Order:
    """Order lookup for the track-order page; the email must match."""
    order = db.execute(select(Order).where(Order.order_number == order_number.strip().upper())).scalars().first()
    if order is None or order.customer_email.strip().lower() != (email or "").strip().lower():
        raise NotFound("Order not found", code="order_not_found")
    return order


def reconcile_totals(db: Session, order_id: int) -> TotalsReport:
    order = get_order(db, order_id)
    computed = compute_totals(
        [Line(item.qty, item.unit_price_cents_snapshot) for item in order.items],
        order.shipping_cents,
        order.discount_cents,
    )
    stored = Totals(
        subtotal_cents=order.subtotal_cents,
        shipping_cents=order.shipping_cents,
        discount_cents=order.discount_cents,
        total_cents=order.total_cents,
    )
    report = TotalsReport(order=order, stored=stored, computed=computed)
    if not report.consistent:
        logger.warning("Order %s totals drifted: stored=%s computed=%s", order.order_number, stored, computed)
    return report


def set_status(db: Session, order_id: int, status: str) -> Order:
    if status not in OrderStatus.ALL:
        raise RequestInvalid(f"Unknown order status: {status}", code="invalid_order_status")

    order = get_order(db, order_id)
    if status not in ALLOWED_TRANSITIONS.get(order.status, ()):
        raise InvalidStatus(f"Cannot move order {order.order_number} from {order.status} to {status}")

    previous = order.status
    try:
        if status == OrderStatus.PAID:
            apply_payment_success(db, order)
        else:
            order.status = status
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Order %s moved %s -> %s by admin", order.order_number, previous, status)
    if status == OrderStatus.PAID:
        notify_safely(send_order_paid_email, order)
    return order

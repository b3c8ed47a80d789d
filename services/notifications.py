"""
Customer notifications for orders.

Email is a side channel: callers go through ``notify_safely`` so a mail
failure is logged and dropped instead of undoing an order or payment.
"""
import logging
from typing import Any, Callable

from core.config import settings
from models.order import Order
from services import email as email_service
from services.pricing import format_zar

logger = logging.getLogger(__name__)


def _item_rows(order: Order) -> list[dict[str, Any]]:
    rows = []
    for item in order.items:
        variant = item.variant_snapshot or {}
        rows.append(
            {
                "title": item.title_snapshot,
                "variant_name": variant.get("name") if isinstance(variant.get("name"), str) else None,
                "qty": item.qty,
                "unit_price": format_zar(item.unit_price_cents_snapshot),
                "line_total": format_zar(item.line_total_cents),
            }
        )
    return rows


def _order_context(order: Order) -> dict[str, Any]:
    return {
        "order": order,
        "items": _item_rows(order),
        "subtotal": format_zar(order.subtotal_cents),
        "shipping": format_zar(order.shipping_cents),
        "discount": format_zar(order.discount_cents),
        "total": format_zar(order.total_cents),
    }


def send_order_paid_email(order: Order) -> None:
    email_service.send_templated_email(
        order.customer_email,
        f"Payment received for order {order.order_number}",
        "emails/order_paid.txt",
        _order_context(order),
    )


def send_bank_transfer_email(order: Order) -> None:
    context = _order_context(order)
    context["bank"] = {
        "name": settings.BANK_NAME,
        "account_name": settings.BANK_ACCOUNT_NAME,
        "account_number": settings.BANK_ACCOUNT_NUMBER,
        "branch_code": settings.BANK_BRANCH_CODE,
    }
    email_service.send_templated_email(
        order.customer_email,
        f"Order {order.order_number}: bank transfer details",
        "emails/bank_transfer_order.txt",
        context,
    )


def notify_safely(send: Callable[[Order], None], order: Order) -> bool:
    """Run a notifier; returns False instead of raising when it fails."""
    try:
        send(order)
        return True
    except Exception:
        logger.exception("Notification %s failed for order %s", getattr(send, "__name__", send), order.order_number)
        return False

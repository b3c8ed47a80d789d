"""
Inbound Yoco webhooks.

Each delivery is verified, recorded in the payment_events ledger and then
applied, all in one transaction. The ledger's unique constraint is the only
duplicate check: a redelivered event fails the insert and is acknowledged
without touching anything else.
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.db import is_unique_violation
from core.errors import Conflict, NotConfigured, RequestInvalid, SignatureInvalid
from models.order import Order, OrderStatus
from models.payment import Payment, PaymentStatus
from models.payment_event import PaymentEvent
from models.pending_checkout import PendingCheckout, PendingCheckoutStatus
from services import yoco
from services.fulfillment import apply_payment_success
from services.notifications import notify_safely, send_order_paid_email
from services.payments import complete_pending_checkout

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"


@dataclass(frozen=True)
class PaymentSucceeded:
    event_id: str
    checkout_id: Optional[str]


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    checkout_id: Optional[str]


@dataclass(frozen=True)
class Ignored:
    event_id: str
    event_type: Optional[str]


WebhookEvent = Union[PaymentSucceeded, PaymentFailed, Ignored]


@dataclass(frozen=True)
class WebhookOutcome:
    result: str  # processed, duplicate, ignored
    event_id: str
    order: Optional[Order] = None


def _secret_key(secret: str) -> bytes:
    # "whsec_<base64>"
    parts = secret.split("_")
    encoded = parts[1] if len(parts) > 1 else ""
    return base64.b64decode(encoded)


def verify_signature(raw_body: bytes, headers: Mapping[str, str], secret: str) -> bool:
    """Check ``webhook-signature`` against HMAC-SHA256 of ``id.timestamp.body``.

    The header may carry several space separated ``version,signature``
    entries; any matching v1 entry is enough.
    """
    webhook_id = headers.get("webhook-id")
    timestamp = headers.get("webhook-timestamp")
    signature_header = headers.get("webhook-signature")
    if not webhook_id or not timestamp or not signature_header:
        return False

    try:
        key = _secret_key(secret)
    except (binascii.Error, ValueError):
        logger.error("YOCO_WEBHOOK_SECRET is not valid base64")
        return False

    signed_content = f"{webhook_id}.{timestamp}.".encode() + raw_body
    expected = base64.b64encode(hmac.new(key, signed_content, hashlib.sha256).digest())

    for entry in signature_header.split(" "):
        version, _, signature = entry.strip().partition(",")
        if version != "v1" or not signature:
            continue
        if hmac.compare_digest(expected, signature.encode()):
            return True
    return False


def parse_event(data: Any) -> WebhookEvent:
    if not isinstance(data, dict) or not isinstance(data.get("id"), str) or not data["id"]:
        raise RequestInvalid("Webhook payload has no event id", code="invalid_payload")

    event_type = data.get("type")
    payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}
    metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    checkout_id = metadata.get("checkoutId") if isinstance(metadata.get("checkoutId"), str) else None

    if event_type == PAYMENT_SUCCEEDED:
        return PaymentSucceeded(event_id=data["id"], checkout_id=checkout_id)
    if event_type == PAYMENT_FAILED:
        return PaymentFailed(event_id=data["id"], checkout_id=checkout_id)
    return Ignored(event_id=data["id"], event_type=event_type if isinstance(event_type, str) else None)


def _apply_to_payment(db: Session, payment: Payment, event: WebhookEvent, data: dict) -> Optional[Order]:
    if payment.status in PaymentStatus.TERMINAL:
        # Out-of-order or contradictory delivery; first terminal state wins
        logger.warning(
            "Event %s (%s) for payment %s already %s, not applied",
            event.event_id, type(event).__name__, payment.id, payment.status,
        )
        return None

    payment.raw_payload = data
    if isinstance(event, PaymentFailed):
        # The order stays pending_payment so the customer can retry
        payment.status = PaymentStatus.FAILED
        return None

    payment.status = PaymentStatus.SUCCEEDED
    order = payment.order
    if order is None:
        return None
    if order.status != OrderStatus.PENDING_PAYMENT:
        logger.warning("Payment %s succeeded but order %s is %s", payment.id, order.order_number, order.status)
        return None
    apply_payment_success(db, order)
    return order


def _apply_to_pending(db: Session, pending: PendingCheckout, event: WebhookEvent, data: dict) -> Optional[Order]:
    if isinstance(event, PaymentFailed):
        if pending.status == PendingCheckoutStatus.INITIATED:
            pending.status = PendingCheckoutStatus.FAILED
        return None

    # A failed attempt can be retried on the same hosted checkout
    if pending.status not in (PendingCheckoutStatus.INITIATED, PendingCheckoutStatus.FAILED):
        logger.info("Pending checkout %s already %s", pending.id, pending.status)
        return None
    return complete_pending_checkout(db, pending, data)


def _apply(db: Session, event: WebhookEvent, data: dict) -> tuple[str, Optional[Order]]:
    if isinstance(event, Ignored) or not event.checkout_id:
        return "ignored", None

    payment = db.execute(
        select(Payment)
        .where(Payment.provider == yoco.PROVIDER, Payment.provider_payment_id == event.checkout_id)
        .with_for_update()
    ).scalars().first()
    if payment is not None:
        return "processed", _apply_to_payment(db, payment, event, data)

    pending = db.execute(
        select(PendingCheckout).where(PendingCheckout.checkout_id == event.checkout_id).with_for_update()
    ).scalars().first()
    if pending is not None:
        return "processed", _apply_to_pending(db, pending, event, data)

    logger.info("Event %s references unknown checkout %s", event.event_id, event.checkout_id)
    return "ignored", None


def handle_webhook(db: Session, raw_body: bytes, headers: Mapping[str, str], secret: Optional[str] = None) -> WebhookOutcome:
    secret = secret if secret is not None else settings.YOCO_WEBHOOK_SECRET
    if not secret:
        raise NotConfigured("YOCO_WEBHOOK_SECRET is not set", code="missing_webhook_secret")

    if not verify_signature(raw_body, headers, secret):
        logger.warning("Rejected webhook %s: bad signature", headers.get("webhook-id"))
        raise SignatureInvalid()

    try:
        data = json.loads(raw_body)
    except ValueError as exc:
        raise RequestInvalid("Webhook body is not JSON", code="invalid_payload") from exc
    event = parse_event(data)

    db.add(
        PaymentEvent(
            provider=yoco.PROVIDER,
            provider_event_id=event.event_id,
            event_type=data.get("type"),
            raw_payload=data,
        )
    )
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        if not is_unique_violation(exc, "provider_event_id"):
            raise
        logger.info("Duplicate webhook event %s acknowledged", event.event_id)
        return WebhookOutcome("duplicate", event.event_id)

    try:
        result, paid_order = _apply(db, event, data)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not is_unique_violation(exc, "provider_payment_id", "provider_event_id"):
            raise
        # Finalize or a parallel delivery got there first; the retry is a no-op
        logger.warning("Webhook event %s lost a race: %s", event.event_id, exc.orig)
        raise Conflict("Concurrent update, retry delivery", code="concurrent_update") from exc
    except Exception:
        db.rollback()
        raise

    logger.info("Webhook event %s %s", event.event_id, result)
    if paid_order is not None:
        notify_safely(send_order_paid_email, paid_order)
    return WebhookOutcome(result, event.event_id, paid_order)

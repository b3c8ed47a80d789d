import logging
from typing import Any, Dict

import requests

from core.config import settings
from core.errors import GatewayError, NotConfigured

logger = logging.getLogger(__name__)

PROVIDER = "yoco"


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.YOCO_SECRET_KEY}",
        "Content-Type": "application/json",
    }


def create_checkout(
    amount_cents: int,
    currency: str,
    success_url: str,
    cancel_url: str,
    failure_url: str,
    metadata: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Create a hosted checkout; returns ``{"id": ..., "redirectUrl": ...}``.

    Never retried here: a failed call surfaces as GatewayError and the
    client may try again.
    """
    if not settings.YOCO_SECRET_KEY:
        raise NotConfigured("YOCO_SECRET_KEY is not set", code="yoco_not_configured")

    payload = {
        "amount": amount_cents,
        "currency": currency,
        "successUrl": success_url,
        "cancelUrl": cancel_url,
        "failureUrl": failure_url,
        "metadata": metadata or {},
    }

    try:
        resp = requests.post(
            f"{settings.YOCO_API_BASE}/checkouts",
            json=payload,
            headers=_headers(),
            timeout=settings.YOCO_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.warning("Yoco checkout request failed: %s", exc)
        raise GatewayError("Payment provider unreachable", code="yoco_checkout_create_failed") from exc

    try:
        body = resp.json()
    except ValueError:
        body = None

    if not resp.ok:
        logger.warning("Yoco checkout rejected: status=%s body=%s", resp.status_code, body)
        raise GatewayError(
            "Payment provider rejected the checkout",
            code="yoco_checkout_create_failed",
            extra={"details": body},
        )

    if not isinstance(body, dict) or not body.get("id") or not body.get("redirectUrl"):
        logger.warning("Yoco checkout response malformed: %s", body)
        raise GatewayError(
            "Payment provider returned an invalid response",
            code="yoco_invalid_response",
            extra={"details": body},
        )
    return body

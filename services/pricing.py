"""
Money and shipping arithmetic.

All amounts are integer minor units (cents). Nothing in here touches the
database: callers pass in the delivery configuration and the coupon record.
"""
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol

from core.config import settings
from models.coupon import DiscountType
from models.delivery import DeliveryMode


PROVINCES = (
    "Western Cape",
    "Eastern Cape",
    "Northern Cape",
    "Gauteng",
    "KwaZulu-Natal",
    "Limpopo",
    "Mpumalanga",
    "North West",
    "Free State",
)


@dataclass(frozen=True)
class DeliveryConfig:
    mode: str
    flat_rate_cents: int
    # Keys are lower-cased, stripped province names
    province_rates: Mapping[str, int] = field(default_factory=dict)


class CouponTerms(Protocol):
    discount_type: str
    discount_value: int
    min_order_value_cents: Optional[int]


def format_zar(cents: int) -> str:
    return f"R{cents / 100:.2f}"


def shipping_for(province: Optional[str], config: Optional[DeliveryConfig]) -> int:
    """Shipping cost for ``province``.

    Per-province overrides match case-insensitively; anything unmatched pays
    the flat rate. Without any configuration the store default applies.
    """
    if config is None:
        return max(0, settings.DEFAULT_SHIPPING_CENTS)

    base = max(0, config.flat_rate_cents or 0)
    if config.mode != DeliveryMode.PER_PROVINCE or not province:
        return base

    key = province.strip().lower()
    if not key:
        return base

    rate = config.province_rates.get(key)
    if rate is None or rate < 0:
        return base
    return rate


def discount_for(coupon: CouponTerms, subtotal_cents: int) -> int:
    """Discount a coupon is worth against ``subtotal_cents``.

    Returns 0 below the coupon's minimum order value; the caller decides
    whether that makes the coupon inapplicable.
    """
    if subtotal_cents <= 0:
        return 0

    if coupon.min_order_value_cents is not None and subtotal_cents < coupon.min_order_value_cents:
        return 0

    if coupon.discount_type == DiscountType.PERCENTAGE:
        pct = max(0, min(100, coupon.discount_value))
        return (subtotal_cents * pct) // 100

    # fixed amount, capped at the subtotal
    fixed = max(0, coupon.discount_value)
    return min(fixed, subtotal_cents)

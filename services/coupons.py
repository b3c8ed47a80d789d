from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.db import is_unique_violation
from core.errors import Conflict, CouponNotApplicable, InvalidCoupon, NotFound, RequestInvalid
from models.coupon import Coupon, DiscountType
from services.pricing import discount_for


@dataclass(frozen=True)
class AppliedCoupon:
    code: str
    discount_cents: int


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def is_redeemable(coupon: Optional[Coupon], now: Optional[datetime] = None) -> bool:
    if coupon is None or not coupon.active:
        return False
    now = now or datetime.utcnow()
    if coupon.expires_at is not None and coupon.expires_at <= now:
        return False
    if coupon.max_uses is not None and coupon.max_uses > 0 and (coupon.usage_count or 0) >= coupon.max_uses:
        return False
    return True


def validate_coupon(db: Session, code: str, subtotal_cents: int, now: Optional[datetime] = None) -> AppliedCoupon:
    """Check a coupon against a computed subtotal.

    Raises InvalidCoupon when the code cannot be used at all and
    CouponNotApplicable when it is usable but worth nothing for this
    subtotal (typically below the minimum order value).
    """
    normalized = normalize_code(code)
    coupon = db.execute(select(Coupon).where(Coupon.code == normalized)).scalars().first()
    if not is_redeemable(coupon, now):
        raise InvalidCoupon(f"Coupon {normalized or code!r} is not valid")

    discount = discount_for(coupon, subtotal_cents)
    if discount <= 0:
        raise CouponNotApplicable(f"Coupon {normalized} does not apply to this order")
    return AppliedCoupon(code=coupon.code, discount_cents=discount)


def record_redemption(db: Session, code: str) -> bool:
    """Count one paid use of ``code``; never pushes usage past max_uses."""
    stmt = (
        update(Coupon)
        .where(Coupon.code == normalize_code(code))
        .where((Coupon.max_uses.is_(None)) | (Coupon.max_uses <= 0) | (Coupon.usage_count < Coupon.max_uses))
        .values(usage_count=Coupon.usage_count + 1)
        .execution_options(synchronize_session="fetch")
    )
    return db.execute(stmt).rowcount > 0


# Admin management

EDITABLE_FIELDS = ("code", "discount_type", "discount_value", "min_order_value_cents", "max_uses", "expires_at", "active")


def _check_terms(discount_type: str, discount_value: int) -> None:
    if discount_type not in DiscountType.ALL:
        raise RequestInvalid(f"Unknown discount type: {discount_type}", code="invalid_discount_type")
    if discount_type == DiscountType.PERCENTAGE and not 1 <= discount_value <= 100:
        raise RequestInvalid("Percentage must be between 1 and 100", code="invalid_discount_value")
    if discount_type == DiscountType.FIXED and discount_value <= 0:
        raise RequestInvalid("Fixed discount must be positive", code="invalid_discount_value")


def _save(db: Session, coupon: Coupon) -> Coupon:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if is_unique_violation(exc, "code"):
            raise Conflict(f"Coupon code {coupon.code} already exists", code="coupon_code_taken") from exc
        raise
    db.refresh(coupon)
    return coupon


def list_coupons(db: Session) -> list[Coupon]:
    return list(db.execute(select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())).scalars())


def get_coupon(db: Session, coupon_id: int) -> Coupon:
    coupon = db.get(Coupon, coupon_id)
    if coupon is None:
        raise NotFound(f"Coupon {coupon_id} not found")
    return coupon


def create_coupon(db: Session, **fields: Any) -> Coupon:
    code = normalize_code(fields.get("code", ""))
    if not code:
        raise RequestInvalid("Coupon code is required", code="invalid_code")
    _check_terms(fields.get("discount_type"), fields.get("discount_value") or 0)

    coupon = Coupon(usage_count=0, **{k: v for k, v in fields.items() if k in EDITABLE_FIELDS})
    coupon.code = code
    db.add(coupon)
    return _save(db, coupon)


def update_coupon(db: Session, coupon_id: int, **changes: Any) -> Coupon:
    coupon = get_coupon(db, coupon_id)
    for name, value in changes.items():
        if name in EDITABLE_FIELDS:
            setattr(coupon, name, value)
    coupon.code = normalize_code(coupon.code)
    if not coupon.code:
        db.rollback()
        raise RequestInvalid("Coupon code is required", code="invalid_code")
    try:
        _check_terms(coupon.discount_type, coupon.discount_value)
    except RequestInvalid:
        db.rollback()
        raise
    return _save(db, coupon)


def delete_coupon(db: Session, coupon_id: int) -> None:
    coupon = get_coupon(db, coupon_id)
    db.delete(coupon)
    db.commit()

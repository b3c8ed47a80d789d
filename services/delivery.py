from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import RequestInvalid
from models.delivery import DeliveryMode, DeliverySettings, DeliveryProvinceRate
from services.pricing import DeliveryConfig, shipping_for


def get_active(db: Session) -> Optional[DeliverySettings]:
    """The settings row in force: the earliest one created."""
    stmt = select(DeliverySettings).order_by(DeliverySettings.created_at.asc(), DeliverySettings.id.asc()).limit(1)
    return db.execute(stmt).scalars().first()


def load_config(db: Session) -> Optional[DeliveryConfig]:
    row = get_active(db)
    if row is None:
        return None
    return DeliveryConfig(
        mode=row.mode,
        flat_rate_cents=row.flat_rate_cents or 0,
        province_rates={r.province.strip().lower(): r.rate_cents for r in row.province_rates},
    )


def effective_shipping_cents(db: Session, province: Optional[str]) -> int:
    return shipping_for(province, load_config(db))


def upsert_active(db: Session, mode: str, flat_rate_cents: int, provinces: Iterable[tuple[str, int]]) -> DeliverySettings:
    if mode not in DeliveryMode.ALL:
        raise RequestInvalid(f"Unknown delivery mode: {mode}", code="invalid_mode")
    if flat_rate_cents < 0:
        raise RequestInvalid("Flat rate must not be negative", code="invalid_flat_rate")

    row = get_active(db)
    if row is None:
        row = DeliverySettings(mode=mode, flat_rate_cents=flat_rate_cents)
        db.add(row)
    else:
        row.mode = mode
        row.flat_rate_cents = flat_rate_cents

    # Replace the overrides wholesale
    row.province_rates.clear()
    seen = set()
    for province, rate_cents in provinces:
        name = (province or "").strip()
        if not name or rate_cents is None or rate_cents < 0 or name.lower() in seen:
            continue
        seen.add(name.lower())
        row.province_rates.append(DeliveryProvinceRate(province=name, rate_cents=rate_cents))

    db.commit()
    db.refresh(row)
    return row

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from schemas.delivery import DeliverySettingsIn, DeliverySettingsOut, ProvinceRate
from security.auth import require_admin
from services import delivery as delivery_service
from services.pricing import PROVINCES

router = APIRouter(prefix="/admin/delivery-settings", tags=["admin"], dependencies=[Depends(require_admin)])


def _out(row) -> DeliverySettingsOut:
    if row is None:
        # Nothing saved yet: checkout charges the default flat rate
        return DeliverySettingsOut(mode="flat", flat_rate_cents=settings.DEFAULT_SHIPPING_CENTS, known_provinces=list(PROVINCES))
    return DeliverySettingsOut(
        mode=row.mode,
        flat_rate_cents=row.flat_rate_cents,
        provinces=[ProvinceRate.model_validate(rate) for rate in row.province_rates],
        known_provinces=list(PROVINCES),
    )


@router.get("", response_model=DeliverySettingsOut)
def read_delivery_settings(db: Session = Depends(get_db)):
    return _out(delivery_service.get_active(db))


@router.put("", response_model=DeliverySettingsOut)
def save_delivery_settings(data: DeliverySettingsIn, db: Session = Depends(get_db)):
    row = delivery_service.upsert_active(
        db,
        data.mode,
        data.flat_rate_cents,
        [(rate.province, rate.rate_cents) for rate in data.provinces],
    )
    return _out(row)

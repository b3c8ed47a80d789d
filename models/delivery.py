from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class DeliveryMode:
    FLAT = "flat"
    PER_PROVINCE = "per_province"

    ALL = (FLAT, PER_PROVINCE)


class DeliverySettings(Base):
    __tablename__ = "delivery_settings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    mode: Mapped[str] = mapped_column(String(20), default=DeliveryMode.FLAT)
    flat_rate_cents: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    province_rates = relationship(
        "DeliveryProvinceRate",
        cascade="all, delete-orphan",
        back_populates="settings",
        order_by="DeliveryProvinceRate.province",
    )


class DeliveryProvinceRate(Base):
    __tablename__ = "delivery_province_rates"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    settings_id: Mapped[int] = mapped_column(ForeignKey("delivery_settings.id", ondelete="CASCADE"), index=True)
    province: Mapped[str] = mapped_column(String(100))
    rate_cents: Mapped[int] = mapped_column(Integer)

    settings = relationship("DeliverySettings", back_populates="province_rates")

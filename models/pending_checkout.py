import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class PendingCheckoutStatus:
    INITIATED = "initiated"
    COMPLETED = "completed"
    FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


class PendingCheckout(Base):
    __tablename__ = "pending_checkouts"

    # Handed to the browser for polling, so not sequential
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    checkout_id: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_email: Mapped[str] = mapped_column(String(255))
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    shipping_address_snapshot: Mapped[dict] = mapped_column(JSON)
    # Resolved line snapshots and totals from the quote
    items: Mapped[list] = mapped_column(JSON)
    subtotal_cents: Mapped[int] = mapped_column(Integer, default=0)
    shipping_cents: Mapped[int] = mapped_column(Integer, default=0)
    discount_cents: Mapped[int] = mapped_column(Integer, default=0)
    amount_cents: Mapped[int] = mapped_column(Integer)
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="ZAR")
    status: Mapped[str] = mapped_column(String(30), default=PendingCheckoutStatus.INITIATED)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

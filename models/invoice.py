from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class InvoiceStatus:
    DRAFT = "draft"
    ISSUED = "issued"
    CANCELLED = "cancelled"


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    # Assigned when the invoice is issued
    invoice_number: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default=InvoiceStatus.DRAFT)
    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    customer_snapshot: Mapped[dict] = mapped_column(JSON, default=dict)
    subtotal_cents: Mapped[int] = mapped_column(Integer, default=0)
    delivery_cents: Mapped[int] = mapped_column(Integer, default=0)
    discount_cents: Mapped[int] = mapped_column(Integer, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="ZAR")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    issued_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    lines = relationship(
        "InvoiceLine",
        cascade="all, delete-orphan",
        back_populates="invoice",
        order_by="InvoiceLine.id",
    )


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"))
    variant_id: Mapped[int | None] = mapped_column(ForeignKey("product_variants.id", ondelete="RESTRICT"), nullable=True)
    qty: Mapped[int] = mapped_column(Integer)
    unit_price_cents: Mapped[int] = mapped_column(Integer)
    # Cache of qty * unit_price_cents; rewritten on every line mutation
    line_total_cents: Mapped[int] = mapped_column(Integer)
    title_snapshot: Mapped[str] = mapped_column(String(200))
    variant_snapshot: Mapped[dict] = mapped_column(JSON, default=dict)

    invoice = relationship("Invoice", back_populates="lines")

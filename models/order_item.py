from sqlalchemy import ForeignKey, Integer, String, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), index=True)
    variant_id: Mapped[int | None] = mapped_column(
        ForeignKey("product_variants.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    qty: Mapped[int] = mapped_column(Integer, default=1)
    # Frozen at order creation, never re-read from the catalog
    unit_price_cents_snapshot: Mapped[int] = mapped_column(Integer)
    title_snapshot: Mapped[str] = mapped_column(String(200))
    variant_snapshot: Mapped[dict] = mapped_column(JSON, default=dict)

    order = relationship("Order", back_populates="items")

    @property
    def line_total_cents(self) -> int:
        return self.qty * self.unit_price_cents_snapshot

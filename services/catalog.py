from dataclasses import dataclass, field, asdict
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import InvalidProduct, InvalidVariant, OutOfStock
from models.product import Product
from models.variant import ProductVariant


class CartItem(Protocol):
    product_id: int
    variant_id: Optional[int]
    qty: int


@dataclass(frozen=True)
class ResolvedLine:
    product_id: int
    variant_id: Optional[int]
    qty: int
    unit_price_cents: int
    title: str
    variant_snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def line_total_cents(self) -> int:
        return self.qty * self.unit_price_cents

    def to_json(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "ResolvedLine":
        return cls(
            product_id=int(data["product_id"]),
            variant_id=int(data["variant_id"]) if data.get("variant_id") is not None else None,
            qty=int(data["qty"]),
            unit_price_cents=int(data["unit_price_cents"]),
            title=data["title"],
            variant_snapshot=dict(data.get("variant_snapshot") or {}),
        )


def resolve_prices(db: Session, items: Iterable[CartItem], check_stock: bool = True) -> list[ResolvedLine]:
    """Authoritative unit prices for a cart.

    Products and variants are fetched in one query each. Any unknown,
    inactive or mismatched reference aborts the whole cart.
    """
    items = list(items)
    product_ids = {item.product_id for item in items}
    variant_ids = {item.variant_id for item in items if item.variant_id is not None}

    products = {
        p.id: p for p in db.execute(select(Product).where(Product.id.in_(product_ids))).scalars()
    } if product_ids else {}
    variants = {
        v.id: v for v in db.execute(select(ProductVariant).where(ProductVariant.id.in_(variant_ids))).scalars()
    } if variant_ids else {}

    resolved: list[ResolvedLine] = []
    for item in items:
        product = products.get(item.product_id)
        if product is None or not product.active:
            raise InvalidProduct(f"Product {item.product_id} not found or inactive")

        unit_price = product.price_cents
        variant_snapshot: dict[str, Any] = {}

        if item.variant_id is not None:
            variant = variants.get(item.variant_id)
            if variant is None or not variant.active or variant.product_id != product.id:
                raise InvalidVariant(f"Variant {item.variant_id} not found or inactive")
            if check_stock and variant.stock_qty < item.qty:
                raise OutOfStock(f"Variant {item.variant_id} out of stock")
            if variant.price_cents_override is not None:
                unit_price = variant.price_cents_override
            variant_snapshot = {
                "sku": variant.sku,
                "name": variant.name,
                "attributes": variant.attributes or {},
            }
        elif check_stock and not product.has_variants and product.stock_qty < item.qty:
            raise OutOfStock(f"Product {item.product_id} out of stock")

        resolved.append(
            ResolvedLine(
                product_id=product.id,
                variant_id=item.variant_id,
                qty=item.qty,
                unit_price_cents=unit_price,
                title=product.name,
                variant_snapshot=variant_snapshot,
            )
        )
    return resolved

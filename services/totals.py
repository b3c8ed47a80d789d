"""
Order totals engine.

The one place totals are computed, whether for a checkout preview, a new
order, an invoice edit or a reconciliation report. The subtotal is always
re-summed from quantity and unit price.
"""
from dataclasses import dataclass, asdict
from typing import Iterable, Protocol


class PricedLine(Protocol):
    qty: int
    unit_price_cents: int


@dataclass(frozen=True)
class Line:
    qty: int
    unit_price_cents: int


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int

    def as_dict(self) -> dict:
        return asdict(self)


def line_total(qty: int, unit_price_cents: int) -> int:
    return max(0, int(qty or 0)) * max(0, int(unit_price_cents or 0))


def compute_totals(lines: Iterable[PricedLine], shipping_cents: int = 0, discount_cents: int = 0) -> Totals:
    subtotal = sum(line_total(line.qty, line.unit_price_cents) for line in lines)
    shipping = max(0, shipping_cents or 0)
    discount = max(0, discount_cents or 0)
    return Totals(
        subtotal_cents=subtotal,
        shipping_cents=shipping,
        discount_cents=discount,
        total_cents=max(0, subtotal + shipping - discount),
    )

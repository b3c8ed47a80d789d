"""
Manually issued invoices.

Draft invoices can be edited freely. Issuing reserves stock for every line,
all or nothing, and later edits to an issued invoice move stock by the
difference. ``line_total_cents`` is only a cache: every mutation rewrites it
from qty and unit price before totals are recomputed.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.db import is_unique_violation
from core.errors import Conflict, InvalidStatus, NotFound, OutOfStock, RequestInvalid
from models.customer import Customer
from models.invoice import Invoice, InvoiceLine, InvoiceStatus
from models.product import Product
from models.variant import ProductVariant
from services.catalog import resolve_prices
from services.totals import Line, compute_totals, line_total

logger = logging.getLogger(__name__)

INVOICE_NUMBER_MAX_ATTEMPTS = 5


@contextmanager
def _unit_of_work(db: Session):
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def format_invoice_number(seq: int) -> str:
    return f"INV-{seq:06d}"


def _next_invoice_seq(db: Session) -> int:
    current = db.execute(select(func.max(Invoice.invoice_number))).scalar()
    if not current:
        return 1
    return int(current.rsplit("-", 1)[-1]) + 1


def _stock_model(variant_id: Optional[int]):
    return ProductVariant if variant_id is not None else Product


def _take_stock(db: Session, product_id: int, variant_id: Optional[int], qty: int) -> None:
    model = _stock_model(variant_id)
    row_id = variant_id if variant_id is not None else product_id
    taken = db.execute(
        update(model)
        .where(model.id == row_id, model.stock_qty >= qty)
        .values(stock_qty=model.stock_qty - qty)
    ).rowcount
    if not taken:
        raise OutOfStock(
            f"Not enough stock for product {product_id}" + (f" variant {variant_id}" if variant_id else ""),
            extra={"product_id": product_id, "variant_id": variant_id},
        )


def _return_stock(db: Session, product_id: int, variant_id: Optional[int], qty: int) -> None:
    model = _stock_model(variant_id)
    row_id = variant_id if variant_id is not None else product_id
    db.execute(update(model).where(model.id == row_id).values(stock_qty=model.stock_qty + qty))


def recalculate_totals(invoice: Invoice) -> bool:
    """Rewrite every line total and the invoice totals; True if anything drifted."""
    drift = False
    for line in invoice.lines:
        expected = line_total(line.qty, line.unit_price_cents)
        if line.line_total_cents != expected:
            logger.warning(
                "Invoice %s line %s total %s != %d x %d",
                invoice.id, line.id, line.line_total_cents, line.qty, line.unit_price_cents,
            )
            line.line_total_cents = expected
            drift = True

    totals = compute_totals(
        [Line(line.qty, line.unit_price_cents) for line in invoice.lines],
        invoice.delivery_cents,
        invoice.discount_cents,
    )
    if (invoice.subtotal_cents, invoice.total_cents) != (totals.subtotal_cents, totals.total_cents):
        drift = True
    invoice.subtotal_cents = totals.subtotal_cents
    invoice.delivery_cents = totals.shipping_cents
    invoice.discount_cents = totals.discount_cents
    invoice.total_cents = totals.total_cents
    return drift


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound(f"Invoice {invoice_id} not found")
    return invoice


def _editable(db: Session, invoice_id: int) -> Invoice:
    invoice = get_invoice(db, invoice_id)
    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvalidStatus("Cancelled invoices cannot be edited")
    return invoice


def _get_line(invoice: Invoice, line_id: int) -> InvoiceLine:
    for line in invoice.lines:
        if line.id == line_id:
            return line
    raise NotFound(f"Line {line_id} not found on invoice {invoice.id}")


def create_invoice(db: Session, customer_id: Optional[int] = None, customer_snapshot: Optional[dict[str, Any]] = None) -> Invoice:
    snapshot = dict(customer_snapshot or {})
    if customer_id is not None:
        customer = db.get(Customer, customer_id)
        if customer is None:
            raise NotFound(f"Customer {customer_id} not found")
        snapshot.setdefault("email", customer.email)
        snapshot.setdefault("name", customer.full_name)
        snapshot.setdefault("phone", customer.phone)

    invoice = Invoice(customer_id=customer_id, customer_snapshot=snapshot, status=InvoiceStatus.DRAFT)
    with _unit_of_work(db):
        db.add(invoice)
    return invoice


@dataclass(frozen=True)
class _CatalogRef:
    product_id: int
    variant_id: Optional[int]
    qty: int


def add_line(
    db: Session,
    invoice_id: int,
    product_id: int,
    variant_id: Optional[int],
    qty: int,
    unit_price_cents: Optional[int] = None,
    title_snapshot: Optional[str] = None,
) -> Invoice:
    """Add a line, defaulting price and title from the catalog."""
    if qty < 1:
        raise RequestInvalid("Quantity must be at least 1", code="invalid_quantity")
    if unit_price_cents is not None and unit_price_cents < 0:
        raise RequestInvalid("Unit price must not be negative", code="invalid_price")

    with _unit_of_work(db):
        invoice = _editable(db, invoice_id)
        resolved = resolve_prices(db, [_CatalogRef(product_id, variant_id, qty)], check_stock=False)[0]
        price = resolved.unit_price_cents if unit_price_cents is None else unit_price_cents

        if invoice.status == InvoiceStatus.ISSUED:
            _take_stock(db, product_id, variant_id, qty)

        invoice.lines.append(
            InvoiceLine(
                product_id=product_id,
                variant_id=variant_id,
                qty=qty,
                unit_price_cents=price,
                line_total_cents=line_total(qty, price),
                title_snapshot=title_snapshot or resolved.title,
                variant_snapshot=resolved.variant_snapshot,
            )
        )
        recalculate_totals(invoice)
    return invoice


def update_line(
    db: Session,
    invoice_id: int,
    line_id: int,
    qty: Optional[int] = None,
    unit_price_cents: Optional[int] = None,
) -> Invoice:
    if qty is not None and qty < 1:
        raise RequestInvalid("Quantity must be at least 1", code="invalid_quantity")
    if unit_price_cents is not None and unit_price_cents < 0:
        raise RequestInvalid("Unit price must not be negative", code="invalid_price")

    with _unit_of_work(db):
        invoice = _editable(db, invoice_id)
        line = _get_line(invoice, line_id)

        if qty is not None and qty != line.qty:
            if invoice.status == InvoiceStatus.ISSUED:
                delta = qty - line.qty
                if delta > 0:
                    _take_stock(db, line.product_id, line.variant_id, delta)
                else:
                    _return_stock(db, line.product_id, line.variant_id, -delta)
            line.qty = qty
        if unit_price_cents is not None:
            line.unit_price_cents = unit_price_cents

        line.line_total_cents = line_total(line.qty, line.unit_price_cents)
        recalculate_totals(invoice)
    return invoice


def remove_line(db: Session, invoice_id: int, line_id: int) -> Invoice:
    with _unit_of_work(db):
        invoice = _editable(db, invoice_id)
        line = _get_line(invoice, line_id)
        if invoice.status == InvoiceStatus.ISSUED:
            _return_stock(db, line.product_id, line.variant_id, line.qty)
        invoice.lines.remove(line)
        recalculate_totals(invoice)
    return invoice


def update_adjustments(
    db: Session,
    invoice_id: int,
    delivery_cents: Optional[int] = None,
    discount_cents: Optional[int] = None,
) -> Invoice:
    for name, value in (("delivery_cents", delivery_cents), ("discount_cents", discount_cents)):
        if value is not None and value < 0:
            raise RequestInvalid(f"{name} must not be negative", code="invalid_amount")

    with _unit_of_work(db):
        invoice = _editable(db, invoice_id)
        if delivery_cents is not None:
            invoice.delivery_cents = delivery_cents
        if discount_cents is not None:
            invoice.discount_cents = discount_cents
        recalculate_totals(invoice)
    return invoice


def _assign_number(db: Session, invoice: Invoice) -> None:
    for attempt in range(1, INVOICE_NUMBER_MAX_ATTEMPTS + 1):
        number = format_invoice_number(_next_invoice_seq(db))
        try:
            with db.begin_nested():
                invoice.invoice_number = number
                db.flush()
        except IntegrityError as exc:
            if not is_unique_violation(exc, "invoice_number"):
                raise
            logger.info("Invoice number %s taken, retrying (attempt %d)", number, attempt)
            continue
        return
    raise Conflict("Could not allocate an invoice number", code="invoice_number_conflict")


def issue_invoice(db: Session, invoice_id: int) -> Invoice:
    """Reserve stock for every line and number the invoice.

    Any line without enough stock aborts the whole issue and nothing moves.
    """
    with _unit_of_work(db):
        invoice = get_invoice(db, invoice_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvalidStatus(f"Invoice is {invoice.status}, only drafts can be issued")
        if not invoice.lines:
            raise RequestInvalid("Invoice has no lines", code="empty_invoice")

        for line in invoice.lines:
            _take_stock(db, line.product_id, line.variant_id, line.qty)

        recalculate_totals(invoice)
        invoice.status = InvoiceStatus.ISSUED
        invoice.issued_at = datetime.utcnow()
        _assign_number(db, invoice)

    logger.info("Issued invoice %s total=%d", invoice.invoice_number, invoice.total_cents)
    return invoice


def cancel_invoice(db: Session, invoice_id: int) -> Invoice:
    with _unit_of_work(db):
        invoice = get_invoice(db, invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise InvalidStatus("Invoice is already cancelled")
        if invoice.status == InvoiceStatus.ISSUED:
            for line in invoice.lines:
                _return_stock(db, line.product_id, line.variant_id, line.qty)
        invoice.status = InvoiceStatus.CANCELLED
        invoice.cancelled_at = datetime.utcnow()
    return invoice


def recalculate_invoice(db: Session, invoice_id: int) -> tuple[Invoice, bool]:
    with _unit_of_work(db):
        invoice = get_invoice(db, invoice_id)
        drift = recalculate_totals(invoice)
    return invoice, drift

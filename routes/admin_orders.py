from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from schemas.order import OrderOut, OrderStatusUpdate, OrderTotalsReport, TotalsOut
from security.auth import require_admin
from services.orders import get_order, reconcile_totals, set_status

router = APIRouter(prefix="/admin/orders", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/{order_id}", response_model=OrderOut)
def read_order(order_id: int, db: Session = Depends(get_db)):
    return get_order(db, order_id)


@router.get("/{order_id}/totals", response_model=OrderTotalsReport)
def order_totals(order_id: int, db: Session = Depends(get_db)):
    """Stored totals next to totals recomputed from the line snapshots."""
    report = reconcile_totals(db, order_id)
    return OrderTotalsReport(
        order_id=report.order.id,
        order_number=report.order.order_number,
        stored=TotalsOut.model_validate(report.stored),
        computed=TotalsOut.model_validate(report.computed),
        consistent=report.consistent,
    )


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_order_status(order_id: int, data: OrderStatusUpdate, db: Session = Depends(get_db)):
    return set_status(db, order_id, data.status)

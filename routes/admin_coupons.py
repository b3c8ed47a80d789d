from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from core.db import get_db
from schemas.coupon import CouponCreate, CouponOut, CouponUpdate
from security.auth import require_admin
from services import coupons as coupon_service

router = APIRouter(prefix="/admin/coupons", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("", response_model=List[CouponOut])
def list_coupons(db: Session = Depends(get_db)):
    return coupon_service.list_coupons(db)


@router.post("", response_model=CouponOut, status_code=201)
def create_coupon(data: CouponCreate, db: Session = Depends(get_db)):
    return coupon_service.create_coupon(db, **data.model_dump())


@router.patch("/{coupon_id}", response_model=CouponOut)
def update_coupon(coupon_id: int, data: CouponUpdate, db: Session = Depends(get_db)):
    return coupon_service.update_coupon(db, coupon_id, **data.model_dump(exclude_unset=True))


@router.delete("/{coupon_id}", status_code=204)
def delete_coupon(coupon_id: int, db: Session = Depends(get_db)):
    coupon_service.delete_coupon(db, coupon_id)
    return Response(status_code=204)

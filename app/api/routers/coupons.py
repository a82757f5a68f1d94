# app/api/routers/coupons.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.schemas import CouponValidateIn, CouponValidationOut
from app.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("/validate", response_model=CouponValidationOut)
def validate_coupon(payload: CouponValidateIn, db: Session = Depends(get_db)):
    """
    Odrzucony kupon to 200 z is_valid=false i kodem bledu, nie blad HTTP.
    """
    svc = CouponService(db)
    return svc.validate_coupon(payload.code, payload.subtotal, payload.has_items)

# app/repos/coupon_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.coupon import CouponModel


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> CouponModel | None:
        return self.db.execute(
            select(CouponModel).where(CouponModel.code == code.strip().upper())
        ).scalar_one_or_none()

    def get(self, coupon_id: str) -> CouponModel | None:
        return self.db.get(CouponModel, coupon_id)

    def create(self, coupon: CouponModel) -> CouponModel:
        coupon.code = coupon.code.strip().upper()
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def increment_usage(self, coupon_id: str) -> int:
        """UPDATE ... SET current_uses = current_uses + 1, bez commita (transakcja wolajacego)."""
        result = self.db.execute(
            update(CouponModel)
            .where(CouponModel.id == coupon_id)
            .values(current_uses=CouponModel.current_uses + 1)
        )
        return result.rowcount

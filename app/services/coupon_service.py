# app/services/coupon_service.py
from decimal import Decimal

from sqlalchemy.orm import Session

from app.data.models.coupon import CouponModel
from app.domain.cart import compute_discount
from app.domain.schemas import CouponError, CouponRef, CouponValidationOut, money
from app.repos.coupon_repo import CouponRepo
from app.utils.dates import as_utc, utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


def to_coupon_ref(coupon: CouponModel) -> CouponRef:
    return CouponRef(
        id=coupon.id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        min_purchase=coupon.min_purchase or Decimal("0.00"),
    )


class CouponService:
    """
    Walidacja kuponu (query, bez efektow ubocznych).
    Licznik uzyc rosnie tylko przy materializacji zamowienia.
    """

    def __init__(self, db: Session, now=None):
        self.repo = CouponRepo(db)
        self._now = now or utcnow

    def validate_coupon(self, code: str, subtotal: Decimal, has_items: bool = True) -> CouponValidationOut:
        subtotal = money(subtotal)
        coupon = self.repo.get_by_code(code)

        if not coupon or not coupon.is_active:
            return self._reject(CouponError.INVALID_CODE, "Invalid coupon code")

        now = self._now()
        starts_at = as_utc(coupon.starts_at)
        expires_at = as_utc(coupon.expires_at)

        # przed startem kupon traktujemy jak nieistniejacy
        if starts_at and now < starts_at:
            return self._reject(CouponError.INVALID_CODE, "Invalid coupon code")

        if expires_at and now > expires_at:
            return self._reject(CouponError.EXPIRED, "Coupon has expired")

        min_purchase = money(coupon.min_purchase or 0)
        if subtotal < min_purchase:
            return self._reject(
                CouponError.BELOW_MIN_PURCHASE,
                f"Order must be at least ${min_purchase} to use this coupon",
            )

        if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
            return self._reject(CouponError.USAGE_CAP_REACHED, "Coupon has reached maximum uses")

        if not has_items:
            return self._reject(CouponError.EMPTY_CART, "Cart is empty")

        ref = to_coupon_ref(coupon)
        return CouponValidationOut(
            is_valid=True,
            coupon=ref,
            discount=compute_discount(ref, subtotal),
        )

    def increment_usage(self, coupon_id: str) -> bool:
        updated = self.repo.increment_usage(coupon_id)
        if not updated:
            logger.warning(f"Coupon {coupon_id} not found, usage not incremented")
        return bool(updated)

    @staticmethod
    def _reject(error: CouponError, message: str) -> CouponValidationOut:
        return CouponValidationOut(is_valid=False, error=error, message=message)

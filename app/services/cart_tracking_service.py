# app/services/cart_tracking_service.py
from datetime import timedelta
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.data.models.cart_tracking import CartTrackingModel
from app.domain.cart import merge_snapshots, with_coupon
from app.domain.errors import NotFoundError
from app.domain.schemas import (
    CartSnapshot,
    CartTrackingOut,
    ConvertGuestOut,
    Identity,
    MarketingEmailOut,
    TrackCartOut,
)
from app.repos.cart_tracking_repo import CartTrackingRepo
from app.services.coupon_service import CouponService
from app.utils.settings import ABANDONED_CART_IDLE_MINUTES, MAX_MARKETING_EMAILS
from app.utils.dates import as_utc, utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartTrackingService:
    """
    Serwerowy rekord koszyka: jeden wiersz na tozsamosc.
    commands (track, convert_guest, increment_marketing_email) modyfikuja stan
    query (get, list_abandoned) tylko odczyt
    """

    def __init__(self, db: Session, coupon_service: CouponService | None = None, now=None):
        self.repo = CartTrackingRepo(db)
        self.coupon_service = coupon_service or CouponService(db)
        self._now = now or utcnow

    #query - odczyt
    def get_cart(self, identity: Identity) -> CartTrackingOut | None:
        record = self.repo.get_by_identity(identity.as_identity())
        if not record:
            return None
        return CartTrackingOut.model_validate(record)

    def list_abandoned_carts(
        self,
        idle_minutes: int | None = None,
        max_emails: int | None = None,
    ) -> List[CartTrackingOut]:
        idle = ABANDONED_CART_IDLE_MINUTES if idle_minutes is None else idle_minutes
        cap = MAX_MARKETING_EMAILS if max_emails is None else max_emails

        idle_since = self._now() - timedelta(minutes=idle)
        records = self.repo.list_abandoned(idle_since, cap)
        return [CartTrackingOut.model_validate(r) for r in records]

    #commands
    def track_cart(
        self,
        identity: Identity,
        snapshot: CartSnapshot,
        email: str | None = None,
        checkout_started: bool | None = None,
        checkout_completed: bool | None = None,
    ) -> TrackCartOut:
        identity = identity.as_identity()
        now = self._now()

        record = self.repo.get_by_identity(identity)
        action = "updated"

        try:
            if record is None:
                action = "created"
                record = CartTrackingModel(
                    user_id=identity.user_id,
                    guest_token=identity.guest_token,
                    is_anonymous=identity.is_anonymous,
                    created_at=now,
                )
                self._apply(record, snapshot, email, checkout_started, checkout_completed, now)
                self.repo.add(record)
            else:
                self._apply(record, snapshot, email, checkout_started, checkout_completed, now)
            self.repo.commit()

        except IntegrityError:
            # rownolegly pierwszy zapis dla tej samej tozsamosci wygral - robimy update
            self.repo.rollback()
            record = self.repo.get_by_identity(identity)
            if record is None:
                raise
            logger.info(f"Cart tracking insert race for {identity}, retrying as update")
            self._apply(record, snapshot, email, checkout_started, checkout_completed, now)
            self.repo.commit()
            action = "updated"

        logger.info(f"Cart tracking {action} for {identity}: {len(snapshot.lines)} lines, subtotal {snapshot.subtotal}")
        return TrackCartOut(id=record.id, action=action)

    def convert_guest_to_user(self, guest_token: str, user_id: str) -> ConvertGuestOut:
        """
        Guest -> user po zalogowaniu.
        Brak rekordu usera: guest dostaje user_id (re-key).
        Jest rekord usera: koszyk gosca doklejamy do niego, wiersz gosca usuwamy.
        """
        guest = self.repo.get_by_guest_token(guest_token)
        if guest is None:
            logger.info(f"No guest cart for token {guest_token}, nothing to convert")
            return ConvertGuestOut(converted=False, action="none")

        now = self._now()
        user_record = self.repo.get_by_user(user_id)

        if user_record is None:
            guest.user_id = user_id
            guest.guest_token = None
            guest.is_anonymous = False
            guest.updated_at = now
            self.repo.commit()
            logger.info(f"Guest cart {guest.id} re-keyed to user {user_id}")
            return ConvertGuestOut(converted=True, action="rekeyed")

        guest_snapshot = CartSnapshot.model_validate(guest.cart_snapshot or {})
        user_snapshot = CartSnapshot.model_validate(user_record.cart_snapshot or {})

        # swiezszy koszyk decyduje o cenach
        guest_is_fresher = as_utc(guest.last_activity_at) >= as_utc(user_record.last_activity_at)
        if guest_is_fresher:
            merged = merge_snapshots(guest_snapshot, user_snapshot)
        else:
            merged = merge_snapshots(user_snapshot, guest_snapshot)
        merged = self.revalidate_coupon(merged)

        user_record.cart_snapshot = merged.model_dump(mode="json")
        user_record.subtotal = merged.subtotal
        user_record.email = user_record.email or guest.email
        user_record.checkout_started = user_record.checkout_started or guest.checkout_started
        user_record.checkout_completed = user_record.checkout_completed and guest.checkout_completed
        user_record.last_activity_at = max(as_utc(guest.last_activity_at), as_utc(user_record.last_activity_at))
        user_record.updated_at = now

        self.repo.delete(guest)
        self.repo.commit()

        logger.info(f"Guest cart {guest_token} merged into user {user_id} cart ({len(merged.lines)} lines)")
        return ConvertGuestOut(converted=True, action="merged")

    def increment_marketing_email_count(self, identity: Identity) -> MarketingEmailOut:
        # celowo bez last_activity_at - wyslanie maila to nie aktywnosc w koszyku
        record = self.repo.get_by_identity(identity.as_identity())
        if not record:
            raise NotFoundError("Cart tracking record not found")

        count = self.repo.increment_marketing_emails(record.id, self._now())
        self.repo.commit()

        logger.info(f"Marketing email #{count} recorded for cart {record.id}")
        return MarketingEmailOut(marketing_emails_sent=count)

    def revalidate_coupon(self, snapshot: CartSnapshot) -> CartSnapshot:
        coupon = snapshot.applied_coupon
        if coupon is None:
            return snapshot

        result = self.coupon_service.validate_coupon(coupon.code, snapshot.subtotal, not snapshot.is_empty)
        if not result.is_valid:
            logger.info(f"Coupon {coupon.code} dropped after merge: {result.error.value}")
            return with_coupon(snapshot, None)
        return with_coupon(snapshot, result.coupon)

    @staticmethod
    def _apply(record, snapshot, email, checkout_started, checkout_completed, now):
        record.cart_snapshot = snapshot.model_dump(mode="json")
        record.subtotal = snapshot.subtotal
        record.last_activity_at = now
        record.updated_at = now
        if email is not None:
            record.email = email
        if checkout_started is not None:
            record.checkout_started = checkout_started
        if checkout_completed is not None:
            record.checkout_completed = checkout_completed

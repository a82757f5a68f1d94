# app/repos/cart_tracking_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.cart_tracking import CartTrackingModel
from app.domain.schemas import Identity


class CartTrackingRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_identity(self, identity: Identity) -> CartTrackingModel | None:
        if identity.user_id is not None:
            return self.get_by_user(identity.user_id)
        return self.get_by_guest_token(identity.guest_token)

    def get_by_user(self, user_id: str) -> CartTrackingModel | None:
        return self.db.execute(
            select(CartTrackingModel).where(CartTrackingModel.user_id == user_id)
        ).scalar_one_or_none()

    def get_by_guest_token(self, guest_token: str) -> CartTrackingModel | None:
        return self.db.execute(
            select(CartTrackingModel).where(CartTrackingModel.guest_token == guest_token)
        ).scalar_one_or_none()

    def add(self, record: CartTrackingModel) -> CartTrackingModel:
        self.db.add(record)
        self.db.flush()
        return record

    def delete(self, record: CartTrackingModel) -> None:
        self.db.delete(record)
        self.db.flush()

    def increment_marketing_emails(self, record_id: str, sent_at: datetime) -> int:
        #atomowy UPDATE, bez read-modify-write
        self.db.execute(
            update(CartTrackingModel)
            .where(CartTrackingModel.id == record_id)
            .values(
                marketing_emails_sent=CartTrackingModel.marketing_emails_sent + 1,
                last_marketing_email_at=sent_at,
                updated_at=sent_at,
            )
        )
        return self.db.execute(
            select(CartTrackingModel.marketing_emails_sent).where(CartTrackingModel.id == record_id)
        ).scalar_one()

    def list_abandoned(self, idle_since: datetime, max_emails: int) -> List[CartTrackingModel]:
        return list(
            self.db.execute(
                select(CartTrackingModel)
                .where(
                    CartTrackingModel.checkout_completed.is_(False),
                    CartTrackingModel.subtotal > 0,
                    CartTrackingModel.last_activity_at < idle_since,
                    CartTrackingModel.marketing_emails_sent < max_emails,
                )
                .order_by(CartTrackingModel.last_activity_at)
            ).scalars()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

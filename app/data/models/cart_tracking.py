#app/data/models/cart_tracking.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, JSON, Numeric, String

from app.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartTrackingModel(Base):
    """
    Jeden wiersz na tozsamosc: zalogowany user albo guest token, nigdy oba.
    """

    __tablename__ = "cart_tracking"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(128), unique=True, nullable=True)
    guest_token = Column(String(128), unique=True, nullable=True)

    email = Column(String(255), nullable=True, index=True)
    cart_snapshot = Column(JSON, nullable=False, default=dict)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)

    last_activity_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    checkout_started = Column(Boolean, nullable=False, default=False)
    checkout_completed = Column(Boolean, nullable=False, default=False)
    is_anonymous = Column(Boolean, nullable=False, default=False)

    marketing_emails_sent = Column(Integer, nullable=False, default=0)
    last_marketing_email_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (guest_token IS NULL)",
            name="ck_cart_tracking_single_owner",
        ),
    )

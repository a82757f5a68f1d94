import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, JSON, Numeric, String
from sqlalchemy.orm import relationship

from app.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # jedna sesja platnosci = max jedno zamowienie
    source_session_id = Column(String(255), unique=True, nullable=False)

    user_id = Column(String(128), nullable=True, index=True)
    guest_token = Column(String(128), nullable=True, index=True)
    guest_email = Column(String(255), nullable=True, index=True)

    status = Column(String(32), nullable=False, default="pending")
    currency = Column(String(8), nullable=False, default="usd")
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    shipping = Column(Numeric(10, 2), nullable=False, default=0)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    coupon_id = Column(String(36), ForeignKey("coupons.id"), nullable=True)
    payment_intent_id = Column(String(255), nullable=True)
    shipping_address = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

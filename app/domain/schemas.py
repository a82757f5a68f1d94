# app/domain/schemas.py
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.domain.order_status import OrderStatus

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def make_line_id(product_id: str, variation_id: str | None, size_name: str | None, frame_name: str | None) -> str:
    """Wariant ma wlasne id; bez wariantu linia = produkt + rozmiar + rama."""
    if variation_id:
        return variation_id
    return f"{product_id}-{size_name or 'no-size'}-{frame_name or 'no-frame'}"


# =====================================================
# TOZSAMOSC
# =====================================================
class Identity(BaseModel):
    """Klucz wlasnosci koszyka: user_id albo guest_token, nigdy oba."""

    user_id: Optional[str] = Field(None, min_length=1, max_length=128)
    guest_token: Optional[str] = Field(None, min_length=1, max_length=128)

    @model_validator(mode="after")
    def _exactly_one_owner(self):
        if (self.user_id is None) == (self.guest_token is None):
            raise ValueError("Exactly one of user_id or guest_token is required")
        return self

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    def as_identity(self) -> "Identity":
        return Identity(user_id=self.user_id, guest_token=self.guest_token)

    def __str__(self) -> str:
        if self.user_id is not None:
            return f"user:{self.user_id}"
        return f"guest:{self.guest_token}"


# =====================================================
# KOSZYK
# =====================================================
class CartLineItem(BaseModel):
    line_id: str = ""
    product_id: str = Field(..., min_length=1)
    variation_id: Optional[str] = None
    title: str = ""
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    size_name: Optional[str] = None
    frame_name: Optional[str] = None
    image_ref: Optional[str] = None

    @model_validator(mode="after")
    def _derive_line_id(self):
        if not self.line_id:
            self.line_id = make_line_id(self.product_id, self.variation_id, self.size_name, self.frame_name)
        return self

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)


def lines_subtotal(lines: List[CartLineItem]) -> Decimal:
    return money(sum((line.unit_price * line.quantity for line in lines), Decimal("0.00")))


class CouponRef(BaseModel):
    """Regula kuponu zwrocona przez serwer, klient liczy z niej rabat."""

    id: str
    code: str
    discount_type: Literal["percentage", "fixed"]
    discount_value: Decimal = Field(..., ge=0)
    min_purchase: Decimal = Decimal("0.00")


class CartSnapshot(BaseModel):
    lines: List[CartLineItem] = Field(default_factory=list)
    applied_coupon: Optional[CouponRef] = None
    discount_amount: Decimal = Field(Decimal("0.00"), ge=0)

    @model_validator(mode="after")
    def _discount_bounds(self):
        if self.applied_coupon is None and self.discount_amount != 0:
            raise ValueError("discount_amount requires an applied coupon")
        if self.discount_amount > self.subtotal:
            raise ValueError("discount_amount cannot exceed the subtotal")
        return self

    @property
    def subtotal(self) -> Decimal:
        return lines_subtotal(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def find(self, line_id: str) -> Optional[CartLineItem]:
        return next((line for line in self.lines if line.line_id == line_id), None)


# =====================================================
# CART TRACKING
# =====================================================
class TrackCartIn(Identity):
    email: Optional[str] = Field(None, max_length=255)
    cart_snapshot: CartSnapshot
    checkout_started: Optional[bool] = None
    checkout_completed: Optional[bool] = None


class TrackCartOut(BaseModel):
    id: str
    action: Literal["created", "updated"]


class CartTrackingOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    guest_token: Optional[str] = None
    email: Optional[str] = None
    cart_snapshot: CartSnapshot
    subtotal: Decimal
    last_activity_at: datetime
    checkout_started: bool
    checkout_completed: bool
    is_anonymous: bool
    marketing_emails_sent: int
    last_marketing_email_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConvertGuestIn(BaseModel):
    guest_token: str = Field(..., min_length=1, max_length=128)
    user_id: str = Field(..., min_length=1, max_length=128)


class ConvertGuestOut(BaseModel):
    converted: bool
    action: Literal["rekeyed", "merged", "none"]


class MarketingEmailIn(Identity):
    pass


class MarketingEmailOut(BaseModel):
    marketing_emails_sent: int


# =====================================================
# KUPONY
# =====================================================
class CouponError(str, Enum):
    INVALID_CODE = "INVALID_CODE"
    BELOW_MIN_PURCHASE = "BELOW_MIN_PURCHASE"
    EXPIRED = "EXPIRED"
    USAGE_CAP_REACHED = "USAGE_CAP_REACHED"
    EMPTY_CART = "EMPTY_CART"


class CouponValidateIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    subtotal: Decimal = Field(..., ge=0)
    has_items: bool = True


class CouponValidationOut(BaseModel):
    is_valid: bool
    coupon: Optional[CouponRef] = None
    discount: Optional[Decimal] = None
    error: Optional[CouponError] = None
    message: Optional[str] = None


# =====================================================
# SESJA PLATNOSCI (tylko odczyt, z procesora platnosci)
# =====================================================
class PaymentLineItem(BaseModel):
    product_id: str
    variation_id: Optional[str] = None
    name: str
    quantity: int
    unit_price: Decimal
    size_name: Optional[str] = None
    frame_name: Optional[str] = None


class PaymentSessionMetadata(BaseModel):
    user_id: Optional[str] = None
    guest_token: Optional[str] = None
    coupon_id: Optional[str] = None


class PaymentSession(BaseModel):
    id: str
    status: str
    payment_status: str
    currency: str = "usd"
    amount_subtotal: Decimal
    amount_tax: Decimal = Decimal("0.00")
    amount_shipping: Decimal = Decimal("0.00")
    amount_discount: Decimal = Decimal("0.00")
    amount_total: Optional[Decimal] = None
    line_items: List[PaymentLineItem] = Field(default_factory=list)
    shipping_address: Optional[Dict[str, Any]] = None
    customer_email: Optional[str] = None
    payment_intent_id: Optional[str] = None
    metadata: PaymentSessionMetadata = Field(default_factory=PaymentSessionMetadata)

    @property
    def is_paid(self) -> bool:
        return self.status == "complete" and self.payment_status == "paid"


# =====================================================
# ZAMOWIENIA
# =====================================================
class OrderItemOut(BaseModel):
    product_id: str
    variation_id: Optional[str] = None
    name: str
    size_name: Optional[str] = None
    frame_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    source_session_id: str
    user_id: Optional[str] = None
    guest_token: Optional[str] = None
    guest_email: Optional[str] = None
    status: OrderStatus
    currency: str
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    coupon_id: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    items: List[OrderItemOut]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MaterializeIn(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=255)


class MaterializedOrderOut(BaseModel):
    created: bool
    order: OrderOut


class OrderStatusIn(BaseModel):
    status: OrderStatus


class ClaimOrdersIn(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    guest_email: Optional[str] = Field(None, min_length=3, max_length=255)
    guest_token: Optional[str] = Field(None, min_length=1, max_length=128)

    @model_validator(mode="after")
    def _needs_guest_key(self):
        if not self.guest_email and not self.guest_token:
            raise ValueError("guest_email or guest_token is required")
        return self


class ClaimOrdersOut(BaseModel):
    claimed: int


class PaymentWebhookIn(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class WebhookAckOut(BaseModel):
    received: bool = True
    order_id: Optional[str] = None
    error: Optional[str] = None

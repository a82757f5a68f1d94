# app/domain/order_status.py
from enum import Enum

from app.domain.errors import InvalidStatusTransition


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELED = "canceled"
    REFUNDED = "refunded"


# status z ktorym powstaje zamowienie z oplaconej sesji
INITIAL_STATUS = OrderStatus.PAID

FULFILLMENT_FLOW = [
    OrderStatus.PENDING,
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELED, OrderStatus.REFUNDED})


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """
    Tylko do przodu w FULFILLMENT_FLOW (mozna pominac kroki),
    canceled/refunded z kazdego nieterminalnego stanu.
    """
    current, new = OrderStatus(current), OrderStatus(new)

    if current in TERMINAL_STATUSES or current == new:
        return False

    if new in (OrderStatus.CANCELED, OrderStatus.REFUNDED):
        return True

    return FULFILLMENT_FLOW.index(new) > FULFILLMENT_FLOW.index(current)


def ensure_transition(current: OrderStatus, new: OrderStatus) -> None:
    if not can_transition(current, new):
        raise InvalidStatusTransition(
            f"Cannot move order from {OrderStatus(current).value} to {OrderStatus(new).value}"
        )

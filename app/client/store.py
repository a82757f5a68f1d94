# app/client/store.py
"""
Stan koszyka po stronie klienta. Jedyne zrodlo prawdy dla UI - kazda zmiana
idzie przez CartStore, a subskrybenci (np. CartSyncMiddleware) dostaja zdarzenie.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional, Protocol, Union

from app.domain import cart
from app.domain.errors import CouponRejected
from app.domain.schemas import CartLineItem, CartSnapshot, CouponRef, CouponValidationOut
from app.utils.logging import get_logger

logger = get_logger(__name__)


# =====================================================
# ZDARZENIA (zamkniety zbior)
# =====================================================
@dataclass(frozen=True)
class ItemAdded:
    line_id: str
    quantity: int


@dataclass(frozen=True)
class ItemDecremented:
    line_id: str
    quantity: int


@dataclass(frozen=True)
class ItemRemoved:
    line_id: str


@dataclass(frozen=True)
class CartCleared:
    pass


@dataclass(frozen=True)
class CouponApplied:
    code: str
    discount: Decimal


@dataclass(frozen=True)
class CouponRemoved:
    code: str


@dataclass(frozen=True)
class CartLoaded:
    """Stan podmieniony z zewnatrz (serwer, merge) - to nie jest mutacja uzytkownika."""

    line_count: int


CartMutation = Union[ItemAdded, ItemDecremented, ItemRemoved, CartCleared, CouponApplied, CouponRemoved]
CartEvent = Union[CartMutation, CartLoaded]

MUTATION_EVENTS = (ItemAdded, ItemDecremented, ItemRemoved, CartCleared, CouponApplied, CouponRemoved)


def is_mutation(event: CartEvent) -> bool:
    return isinstance(event, MUTATION_EVENTS)


class CouponValidator(Protocol):
    def validate_coupon(self, code: str, subtotal: Decimal, has_items: bool = True) -> CouponValidationOut: ...


Listener = Callable[[CartEvent], None]


class CartStore:
    def __init__(self, coupon_validator: CouponValidator, initial: Optional[CartSnapshot] = None):
        self.coupon_validator = coupon_validator
        self._snapshot = initial or CartSnapshot()
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    @property
    def subtotal(self) -> Decimal:
        return self._snapshot.subtotal

    @property
    def applied_coupon(self) -> Optional[CouponRef]:
        return self._snapshot.applied_coupon

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    #mutacje
    def add_item(self, line: CartLineItem, quantity: int | None = None) -> CartSnapshot:
        qty = line.quantity if quantity is None else quantity
        self._commit(cart.add_line(self._snapshot, line, qty), ItemAdded(line.line_id, qty))
        return self._snapshot

    def decrement(self, line_id: str, quantity: int = 1) -> CartSnapshot:
        if self._snapshot.find(line_id) is None:
            return self._snapshot
        self._commit(cart.decrement_line(self._snapshot, line_id, quantity), ItemDecremented(line_id, quantity))
        return self._snapshot

    def remove(self, line_id: str) -> CartSnapshot:
        if self._snapshot.find(line_id) is None:
            return self._snapshot
        self._commit(cart.remove_line(self._snapshot, line_id), ItemRemoved(line_id))
        return self._snapshot

    def clear(self) -> CartSnapshot:
        self._commit(CartSnapshot(), CartCleared())
        return self._snapshot

    def apply_coupon(self, code: str) -> CartSnapshot:
        """
        Najpierw serwer, potem zmiana stanu. Odrzucenie -> CouponRejected, koszyk bez zmian.
        """
        result = self.coupon_validator.validate_coupon(code, self.subtotal, not self._snapshot.is_empty)
        if not result.is_valid:
            raise CouponRejected(result.error, result.message)

        updated = cart.with_coupon(self._snapshot, result.coupon)
        self._commit(updated, CouponApplied(result.coupon.code, updated.discount_amount))
        return self._snapshot

    def remove_coupon(self) -> CartSnapshot:
        coupon = self._snapshot.applied_coupon
        if coupon is None:
            return self._snapshot
        self._commit(cart.with_coupon(self._snapshot, None), CouponRemoved(coupon.code))
        return self._snapshot

    def load(self, snapshot: CartSnapshot) -> CartSnapshot:
        self._commit(cart.reprice(list(snapshot.lines), snapshot.applied_coupon), CartLoaded(len(snapshot.lines)))
        return self._snapshot

    def _commit(self, snapshot: CartSnapshot, event: CartEvent) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # UI nie moze poleciec przez subskrybenta
                logger.exception(f"Cart listener failed on {type(event).__name__}")

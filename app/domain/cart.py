# app/domain/cart.py
"""
Czysta arytmetyka koszyka, wspolna dla CartStore (klient) i CartTrackingService (serwer).
Kazda funkcja zwraca nowy CartSnapshot, wejscie nie jest modyfikowane.
"""
from decimal import Decimal
from typing import List, Optional

from app.domain.schemas import CartLineItem, CartSnapshot, CouponRef, lines_subtotal, money

ZERO = Decimal("0.00")


def compute_discount(coupon: CouponRef, subtotal: Decimal) -> Decimal:
    """Procent od subtotal albo kwota stala, zawsze w przedziale [0, subtotal]."""
    subtotal = money(subtotal)
    if coupon.discount_type == "percentage":
        discount = money(subtotal * coupon.discount_value / Decimal(100))
    else:
        discount = money(coupon.discount_value)
    return max(ZERO, min(discount, subtotal))


def reprice(lines: List[CartLineItem], coupon: Optional[CouponRef]) -> CartSnapshot:
    subtotal = lines_subtotal(lines)

    # pusty koszyk albo za mala kwota - kupon przestaje obowiazywac
    if coupon is not None and (not lines or subtotal < coupon.min_purchase):
        coupon = None

    discount = compute_discount(coupon, subtotal) if coupon else ZERO
    return CartSnapshot(lines=lines, applied_coupon=coupon, discount_amount=discount)


def add_line(snapshot: CartSnapshot, line: CartLineItem, quantity: int | None = None) -> CartSnapshot:
    qty = line.quantity if quantity is None else quantity
    if qty < 1:
        raise ValueError("Quantity must be at least 1")

    lines = [l.model_copy() for l in snapshot.lines]
    existing = next((l for l in lines if l.line_id == line.line_id), None)

    if existing:
        existing.quantity += qty
        existing.unit_price = line.unit_price
    else:
        lines.append(line.model_copy(update={"quantity": qty}))

    return reprice(lines, snapshot.applied_coupon)


def decrement_line(snapshot: CartSnapshot, line_id: str, quantity: int = 1) -> CartSnapshot:
    if quantity < 1:
        raise ValueError("Quantity must be at least 1")

    lines = []
    for line in snapshot.lines:
        if line.line_id != line_id:
            lines.append(line)
        elif line.quantity > quantity:
            lines.append(line.model_copy(update={"quantity": line.quantity - quantity}))
        # else: spada ponizej 1, linia znika

    return reprice(lines, snapshot.applied_coupon)


def remove_line(snapshot: CartSnapshot, line_id: str) -> CartSnapshot:
    lines = [line for line in snapshot.lines if line.line_id != line_id]
    return reprice(lines, snapshot.applied_coupon)


def with_coupon(snapshot: CartSnapshot, coupon: Optional[CouponRef]) -> CartSnapshot:
    return reprice(list(snapshot.lines), coupon)


def merge_snapshots(primary: CartSnapshot, secondary: CartSnapshot) -> CartSnapshot:
    """
    Suma dwoch koszykow: ilosci dla tego samego line_id sie sumuja,
    cena i opis linii z `primary` (swiezszy koszyk). Rabaty nie sa laczone -
    zostaje kupon primary (albo secondary), do ponownej walidacji przez wywolujacego.
    """
    lines = [line.model_copy() for line in primary.lines]
    by_id = {line.line_id: line for line in lines}

    for line in secondary.lines:
        existing = by_id.get(line.line_id)
        if existing:
            existing.quantity += line.quantity
        else:
            copy = line.model_copy()
            lines.append(copy)
            by_id[copy.line_id] = copy

    coupon = primary.applied_coupon or secondary.applied_coupon
    return reprice(lines, coupon)

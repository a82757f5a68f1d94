# app/api/routers/orders.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.errors import (
    InvalidStatusTransition,
    MaterializationError,
    NotFoundError,
    PaymentProviderUnavailable,
    PaymentSessionNotFound,
)
from app.domain.schemas import (
    ClaimOrdersIn,
    ClaimOrdersOut,
    MaterializedOrderOut,
    MaterializeIn,
    OrderOut,
    OrderStatusIn,
)
from app.services.notification_service import NotificationService
from app.services.order_service import OrderService
from app.services.payment_client import PaymentClient

router = APIRouter(prefix="/orders", tags=["orders"])

SUPPORT_HINT = "We could not process your order. Please contact support with your payment reference."


def get_payment_client() -> PaymentClient:
    return PaymentClient()


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_service(
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
    notification_service: NotificationService = Depends(get_notification_service),
) -> OrderService:
    return OrderService(db, payment_client=payment_client, notification_service=notification_service)


@router.post("/from-session", response_model=MaterializedOrderOut)
def materialize_order(payload: MaterializeIn, svc: OrderService = Depends(get_service)):
    """
    Tworzy zamówienie z opłaconej sesji płatności (strona sukcesu checkoutu).
    Bezpieczne przy wielokrotnym i równoległym wywołaniu.
    """
    try:
        order, created = svc.materialize_order_from_session(payload.session_id)
    except PaymentSessionNotFound as e:
        raise HTTPException(status_code=404, detail={"error": str(e), "message": SUPPORT_HINT})
    except MaterializationError as e:
        raise HTTPException(status_code=400, detail={"error": str(e), "message": SUPPORT_HINT})
    except PaymentProviderUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))

    return MaterializedOrderOut(created=created, order=order)


@router.get("/by-session/{session_id}", response_model=OrderOut)
def get_order_by_session(
    session_id: str,
    user_id: str | None = Query(None),
    guest_token: str | None = Query(None),
    email: str | None = Query(None),
    svc: OrderService = Depends(get_service),
):
    try:
        order = svc.get_order_by_session(session_id, user_id, guest_token=guest_token, email=email)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))

    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/guest", response_model=OrderOut)
def get_guest_order(
    order_id: str = Query(..., min_length=1),
    email: str = Query(..., min_length=3),
    svc: OrderService = Depends(get_service),
):
    try:
        return svc.get_guest_order(order_id, email)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/claim", response_model=ClaimOrdersOut)
def claim_guest_orders(payload: ClaimOrdersIn, svc: OrderService = Depends(get_service)):
    return svc.claim_guest_orders(payload.user_id, payload.guest_email, payload.guest_token)


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: str,
    payload: OrderStatusIn,
    svc: OrderService = Depends(get_service),
):
    """
    Zmiana statusu przez panel admina.
    """
    try:
        return svc.update_order_status(order_id, payload.status)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))

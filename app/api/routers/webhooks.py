# app/api/routers/webhooks.py
from fastapi import APIRouter, Depends, HTTPException

from app.api.routers.orders import get_service
from app.domain.errors import (
    InvalidStatusTransition,
    MaterializationError,
    NotFoundError,
    PaymentProviderUnavailable,
)
from app.domain.schemas import PaymentWebhookIn, WebhookAckOut
from app.services.order_service import OrderService
from app.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payments", response_model=WebhookAckOut)
def payment_webhook(payload: PaymentWebhookIn, svc: OrderService = Depends(get_service)):
    """
    Webhook procesora płatności.
    checkout.session.completed: materializuje zamówienie - bez koordynacji ze stroną sukcesu,
    ta sama gwarancja unikalności.
    charge.refunded: zamówienie dla payment intent przechodzi na refunded.
    """
    if payload.type == "checkout.session.completed":
        return _checkout_completed(payload, svc)
    if payload.type == "charge.refunded":
        return _charge_refunded(payload, svc)

    logger.info(f"Ignoring payment webhook {payload.type}")
    return WebhookAckOut()


def _checkout_completed(payload: PaymentWebhookIn, svc: OrderService) -> WebhookAckOut:
    session_id = payload.data.get("id")
    if not session_id:
        raise HTTPException(status_code=400, detail="Missing session id")

    try:
        order, _ = svc.materialize_order_from_session(session_id)
    except MaterializationError as e:
        # terminalny - potwierdzamy odbior, zeby procesor nie ponawial
        logger.error(f"Webhook materialization failed for session {session_id}: {e}")
        return WebhookAckOut(error=str(e))
    except PaymentProviderUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))

    return WebhookAckOut(order_id=order.id)


def _charge_refunded(payload: PaymentWebhookIn, svc: OrderService) -> WebhookAckOut:
    payment_intent_id = payload.data.get("payment_intent")
    if not payment_intent_id:
        raise HTTPException(status_code=400, detail="Missing payment intent")

    try:
        order = svc.refund_by_payment_intent(payment_intent_id)
    except (NotFoundError, InvalidStatusTransition) as e:
        # ponowienie nic nie zmieni
        logger.warning(f"Refund webhook for {payment_intent_id} not applied: {e}")
        return WebhookAckOut(error=str(e))

    return WebhookAckOut(order_id=order.id)

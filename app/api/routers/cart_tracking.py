# app/api/routers/cart_tracking.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.errors import NotFoundError
from app.domain.schemas import (
    CartTrackingOut,
    ConvertGuestIn,
    ConvertGuestOut,
    Identity,
    MarketingEmailIn,
    MarketingEmailOut,
    TrackCartIn,
    TrackCartOut,
)
from app.services.cart_tracking_service import CartTrackingService

router = APIRouter(prefix="/cart-tracking", tags=["cart-tracking"])


def get_service(db: Session):
    return CartTrackingService(db)


@router.post("", response_model=TrackCartOut)
def track_cart(payload: TrackCartIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.track_cart(
        identity=payload,
        snapshot=payload.cart_snapshot,
        email=payload.email,
        checkout_started=payload.checkout_started,
        checkout_completed=payload.checkout_completed,
    )


@router.get("", response_model=Optional[CartTrackingOut])
def get_cart(
    user_id: Optional[str] = Query(None),
    guest_token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        identity = Identity(user_id=user_id, guest_token=guest_token)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Either user_id or guest_token is required, not both")

    return get_service(db).get_cart(identity)


@router.get("/abandoned", response_model=List[CartTrackingOut])
def list_abandoned(
    idle_minutes: Optional[int] = Query(None, ge=0),
    max_emails: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    return get_service(db).list_abandoned_carts(idle_minutes, max_emails)


@router.post("/convert-guest", response_model=ConvertGuestOut)
def convert_guest(payload: ConvertGuestIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.convert_guest_to_user(payload.guest_token, payload.user_id)


@router.post("/marketing-emails", response_model=MarketingEmailOut)
def increment_marketing_email(payload: MarketingEmailIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.increment_marketing_email_count(payload)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

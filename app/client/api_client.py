# app/client/api_client.py
from decimal import Decimal
from typing import Optional

import requests

from app.domain.schemas import (
    CartSnapshot,
    CartTrackingOut,
    ConvertGuestOut,
    CouponValidationOut,
    Identity,
    MarketingEmailOut,
    MaterializedOrderOut,
    TrackCartOut,
)
from app.utils.retry import http_retry
from app.utils.settings import HTTP_TIMEOUT_SECONDS, STOREFRONT_API_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)


class StorefrontClient:
    """
    Klient HTTP dla czesci klienckiej (CartStore, sync, identity) -> API koszyka i zamowien.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None, session: requests.Session | None = None):
        self.base_url = (base_url or STOREFRONT_API_URL).rstrip("/")
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS
        self.http = session or requests.Session()

    @http_retry()
    def track_cart(self, identity: Identity, snapshot: CartSnapshot, email: str | None = None) -> TrackCartOut:
        body = {
            **identity.model_dump(exclude_none=True),
            "email": email,
            "cart_snapshot": snapshot.model_dump(mode="json"),
        }
        return TrackCartOut.model_validate(self._post("/cart-tracking", body))

    @http_retry()
    def get_cart(self, identity: Identity) -> Optional[CartTrackingOut]:
        url = f"{self.base_url}/cart-tracking"
        logger.info(f"StorefrontClient GET {url} for {identity}")

        resp = self.http.get(url, params=identity.model_dump(exclude_none=True), timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        return CartTrackingOut.model_validate(data) if data else None

    @http_retry()
    def convert_guest_to_user(self, guest_token: str, user_id: str) -> ConvertGuestOut:
        body = {"guest_token": guest_token, "user_id": user_id}
        return ConvertGuestOut.model_validate(self._post("/cart-tracking/convert-guest", body))

    @http_retry()
    def increment_marketing_email_count(self, identity: Identity) -> MarketingEmailOut:
        body = identity.model_dump(exclude_none=True)
        return MarketingEmailOut.model_validate(self._post("/cart-tracking/marketing-emails", body))

    @http_retry()
    def validate_coupon(self, code: str, subtotal: Decimal, has_items: bool = True) -> CouponValidationOut:
        body = {"code": code, "subtotal": str(subtotal), "has_items": has_items}
        return CouponValidationOut.model_validate(self._post("/coupons/validate", body))

    def materialize_order_from_session(self, session_id: str) -> MaterializedOrderOut:
        # bez retry: blad terminalny pokazujemy uzytkownikowi, powtorka nic nie da
        return MaterializedOrderOut.model_validate(self._post("/orders/from-session", {"session_id": session_id}))

    def _post(self, path: str, body: dict) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"StorefrontClient POST {url}")

        resp = self.http.post(url, json=body, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

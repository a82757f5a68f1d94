# app/services/payment_client.py
import requests
from pydantic import ValidationError
from requests import RequestException

from app.domain.errors import MaterializationError, PaymentProviderUnavailable, PaymentSessionNotFound
from app.domain.schemas import PaymentSession
from app.utils.retry import http_retry
from app.utils.settings import HTTP_TIMEOUT_SECONDS, PAYMENT_SERVICE_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)


class PaymentClient:
    """Odczyt sesji checkout z zewnetrznego procesora platnosci (read-only)."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or PAYMENT_SERVICE_URL).rstrip("/")
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS

    def fetch_session(self, session_id: str) -> PaymentSession:
        try:
            payload = self._get_session(session_id)
        except RequestException as e:
            logger.error(f"Payment provider unavailable for session {session_id}: {e}")
            raise PaymentProviderUnavailable("Payment provider unavailable") from e

        try:
            return PaymentSession.model_validate(payload)
        except ValidationError as e:
            raise MaterializationError(f"Malformed payment session {session_id}") from e

    @http_retry()
    def _get_session(self, session_id: str) -> dict:
        url = f"{self.base_url}/checkout/sessions/{session_id}"
        logger.info(f"PaymentClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        # 404 to nie blad przejsciowy, nie retryujemy
        if resp.status_code == 404:
            raise PaymentSessionNotFound(f"Payment session {session_id} not found")
        resp.raise_for_status()
        return resp.json()

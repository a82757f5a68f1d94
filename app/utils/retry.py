# app/utils/retry.py
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential
import requests


def is_transient(exc: BaseException) -> bool:
    """Siec i 5xx - tak. 4xx to odpowiedz, powtorka nic nie zmieni."""
    if not isinstance(exc, requests.RequestException):
        return False
    response = getattr(exc, "response", None)
    if isinstance(exc, requests.HTTPError) and response is not None:
        return response.status_code >= 500
    return True


def http_retry(attempts: int = 3):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception(is_transient),
    )

# app/client/session.py
import threading

from app.client.api_client import StorefrontClient
from app.client.identity import IdentityState, IdentityTransitionHandler
from app.client.store import CartStore
from app.client.sync import CartSyncMiddleware


class CartSession:
    """
    Korzen aplikacji klienta - sklada store, sync i obsluge logowania.
    Bez globalnego stanu: kazda instancja (np. w testach) ma wlasny koszyk.
    """

    def __init__(
        self,
        backend: StorefrontClient | None = None,
        guest_token: str | None = None,
        email: str | None = None,
        debounce_seconds: float | None = None,
        timer_factory=threading.Timer,
    ):
        self.backend = backend or StorefrontClient()
        self.email = email
        self.identity_state = IdentityState(guest_token=guest_token)

        self.store = CartStore(coupon_validator=self.backend)
        self.sync = CartSyncMiddleware(
            self.store,
            self.backend,
            identity_provider=self.identity_state.current,
            email_provider=lambda: self.email,
            debounce_seconds=debounce_seconds,
            timer_factory=timer_factory,
        )
        self.identity = IdentityTransitionHandler(self.store, self.backend, self.sync, self.identity_state)

    def on_auth_state(self, is_loaded: bool, user_id: str | None) -> None:
        self.identity.on_auth_state(is_loaded, user_id)

    def close(self) -> None:
        self.sync.close()

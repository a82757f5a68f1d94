# app/client/identity.py
import secrets
from typing import Optional, Protocol

from app.client.store import CartStore
from app.client.sync import CartSyncMiddleware
from app.domain.cart import merge_snapshots, with_coupon
from app.domain.errors import CouponRejected
from app.domain.schemas import CartSnapshot, CartTrackingOut, ConvertGuestOut, Identity
from app.utils.logging import get_logger

logger = get_logger(__name__)


def new_guest_token() -> str:
    return "guest_" + secrets.token_hex(8)


class IdentityState:
    """Aktualna tozsamosc klienta: user_id po zalogowaniu, inaczej guest token."""

    def __init__(self, guest_token: str | None = None, user_id: str | None = None):
        self.guest_token = guest_token
        self.user_id = user_id

    def current(self) -> Identity:
        if self.user_id is not None:
            return Identity(user_id=self.user_id)
        if not self.guest_token:
            self.guest_token = new_guest_token()
        return Identity(guest_token=self.guest_token)

    def rotate_guest_token(self) -> str:
        self.guest_token = new_guest_token()
        return self.guest_token


class CartBackend(Protocol):
    def get_cart(self, identity: Identity) -> Optional[CartTrackingOut]: ...

    def convert_guest_to_user(self, guest_token: str, user_id: str) -> ConvertGuestOut: ...


class IdentityTransitionHandler:
    """
    Reaguje na zmiany (was_authenticated, is_authenticated).

    pierwszy ustalony stan: zapisany koszyk z serwera laczy sie z lokalnym
    false -> true: koszyk goscia przechodzi na usera i laczy sie z jego wczesniejszym koszykiem
    true -> false: nowy guest token, lokalny koszyk od zera
    auth jeszcze sie laduje: nic nie robimy, czekamy na ustalony stan
    """

    def __init__(
        self,
        store: CartStore,
        backend: CartBackend,
        sync: CartSyncMiddleware,
        state: IdentityState,
    ):
        self.store = store
        self.backend = backend
        self.sync = sync
        self.state = state
        self._was_authenticated: Optional[bool] = None

    @property
    def is_authenticated(self) -> Optional[bool]:
        return self._was_authenticated

    def on_auth_state(self, is_loaded: bool, user_id: str | None) -> None:
        if not is_loaded:
            logger.debug("Auth state still loading, deferring cart migration")
            return

        is_authenticated = user_id is not None
        was_authenticated = self._was_authenticated

        if was_authenticated is None and (not is_authenticated or self.state.guest_token):
            # np. po przeladowaniu strony lokalny store jest pusty
            self._restore_cart()

        if is_authenticated:
            if was_authenticated and user_id != self.state.user_id:
                # zmiana konta bez wylogowania
                self._sign_out()
                self._sign_in(user_id)
            elif not was_authenticated:
                self._sign_in(user_id)
        else:
            if was_authenticated:
                self._sign_out()
            self._was_authenticated = False

    def _restore_cart(self) -> None:
        identity = self.state.current()
        try:
            record = self.backend.get_cart(identity)
        except Exception as e:
            logger.warning(f"Could not load saved cart for {identity}, keeping local cart: {e}")
            return

        if record is None:
            return

        local = self.store.snapshot
        self._load_merged(merge_snapshots(local, record.cart_snapshot))
        logger.info(f"Saved cart restored for {identity}: {len(self.store.snapshot.lines)} lines")

        if not local.is_empty:
            self.sync.flush()

    def _sign_in(self, user_id: str) -> None:
        guest_token = self.state.guest_token

        try:
            if guest_token:
                # serwer laczy koszyki, wiec musi miec aktualny koszyk goscia
                self.sync.push()
                self.backend.convert_guest_to_user(guest_token, user_id)
        except Exception as e:
            # guest token zostaje - kolejne logowanie sprobuje od tego samego punktu
            logger.warning(f"Guest cart conversion failed for user {user_id}, keeping guest token: {e}")
            self._was_authenticated = False
            return

        self.state.user_id = user_id
        self.state.guest_token = None
        self._was_authenticated = True

        local = self.store.snapshot
        try:
            record = self.backend.get_cart(Identity(user_id=user_id))
        except Exception as e:
            logger.warning(f"Could not load cart for user {user_id}, keeping local cart: {e}")
            return

        remote = record.cart_snapshot if record else CartSnapshot()
        if guest_token:
            # rekord usera po konwersji to juz suma gosc + user
            self._load_merged(remote if record else local)
        else:
            # lokalny koszyk jest najswiezszy - jego ceny wygrywaja
            self._load_merged(merge_snapshots(local, remote))

        logger.info(f"Cart merged for user {user_id}: {len(self.store.snapshot.lines)} lines")
        if not guest_token and not local.is_empty:
            self.sync.flush()

    def _load_merged(self, merged: CartSnapshot) -> None:
        coupon = merged.applied_coupon
        self.store.load(with_coupon(merged, None))
        if coupon is not None:
            self._reapply_coupon(coupon.code)

    def _reapply_coupon(self, code: str) -> None:
        # rabaty sie nie sumuja, kupon jeszcze raz przez walidator na nowym subtotal
        try:
            self.store.apply_coupon(code)
        except CouponRejected as e:
            logger.info(f"Coupon {code} no longer valid after merge: {e.message}")
        except Exception as e:
            logger.warning(f"Coupon {code} revalidation failed after merge: {e}")

    def _sign_out(self) -> None:
        self.sync.cancel()
        self.state.user_id = None
        self.state.rotate_guest_token()
        self.store.load(CartSnapshot())
        logger.info("Signed out, cart tracking continues with a fresh guest token")

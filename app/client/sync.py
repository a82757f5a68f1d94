# app/client/sync.py
import threading
from typing import Callable, Optional, Protocol

from app.client.store import CartEvent, CartStore, is_mutation
from app.domain.schemas import CartSnapshot, Identity, TrackCartOut
from app.utils.settings import CART_SYNC_DEBOUNCE_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartTracker(Protocol):
    def track_cart(self, identity: Identity, snapshot: CartSnapshot, email: str | None = None) -> TrackCartOut: ...


class CartSyncMiddleware:
    """
    Subskrybent CartStore: po serii mutacji i `debounce_seconds` ciszy
    zapisuje aktualny koszyk do cart_tracking (upsert po tozsamosci, last write wins).

    - reaguje tylko na mutacje (CartLoaded pomija - brak petli zwrotnej)
    - pusty koszyk albo brak tozsamosci: bez zapisu
    - sync juz trwa: planuje kolejny po debounce
    - blad synchronizacji: log i koniec, nastepna mutacja sprobuje znowu
    """

    def __init__(
        self,
        store: CartStore,
        tracker: CartTracker,
        identity_provider: Callable[[], Optional[Identity]],
        email_provider: Callable[[], Optional[str]] | None = None,
        debounce_seconds: float | None = None,
        timer_factory=threading.Timer,
    ):
        self.store = store
        self.tracker = tracker
        self.identity_provider = identity_provider
        self.email_provider = email_provider or (lambda: None)
        self.debounce_seconds = CART_SYNC_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._timer = None
        self._generation = 0
        self._write_lock = threading.Lock()

        self._unsubscribe = store.subscribe(self.on_event)

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def in_flight(self) -> bool:
        return self._write_lock.locked()

    def on_event(self, event: CartEvent) -> None:
        if not is_mutation(event):
            return
        self._schedule()

    def flush(self) -> bool:
        """Sync natychmiast (anuluje oczekujacy timer). Zwraca True gdy zapis sie udal."""
        self.cancel()
        return self._sync()

    def push(self) -> bool:
        """
        Zapis natychmiast, czeka na trwajacy sync. Bledy ida do wolajacego.
        Zwraca False gdy nie bylo czego zapisac.
        """
        self.cancel()
        with self._write_lock:
            return self._write()

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def close(self) -> None:
        self.cancel()
        self._unsubscribe()

    def _schedule(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = self._timer_factory(self.debounce_seconds, self._on_timer, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # timer zastapiony albo anulowany w miedzyczasie
            if generation != self._generation:
                return
            self._timer = None
        self._sync()

    def _sync(self) -> bool:
        if not self._write_lock.acquire(blocking=False):
            # trwajacy zapis mogl wyslac starszy stan - ponawiamy po debounce
            logger.debug("Cart sync already in flight, rescheduling")
            self._schedule()
            return False

        try:
            return self._write()

        except Exception as e:
            # samonaprawialne - kolejny debounce wysle najnowszy stan
            logger.warning(f"Cart sync failed, will retry on next change: {e}")
            return False

        finally:
            self._write_lock.release()

    def _write(self) -> bool:
        snapshot = self.store.snapshot
        if snapshot.is_empty:
            return False

        identity = self.identity_provider()
        if identity is None:
            return False

        result = self.tracker.track_cart(identity, snapshot, self.email_provider())
        logger.info(f"Cart synced for {identity}: {result.action}")
        return True

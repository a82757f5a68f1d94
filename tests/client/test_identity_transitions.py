from decimal import Decimal

import pytest

from app.client.api_client import StorefrontClient
from app.client.session import CartSession
from app.domain.cart import reprice
from app.domain.schemas import CartLineItem, Identity
from app.services.cart_tracking_service import CartTrackingService


class FlakyStorefrontClient(StorefrontClient):
    """Prawdziwe API przez TestClient, z mozliwoscia zepsucia wybranych wywolan."""

    def __init__(self, http):
        super().__init__(base_url="http://testserver", timeout=1, session=http)
        self.fail_convert = False
        self.fail_get = False

    def convert_guest_to_user(self, guest_token, user_id):
        if self.fail_convert:
            raise ConnectionError("API down")
        return super().convert_guest_to_user(guest_token, user_id)

    def get_cart(self, identity):
        if self.fail_get:
            raise ConnectionError("API down")
        return super().get_cart(identity)


def item(product_id, qty=1, price="10.00") -> CartLineItem:
    return CartLineItem(product_id=product_id, unit_price=Decimal(price), quantity=qty)


def quantities(session: CartSession) -> dict:
    return {l.product_id: l.quantity for l in session.store.snapshot.lines}


def saved(backend, **identity):
    record = backend.get_cart(Identity(**identity))
    if record is None:
        return None
    return {l.product_id: l.quantity for l in record.cart_snapshot.lines}


def track(db, *lines, **identity):
    CartTrackingService(db).track_cart(Identity(**identity), reprice(list(lines), None))


@pytest.fixture()
def backend(client):
    return FlakyStorefrontClient(client)


@pytest.fixture()
def session(backend, timers):
    cart = CartSession(backend=backend, guest_token="guest_1", timer_factory=timers)
    cart.on_auth_state(True, None)
    yield cart
    cart.close()


class TestRestoreCart:
    def test_saved_guest_cart_is_loaded(self, db, backend, timers):
        track(db, item("A"), guest_token="guest_1")
        cart = CartSession(backend=backend, guest_token="guest_1", timer_factory=timers)

        cart.on_auth_state(True, None)

        assert quantities(cart) == {"A": 1}
        assert cart.identity.is_authenticated is False
        assert timers.created == []

    def test_local_lines_join_saved_cart(self, db, backend, timers):
        track(db, item("A"), guest_token="guest_1")
        cart = CartSession(backend=backend, guest_token="guest_1", timer_factory=timers)
        cart.store.add_item(item("B"))

        cart.on_auth_state(True, None)

        assert quantities(cart) == {"A": 1, "B": 1}
        assert saved(backend, guest_token="guest_1") == {"A": 1, "B": 1}

    def test_restore_failure_keeps_local_cart(self, backend, timers):
        cart = CartSession(backend=backend, guest_token="guest_1", timer_factory=timers)
        cart.store.add_item(item("B"))
        backend.fail_get = True

        cart.on_auth_state(True, None)

        assert quantities(cart) == {"B": 1}
        assert cart.identity.is_authenticated is False


class TestSignIn:
    def test_saved_guest_cart_survives_sign_in(self, db, backend, timers):
        track(db, item("A"), guest_token="guest_1")
        track(db, item("B", 2), user_id="user_1")
        cart = CartSession(backend=backend, guest_token="guest_1", timer_factory=timers)

        cart.on_auth_state(True, None)
        cart.on_auth_state(True, "user_1")

        assert quantities(cart) == {"A": 1, "B": 2}
        assert saved(backend, user_id="user_1") == {"A": 1, "B": 2}
        assert saved(backend, guest_token="guest_1") is None
        assert cart.identity_state.user_id == "user_1"
        assert cart.identity_state.guest_token is None
        assert cart.identity.is_authenticated is True

    def test_unsynced_guest_changes_are_merged(self, db, session, backend, timers):
        track(db, item("B", 2), user_id="user_1")
        session.store.add_item(item("A"))
        assert session.sync.pending

        session.on_auth_state(True, "user_1")

        assert quantities(session) == {"A": 1, "B": 2}
        assert saved(backend, user_id="user_1") == {"A": 1, "B": 2}
        assert not session.sync.pending

    def test_same_line_is_not_counted_twice(self, db, session, backend):
        track(db, item("A", 2), user_id="user_1")
        session.store.add_item(item("A"))
        session.sync.flush()

        session.on_auth_state(True, "user_1")

        assert quantities(session) == {"A": 3}
        assert saved(backend, user_id="user_1") == {"A": 3}

    def test_sign_in_without_previous_cart(self, session, backend):
        session.store.add_item(item("A", 2))

        session.on_auth_state(True, "user_1")

        assert quantities(session) == {"A": 2}
        assert saved(backend, user_id="user_1") == {"A": 2}

    def test_returning_user_gets_saved_cart(self, db, backend, timers):
        track(db, item("B", 2), user_id="user_1")
        cart = CartSession(backend=backend, timer_factory=timers)

        cart.on_auth_state(True, "user_1")

        assert quantities(cart) == {"B": 2}
        assert cart.identity_state.guest_token is None

    def test_coupon_is_revalidated_on_merged_subtotal(self, db, session, backend, make_coupon):
        make_coupon()
        track(db, item("B", 2), user_id="user_1")
        session.store.add_item(item("A"))
        session.store.apply_coupon("SAVE10")

        session.on_auth_state(True, "user_1")

        assert session.store.subtotal == Decimal("30.00")
        assert session.store.applied_coupon.code == "SAVE10"
        assert session.store.snapshot.discount_amount == Decimal("3.00")

    def test_auth_still_loading_is_deferred(self, backend, timers):
        cart = CartSession(backend=backend, guest_token="guest_1", timer_factory=timers)
        cart.store.add_item(item("A"))

        cart.on_auth_state(False, "user_1")

        assert cart.identity_state.guest_token == "guest_1"
        assert saved(backend, user_id="user_1") is None

        cart.on_auth_state(True, "user_1")
        assert saved(backend, user_id="user_1") == {"A": 1}
        assert quantities(cart) == {"A": 1}

    def test_failed_conversion_keeps_guest_token(self, session, backend):
        session.store.add_item(item("A"))
        backend.fail_convert = True

        session.on_auth_state(True, "user_1")

        assert session.identity_state.guest_token == "guest_1"
        assert session.identity_state.user_id is None
        assert quantities(session) == {"A": 1}
        assert session.identity.is_authenticated is False

        backend.fail_convert = False
        session.on_auth_state(True, "user_1")

        assert session.identity.is_authenticated is True
        assert quantities(session) == {"A": 1}
        assert saved(backend, user_id="user_1") == {"A": 1}


class TestSignOut:
    def test_sign_out_starts_fresh_guest_cart(self, session, backend, timers):
        session.on_auth_state(True, "user_1")
        session.store.add_item(item("A"))

        session.on_auth_state(True, None)

        assert session.identity_state.user_id is None
        assert session.identity_state.guest_token not in (None, "guest_1")
        assert session.store.snapshot.is_empty
        assert timers.created[-1].canceled
        assert saved(backend, user_id="user_1") is None

    def test_switching_accounts(self, session, backend):
        session.on_auth_state(True, "user_1")
        session.store.add_item(item("A"))
        session.sync.flush()

        session.on_auth_state(True, "user_2")

        assert session.identity_state.user_id == "user_2"
        assert quantities(session) == {}
        assert saved(backend, user_id="user_1") == {"A": 1}

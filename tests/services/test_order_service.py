from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.data.models.order import OrderModel
from app.domain.cart import reprice
from app.domain.errors import (
    InvalidStatusTransition,
    MaterializationError,
    NotFoundError,
    PaymentSessionNotFound,
)
from app.domain.order_status import OrderStatus
from app.domain.schemas import CartLineItem, Identity
from app.services.cart_tracking_service import CartTrackingService
from app.services.order_service import OrderService


@pytest.fixture()
def service(db, payment_client, notifier):
    return OrderService(db, payment_client=payment_client, notification_service=notifier)


def order_count(db) -> int:
    return db.execute(select(func.count()).select_from(OrderModel)).scalar_one()


class TestMaterializeOrder:
    def test_creates_order_from_paid_session(self, service, payment_client, notifier, make_session):
        payment_client.add(make_session())

        order, created = service.materialize_order_from_session("cs_paid_1")

        assert created is True
        assert order.status == OrderStatus.PAID
        assert order.source_session_id == "cs_paid_1"
        assert order.subtotal == Decimal("150.00")
        assert order.tax == Decimal("13.50")
        assert order.total == Decimal("163.50")
        assert order.currency == "usd"
        assert len(order.items) == 2
        assert {i.product_id: i.total_price for i in order.items} == {"p1": Decimal("100.00"), "p2": Decimal("50.00")}
        assert notifier.sent == [(order.id, None, "ada@example.com")]

    def test_guest_identity_is_kept(self, service, payment_client, make_session):
        payment_client.add(make_session(guest_token="guest_42"))

        order, _ = service.materialize_order_from_session("cs_paid_1")

        assert order.user_id is None
        assert order.guest_token == "guest_42"
        assert order.guest_email == "ada@example.com"

    def test_user_order_has_no_guest_fields(self, service, payment_client, make_session):
        payment_client.add(make_session(user_id="user_1"))

        order, _ = service.materialize_order_from_session("cs_paid_1")

        assert order.user_id == "user_1"
        assert order.guest_token is None
        assert order.guest_email is None

    def test_repeated_calls_return_the_same_order(self, db, service, payment_client, notifier, make_session):
        payment_client.add(make_session())

        first, created_first = service.materialize_order_from_session("cs_paid_1")
        second, created_second = service.materialize_order_from_session("cs_paid_1")

        assert created_first is True
        assert created_second is False
        assert first.id == second.id
        assert order_count(db) == 1
        assert payment_client.fetches == ["cs_paid_1"]
        assert len(notifier.sent) == 1

    def test_coupon_usage_counted_once(self, db, service, payment_client, make_coupon, make_session):
        coupon = make_coupon()
        payment_client.add(make_session(coupon_id=coupon.id, discount="15.00"))

        order, _ = service.materialize_order_from_session("cs_paid_1")
        service.materialize_order_from_session("cs_paid_1")

        db.refresh(coupon)
        assert coupon.current_uses == 1
        assert order.coupon_id == coupon.id
        assert order.discount == Decimal("15.00")
        assert order.total == Decimal("148.50")

    def test_lost_race_returns_winner(self, db, service, payment_client, notifier, make_coupon, make_session, monkeypatch):
        coupon = make_coupon()
        payment_client.add(make_session(coupon_id=coupon.id, discount="15.00"))
        winner, _ = service.materialize_order_from_session("cs_paid_1")

        # drugi request nie widzi jeszcze zamowienia w szybkiej sciezce
        late = OrderService(db, payment_client=payment_client, notification_service=notifier)
        original = late.repo.get_by_session
        calls = []

        def stale_then_real(session_id):
            calls.append(session_id)
            return None if len(calls) == 1 else original(session_id)

        monkeypatch.setattr(late.repo, "get_by_session", stale_then_real)

        order, created = late.materialize_order_from_session("cs_paid_1")

        assert created is False
        assert order.id == winner.id
        assert order_count(db) == 1
        assert len(notifier.sent) == 1
        db.refresh(coupon)
        assert coupon.current_uses == 1

    def test_marks_tracked_cart_completed(self, db, service, payment_client, make_session):
        tracking = CartTrackingService(db)
        cart = reprice([CartLineItem(product_id="p1", unit_price=Decimal("50.00"), quantity=3)], None)
        tracking.track_cart(Identity(user_id="user_1"), cart)
        payment_client.add(make_session(user_id="user_1"))

        service.materialize_order_from_session("cs_paid_1")

        record = tracking.get_cart(Identity(user_id="user_1"))
        assert record.checkout_started is True
        assert record.checkout_completed is True

    def test_unknown_coupon_is_not_linked(self, service, payment_client, make_session):
        payment_client.add(make_session(coupon_id="no-such-coupon", discount="15.00"))

        order, created = service.materialize_order_from_session("cs_paid_1")

        assert created is True
        assert order.coupon_id is None
        assert order.discount == Decimal("15.00")

    def test_notification_failure_does_not_undo_order(self, db, payment_client, make_session):
        class BrokenNotifier:
            def send_order_confirmation(self, order_id, user_id, email):
                raise ConnectionError("broker down")

        payment_client.add(make_session())
        svc = OrderService(db, payment_client=payment_client, notification_service=BrokenNotifier())

        order, created = svc.materialize_order_from_session("cs_paid_1")

        assert created is True
        assert order_count(db) == 1

    def test_unknown_session(self, db, service):
        with pytest.raises(PaymentSessionNotFound):
            service.materialize_order_from_session("cs_missing")
        assert order_count(db) == 0

    def test_unpaid_session(self, db, service, payment_client, make_session):
        payment_client.add(make_session(status="open", payment_status="unpaid"))

        with pytest.raises(MaterializationError, match="Payment not completed"):
            service.materialize_order_from_session("cs_paid_1")
        assert order_count(db) == 0

    def test_line_items_must_match_subtotal(self, db, service, payment_client, make_session):
        payment_client.add(make_session(amount_subtotal="999.00"))

        with pytest.raises(MaterializationError, match="does not match subtotal"):
            service.materialize_order_from_session("cs_paid_1")
        assert order_count(db) == 0

    def test_session_without_items(self, service, payment_client, make_session):
        payment_client.add(make_session(line_items=[]))

        with pytest.raises(MaterializationError):
            service.materialize_order_from_session("cs_paid_1")

    def test_session_without_buyer(self, service, payment_client, make_session):
        payment_client.add(make_session(email=None))

        with pytest.raises(MaterializationError, match="buyer identity"):
            service.materialize_order_from_session("cs_paid_1")


class TestOrderQueries:
    def test_get_by_session_checks_owner(self, service, payment_client, make_session):
        payment_client.add(make_session(user_id="user_1"))
        service.materialize_order_from_session("cs_paid_1")

        assert service.get_order_by_session("cs_paid_1", "user_1").user_id == "user_1"
        with pytest.raises(PermissionError):
            service.get_order_by_session("cs_paid_1", "user_2")

    def test_guest_order_needs_matching_token_or_email(self, service, payment_client, make_session):
        payment_client.add(make_session(guest_token="guest_abc", email="Ada@Example.com"))
        order, _ = service.materialize_order_from_session("cs_paid_1")

        # strona sukcesu bez logowania: samo id sesji
        assert service.get_order_by_session("cs_paid_1").id == order.id
        assert service.get_order_by_session("cs_paid_1", "user_1", guest_token="guest_abc").id == order.id
        assert service.get_order_by_session("cs_paid_1", "user_1", email=" ada@example.com").id == order.id

        with pytest.raises(PermissionError):
            service.get_order_by_session("cs_paid_1", "user_1")
        with pytest.raises(PermissionError):
            service.get_order_by_session("cs_paid_1", "user_1", guest_token="guest_other", email="eve@example.com")

    def test_get_by_unknown_session(self, service):
        assert service.get_order_by_session("cs_missing") is None

    def test_guest_lookup_by_email(self, service, payment_client, make_session):
        payment_client.add(make_session())
        order, _ = service.materialize_order_from_session("cs_paid_1")

        assert service.get_guest_order(order.id, " ADA@example.com ").id == order.id
        with pytest.raises(NotFoundError):
            service.get_guest_order(order.id, "eve@example.com")

    def test_claim_guest_orders(self, service, payment_client, make_session):
        payment_client.add(make_session("cs_1"))
        payment_client.add(make_session("cs_2", guest_token="guest_other"))
        payment_client.add(make_session("cs_3", user_id="user_9"))
        for session_id in ("cs_1", "cs_2", "cs_3"):
            service.materialize_order_from_session(session_id)

        assert service.claim_guest_orders("user_1", guest_email="ada@example.com").claimed == 2
        assert service.claim_guest_orders("user_1", guest_email="ada@example.com").claimed == 0

        order = service.get_order_by_session("cs_1")
        assert order.user_id == "user_1"
        assert order.guest_email == "ada@example.com"

    def test_claim_by_token(self, service, payment_client, make_session):
        payment_client.add(make_session("cs_1", guest_token="guest_42", email="x@example.com"))
        service.materialize_order_from_session("cs_1")

        assert service.claim_guest_orders("user_1", guest_token="guest_42").claimed == 1


class TestOrderStatus:
    def test_forward_transition(self, service, payment_client, make_session):
        payment_client.add(make_session())
        order, _ = service.materialize_order_from_session("cs_paid_1")

        updated = service.update_order_status(order.id, OrderStatus.SHIPPED)
        assert updated.status == OrderStatus.SHIPPED

        with pytest.raises(InvalidStatusTransition):
            service.update_order_status(order.id, OrderStatus.PAID)

    def test_unknown_order(self, service):
        with pytest.raises(NotFoundError):
            service.update_order_status("missing", OrderStatus.SHIPPED)


class TestRefund:
    def test_refund_by_payment_intent(self, service, payment_client, make_session):
        payment_client.add(make_session())
        order, _ = service.materialize_order_from_session("cs_paid_1")

        refunded = service.refund_by_payment_intent("pi_cs_paid_1")

        assert refunded.id == order.id
        assert refunded.status == OrderStatus.REFUNDED

    def test_refund_twice_is_rejected(self, service, payment_client, make_session):
        payment_client.add(make_session())
        service.materialize_order_from_session("cs_paid_1")
        service.refund_by_payment_intent("pi_cs_paid_1")

        with pytest.raises(InvalidStatusTransition):
            service.refund_by_payment_intent("pi_cs_paid_1")

    def test_unknown_payment_intent(self, service):
        with pytest.raises(NotFoundError):
            service.refund_by_payment_intent("pi_missing")

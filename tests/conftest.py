import os

# baza w pamieci i celery bez brokera, ustawione przed importem app.*
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.api.routers.orders import get_notification_service, get_payment_client  # noqa: E402
from app.data.database import Base, SessionLocal, engine  # noqa: E402
from app.data.models.coupon import CouponModel  # noqa: E402
from app.domain.errors import PaymentSessionNotFound  # noqa: E402
from app.domain.schemas import PaymentSession  # noqa: E402
from app.main import app  # noqa: E402
from app.repos.coupon_repo import CouponRepo  # noqa: E402


class FakePaymentClient:
    def __init__(self):
        self.sessions = {}
        self.fetches = []

    def add(self, session: dict) -> dict:
        self.sessions[session["id"]] = session
        return session

    def fetch_session(self, session_id: str) -> PaymentSession:
        self.fetches.append(session_id)
        if session_id not in self.sessions:
            raise PaymentSessionNotFound(f"Payment session {session_id} not found")
        return PaymentSession.model_validate(self.sessions[session_id])


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, order_id, user_id, email):
        self.sent.append((order_id, user_id, email))


class FakeTimer:
    """threading.Timer bez watku - test sam decyduje kiedy timer 'odpala'."""

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.canceled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.canceled = True

    def fire(self):
        if not self.canceled:
            self.function(*self.args)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def payment_client():
    return FakePaymentClient()


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def client(payment_client, notifier):
    app.dependency_overrides[get_payment_client] = lambda: payment_client
    app.dependency_overrides[get_notification_service] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def timers():
    created = []

    def factory(interval, function, args=()):
        timer = FakeTimer(interval, function, args)
        created.append(timer)
        return timer

    factory.created = created
    return factory


@pytest.fixture()
def make_coupon(db):
    def _make(
        code="SAVE10",
        discount_type="percentage",
        discount_value="10",
        min_purchase="0",
        max_uses=None,
        current_uses=0,
        is_active=True,
        starts_at=None,
        expires_at=None,
    ) -> CouponModel:
        return CouponRepo(db).create(
            CouponModel(
                code=code,
                discount_type=discount_type,
                discount_value=Decimal(discount_value),
                min_purchase=Decimal(min_purchase),
                max_uses=max_uses,
                current_uses=current_uses,
                is_active=is_active,
                starts_at=starts_at,
                expires_at=expires_at,
            )
        )

    return _make


@pytest.fixture()
def make_session():
    def _make(
        session_id="cs_paid_1",
        user_id=None,
        guest_token="guest_abc",
        email="Ada@Example.com",
        coupon_id=None,
        discount="0.00",
        tax="13.50",
        status="complete",
        payment_status="paid",
        line_items=None,
        amount_subtotal=None,
    ) -> dict:
        if line_items is None:
            line_items = [
                {"product_id": "p1", "name": "Print 30x40", "quantity": 2, "unit_price": "50.00", "size_name": "30x40"},
                {"product_id": "p2", "variation_id": "p2-oak", "name": "Framed print", "quantity": 1,
                 "unit_price": "50.00", "frame_name": "Oak"},
            ]

        subtotal = sum((Decimal(li["unit_price"]) * li["quantity"] for li in line_items), Decimal("0.00"))
        if amount_subtotal is not None:
            subtotal = Decimal(amount_subtotal)
        total = subtotal - Decimal(discount) + Decimal(tax)

        metadata = {"user_id": user_id, "guest_token": None if user_id else guest_token, "coupon_id": coupon_id}
        return {
            "id": session_id,
            "status": status,
            "payment_status": payment_status,
            "currency": "USD",
            "amount_subtotal": str(subtotal),
            "amount_tax": tax,
            "amount_shipping": "0.00",
            "amount_discount": discount,
            "amount_total": str(total),
            "line_items": line_items,
            "shipping_address": {"line1": "1 Main St", "city": "Springfield", "country": "US"},
            "customer_email": email,
            "payment_intent_id": f"pi_{session_id}",
            "metadata": metadata,
        }

    return _make

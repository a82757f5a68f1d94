# app/services/order_service.py
from decimal import Decimal
from typing import Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.data.models.order_item import OrderItemModel
from app.domain.errors import MaterializationError, NotFoundError
from app.domain.order_status import INITIAL_STATUS, OrderStatus, ensure_transition
from app.domain.schemas import ClaimOrdersOut, OrderOut, PaymentSession, money
from app.repos.cart_tracking_repo import CartTrackingRepo
from app.repos.order_repo import OrderRepo
from app.services.coupon_service import CouponService
from app.services.notification_service import NotificationService
from app.services.payment_client import PaymentClient
from app.utils.dates import utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


class OrderService:
    """
    Serwis odpowiedzialny za domenę zamówień.

    Zamówienie powstaje wyłącznie z opłaconej sesji płatności, najwyżej raz na sesję.
    Gwarancją jest UNIQUE na orders.source_session_id, a nie wcześniejszy SELECT -
    sprawdzenie istnienia to tylko szybka ścieżka dla powtórzonych wywołań.
    """

    def __init__(
        self,
        db: Session,
        payment_client: PaymentClient | None = None,
        notification_service: NotificationService | None = None,
        coupon_service: CouponService | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.tracking_repo = CartTrackingRepo(db)
        self.payment_client = payment_client or PaymentClient()
        self.notification_service = notification_service or NotificationService()
        self.coupon_service = coupon_service or CouponService(db)

    def materialize_order_from_session(self, session_id: str) -> Tuple[OrderOut, bool]:
        """
        Use Case: zamówienie z sesji płatności.

        1. Jeśli zamówienie dla sesji istnieje - zwraca je (idempotencja)
        2. Pobiera i weryfikuje sesję u procesora płatności
        3. W jednej transakcji: zamówienie + pozycje, licznik kuponu, checkout_completed
        4. Przegrany wyścig (IntegrityError) - zwraca zamówienie zwycięzcy
        5. Wysyła potwierdzenie (async)

        Zwraca (zamówienie, czy_utworzone_teraz).
        """
        existing = self.repo.get_by_session(session_id)
        if existing:
            logger.info(f"Order {existing.id} already exists for session {session_id}")
            return self._to_out(existing), False

        session = self.payment_client.fetch_session(session_id)
        order = self._build_order(session)

        try:
            self.repo.add_order(order)

            # jedyne miejsce gdzie rosnie licznik kuponu - wykona sie max raz na sesje
            if order.coupon_id:
                self.coupon_service.increment_usage(order.coupon_id)

            self._mark_checkout_completed(session)
            self.repo.commit()

        except IntegrityError:
            # rownolegly request dla tej samej sesji wygral wyscig
            self.repo.rollback()
            winner = self.repo.get_by_session(session_id)
            if winner is None:
                logger.error(f"Order insert failed for session {session_id} and no order exists")
                raise MaterializationError(f"Could not create order for session {session_id}")

            logger.info(f"Concurrent materialization for session {session_id}, returning order {winner.id}")
            return self._to_out(winner), False

        logger.info(
            f"Order {order.id} created from session {session_id}: "
            f"{len(order.items)} items, total {order.total} {order.currency}"
        )

        self._notify(order)
        return self._to_out(order), True

    def get_order_by_session(
        self,
        session_id: str,
        user_id: str | None = None,
        guest_token: str | None = None,
        email: str | None = None,
    ) -> OrderOut | None:
        """
        Bez user_id wystarcza id sesji (strona sukcesu, ta sama wiedza co przy materializacji).
        Zalogowany dostaje zamowienie goscia tylko z pasujacym guest_token albo emailem.
        """
        order = self.repo.get_by_session(session_id)
        if not order:
            return None

        if user_id:
            if order.user_id and order.user_id != user_id:
                raise PermissionError("Order belongs to another user")
            if order.user_id is None and not self._matches_guest(order, guest_token, email):
                raise PermissionError("Guest order does not match the caller")

        return self._to_out(order)

    def get_guest_order(self, order_id: str, email: str) -> OrderOut:
        order = self.repo.get_guest_order(order_id, email.strip().lower())
        if not order:
            raise NotFoundError("Order not found")
        return self._to_out(order)

    def claim_guest_orders(
        self,
        user_id: str,
        guest_email: str | None = None,
        guest_token: str | None = None,
    ) -> ClaimOrdersOut:
        """
        Use Case: po założeniu konta przypisz wcześniejsze zamówienia gościa.
        guest_email / guest_token zostają na zamówieniu.
        """
        email = guest_email.strip().lower() if guest_email else None
        orders = self.repo.list_unclaimed_guest_orders(email, guest_token)

        claimed = self.repo.assign_user([o.id for o in orders], user_id)
        self.repo.commit()

        logger.info(f"User {user_id} claimed {claimed} guest orders")
        return ClaimOrdersOut(claimed=claimed)

    def update_order_status(self, order_id: str, status: OrderStatus) -> OrderOut:
        """
        Use Case: zmiana statusu przez admina (poza materializacją).
        """
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        previous = order.status
        ensure_transition(previous, status)

        updated = self.repo.update_order_status(order_id, OrderStatus(status).value)
        logger.info(f"Order {order_id} status {previous} -> {updated.status}")
        return self._to_out(updated)

    def refund_by_payment_intent(self, payment_intent_id: str) -> OrderOut:
        """
        Use Case: zwrot zgloszony przez procesor platnosci (webhook).
        """
        order = self.repo.get_by_payment_intent(payment_intent_id)
        if not order:
            raise NotFoundError(f"No order for payment intent {payment_intent_id}")

        refunded = self.update_order_status(order.id, OrderStatus.REFUNDED)
        logger.info(f"Order {order.id} refunded (payment intent {payment_intent_id})")
        return refunded

    def _build_order(self, session: PaymentSession) -> OrderModel:
        if not session.is_paid:
            raise MaterializationError("Payment not completed")

        if not session.line_items:
            raise MaterializationError("Payment session has no line items")

        meta = session.metadata
        if not meta.user_id and not session.customer_email:
            raise MaterializationError("Payment session has no buyer identity")

        items = []
        for li in session.line_items:
            if li.quantity < 1 or li.unit_price < 0:
                raise MaterializationError(f"Malformed line item for product {li.product_id}")

            unit_price = money(li.unit_price)
            items.append(
                OrderItemModel(
                    product_id=li.product_id,
                    variation_id=li.variation_id,
                    name=li.name,
                    size_name=li.size_name,
                    frame_name=li.frame_name,
                    quantity=li.quantity,
                    unit_price=unit_price,
                    total_price=money(unit_price * li.quantity),
                )
            )

        subtotal = money(session.amount_subtotal)
        items_total = money(sum((i.total_price for i in items), Decimal("0.00")))
        if items_total != subtotal:
            raise MaterializationError(f"Line items total {items_total} does not match subtotal {subtotal}")

        discount = money(session.amount_discount)
        tax = money(session.amount_tax)
        shipping = money(session.amount_shipping)
        if discount < 0 or tax < 0 or shipping < 0 or discount > subtotal:
            raise MaterializationError("Invalid session amounts")

        total = money(subtotal - discount + tax + shipping)
        if session.amount_total is not None and money(session.amount_total) != total:
            raise MaterializationError(f"Session total {session.amount_total} does not match computed total {total}")

        coupon_id = meta.coupon_id
        if coupon_id and not self.coupon_service.repo.get(coupon_id):
            logger.warning(f"Session {session.id} references unknown coupon {coupon_id}")
            coupon_id = None

        is_guest = not meta.user_id
        now = utcnow()

        return OrderModel(
            source_session_id=session.id,
            user_id=meta.user_id,
            guest_token=meta.guest_token if is_guest else None,
            guest_email=session.customer_email.strip().lower() if is_guest else None,
            status=INITIAL_STATUS.value,
            currency=session.currency.lower(),
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            discount=discount,
            total=total,
            coupon_id=coupon_id,
            payment_intent_id=session.payment_intent_id,
            shipping_address=session.shipping_address,
            created_at=now,
            updated_at=now,
            items=items,
        )

    def _mark_checkout_completed(self, session: PaymentSession) -> None:
        meta = session.metadata
        if meta.user_id:
            record = self.tracking_repo.get_by_user(meta.user_id)
        elif meta.guest_token:
            record = self.tracking_repo.get_by_guest_token(meta.guest_token)
        else:
            record = None

        if record:
            record.checkout_started = True
            record.checkout_completed = True
            record.updated_at = utcnow()

    def _notify(self, order: OrderModel) -> None:
        try:
            self.notification_service.send_order_confirmation(order.id, order.user_id, order.guest_email)
        except Exception as e:
            # zamowienie juz jest, brak maila nie moze go cofnac
            logger.warning(f"Failed to queue confirmation for order {order.id}: {e}")

    @staticmethod
    def _matches_guest(order: OrderModel, guest_token: str | None, email: str | None) -> bool:
        if guest_token and order.guest_token == guest_token:
            return True
        return bool(email) and order.guest_email == email.strip().lower()

    @staticmethod
    def _to_out(order: OrderModel) -> OrderOut:
        return OrderOut.model_validate(order)

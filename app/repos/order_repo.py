# app/repos/order_repo.py
from typing import List

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        """
        Flush bez commita: INSERT leci od razu, wiec naruszenie unikalnosci
        source_session_id wychodzi tutaj jako IntegrityError.
        """
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: str) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_session(self, session_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.source_session_id == session_id)
        ).scalar_one_or_none()

    def get_by_payment_intent(self, payment_intent_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.payment_intent_id == payment_intent_id)
        ).scalar_one_or_none()

    def get_guest_order(self, order_id: str, email: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(
                OrderModel.id == order_id,
                OrderModel.guest_email == email,
            )
        ).scalar_one_or_none()

    def list_unclaimed_guest_orders(self, guest_email: str | None, guest_token: str | None) -> List[OrderModel]:
        filters = []
        if guest_email:
            filters.append(OrderModel.guest_email == guest_email)
        if guest_token:
            filters.append(OrderModel.guest_token == guest_token)

        if not filters:
            return []

        stmt = select(OrderModel).where(OrderModel.user_id.is_(None), or_(*filters))
        return list(self.db.execute(stmt).scalars())

    def assign_user(self, order_ids: List[str], user_id: str) -> int:
        if not order_ids:
            return 0
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id.in_(order_ids), OrderModel.user_id.is_(None))
            .values(user_id=user_id)
        )
        return result.rowcount

    def update_order_status(self, order_id: str, status: str) -> OrderModel | None:
        order = self.get_order(order_id)
        if order:
            order.status = status
            self.db.commit()
            self.db.refresh(order)
        return order

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

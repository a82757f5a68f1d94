# app/services/notification_service.py
from app.celery_worker import celery_app
from app.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Serwis do wysyłania powiadomień.
    Używa Celery do asynchronicznego przetwarzania.
    """

    @staticmethod
    def send_order_confirmation(order_id: str, user_id: str | None, email: str | None):
        """
        Potwierdzenie zamówienia - wołane raz, po utworzeniu zamówienia z sesji.
        """
        send_order_confirmation_task.delay(order_id, user_id, email)


@celery_app.task(name="app.services.notification_service.send_order_confirmation_task")
def send_order_confirmation_task(order_id: str, user_id: str | None, email: str | None):
    """
    Celery task - w prawdziwym systemie wysłałby email przez dostawcę.
    Teraz tylko loguje.
    """
    recipient = f"user {user_id}" if user_id else f"guest {email}"
    logger.info(f"[NOTIFICATION] Order {order_id} confirmed for {recipient}")

    return {"order_id": order_id, "user_id": user_id, "email": email, "status": "sent"}

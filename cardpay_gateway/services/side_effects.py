"""Post-commit notification and audit activity emission"""

import logging
from typing import Any, Callable, Dict
from sqlalchemy.orm import Session

from cardpay_gateway.domain.models import PaymentSnapshot, PaymentStatus
from cardpay_gateway.infrastructure.database.repositories import ActivityRepository, NotificationRepository
from cardpay_gateway.infrastructure.observability.metrics import side_effect_failures_counter
from cardpay_gateway.utils.money import format_amount

logger = logging.getLogger(__name__)

ACTIVITY_TYPE_PAYMENT = "PAYMENT"


def payment_activity(payment: PaymentSnapshot) -> Dict[str, Any]:
    """Activity fields for a settled payment"""
    return {
        "type": ACTIVITY_TYPE_PAYMENT,
        "title": "Payment Made",
        "description": f"Payment of {format_amount(payment.amount_cents)} made via {payment.method}",
        "details": {
            "payment_id": payment.payment_id,
            "amount_cents": payment.amount_cents,
            "method": payment.method,
            "card_id": payment.card_id,
        },
        "status": payment.status.value,
    }


def payment_notification(payment: PaymentSnapshot) -> Dict[str, str]:
    """Notification fields for a settled payment"""
    amount = format_amount(payment.amount_cents)
    card = f"card ending in {payment.card_last4}" if payment.card_last4 else "your card"

    if payment.status is PaymentStatus.SUCCESS:
        return {
            "type": "PAYMENT_SUCCESS",
            "title": "Payment Successful",
            "message": f"Your payment of {amount} for {card} was successful.",
        }
    return {
        "type": "PAYMENT_FAILED",
        "title": "Payment Failed",
        "message": f"Your payment of {amount} for {card} could not be processed. Please try again.",
    }


class SideEffectDispatcher:
    """
    Emits one notification and one activity per settled payment.

    Runs after the settlement transaction has committed. Each effect gets its
    own session and error boundary: a failure is logged and counted, never
    raised, and never touches the payment or statement state.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def dispatch(self, payment: PaymentSnapshot) -> None:
        if not payment.status.is_terminal:
            return
        self._emit("notification", payment, self._write_notification)
        self._emit("activity", payment, self._write_activity)

    def _emit(self, effect: str, payment: PaymentSnapshot, write: Callable[[Session, PaymentSnapshot], None]) -> None:
        db = self.session_factory()
        try:
            write(db, payment)
            db.commit()
        except Exception as e:
            db.rollback()
            side_effect_failures_counter.labels(effect=effect).inc()
            logger.error(
                f"Failed to write {effect} for payment {payment.payment_id}: {e}",
                extra={"payment_id": payment.payment_id, "user_id": payment.user_id, "effect": effect},
            )
        finally:
            db.close()

    @staticmethod
    def _write_notification(db: Session, payment: PaymentSnapshot) -> None:
        NotificationRepository(db).create_notification(user_id=payment.user_id, **payment_notification(payment))

    @staticmethod
    def _write_activity(db: Session, payment: PaymentSnapshot) -> None:
        ActivityRepository(db).create_activity(user_id=payment.user_id, **payment_activity(payment))

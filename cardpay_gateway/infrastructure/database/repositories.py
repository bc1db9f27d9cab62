"""Data access layer for cards, statements, payments and side-effect records"""

import uuid
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from cardpay_gateway.infrastructure.database.models import Activity, Card, Notification, Payment, Statement
from cardpay_gateway.domain.models import AllocationResult, PaymentStatus, StatementBalance


class CardRepository:
    """Repository for cards"""

    def __init__(self, db: Session):
        self.db = db

    def get_owned_card(self, card_id: int, user_id: str) -> Optional[Card]:
        """Fetch a card only if it belongs to the user"""
        return (
            self.db.query(Card)
            .filter(Card.id == card_id, Card.user_id == user_id)
            .first()
        )

    def lock_for_settlement(self, card_id: int) -> Optional[Card]:
        """Row-lock the card so settlements against it run one at a time (no-op on SQLite)"""
        return (
            self.db.query(Card)
            .filter(Card.id == card_id)
            .with_for_update()
            .first()
        )


class StatementRepository:
    """Repository for billing statements"""

    def __init__(self, db: Session):
        self.db = db

    def get_unpaid_for_card(self, card_id: int) -> List[Statement]:
        """Unpaid statements, earliest due first"""
        return (
            self.db.query(Statement)
            .filter(Statement.card_id == card_id, Statement.is_paid.is_(False))
            .order_by(Statement.due_date.asc(), Statement.id.asc())
            .all()
        )

    def get_outstanding_balance(self, card_id: int) -> int:
        """Sum of unpaid statement balances, always computed fresh"""
        total = (
            self.db.query(func.coalesce(func.sum(Statement.balance_cents), 0))
            .filter(Statement.card_id == card_id, Statement.is_paid.is_(False))
            .scalar()
        )
        return int(total or 0)

    @staticmethod
    def to_balances(statements: List[Statement]) -> List[StatementBalance]:
        return [
            StatementBalance(statement_id=s.id, due_date=s.due_date, balance_cents=int(s.balance_cents))
            for s in statements
        ]

    def apply_allocation(self, statements: List[Statement], allocation: AllocationResult) -> None:
        """Write allocated balances back onto the loaded statement rows"""
        by_id = {s.id: s for s in statements}
        for item in allocation.allocations:
            statement = by_id[item.statement_id]
            statement.balance_cents = item.new_balance_cents
            statement.is_paid = item.paid
        self.db.flush()


class PaymentRepository:
    """Repository for payment records"""

    def __init__(self, db: Session):
        self.db = db

    def create_payment(
        self,
        user_id: str,
        card_id: Optional[int],
        amount_cents: int,
        method: str,
        idempotency_key: Optional[str] = None,
    ) -> Payment:
        """Persist a new PENDING payment"""
        db_payment = Payment(
            user_id=user_id,
            card_id=card_id,
            amount_cents=amount_cents,
            method=method,
            status=PaymentStatus.PENDING.value,
            idempotency_key=idempotency_key,
        )
        self.db.add(db_payment)
        self.db.flush()  # Get ID and surface unique-key violations without committing
        return db_payment

    def get_by_id(self, payment_id: uuid.UUID) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.id == payment_id).first()

    def get_for_user(self, payment_id: uuid.UUID, user_id: str) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.id == payment_id, Payment.user_id == user_id)
            .first()
        )

    def get_by_idempotency_key(self, user_id: str, idempotency_key: str) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == user_id, Payment.idempotency_key == idempotency_key)
            .first()
        )

    def list_for_user(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        card_id: Optional[int] = None,
    ) -> Tuple[List[Payment], int]:
        """Page through a user's payments, newest first"""
        query = self.db.query(Payment).filter(Payment.user_id == user_id)
        if status:
            query = query.filter(Payment.status == status)
        if card_id is not None:
            query = query.filter(Payment.card_id == card_id)

        total = query.count()
        payments = (
            query.order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return payments, total

    def transition_status(
        self,
        payment_id: uuid.UUID,
        status: PaymentStatus,
        external_id: Optional[str] = None,
    ) -> bool:
        """
        Move a PENDING payment to a terminal status.

        Conditional on the row still being PENDING, so a second resolution of
        the same payment updates nothing and returns False.
        """
        values: Dict[str, Any] = {"status": status.value, "updated_at": func.now()}
        if external_id is not None:
            values["external_id"] = external_id

        updated = (
            self.db.query(Payment)
            .filter(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING.value)
            .update(values, synchronize_session=False)
        )
        return updated == 1


class ActivityRepository:
    """Repository for the audit activity log"""

    def __init__(self, db: Session):
        self.db = db

    def create_activity(
        self,
        user_id: str,
        type: str,
        title: str,
        description: str,
        details: Optional[Dict[str, Any]] = None,
        status: str = "SUCCESS",
    ) -> Activity:
        db_activity = Activity(
            user_id=user_id,
            type=type,
            title=title,
            description=description,
            details=details or {},
            status=status,
        )
        self.db.add(db_activity)
        self.db.flush()
        return db_activity


class NotificationRepository:
    """Repository for in-app notifications"""

    def __init__(self, db: Session):
        self.db = db

    def create_notification(self, user_id: str, type: str, title: str, message: str) -> Notification:
        db_notification = Notification(user_id=user_id, type=type, title=title, message=message)
        self.db.add(db_notification)
        self.db.flush()
        return db_notification

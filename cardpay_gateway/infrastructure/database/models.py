"""SQLAlchemy ORM models for cards, statements, payments and their audit trail"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Card(Base):
    """Credit card owned by a single user"""

    __tablename__ = "card"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False, index=True)
    last4 = Column(Text, nullable=False)
    card_type = Column(Text, nullable=False, default="STANDARD")
    status = Column(Text, nullable=False, default="ACTIVE")
    credit_limit_cents = Column(BigInteger, nullable=False, default=10_000_000)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    statements = relationship("Statement", back_populates="card", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="card")


class Statement(Base):
    """Billing-cycle amount owed on a card"""

    __tablename__ = "statement"
    __table_args__ = (
        UniqueConstraint("card_id", "month", "year", name="uq_statement_card_cycle"),
        CheckConstraint("balance_cents >= 0", name="ck_statement_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("card.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    balance_cents = Column(BigInteger, nullable=False)
    min_due_cents = Column(BigInteger, nullable=False, default=0)
    is_paid = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    card = relationship("Card", back_populates="statements")


class Payment(Base):
    """One attempt to pay down a card's outstanding balance"""

    __tablename__ = "payment"
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_payment_user_idempotency_key"),
        CheckConstraint("amount_cents > 0", name="ck_payment_amount_positive"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Nullable for gateway payments not yet linked to a stored card
    card_id = Column(Integer, ForeignKey("card.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(Text, nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    method = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")
    external_id = Column(Text, nullable=True)
    idempotency_key = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    card = relationship("Card", back_populates="payments")


class Activity(Base):
    """Append-only audit record of user-visible events"""

    __tablename__ = "activity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False, index=True)
    type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    details = Column("metadata", JSON, nullable=True)
    status = Column(Text, nullable=False, default="SUCCESS")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Notification(Base):
    """In-app notification shown to the card holder"""

    __tablename__ = "notification"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False, index=True)
    type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

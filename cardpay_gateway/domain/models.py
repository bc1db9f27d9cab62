"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING

    @property
    def api_value(self) -> str:
        """Lowercase form used in API responses"""
        return self.value.lower()


class PaymentMethod(str, Enum):
    BANK = "bank"
    CARD = "card"
    INSTANT = "instant"
    GATEWAY = "gateway"

    @property
    def resolves_internally(self) -> bool:
        """Internal methods settle through the resolution strategy, gateway ones via webhook"""
        return self is not PaymentMethod.GATEWAY


class CardStatus(str, Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    SUSPENDED = "SUSPENDED"


@dataclass
class StatementBalance:
    """Unpaid statement as seen by the allocation algorithm"""

    statement_id: int
    due_date: date
    balance_cents: int


@dataclass
class StatementAllocation:
    """Portion of a payment applied to one statement"""

    statement_id: int
    applied_cents: int
    new_balance_cents: int
    paid: bool


@dataclass
class AllocationResult:
    """Outcome of applying one payment across a card's statement queue"""

    allocations: List[StatementAllocation] = field(default_factory=list)
    applied_cents: int = 0
    discarded_cents: int = 0  # overpay left after every statement was cleared


@dataclass(frozen=True)
class PaymentSnapshot:
    """Immutable view of a payment handed to strategies and side effects"""

    payment_id: str
    user_id: str
    card_id: Optional[int]
    card_last4: Optional[str]
    amount_cents: int
    method: str
    status: PaymentStatus
    external_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ResolutionOutcome:
    """Terminal status decided by a resolution strategy or webhook"""

    status: PaymentStatus
    external_id: Optional[str] = None


@dataclass
class SettlementResult:
    """Result of one resolution attempt"""

    payment_id: str
    status: PaymentStatus
    transitioned: bool  # False when the payment was already terminal
    allocation: Optional[AllocationResult] = None

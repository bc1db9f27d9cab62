"""Idempotency guard for payment creation"""

import logging
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cardpay_gateway.domain.exceptions import IdempotencyConflictError, IdempotencyUnavailableError
from cardpay_gateway.infrastructure.database.models import Payment
from cardpay_gateway.infrastructure.database.repositories import PaymentRepository
from cardpay_gateway.infrastructure.observability.metrics import idempotency_lookup_failures_counter

logger = logging.getLogger(__name__)


def normalize_key(raw: Optional[str]) -> Optional[str]:
    """Trim the client header; blank means no key"""
    if raw is None:
        return None
    key = raw.strip()
    return key or None


class IdempotencyGuard:
    """
    Maps a client-supplied key to the payment it already created.

    Keys are scoped to the payment-creation endpoint and the requesting user.
    When the lookup itself fails, best-effort mode proceeds as if there was no
    match (duplicates become possible); strict mode rejects the request.
    """

    def __init__(self, db: Session, strict: bool = False):
        self.db = db
        self.strict = strict

    def lookup(self, user_id: str, key: Optional[str]) -> Optional[Payment]:
        if key is None:
            return None

        try:
            return PaymentRepository(self.db).get_by_idempotency_key(user_id, key)
        except SQLAlchemyError as e:
            self.db.rollback()
            idempotency_lookup_failures_counter.inc()
            if self.strict:
                raise IdempotencyUnavailableError("Idempotency check unavailable, retry later") from e
            logger.warning(
                f"Idempotency check skipped: {e}",
                extra={"user_id": user_id, "idempotency_key": key},
            )
            return None

    @staticmethod
    def ensure_same_request(existing: Payment, card_id: Optional[int], amount_cents: int, method: str) -> None:
        """Reject reuse of a key for a different payment"""
        if (
            existing.card_id != card_id
            or int(existing.amount_cents) != amount_cents
            or existing.method != method
        ):
            raise IdempotencyConflictError("Idempotency key already used for a different payment")

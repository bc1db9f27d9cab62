"""Settlement engine - payment creation, resolution and statement application"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from cardpay_gateway.config import settings
from cardpay_gateway.domain.allocation import allocate_payment
from cardpay_gateway.domain.exceptions import (
    AmountExceedsBalanceError,
    CardInactiveError,
    CardNotFoundError,
    DomainException,
    InvalidAmountError,
    PaymentNotFoundError,
    PaymentValidationError,
    SettlementError,
)
from cardpay_gateway.domain.models import (
    AllocationResult,
    CardStatus,
    PaymentMethod,
    PaymentSnapshot,
    PaymentStatus,
    SettlementResult,
)
from cardpay_gateway.domain.resolution import ResolutionStrategy
from cardpay_gateway.infrastructure.database.models import Payment
from cardpay_gateway.infrastructure.database.repositories import (
    CardRepository,
    PaymentRepository,
    StatementRepository,
)
from cardpay_gateway.infrastructure.observability.logging import log_settlement
from cardpay_gateway.infrastructure.observability.metrics import (
    idempotent_replay_counter,
    payment_created_counter,
    payment_rejected_counter,
    record_settlement,
    settlement_counter,
    settlement_duration_histogram,
)
from cardpay_gateway.services.idempotency import IdempotencyGuard
from cardpay_gateway.services.side_effects import SideEffectDispatcher
from cardpay_gateway.utils.money import format_amount

logger = logging.getLogger(__name__)


@dataclass
class CreatedPayment:
    """Payment returned to the creation endpoint"""

    payment: Payment
    outstanding_balance_cents: int
    replayed: bool


def parse_payment_id(payment_id: str | uuid.UUID) -> uuid.UUID:
    if isinstance(payment_id, uuid.UUID):
        return payment_id
    try:
        return uuid.UUID(str(payment_id))
    except ValueError as e:
        raise PaymentNotFoundError("Payment not found") from e


def snapshot_of(
    payment: Payment,
    status: Optional[PaymentStatus] = None,
    external_id: Optional[str] = None,
) -> PaymentSnapshot:
    return PaymentSnapshot(
        payment_id=str(payment.id),
        user_id=payment.user_id,
        card_id=payment.card_id,
        card_last4=payment.card.last4 if payment.card is not None else None,
        amount_cents=int(payment.amount_cents),
        method=payment.method,
        status=status or PaymentStatus(payment.status),
        external_id=external_id if external_id is not None else payment.external_id,
        created_at=payment.created_at,
    )


class SettlementEngine:
    """
    Orchestrates a payment from request to terminal state.

    Flow:
    1. Idempotency guard short-circuits retried creation requests
    2. Card ownership, status and outstanding balance are validated
    3. Payment is stored PENDING and returned immediately
    4. Resolution (strategy or webhook) moves it to SUCCESS/FAILED and, on
       success, applies the amount to unpaid statements oldest-due first,
       all in one transaction
    5. Notification and activity are dispatched after commit
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: SideEffectDispatcher | None = None,
        idempotency_strict: bool | None = None,
        max_payment_cents: int | None = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or SideEffectDispatcher(session_factory)
        self.idempotency_strict = (
            settings.idempotency_strict if idempotency_strict is None else idempotency_strict
        )
        self.max_payment_cents = (
            settings.max_payment_cents if max_payment_cents is None else max_payment_cents
        )

    # Creation

    def create_payment(
        self,
        db: Session,
        user_id: str,
        card_id: int,
        amount_cents: int,
        method: str,
        idempotency_key: Optional[str] = None,
    ) -> CreatedPayment:
        """
        Validate and store a PENDING payment, or replay a keyed earlier one.

        Raises:
            PaymentValidationError: Bad amount/method or amount above outstanding balance
            CardNotFoundError: Unknown card or card owned by another user
            CardInactiveError: Card is blocked or suspended
            IdempotencyConflictError: Key reused with different parameters
            IdempotencyUnavailableError: Key lookup failed in strict mode
        """
        if amount_cents <= 0 or amount_cents > self.max_payment_cents:
            payment_rejected_counter.labels(reason="invalid_amount").inc()
            raise InvalidAmountError(
                f"Payment amount must be between 1 and {self.max_payment_cents} minor units"
            )
        try:
            method = PaymentMethod(method).value
        except ValueError as e:
            raise PaymentValidationError(f"Invalid payment method: {method}") from e

        guard = IdempotencyGuard(db, strict=self.idempotency_strict)
        existing = guard.lookup(user_id, idempotency_key)
        if existing is not None:
            return self._replay(db, existing, card_id, amount_cents, method)

        card = CardRepository(db).get_owned_card(card_id, user_id)
        if card is None:
            payment_rejected_counter.labels(reason="not_found").inc()
            raise CardNotFoundError("Card not found")
        if card.status != CardStatus.ACTIVE.value:
            payment_rejected_counter.labels(reason="inactive").inc()
            raise CardInactiveError("Card is not active")

        # Recomputed per request; concurrent settlements move it
        outstanding = StatementRepository(db).get_outstanding_balance(card.id)
        if amount_cents > outstanding:
            payment_rejected_counter.labels(reason="exceeds_balance").inc()
            raise AmountExceedsBalanceError(
                amount_cents,
                outstanding,
                f"Payment amount ({format_amount(amount_cents)}) cannot exceed "
                f"outstanding balance ({format_amount(outstanding)})",
            )

        try:
            payment = PaymentRepository(db).create_payment(
                user_id=user_id,
                card_id=card.id,
                amount_cents=amount_cents,
                method=method,
                idempotency_key=idempotency_key,
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            if idempotency_key is None:
                raise
            # Lost an insert race on the same key; answer with the winner
            existing = PaymentRepository(db).get_by_idempotency_key(user_id, idempotency_key)
            if existing is None:
                raise
            return self._replay(db, existing, card_id, amount_cents, method)

        payment_created_counter.labels(method=method).inc()
        return CreatedPayment(payment=payment, outstanding_balance_cents=outstanding, replayed=False)

    def _replay(
        self,
        db: Session,
        existing: Payment,
        card_id: int,
        amount_cents: int,
        method: str,
    ) -> CreatedPayment:
        # Settlement runs in other sessions; reload the current status
        db.refresh(existing)
        IdempotencyGuard.ensure_same_request(existing, card_id, amount_cents, method)
        outstanding = (
            StatementRepository(db).get_outstanding_balance(existing.card_id)
            if existing.card_id is not None
            else 0
        )
        idempotent_replay_counter.inc()
        return CreatedPayment(payment=existing, outstanding_balance_cents=outstanding, replayed=True)

    # Resolution

    def get_snapshot(self, payment_id: str | uuid.UUID) -> PaymentSnapshot:
        db = self.session_factory()
        try:
            payment = PaymentRepository(db).get_by_id(parse_payment_id(payment_id))
            if payment is None:
                raise PaymentNotFoundError("Payment not found")
            return snapshot_of(payment)
        finally:
            db.close()

    def resolve(
        self,
        payment_id: str | uuid.UUID,
        status: PaymentStatus,
        external_id: Optional[str] = None,
    ) -> SettlementResult:
        """
        Move a PENDING payment to its terminal status in one transaction.

        The status update goes first and is conditional on PENDING, so a
        repeated resolution changes nothing. On SUCCESS the card row is locked
        before unpaid statements are read, serializing settlements per card.

        Raises:
            PaymentNotFoundError: Unknown payment
            SettlementError: Storage failure; nothing was changed
        """
        status = PaymentStatus(status)
        if not status.is_terminal:
            raise PaymentValidationError("Resolution status must be SUCCESS or FAILED")

        payment_uuid = parse_payment_id(payment_id)
        start_time = time.time()
        allocation: Optional[AllocationResult] = None

        db = self.session_factory()
        try:
            payment_repo = PaymentRepository(db)
            payment = payment_repo.get_by_id(payment_uuid)
            if payment is None:
                raise PaymentNotFoundError("Payment not found")

            if not payment_repo.transition_status(payment_uuid, status, external_id):
                db.rollback()
                current = PaymentStatus(payment.status)
                record_settlement(current.value, transitioned=False)
                log_settlement(str(payment_uuid), current.value, False, 0, 0, (time.time() - start_time) * 1000)
                return SettlementResult(payment_id=str(payment_uuid), status=current, transitioned=False)

            if status is PaymentStatus.SUCCESS and payment.card_id is not None:
                CardRepository(db).lock_for_settlement(payment.card_id)
                statement_repo = StatementRepository(db)
                statements = statement_repo.get_unpaid_for_card(payment.card_id)
                allocation = allocate_payment(statement_repo.to_balances(statements), int(payment.amount_cents))
                statement_repo.apply_allocation(statements, allocation)

            snapshot = snapshot_of(payment, status, external_id)
            db.commit()

        except DomainException:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            settlement_counter.labels(outcome="error").inc()
            logger.error(
                f"Error processing payment {payment_uuid}: {e}",
                extra={"payment_id": str(payment_uuid), "status": status.value},
            )
            raise SettlementError(f"Settlement of payment {payment_uuid} failed") from e
        finally:
            db.close()

        duration = time.time() - start_time
        settlement_duration_histogram.observe(duration)
        applied = allocation.applied_cents if allocation else 0
        discarded = allocation.discarded_cents if allocation else 0
        if discarded > 0:
            logger.warning(
                f"Discarded {discarded} of payment {payment_uuid} beyond outstanding statements",
                extra={"payment_id": str(payment_uuid), "discarded_cents": discarded},
            )
        record_settlement(status.value, transitioned=True, discarded_cents=discarded)
        log_settlement(str(payment_uuid), status.value, True, applied, discarded, duration * 1000)

        self.dispatcher.dispatch(snapshot)

        return SettlementResult(
            payment_id=str(payment_uuid),
            status=status,
            transitioned=True,
            allocation=allocation,
        )

    async def settle_with_strategy(
        self,
        payment_id: str | uuid.UUID,
        strategy: ResolutionStrategy,
    ) -> Optional[SettlementResult]:
        """
        Background resolution of an internally settled payment.

        Errors are logged, not raised: the creation request has already been
        answered and the payment stays PENDING if resolution cannot finish.
        """
        try:
            snapshot = await run_in_threadpool(self.get_snapshot, payment_id)
            if snapshot.status.is_terminal:
                return None

            outcome = await strategy.resolve(snapshot)
            if outcome is None:
                logger.info(
                    f"Payment {payment_id} left pending for webhook delivery",
                    extra={"payment_id": str(payment_id)},
                )
                return None

            return await run_in_threadpool(self.resolve, payment_id, outcome.status, outcome.external_id)

        except DomainException as e:
            logger.error(f"Payment processing error: {e}", extra={"payment_id": str(payment_id)})
            return None

        except SQLAlchemyError as e:
            logger.error(f"Payment processing storage error: {e}", extra={"payment_id": str(payment_id)})
            return None

"""Payment endpoints - create, list, detail and receipt"""

import logging
import math
import uuid
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from cardpay_gateway.api.v1.schemas import (
    CardSummary,
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentDetail,
    PaymentListResponse,
    ReceiptResponse,
)
from cardpay_gateway.api.dependencies import (
    get_current_user_id,
    get_request_id,
    get_resolution_strategy,
    get_settlement_engine,
)
from cardpay_gateway.infrastructure.database.session import get_db
from cardpay_gateway.infrastructure.database.models import Payment
from cardpay_gateway.infrastructure.database.repositories import PaymentRepository
from cardpay_gateway.infrastructure.observability.logging import log_payment_created
from cardpay_gateway.domain.exceptions import (
    CardInactiveError,
    CardNotFoundError,
    IdempotencyConflictError,
    IdempotencyUnavailableError,
    PaymentValidationError,
)
from cardpay_gateway.domain.models import PaymentMethod, PaymentStatus
from cardpay_gateway.domain.resolution import ResolutionStrategy
from cardpay_gateway.services.idempotency import normalize_key
from cardpay_gateway.services.settlement import SettlementEngine

router = APIRouter()


def parse_payment_uuid(payment_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(payment_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payment ID format")


def to_detail(payment: Payment) -> PaymentDetail:
    card = payment.card
    return PaymentDetail(
        payment_id=str(payment.id),
        amount_cents=payment.amount_cents,
        method=payment.method,
        status=PaymentStatus(payment.status).api_value,
        card=CardSummary(
            last4=card.last4 if card is not None else None,
            card_type=card.card_type if card is not None else None,
        ),
        external_id=payment.external_id,
        created_at=payment.created_at,
        updated_at=payment.updated_at,
    )


@router.post("/payments", response_model=PaymentCreateResponse, status_code=201)
def create_payment(
    request_body: PaymentCreateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    engine: SettlementEngine = Depends(get_settlement_engine),
    strategy: ResolutionStrategy = Depends(get_resolution_strategy),
):
    """
    Create a payment against a card's outstanding statements.

    Flow:
    1. Replay the earlier payment if the Idempotency-Key was seen
    2. Validate card ownership, card status and outstanding balance
    3. Persist the payment as PENDING
    4. Schedule background resolution for internal methods
    5. Return immediately with the unchanged outstanding balance
    """
    request_id = get_request_id(request)

    try:
        created = engine.create_payment(
            db,
            user_id=user_id,
            card_id=request_body.card_id,
            amount_cents=request_body.amount_cents,
            method=request_body.method,
            idempotency_key=normalize_key(idempotency_key),
        )

    except CardNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except CardInactiveError as e:
        db.rollback()
        raise HTTPException(status_code=403, detail=str(e))

    except PaymentValidationError as e:
        db.rollback()
        logging.info(f"Payment rejected: {e}", extra={"request_id": request_id, "user_id": user_id})
        raise HTTPException(status_code=400, detail=str(e))

    except IdempotencyConflictError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except IdempotencyUnavailableError as e:
        db.rollback()
        logging.error(f"Idempotency guard unavailable: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    payment = created.payment
    payment_id = str(payment.id)

    if created.replayed:
        response.status_code = 200
    elif PaymentMethod(payment.method).resolves_internally:
        background_tasks.add_task(engine.settle_with_strategy, payment_id, strategy)

    log_payment_created(
        request_id,
        payment_id,
        user_id,
        payment.card_id,
        payment.amount_cents,
        payment.method,
        created.replayed,
    )

    return PaymentCreateResponse(
        payment_id=payment_id,
        amount_cents=payment.amount_cents,
        method=payment.method,
        status=PaymentStatus(payment.status).api_value,
        outstanding_balance_cents=created.outstanding_balance_cents,
        timestamp=payment.created_at,
        message=(
            "Idempotent: returning existing payment"
            if created.replayed
            else "Payment initiated successfully"
        ),
    )


@router.get("/payments", response_model=PaymentListResponse)
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None, description="pending | success | failed"),
    card_id: Optional[int] = Query(None, gt=0),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the caller's payments, newest first"""
    status_filter = None
    if status:
        try:
            status_filter = PaymentStatus(status.upper()).value
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status filter: {status}")

    payments, total = PaymentRepository(db).list_for_user(
        user_id, page=page, limit=limit, status=status_filter, card_id=card_id
    )

    return PaymentListResponse(
        payments=[to_detail(p) for p in payments],
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/payments/{payment_id}", response_model=PaymentDetail)
def get_payment(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Retrieve a single payment owned by the caller"""
    payment = PaymentRepository(db).get_for_user(parse_payment_uuid(payment_id), user_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")

    return to_detail(payment)


@router.get("/payments/{payment_id}/receipt", response_model=ReceiptResponse)
def get_receipt(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Receipt projection of a payment"""
    payment = PaymentRepository(db).get_for_user(parse_payment_uuid(payment_id), user_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")

    status = PaymentStatus(payment.status)
    return ReceiptResponse(
        payment_id=str(payment.id),
        amount_cents=payment.amount_cents,
        method=payment.method,
        status=status.api_value,
        card_last4=payment.card.last4 if payment.card is not None else None,
        timestamp=payment.created_at,
        external_id=payment.external_id,
        message=(
            "Payment processed successfully"
            if status is PaymentStatus.SUCCESS
            else "Payment not completed"
        ),
    )

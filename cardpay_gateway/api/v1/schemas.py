"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import List, Literal, Optional

from cardpay_gateway.config import settings


class PaymentCreateRequest(BaseModel):
    """Request body for POST /v1/payments"""

    card_id: int = Field(..., gt=0, description="Card to pay down")
    amount_cents: int = Field(
        ...,
        gt=0,
        le=settings.max_payment_cents,
        description="Payment amount in minor units",
    )
    method: Literal["bank", "card", "instant", "gateway"] = Field(..., description="Payment method")


class PaymentCreateResponse(BaseModel):
    """Response for POST /v1/payments"""

    payment_id: str
    amount_cents: int
    method: str
    status: str
    outstanding_balance_cents: int
    timestamp: datetime
    message: str


class CardSummary(BaseModel):
    last4: Optional[str] = None
    card_type: Optional[str] = None


class PaymentDetail(BaseModel):
    """Response for GET /v1/payments/{payment_id}"""

    payment_id: str
    amount_cents: int
    method: str
    status: str
    card: CardSummary
    external_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaymentListResponse(BaseModel):
    """Response for GET /v1/payments"""

    payments: List[PaymentDetail]
    page: int
    limit: int
    total: int
    total_pages: int


class ReceiptResponse(BaseModel):
    """Response for GET /v1/payments/{payment_id}/receipt"""

    payment_id: str
    amount_cents: int
    method: str
    status: str
    card_last4: Optional[str] = None
    timestamp: datetime
    external_id: Optional[str] = None
    message: str


class WebhookRequest(BaseModel):
    """Gateway delivery for POST /v1/payments/webhook"""

    payment_id: str = Field(..., min_length=1)
    status: Literal["success", "failed"]
    external_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def lowercase_status(cls, value):
        return value.lower() if isinstance(value, str) else value


class WebhookResponse(BaseModel):
    success: bool = True
    result: Literal["processed", "already_processed"]
    status: str
    message: str


class StatementSchema(BaseModel):
    """Single unpaid statement in a card's queue"""

    statement_id: int
    due_date: date
    balance_cents: int


class CardBalanceResponse(BaseModel):
    """Response for GET /v1/cards/{card_id}/balance"""

    card_id: int
    status: str
    outstanding_balance_cents: int
    unpaid_statements: List[StatementSchema]

"""POST /v1/payments/webhook - gateway settlement callbacks"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from cardpay_gateway.api.v1.schemas import WebhookRequest, WebhookResponse
from cardpay_gateway.api.dependencies import get_request_id, get_settlement_engine
from cardpay_gateway.config import settings
from cardpay_gateway.domain.exceptions import PaymentNotFoundError, SettlementError
from cardpay_gateway.domain.models import PaymentStatus
from cardpay_gateway.services.settlement import SettlementEngine
from cardpay_gateway.utils.signatures import verify_signature

router = APIRouter()


async def verify_gateway_signature(
    request: Request,
    x_gateway_signature: Optional[str] = Header(default=None),
) -> None:
    """
    Check the HMAC signature when a webhook secret is configured.

    Without a secret the caller is trusted out of band.
    """
    if not settings.webhook_secret:
        return
    body = await request.body()
    if not verify_signature(settings.webhook_secret, body, x_gateway_signature):
        logging.warning(
            "Rejected webhook with invalid signature",
            extra={"request_id": get_request_id(request)},
        )
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


@router.post(
    "/payments/webhook",
    response_model=WebhookResponse,
    dependencies=[Depends(verify_gateway_signature)],
)
def payment_webhook(
    request_body: WebhookRequest,
    request: Request,
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """
    Apply a gateway-reported outcome to a pending payment.

    Repeated deliveries for a settled payment are acknowledged without
    touching statements. Storage failures return 503 so the gateway retries.
    """
    request_id = get_request_id(request)
    status = PaymentStatus(request_body.status.upper())

    try:
        result = engine.resolve(request_body.payment_id, status, request_body.external_id)

    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except SettlementError as e:
        logging.error(f"Webhook settlement failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Settlement failed, retry later")

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    if not result.transitioned:
        return WebhookResponse(
            result="already_processed",
            status=result.status.api_value,
            message="Payment already processed",
        )

    return WebhookResponse(
        result="processed",
        status=result.status.api_value,
        message="Webhook processed successfully",
    )

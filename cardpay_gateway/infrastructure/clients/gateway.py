"""Payment gateway HTTP client and the resolution strategy built on it"""

import httpx
from typing import Any, Dict, Optional
from cardpay_gateway.domain.models import PaymentSnapshot, PaymentStatus, ResolutionOutcome
from cardpay_gateway.domain.exceptions import GatewayAPIError
from cardpay_gateway.config import settings
from cardpay_gateway.infrastructure.observability.metrics import gateway_fetch_failures_counter

# Gateway payment states that count as settled funds
SETTLED_STATES = {"captured", "authorized"}
DECLINED_STATES = {"failed", "refunded"}


class GatewayClient:
    """Client for the external payment gateway's payment-status API"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.gateway_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def fetch_payment(self, reference: str) -> Dict[str, Any]:
        """
        Fetch the gateway's view of a payment by our payment id.

        Raises:
            GatewayAPIError: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(f"{self.base_url}/gateway/payments/{reference}")
                response.raise_for_status()
                data = response.json()
                if not isinstance(data.get("status"), str):
                    raise ValueError("missing status")
                return data

            except httpx.TimeoutException as e:
                gateway_fetch_failures_counter.inc()
                raise GatewayAPIError(f"Gateway API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                gateway_fetch_failures_counter.inc()
                raise GatewayAPIError(f"Gateway API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                gateway_fetch_failures_counter.inc()
                raise GatewayAPIError(f"Gateway API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                gateway_fetch_failures_counter.inc()
                raise GatewayAPIError(f"Invalid payment data from gateway: {e}") from e


class GatewayResolutionStrategy:
    """Resolves a payment from the gateway's recorded status"""

    def __init__(self, client: GatewayClient | None = None):
        self.client = client or GatewayClient()

    async def resolve(self, payment: PaymentSnapshot) -> Optional[ResolutionOutcome]:
        data = await self.client.fetch_payment(payment.payment_id)
        state = data["status"].lower()

        if state in SETTLED_STATES:
            return ResolutionOutcome(status=PaymentStatus.SUCCESS, external_id=data.get("id"))
        if state in DECLINED_STATES:
            return ResolutionOutcome(status=PaymentStatus.FAILED, external_id=data.get("id"))

        # Still in flight at the gateway; the webhook will deliver the outcome
        return None

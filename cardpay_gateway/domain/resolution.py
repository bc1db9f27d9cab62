"""Resolution strategies deciding the terminal outcome of a pending payment"""

import asyncio
import random
from typing import Optional, Protocol

from cardpay_gateway.domain.models import PaymentSnapshot, PaymentStatus, ResolutionOutcome


class ResolutionStrategy(Protocol):
    """
    Contract for settling a PENDING payment.

    Returns the terminal outcome, or None when the outcome is not known yet
    and the payment should stay PENDING until a webhook delivers it.
    """

    async def resolve(self, payment: PaymentSnapshot) -> Optional[ResolutionOutcome]:
        ...


class SimulatedResolutionStrategy:
    """
    Models gateway latency and declines without a live dependency.

    Waits a random delay in [min_delay, max_delay] seconds, then succeeds
    with probability success_rate.
    """

    def __init__(
        self,
        success_rate: float = 0.95,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
        rng: random.Random | None = None,
    ):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("delay bounds must satisfy 0 <= min_delay <= max_delay")
        self.success_rate = success_rate
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rng = rng or random.Random()

    async def resolve(self, payment: PaymentSnapshot) -> Optional[ResolutionOutcome]:
        delay = self.rng.uniform(self.min_delay, self.max_delay)
        if delay > 0:
            await asyncio.sleep(delay)

        succeeded = self.rng.random() < self.success_rate
        return ResolutionOutcome(status=PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED)

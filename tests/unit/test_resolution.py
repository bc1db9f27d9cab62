"""Unit tests for the simulated resolution strategy"""

import random
import pytest
from cardpay_gateway.domain.models import PaymentSnapshot, PaymentStatus
from cardpay_gateway.domain.resolution import SimulatedResolutionStrategy


@pytest.fixture
def snapshot() -> PaymentSnapshot:
    return PaymentSnapshot(
        payment_id="00000000-0000-0000-0000-000000000001",
        user_id="user_alice",
        card_id=1,
        card_last4="4242",
        amount_cents=10000,
        method="bank",
        status=PaymentStatus.PENDING,
    )


async def test_always_succeeds_at_full_success_rate(snapshot):
    strategy = SimulatedResolutionStrategy(success_rate=1.0, min_delay=0.0, max_delay=0.0)

    outcomes = [await strategy.resolve(snapshot) for _ in range(20)]

    assert all(o.status is PaymentStatus.SUCCESS for o in outcomes)


async def test_always_fails_at_zero_success_rate(snapshot):
    strategy = SimulatedResolutionStrategy(success_rate=0.0, min_delay=0.0, max_delay=0.0)

    outcome = await strategy.resolve(snapshot)

    assert outcome.status is PaymentStatus.FAILED
    assert outcome.external_id is None


async def test_seeded_rng_is_reproducible(snapshot):
    first = SimulatedResolutionStrategy(success_rate=0.5, min_delay=0.0, max_delay=0.0, rng=random.Random(7))
    second = SimulatedResolutionStrategy(success_rate=0.5, min_delay=0.0, max_delay=0.0, rng=random.Random(7))

    a = [(await first.resolve(snapshot)).status for _ in range(10)]
    b = [(await second.resolve(snapshot)).status for _ in range(10)]

    assert a == b


async def test_waits_for_the_drawn_delay(snapshot, monkeypatch):
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    monkeypatch.setattr("cardpay_gateway.domain.resolution.asyncio.sleep", fake_sleep)
    strategy = SimulatedResolutionStrategy(success_rate=1.0, min_delay=1.0, max_delay=3.0)

    await strategy.resolve(snapshot)

    assert len(slept) == 1
    assert 1.0 <= slept[0] <= 3.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"success_rate": 1.5},
        {"success_rate": -0.1},
        {"min_delay": -1.0},
        {"min_delay": 3.0, "max_delay": 1.0},
    ],
)
def test_rejects_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        SimulatedResolutionStrategy(**kwargs)

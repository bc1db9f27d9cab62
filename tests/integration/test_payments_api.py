"""Integration tests for payment API endpoints"""

import pytest
from datetime import date
from unittest.mock import patch
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from cardpay_gateway.domain.resolution import SimulatedResolutionStrategy
from cardpay_gateway.infrastructure.database.models import Activity, Payment, Statement
from cardpay_gateway.services.settlement import SettlementEngine

JAN_10 = date(2025, 1, 10)
FEB_10 = date(2025, 2, 10)


def balances(db: Session, card_id: int) -> list[tuple[int, bool]]:
    db.expire_all()
    statements = (
        db.query(Statement)
        .filter(Statement.card_id == card_id)
        .order_by(Statement.due_date.asc())
        .all()
    )
    return [(s.balance_cents, s.is_paid) for s in statements]


def pay(client: TestClient, headers: dict, card_id: int, amount_cents: int, method: str = "bank", key: str | None = None):
    if key is not None:
        headers = {**headers, "Idempotency-Key": key}
    return client.post(
        "/v1/payments",
        json={"card_id": card_id, "amount_cents": amount_cents, "method": method},
        headers=headers,
    )


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient, make_card, user_headers):
    """Test Prometheus metrics endpoint"""
    card = make_card(statements=[(JAN_10, 1000)])
    pay(client, user_headers, card.id, 100)

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "cardpay_payment_created_total" in response.text
    assert "cardpay_settlement_total" in response.text


def test_create_payment_returns_pending_and_settles_in_background(client, db, make_card, user_headers):
    card = make_card(statements=[(FEB_10, 500), (JAN_10, 300)])

    response = pay(client, user_headers, card.id, 700)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["amount_cents"] == 700
    assert data["method"] == "bank"
    # Unchanged while pending
    assert data["outstanding_balance_cents"] == 800
    assert data["timestamp"]
    assert response.headers["X-Request-ID"]

    # TestClient runs background tasks before returning
    detail = client.get(f"/v1/payments/{data['payment_id']}", headers=user_headers)
    assert detail.json()["status"] == "success"
    assert balances(db, card.id) == [(0, True), (100, False)]


@pytest.mark.parametrize(
    "resolution_strategy",
    [SimulatedResolutionStrategy(success_rate=0.0, min_delay=0.0, max_delay=0.0)],
)
def test_declined_payment_is_failed_and_leaves_balance(client, db, make_card, user_headers, resolution_strategy):
    card = make_card(statements=[(JAN_10, 300)])

    response = pay(client, user_headers, card.id, 300)

    payment_id = response.json()["payment_id"]
    detail = client.get(f"/v1/payments/{payment_id}", headers=user_headers)
    assert detail.json()["status"] == "failed"
    assert balances(db, card.id) == [(300, False)]
    assert db.query(Activity).one().status == "FAILED"


def test_background_storage_failure_does_not_fail_creation(client, db, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 300)])

    with patch.object(
        SettlementEngine,
        "get_snapshot",
        side_effect=OperationalError("SELECT payment", {}, Exception("database is locked")),
    ):
        response = pay(client, user_headers, card.id, 300)

    assert response.status_code == 201
    payment_id = response.json()["payment_id"]
    detail = client.get(f"/v1/payments/{payment_id}", headers=user_headers)
    assert detail.json()["status"] == "pending"
    assert balances(db, card.id) == [(300, False)]


def test_amount_equal_to_outstanding_is_accepted(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 300), (FEB_10, 700)])

    response = pay(client, user_headers, card.id, 1000)

    assert response.status_code == 201


def test_amount_one_unit_above_outstanding_is_rejected(client, db, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 300), (FEB_10, 700)])

    response = pay(client, user_headers, card.id, 1001)

    assert response.status_code == 400
    assert "cannot exceed outstanding balance" in response.json()["detail"]
    assert db.query(Payment).count() == 0


@pytest.mark.parametrize("amount", [0, -100])
def test_non_positive_amount_is_rejected(client, db, make_card, user_headers, amount):
    card = make_card(statements=[(JAN_10, 300)])

    response = pay(client, user_headers, card.id, amount)

    assert response.status_code == 422
    assert db.query(Payment).count() == 0


def test_amount_above_application_maximum_is_rejected(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 300)])

    response = pay(client, user_headers, card.id, 100_000_001)

    assert response.status_code == 422


def test_zero_outstanding_rejects_any_amount(client, make_card, user_headers):
    card = make_card(statements=[])

    response = pay(client, user_headers, card.id, 1)

    assert response.status_code == 400


def test_invalid_method_is_rejected(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 300)])

    response = pay(client, user_headers, card.id, 100, method="crypto")

    assert response.status_code == 422


def test_foreign_card_is_not_found(client, db, make_card, user_headers):
    card = make_card(user_id="user_bob", statements=[(JAN_10, 300)])

    response = pay(client, user_headers, card.id, 100)

    assert response.status_code == 404
    assert db.query(Payment).count() == 0


def test_unknown_card_is_not_found(client, db, user_headers):
    response = pay(client, user_headers, 9999, 100)
    assert response.status_code == 404


@pytest.mark.parametrize("status", ["BLOCKED", "SUSPENDED"])
def test_inactive_card_is_forbidden(client, db, make_card, user_headers, status):
    card = make_card(statements=[(JAN_10, 300)], status=status)

    response = pay(client, user_headers, card.id, 100)

    assert response.status_code == 403
    assert response.json()["detail"] == "Card is not active"
    assert db.query(Payment).count() == 0


def test_missing_user_header_is_unauthorized(client, make_card):
    card = make_card(statements=[(JAN_10, 300)])

    response = pay(client, {}, card.id, 100)

    assert response.status_code == 401


def test_idempotent_retry_returns_same_payment(client, db, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 1000)])

    first = pay(client, user_headers, card.id, 400, key="retry-1")
    second = pay(client, user_headers, card.id, 400, key="retry-1")

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["payment_id"] == first.json()["payment_id"]
    assert second.json()["message"] == "Idempotent: returning existing payment"
    # The replay sees the first payment already applied
    assert second.json()["status"] == "success"
    assert second.json()["outstanding_balance_cents"] == 600
    assert db.query(Payment).count() == 1
    assert balances(db, card.id) == [(600, False)]


def test_idempotency_key_reuse_with_other_amount_conflicts(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 1000)])

    pay(client, user_headers, card.id, 400, key="retry-1")
    response = pay(client, user_headers, card.id, 300, key="retry-1")

    assert response.status_code == 409


def test_gateway_payment_waits_for_webhook(client, db, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 300)])

    response = pay(client, user_headers, card.id, 300, method="gateway")

    assert response.status_code == 201
    payment_id = response.json()["payment_id"]
    detail = client.get(f"/v1/payments/{payment_id}", headers=user_headers)
    assert detail.json()["status"] == "pending"
    assert balances(db, card.id) == [(300, False)]


def test_get_payment_detail(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 1000)], last4="4242")
    payment_id = pay(client, user_headers, card.id, 250).json()["payment_id"]

    response = client.get(f"/v1/payments/{payment_id}", headers=user_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["payment_id"] == payment_id
    assert data["amount_cents"] == 250
    assert data["card"] == {"last4": "4242", "card_type": "STANDARD"}
    assert data["external_id"] is None


def test_get_payment_of_other_user_is_not_found(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 1000)])
    payment_id = pay(client, user_headers, card.id, 250).json()["payment_id"]

    response = client.get(f"/v1/payments/{payment_id}", headers={"X-User-ID": "user_bob"})

    assert response.status_code == 404


def test_get_payment_invalid_id(client, user_headers):
    response = client.get("/v1/payments/not-a-uuid", headers=user_headers)
    assert response.status_code == 400


def test_get_receipt(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 1000)], last4="1234")
    payment_id = pay(client, user_headers, card.id, 250).json()["payment_id"]

    response = client.get(f"/v1/payments/{payment_id}/receipt", headers=user_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["card_last4"] == "1234"
    assert data["message"] == "Payment processed successfully"


def test_receipt_for_pending_payment(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 1000)])
    payment_id = pay(client, user_headers, card.id, 250, method="gateway").json()["payment_id"]

    response = client.get(f"/v1/payments/{payment_id}/receipt", headers=user_headers)

    assert response.json()["message"] == "Payment not completed"


def test_list_payments_paginates_and_filters(client, make_card, user_headers):
    card = make_card(statements=[(JAN_10, 10000)])
    other_card = make_card(statements=[(JAN_10, 10000)], last4="0000")
    for _ in range(3):
        pay(client, user_headers, card.id, 100)
    pay(client, user_headers, other_card.id, 100, method="gateway")

    page_one = client.get("/v1/payments?page=1&limit=2", headers=user_headers).json()
    assert page_one["total"] == 4
    assert page_one["total_pages"] == 2
    assert len(page_one["payments"]) == 2

    page_two = client.get("/v1/payments?page=2&limit=2", headers=user_headers).json()
    assert len(page_two["payments"]) == 2
    seen = {p["payment_id"] for p in page_one["payments"] + page_two["payments"]}
    assert len(seen) == 4

    pending = client.get("/v1/payments?status=pending", headers=user_headers).json()
    assert pending["total"] == 1
    assert pending["payments"][0]["method"] == "gateway"

    by_card = client.get(f"/v1/payments?card_id={card.id}", headers=user_headers).json()
    assert by_card["total"] == 3

    assert client.get("/v1/payments", headers={"X-User-ID": "user_bob"}).json()["total"] == 0


def test_list_payments_rejects_unknown_status(client, user_headers):
    response = client.get("/v1/payments?status=refunded", headers=user_headers)
    assert response.status_code == 400


def test_card_balance(client, make_card, user_headers):
    card = make_card(statements=[(FEB_10, 500), (JAN_10, 300), (date(2024, 12, 10), 0)])

    response = client.get(f"/v1/cards/{card.id}/balance", headers=user_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["outstanding_balance_cents"] == 800
    assert [s["balance_cents"] for s in data["unpaid_statements"]] == [300, 500]
    assert data["status"] == "ACTIVE"


def test_card_balance_of_foreign_card(client, make_card, user_headers):
    card = make_card(user_id="user_bob", statements=[(JAN_10, 300)])

    response = client.get(f"/v1/cards/{card.id}/balance", headers=user_headers)

    assert response.status_code == 404

"""GET /v1/cards/{card_id}/balance - outstanding balance and statement queue"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cardpay_gateway.api.v1.schemas import CardBalanceResponse, StatementSchema
from cardpay_gateway.api.dependencies import get_current_user_id
from cardpay_gateway.infrastructure.database.session import get_db
from cardpay_gateway.infrastructure.database.repositories import CardRepository, StatementRepository

router = APIRouter()


@router.get("/cards/{card_id}/balance", response_model=CardBalanceResponse)
def get_card_balance(
    card_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Retrieve the outstanding balance of an owned card.

    Returns:
        Aggregate of unpaid statements plus the queue in the order payments apply
    """
    card = CardRepository(db).get_owned_card(card_id, user_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")

    statement_repo = StatementRepository(db)
    statements = statement_repo.get_unpaid_for_card(card.id)

    return CardBalanceResponse(
        card_id=card.id,
        status=card.status,
        outstanding_balance_cents=statement_repo.get_outstanding_balance(card.id),
        unpaid_statements=[
            StatementSchema(
                statement_id=s.id,
                due_date=s.due_date,
                balance_cents=s.balance_cents,
            )
            for s in statements
        ],
    )

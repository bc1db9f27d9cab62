"""FIFO-by-due-date application of a payment across unpaid statements"""

from typing import Iterable
from cardpay_gateway.domain.models import AllocationResult, StatementAllocation, StatementBalance
from cardpay_gateway.domain.exceptions import InvalidAmountError


def allocate_payment(statements: Iterable[StatementBalance], amount_cents: int) -> AllocationResult:
    """
    Apply a successful payment to the earliest-due statements first.

    Requirements:
    - Statements are consumed in ascending due date order (ties by id)
    - A statement is paid off in full before the next one is touched
    - Balances never go negative
    - Anything left after every statement is cleared is discarded, never
      carried over to a later statement or stored as credit

    Args:
        statements: Unpaid statements of one card, in any order
        amount_cents: Payment amount, must be positive

    Returns:
        AllocationResult listing only the statements whose balance changed

    Example:
        Jan-10 300, Feb-10 500, pay 700
        → Jan-10 0 (paid), Feb-10 100, applied 700, discarded 0
    """
    if amount_cents <= 0:
        raise InvalidAmountError("Payment amount must be positive")

    queue = sorted(statements, key=lambda s: (s.due_date, s.statement_id))
    result = AllocationResult()
    remaining = amount_cents

    for statement in queue:
        if remaining <= 0:
            break
        if statement.balance_cents <= 0:
            continue

        if remaining >= statement.balance_cents:
            applied = statement.balance_cents
            result.allocations.append(
                StatementAllocation(
                    statement_id=statement.statement_id,
                    applied_cents=applied,
                    new_balance_cents=0,
                    paid=True,
                )
            )
        else:
            applied = remaining
            result.allocations.append(
                StatementAllocation(
                    statement_id=statement.statement_id,
                    applied_cents=applied,
                    new_balance_cents=statement.balance_cents - applied,
                    paid=False,
                )
            )

        remaining -= applied
        result.applied_cents += applied

    result.discarded_cents = remaining
    return result

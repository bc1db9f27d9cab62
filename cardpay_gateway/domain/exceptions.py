"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class PaymentValidationError(DomainException):
    """Payment request rejected before any record was created"""

    pass


class InvalidAmountError(PaymentValidationError):
    """Amount is zero, negative or above the application maximum"""

    pass


class AmountExceedsBalanceError(PaymentValidationError):
    """Requested amount is larger than the card's outstanding balance"""

    def __init__(self, amount_cents: int, outstanding_cents: int, message: str | None = None):
        self.amount_cents = amount_cents
        self.outstanding_cents = outstanding_cents
        super().__init__(
            message
            or f"Payment amount ({amount_cents}) cannot exceed outstanding balance ({outstanding_cents})"
        )


class CardNotFoundError(DomainException):
    """Card does not exist or belongs to another user"""

    pass


class CardInactiveError(DomainException):
    """Card is blocked or suspended"""

    pass


class PaymentNotFoundError(DomainException):
    """Payment does not exist or belongs to another user"""

    pass


class IdempotencyConflictError(DomainException):
    """Idempotency key was reused with different request parameters"""

    pass


class IdempotencyUnavailableError(DomainException):
    """Idempotency lookup failed and the guard is configured as strict"""

    pass


class SettlementError(DomainException):
    """Settlement transaction failed and was rolled back"""

    pass


class GatewayAPIError(DomainException):
    """Payment gateway returned an error or is unavailable"""

    pass

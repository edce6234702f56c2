"""
Wallet enumerations.
"""

import enum


class TransactionKind(str, enum.Enum):
    """
    Transaction kind.

    DEPOSIT credits the wallet and is only recorded after the payment
    provider has confirmed the reference. Every other kind debits the
    wallet and requires sufficient funds.
    """
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    PAYMENT = "payment"

    @property
    def is_credit(self) -> bool:
        return self is TransactionKind.DEPOSIT

    def signed(self, amount_minor: int) -> int:
        """Return the balance delta this kind applies for a positive amount."""
        return amount_minor if self.is_credit else -amount_minor


class TransactionStatus(str, enum.Enum):
    """Transaction status. Rows are immutable once completed or failed."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

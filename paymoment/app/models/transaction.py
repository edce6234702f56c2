"""
Transaction database model.

Append-only wallet history. The reference column is the idempotency key.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, BigInteger, ForeignKey, DateTime, Enum, String, Index
from paymoment.app.db.session import Base
from paymoment.app.models.enums import TransactionKind, TransactionStatus
from paymoment.app.core.money import from_minor_units


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(Base):
    """
    Transaction model.

    Immutable record of one balance movement.
    At most one row exists per reference (unique index), which is what makes
    crediting an external payment idempotent.
    NO updates or deletions allowed.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_account_history", "account_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)

    # Entry details
    kind = Column(Enum(TransactionKind), nullable=False)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.COMPLETED, nullable=False)
    reference = Column(String(100), unique=True, nullable=False)
    service = Column(String(50), nullable=True)  # e.g. electricity, airtime
    description = Column(String(255), nullable=True)

    # Financials (minor units)
    amount_minor = Column(BigInteger, nullable=False)
    balance_after_minor = Column(BigInteger, nullable=False)

    # Timestamps (Immutable - no updated_at). Set client-side for
    # sub-second ordering on SQLite.
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    @property
    def amount(self):
        return from_minor_units(self.amount_minor)

    @property
    def balance_after(self):
        return from_minor_units(self.balance_after_minor)

    def __repr__(self):
        return f"<Transaction(id={self.id}, kind='{self.kind.value}', reference='{self.reference}', amount={self.amount})>"

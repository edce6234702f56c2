"""
Account database model.

An account is both the login identity and the wallet that holds a balance.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, CheckConstraint
from sqlalchemy.sql import func
from paymoment.app.db.session import Base
from paymoment.app.core.money import from_minor_units


class Account(Base):
    """
    Account model.

    The balance is stored in minor units and only changes through a
    recorded Transaction (or the starting balance set at signup).
    """
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance_minor >= 0", name="ck_accounts_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    balance_minor = Column(BigInteger, default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def balance(self):
        return from_minor_units(self.balance_minor)

    def __repr__(self):
        return f"<Account(id={self.id}, username='{self.username}', balance={self.balance})>"

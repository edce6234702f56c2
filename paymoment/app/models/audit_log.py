"""
Audit Log Database Model.

Tracks authentication events and every payment attempt outcome.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from paymoment.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - ACCOUNT_CREATED / LOGIN_SUCCESS / LOGIN_FAILED / TOKEN_REVOKED
    - DEPOSIT_CREDITED / DEPOSIT_REPLAYED
    - DEPOSIT_REJECTED / DEPOSIT_INDETERMINATE / DEPOSIT_CREDIT_PENDING
    - SERVICE_DEBITED / SERVICE_DEBIT_DECLINED

    Unlike the transactions table, reference is not unique here: a reference
    may be attempted many times before (or without) being credited.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Wallet context
    account_id = Column(Integer, index=True, nullable=True)
    reference = Column(String(100), index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # IP address for login tracking
    ip_address = Column(String(50), nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', account={self.account_id}, reference={self.reference})>"

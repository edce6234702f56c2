"""
Audit logging service for authentication events and payment attempts.

The audit log is the non-unique attempt history: every deposit outcome is
written here, while the transactions table only ever holds credited ones.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from paymoment.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    TOKEN_REVOKED = "TOKEN_REVOKED"

    # Deposits
    DEPOSIT_INITIALIZED = "DEPOSIT_INITIALIZED"
    DEPOSIT_CREDITED = "DEPOSIT_CREDITED"
    DEPOSIT_REPLAYED = "DEPOSIT_REPLAYED"
    DEPOSIT_REJECTED = "DEPOSIT_REJECTED"
    DEPOSIT_INDETERMINATE = "DEPOSIT_INDETERMINATE"
    DEPOSIT_CREDIT_PENDING = "DEPOSIT_CREDIT_PENDING"
    DEPOSIT_RESUMED = "DEPOSIT_RESUMED"

    # Service payments
    SERVICE_DEBITED = "SERVICE_DEBITED"
    SERVICE_DEBIT_DECLINED = "SERVICE_DEBIT_DECLINED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    account_id: Optional[int] = None,
    reference: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log an event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of account performing the action
        actor_username: Username of actor
        account_id: Wallet the event concerns
        reference: Payment reference, if any
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        account_id=account_id,
        reference=reference,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_auth_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[int],
    username: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log an authentication event (login success/failure, logout).

    Args:
        db: Database session
        action: AuditAction.LOGIN_SUCCESS, LOGIN_FAILED, ...
        user_id: ID of account attempting login
        username: Username attempting login
        ip_address: IP address of login attempt
        metadata: Additional context (e.g., failure reason)

    Returns:
        Created AuditLog instance
    """
    return await log_event(
        db=db,
        action=action,
        actor_id=user_id,
        actor_username=username,
        account_id=user_id,
        ip_address=ip_address,
        metadata=metadata
    )


async def get_reference_attempts(
    db: AsyncSession,
    reference: str,
    limit: int = 50
) -> list[AuditLog]:
    """
    Get every recorded attempt for a payment reference, most recent first.
    """
    query = select(AuditLog).where(
        AuditLog.reference == reference
    ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_account_audit_history(
    db: AsyncSession,
    account_id: int,
    action: Optional[str] = None,
    limit: int = 50
) -> list[AuditLog]:
    """
    Get audit history for a specific account.

    Args:
        db: Database session
        account_id: Account ID to get history for
        action: Filter by action type
        limit: Maximum number of records

    Returns:
        List of audit logs for the account, most recent first
    """
    query = select(AuditLog).where(AuditLog.account_id == account_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())

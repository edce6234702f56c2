"""
Dead letter queue operations.

Credits that were verified by the provider but could not be written to the
ledger are parked here and re-driven later with the same reference.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paymoment.app.models.dlq import DeadLetterQueue, DLQStatus

CREDIT_DEPOSIT_TASK = "credit_deposit"


async def capture(
    db: AsyncSession,
    task_name: str,
    payload: Dict[str, Any],
    error_message: str
) -> DeadLetterQueue:
    """Park a failed task."""
    item = DeadLetterQueue(
        task_name=task_name,
        error_message=error_message,
        payload=payload,
        status=DLQStatus.FAILED,
        retry_count=0,
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


async def list_items(
    db: AsyncSession,
    status: Optional[DLQStatus] = None,
    task_name: Optional[str] = None,
    limit: int = 100
) -> list[DeadLetterQueue]:
    query = select(DeadLetterQueue)
    if status:
        query = query.where(DeadLetterQueue.status == status)
    if task_name:
        query = query.where(DeadLetterQueue.task_name == task_name)
    query = query.order_by(DeadLetterQueue.id).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def list_retryable(db: AsyncSession, task_name: str, limit: int = 50) -> list[DeadLetterQueue]:
    """FAILED and RETRYING items for a task, oldest first."""
    query = select(DeadLetterQueue).where(
        DeadLetterQueue.task_name == task_name,
        DeadLetterQueue.status.in_([DLQStatus.FAILED, DLQStatus.RETRYING]),
    ).order_by(DeadLetterQueue.id).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def _set_status(
    db: AsyncSession,
    dlq_id: int,
    status: DLQStatus,
    error_message: Optional[str] = None,
    count_retry: bool = True
) -> Optional[DeadLetterQueue]:
    item = await db.get(DeadLetterQueue, dlq_id)
    if item is None:
        return None

    item.status = status
    if count_retry:
        item.retry_count += 1
        item.last_retry_at = datetime.now(timezone.utc)
    if error_message:
        item.error_message = error_message

    await db.commit()
    await db.refresh(item)
    return item


async def mark_processed(db: AsyncSession, dlq_id: int) -> Optional[DeadLetterQueue]:
    return await _set_status(db, dlq_id, DLQStatus.PROCESSED)


async def mark_retrying(db: AsyncSession, dlq_id: int, error_message: str) -> Optional[DeadLetterQueue]:
    return await _set_status(db, dlq_id, DLQStatus.RETRYING, error_message)


async def mark_archived(db: AsyncSession, dlq_id: int, error_message: str) -> Optional[DeadLetterQueue]:
    return await _set_status(db, dlq_id, DLQStatus.ARCHIVED, error_message)

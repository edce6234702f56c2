"""
Admin Operations API Endpoints.

Inspect and re-drive deposits that were verified but could not be credited.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from paymoment.app.db.session import get_db
from paymoment.app.models.dlq import DLQStatus
from paymoment.app.core.guards import require_admin
from paymoment.app.core.dependencies import get_wallet_service
from paymoment.app.domain.wallet.balance_credit_service import BalanceCreditService
from paymoment.app.schemas.wallet import DeadLetterResponse, ResumeOutcomeResponse
from paymoment.app.services import dead_letters

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.get("/dlq", response_model=List[DeadLetterResponse])
async def list_dead_letters(
    status: Optional[DLQStatus] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List dead-lettered tasks, oldest first."""
    items = await dead_letters.list_items(db, status=status, limit=limit)
    return [DeadLetterResponse.model_validate(item) for item in items]


@router.post("/resume-credits", response_model=List[ResumeOutcomeResponse])
async def resume_credits(
    limit: int = Query(50, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    service: BalanceCreditService = Depends(get_wallet_service)
):
    """
    Retry ledger writes for verified deposits in the dead letter queue.

    Already-credited references are reported as already_processed, never credited twice.
    """
    outcomes = await service.resume_pending_credits(limit)
    return [
        ResumeOutcomeResponse(
            dlq_id=o.dlq_id,
            reference=o.reference,
            status=o.status.value,
            error=o.error
        )
        for o in outcomes
    ]

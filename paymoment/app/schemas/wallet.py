"""
Wallet Schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field

from paymoment.app.models.dlq import DLQStatus
from paymoment.app.models.enums import TransactionKind, TransactionStatus


class TransactionResponse(BaseModel):
    """Schema for displaying a wallet transaction."""
    id: int
    kind: TransactionKind
    status: TransactionStatus
    amount: Decimal
    balance_after: Decimal
    reference: str
    service: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BalanceResponse(BaseModel):
    account_id: int
    balance: Decimal


class TransactionHistoryResponse(BaseModel):
    account_id: int
    transactions: List[TransactionResponse]
    count: int


class DepositInitializeRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Amount to deposit")


class DepositInitializeResponse(BaseModel):
    authorization_url: str
    access_code: Optional[str] = None
    reference: str


class DepositVerifyRequest(BaseModel):
    reference: str = Field(..., min_length=1, max_length=100, description="Provider payment reference")
    amount: Optional[Decimal] = Field(
        default=None, gt=0, decimal_places=2,
        description="Amount the client believes was paid; must match the provider exactly"
    )


class DepositVerifyResponse(BaseModel):
    status: str = Field(..., description="credited or already_processed")
    transaction: TransactionResponse
    balance: Decimal


class ServicePaymentRequest(BaseModel):
    kind: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z0-9][A-Za-z0-9_-]*$",
                      description="Service paid for, e.g. electricity, airtime")
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=255)


class ServicePaymentResponse(BaseModel):
    status: str
    reference: str
    transaction: TransactionResponse
    balance: Decimal


class DeadLetterResponse(BaseModel):
    id: int
    task_name: str
    error_message: str
    payload: Optional[dict] = None
    status: DLQStatus
    retry_count: int
    created_at: datetime
    last_retry_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ResumeOutcomeResponse(BaseModel):
    dlq_id: int
    reference: str
    status: str
    error: Optional[str] = None

"""
Wallet API Endpoints.

Balance, history, deposits and service payments for the authenticated account.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from paymoment.app.core.dependencies import get_current_user, get_wallet_service
from paymoment.app.domain.wallet.balance_credit_service import BalanceCreditService
from paymoment.app.schemas.wallet import (
    BalanceResponse,
    DepositInitializeRequest,
    DepositInitializeResponse,
    DepositVerifyRequest,
    DepositVerifyResponse,
    ServicePaymentRequest,
    ServicePaymentResponse,
    TransactionHistoryResponse,
    TransactionResponse,
)

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    current_user: dict = Depends(get_current_user),
    service: BalanceCreditService = Depends(get_wallet_service)
):
    """Current wallet balance."""
    account_id = current_user["user_id"]
    return BalanceResponse(account_id=account_id, balance=await service.get_balance(account_id))


@router.get("/transactions", response_model=TransactionHistoryResponse)
async def list_transactions(
    limit: Optional[int] = Query(None, ge=1, description="Max transactions, most recent first"),
    current_user: dict = Depends(get_current_user),
    service: BalanceCreditService = Depends(get_wallet_service)
):
    """
    Transaction history for the current account.

    Limit defaults to the configured page size and is capped at the configured maximum.
    """
    account_id = current_user["user_id"]
    transactions = await service.list_transactions(account_id, limit)
    return TransactionHistoryResponse(
        account_id=account_id,
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        count=len(transactions)
    )


@router.post("/deposits/initialize", response_model=DepositInitializeResponse, status_code=status.HTTP_201_CREATED)
async def initialize_deposit(
    data: DepositInitializeRequest,
    current_user: dict = Depends(get_current_user),
    service: BalanceCreditService = Depends(get_wallet_service)
):
    """
    Start a deposit checkout with the payment provider.

    The balance is not touched until the returned reference is verified.
    """
    try:
        initialization = await service.initialize_deposit(current_user["user_id"], data.amount)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return DepositInitializeResponse(
        authorization_url=initialization.authorization_url,
        access_code=initialization.access_code,
        reference=initialization.reference
    )


@router.post("/deposits/verify", response_model=DepositVerifyResponse)
async def verify_deposit(
    data: DepositVerifyRequest,
    current_user: dict = Depends(get_current_user),
    service: BalanceCreditService = Depends(get_wallet_service)
):
    """
    Verify a payment reference with the provider and credit the wallet.

    Safe to retry: a reference is credited at most once. Pending or
    unreachable provider outcomes return a retryable error and leave the
    balance unchanged.
    """
    try:
        result = await service.credit_deposit(current_user["user_id"], data.reference, data.amount)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return DepositVerifyResponse(
        status=result.status.value,
        transaction=TransactionResponse.model_validate(result.transaction),
        balance=result.balance
    )


@router.post("/payments", response_model=ServicePaymentResponse, status_code=status.HTTP_201_CREATED)
async def pay_for_service(
    data: ServicePaymentRequest,
    current_user: dict = Depends(get_current_user),
    service: BalanceCreditService = Depends(get_wallet_service)
):
    """Debit the wallet for a service payment."""
    try:
        result = await service.debit_for_service(
            current_user["user_id"], data.kind, data.description, data.amount
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ServicePaymentResponse(
        status=result.status.value,
        reference=result.reference,
        transaction=TransactionResponse.model_validate(result.transaction),
        balance=result.balance
    )

"""
Authentication and wiring dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT
authentication and for building the wallet service.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import async_sessionmaker
from paymoment.app.core.jwt import decode_access_token
from paymoment.app.core.redis_client import get_redis
from paymoment.app.core.token_revocation import is_token_revoked
from paymoment.app.db.session import get_session_factory
from paymoment.app.domain.wallet.balance_credit_service import BalanceCreditService
from paymoment.app.domain.wallet.ledger_store import LedgerStore
from paymoment.app.models.account import Account
from paymoment.app.services.payment_provider import get_payment_provider

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    redis=Depends(get_redis)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Security checks:
    1. Validates JWT token signature and expiry
    2. Checks if token has been revoked (logout)
    3. Verifies account still exists and is active

    Returns:
        Decoded token payload containing account information

    Raises:
        HTTPException: 401 if authentication fails, 403 if account inactive
    """
    token = credentials.credentials

    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 2. Check if this specific token has been revoked
    if await is_token_revoked(redis, token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 3. Real-time database check: account still active. The session closes
    # here; no transaction may stay open across a payment provider call.
    async with session_factory() as session:
        account = await session.get(Account, user_id)

    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not account.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    # Read by the request log line
    request.state.account_id = account.id

    return {**payload, "token": token, "is_superuser": account.is_superuser}


def get_wallet_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    payment_provider=Depends(get_payment_provider)
) -> BalanceCreditService:
    """FastAPI dependency building the balance credit service."""
    return BalanceCreditService(LedgerStore(session_factory), payment_provider)

"""
Authentication API endpoints.

Provides register, login, logout and account info endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from paymoment.app.core.config import settings
from paymoment.app.core.money import to_minor_units
from paymoment.app.db.session import get_db, get_session_factory
from paymoment.app.domain.wallet.ledger_store import LedgerStore
from paymoment.app.models.account import Account
from paymoment.app.schemas.auth import UserRegister, UserLogin, TokenResponse, UserResponse
from paymoment.app.core.security import get_password_hash, verify_password
from paymoment.app.core.jwt import create_access_token
from paymoment.app.core.dependencies import get_current_user
from paymoment.app.core.redis_client import get_redis
from paymoment.app.core.token_revocation import revoke_token
from paymoment.app.services.audit import log_auth_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def _registration_conflict(db: AsyncSession, user_data: UserRegister):
    """Return the "already registered" message for a taken username or email, else None."""
    result = await db.execute(
        select(Account).where(
            or_(Account.username == user_data.username, Account.email == user_data.email)
        )
    )
    existing = result.scalars().first()
    if existing is None:
        return None
    if existing.username == user_data.username:
        return "Username already registered"
    return "Email already registered"


def _token_response(account: Account) -> TokenResponse:
    access_token = create_access_token(data={"sub": account.username, "user_id": account.id})
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=account.id,
        username=account.username,
        email=account.email,
        balance=account.balance
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    request: Request,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory)
):
    """
    Register a new account.

    The wallet starts at the configured signup bonus.
    """
    # Check if username or email already exists
    conflict = await _registration_conflict(db, user_data)
    if conflict:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=conflict)

    try:
        account = await LedgerStore(session_factory).create_account(
            email=user_data.email,
            username=user_data.username,
            hashed_password=get_password_hash(user_data.password),
            initial_balance_minor=to_minor_units(settings.signup_bonus),
        )
    except IntegrityError:
        # A concurrent signup took the username or email after the check above
        conflict = await _registration_conflict(db, user_data)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=conflict or "Username or email already registered"
        )

    await log_auth_event(
        db=db,
        action=AuditAction.ACCOUNT_CREATED,
        user_id=account.id,
        username=account.username,
        ip_address=request.client.host if request.client else None
    )

    return _token_response(account)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login and return a JWT token.

    Accepts username or email for login.
    Logs successful and failed login attempts.
    """
    ip_address = request.client.host if request.client else None

    result = await db.execute(
        select(Account).where(
            or_(Account.username == credentials.username, Account.email == credentials.username)
        )
    )
    account = result.scalars().first()

    if not account or not verify_password(credentials.password, account.hashed_password):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=account.id if account else None,
            username=credentials.username,
            ip_address=ip_address,
            metadata={"reason": "Invalid password" if account else "Account not found"}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not account.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=account.id,
            username=account.username,
            ip_address=ip_address,
            metadata={"reason": "Account is inactive"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive account"
        )

    response = _token_response(account)

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=account.id,
        username=account.username,
        ip_address=ip_address
    )

    return response


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Revoke the presented token."""
    revoked = await revoke_token(redis, current_user["token"], current_user["user_id"])
    if not revoked:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not revoke token, try again"
        )

    await log_auth_event(
        db=db,
        action=AuditAction.TOKEN_REVOKED,
        user_id=current_user["user_id"],
        username=current_user.get("sub")
    )
    return {"message": "Logged out"}


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current authenticated account information, including balance.
    """
    account = await db.get(Account, current_user["user_id"])

    if not account:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found"
        )

    return UserResponse.model_validate(account)

"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from datetime import datetime
from decimal import Decimal


class UserRegister(BaseModel):
    """
    Schema for account registration.

    Used by POST /auth/register endpoint.
    """
    email: EmailStr = Field(..., description="Account email address (used for provider checkouts)")
    username: str = Field(..., min_length=3, max_length=50, description="Unique username")
    password: str = Field(..., min_length=6, max_length=72, description="Password (6-72 characters)")

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        # bcrypt only accepts up to 72 bytes of input
        if len(value.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes")
        return value


class UserLogin(BaseModel):
    """
    Schema for login.

    Supports login with either username or email.
    """
    username: str = Field(..., description="Username or email")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int = Field(..., description="Account ID")
    username: str = Field(..., description="Username")
    email: str = Field(..., description="Email address")
    balance: Decimal = Field(..., description="Wallet balance")


class UserResponse(BaseModel):
    """
    Schema for account information response.

    Used by GET /auth/me endpoint.
    """
    id: int
    email: str
    username: str
    balance: Decimal
    is_active: bool
    is_superuser: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

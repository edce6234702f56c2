"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AccountNotFoundError(ResourceNotFoundError):
    """Raised when a wallet operation targets an unknown account."""

    def __init__(self, account_id: Any):
        super().__init__("Account", account_id)
        self.account_id = account_id


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class TokenRevokedError(AppException):
    """Raised when token has been revoked."""

    def __init__(self):
        super().__init__(
            message="Token has been revoked",
            error_code="ERR_AUTH_002",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Ledger / wallet errors

class DuplicateReferenceError(AppException):
    """
    Raised by the ledger store when a transaction with the reference exists.

    This is the idempotent replay signal. The balance credit service turns
    it into an "already processed" success; it only reaches a client if
    raised outside that path.
    """

    def __init__(self, reference: str, existing=None):
        super().__init__(
            message=f"Reference {reference} has already been processed",
            error_code="ERR_LEDGER_DUPLICATE",
            status_code=status.HTTP_409_CONFLICT,
            details={"reference": reference}
        )
        self.reference = reference
        self.existing = existing


class InsufficientFundsError(AppException):
    """Raised when a debit exceeds the current balance."""

    def __init__(self, account_id: int, balance, amount):
        super().__init__(
            message="Insufficient wallet balance",
            error_code="ERR_WALLET_FUNDS",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={"account_id": account_id, "balance": str(balance), "amount": str(amount)}
        )
        self.account_id = account_id
        self.balance = balance
        self.amount = amount


# Payment verification outcomes

class PaymentRejectedError(AppException):
    """Terminal: the provider reports the payment did not succeed."""

    def __init__(self, reference: str, message: str = "Payment was not successful",
                 error_code: str = "ERR_PAYMENT_REJECTED", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"reference": reference, **(details or {})}
        )
        self.reference = reference


class AmountMismatchError(PaymentRejectedError):
    """Terminal: the provider-confirmed amount differs from the claimed amount."""

    def __init__(self, reference: str, claimed_amount, verified_amount):
        super().__init__(
            reference,
            message="Verified amount does not match the claimed amount",
            error_code="ERR_PAYMENT_AMOUNT",
            details={"claimed_amount": str(claimed_amount), "verified_amount": str(verified_amount)}
        )
        self.claimed_amount = claimed_amount
        self.verified_amount = verified_amount


class ReferenceConflictError(AppException):
    """Raised when a reference was already credited to a different account."""

    def __init__(self, reference: str):
        super().__init__(
            message=f"Reference {reference} belongs to another account",
            error_code="ERR_PAYMENT_REFERENCE",
            status_code=status.HTTP_409_CONFLICT,
            details={"reference": reference}
        )
        self.reference = reference


class PaymentIndeterminateError(AppException):
    """Non-terminal: outcome unknown, retry with the same reference."""

    def __init__(self, reference: str, message: str, error_code: str, status_code: int):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details={"reference": reference, "retryable": True}
        )
        self.reference = reference


class PaymentPendingError(PaymentIndeterminateError):
    """The provider has not settled the payment yet."""

    def __init__(self, reference: str, provider_status: str = "pending"):
        super().__init__(
            reference,
            message=f"Payment is still {provider_status}; retry later with the same reference",
            error_code="ERR_PAYMENT_PENDING",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.provider_status = provider_status


class ProviderUnavailableError(PaymentIndeterminateError):
    """The payment provider could not be reached or answered unusably."""

    def __init__(self, reference: str = None, message: str = "Payment provider unavailable"):
        super().__init__(
            reference,
            message=message,
            error_code="ERR_PROVIDER_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class CreditPendingError(AppException):
    """Verification succeeded but the ledger write failed; queued for resume."""

    def __init__(self, reference: str, dlq_id: int = None):
        super().__init__(
            message="Payment verified; crediting is queued and will complete shortly",
            error_code="ERR_CREDIT_PENDING",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"reference": reference, "dlq_id": dlq_id, "retryable": True}
        )
        self.reference = reference
        self.dlq_id = dlq_id


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        402: "ERR_PAYMENT_REQUIRED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Pydantic error dicts may carry exception objects in ctx; stringify them."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )

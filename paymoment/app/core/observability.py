"""
Observability Middleware.

Tags every request with a correlation ID and writes one structured log
line per request. Authenticated wallet requests also carry the account id
and, for wallet routes, which wallet operation ran.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("paymoment.requests")

WALLET_OPERATIONS = {
    ("GET", "/v1/wallet/balance"): "balance",
    ("GET", "/v1/wallet/transactions"): "history",
    ("POST", "/v1/wallet/deposits/initialize"): "deposit_initialize",
    ("POST", "/v1/wallet/deposits/verify"): "deposit_verify",
    ("POST", "/v1/wallet/payments"): "service_payment",
}


def wallet_operation(method: str, path: str):
    """Name of the wallet operation served by this route, or None."""
    return WALLET_OPERATIONS.get((method, path.rstrip("/")))


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        started = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"

        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "ip": request.client.host if request.client else "unknown",
            # Set by get_current_user; absent on anonymous requests
            "account_id": getattr(request.state, "account_id", None),
            "wallet_operation": wallet_operation(request.method, request.url.path),
        }

        if response.status_code >= 500:
            logger.error("Request failed", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("Request rejected", extra=log_data)
        else:
            logger.info("Request served", extra=log_data)

        return response

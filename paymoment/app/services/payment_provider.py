"""
Payment provider client (Paystack).

Initializes checkouts and verifies claimed payment references. A network
failure is never reported as a payment failure: anything that prevents a
definitive answer raises ProviderUnavailableError.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote

import httpx

from paymoment.app.core.config import settings
from paymoment.app.core.exceptions import PaymentRejectedError, ProviderUnavailableError
from paymoment.app.core.reliability import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)


class VerificationStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


# Provider transaction statuses that are not yet final
_PENDING_STATUSES = {"abandoned", "ongoing", "pending", "processing", "queued"}
_FAILED_STATUSES = {"failed", "reversed"}


@dataclass(frozen=True)
class VerificationResult:
    reference: str
    status: VerificationStatus
    amount_minor: int
    payer_email: Optional[str] = None
    currency: Optional[str] = None
    provider_status: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class PaymentInitialization:
    authorization_url: str
    access_code: Optional[str]
    reference: str


class PaystackClient:
    """Async Paystack API client."""

    provider_name = "paystack"

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 15.0,
        callback_url: Optional[str] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.callback_url = callback_url
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name=self.provider_name)
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "PaystackClient":
        return cls(
            secret_key=settings.paystack_secret_key,
            base_url=settings.paystack_base_url,
            timeout=settings.provider_timeout_seconds,
            callback_url=settings.paystack_callback_url or None,
            circuit_breaker=provider_circuit_breaker,
        )

    async def initialize(self, email: str, amount_minor: int, reference: Optional[str] = None) -> PaymentInitialization:
        """Start a provider checkout for the given amount (minor units)."""
        payload = {"email": email, "amount": amount_minor}
        if reference:
            payload["reference"] = reference
        if self.callback_url:
            payload["callback_url"] = self.callback_url

        response = await self._request("POST", "/transaction/initialize", reference, json=payload)
        body = self._parse(response, reference)

        if response.status_code >= 400 or not body.get("status"):
            raise PaymentRejectedError(
                reference,
                message=f"Payment initialization declined: {body.get('message', 'unknown error')}",
                error_code="ERR_PAYMENT_INIT",
            )

        data = body.get("data") or {}
        if not data.get("authorization_url"):
            raise ProviderUnavailableError(reference, "Payment provider returned no authorization URL")

        return PaymentInitialization(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code"),
            reference=data.get("reference") or reference,
        )

    async def verify(self, reference: str) -> VerificationResult:
        """Ask the provider whether the reference is a completed payment."""
        response = await self._request("GET", f"/transaction/verify/{quote(reference, safe='')}", reference)

        if response.status_code in (400, 404):
            # Provider does not know this reference: definitive
            logger.info("Provider has no transaction for reference %s", reference)
            return VerificationResult(
                reference=reference,
                status=VerificationStatus.FAILED,
                amount_minor=0,
                provider_status="not_found",
            )

        body = self._parse(response, reference)
        data = body.get("data")
        if not isinstance(data, dict):
            raise ProviderUnavailableError(reference, "Payment provider returned an unexpected body")

        provider_status = str(data.get("status", "")).lower()
        if provider_status == "success":
            status = VerificationStatus.SUCCESS
        elif provider_status in _FAILED_STATUSES:
            status = VerificationStatus.FAILED
        else:
            if provider_status not in _PENDING_STATUSES:
                logger.warning("Unknown provider status %r for %s", provider_status, reference)
            status = VerificationStatus.PENDING

        amount = data.get("amount", 0)
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ProviderUnavailableError(reference, "Payment provider returned a non-integer amount")

        customer = data.get("customer") or {}
        return VerificationResult(
            reference=reference,
            status=status,
            amount_minor=amount,
            payer_email=customer.get("email"),
            currency=data.get("currency"),
            provider_status=provider_status,
            raw=data,
        )

    async def _request(self, method: str, path: str, reference: Optional[str], json: dict = None) -> httpx.Response:
        async def send() -> httpx.Response:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Authorization": f"Bearer {self.secret_key}"},
            ) as client:
                response = await client.request(method, path, json=json)

            # Throttling, provider outages and our own credential problems say
            # nothing about the payment itself
            if response.status_code == 429 or response.status_code >= 500 or response.status_code in (401, 403):
                raise ProviderUnavailableError(
                    reference, f"Payment provider returned HTTP {response.status_code}"
                )
            return response

        try:
            return await self.circuit_breaker.call(send)
        except CircuitOpenError:
            raise ProviderUnavailableError(reference, "Payment provider circuit is open")
        except httpx.TimeoutException:
            logger.warning("Payment provider timeout on %s %s", method, path)
            raise ProviderUnavailableError(reference, "Payment provider timed out")
        except httpx.HTTPError as e:
            logger.warning("Payment provider request failed on %s %s: %s", method, path, e)
            raise ProviderUnavailableError(reference, "Payment provider request failed")

    @staticmethod
    def _parse(response: httpx.Response, reference: Optional[str]) -> dict:
        try:
            body = response.json()
        except ValueError:
            raise ProviderUnavailableError(reference, "Payment provider returned invalid JSON")
        if not isinstance(body, dict):
            raise ProviderUnavailableError(reference, "Payment provider returned an unexpected body")
        return body


# Shared breaker for the process-wide client
provider_circuit_breaker = CircuitBreaker(
    failure_threshold=settings.provider_failure_threshold,
    reset_timeout=settings.provider_reset_timeout,
    name=PaystackClient.provider_name,
)


def get_payment_provider() -> PaystackClient:
    """FastAPI dependency for the payment provider client."""
    return PaystackClient.from_settings()

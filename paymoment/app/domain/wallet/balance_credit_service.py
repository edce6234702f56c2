"""
Balance Credit Service (Domain Logic).

The only path by which an external payment becomes a balance increase,
plus the direct debit path for service payments.

Per (account, reference) a deposit moves through
    Unseen -> Verifying -> Credited | Rejected | Indeterminate
Credited and Rejected are terminal; Indeterminate is retried by the caller
with the same reference.
"""

import asyncio
import enum
import functools
import logging
import re
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError

from paymoment.app.core.exceptions import (
    AccountNotFoundError,
    AppException,
    AmountMismatchError,
    CreditPendingError,
    DuplicateReferenceError,
    InsufficientFundsError,
    PaymentIndeterminateError,
    PaymentPendingError,
    PaymentRejectedError,
    ReferenceConflictError,
)
from paymoment.app.core.money import to_minor_units, from_minor_units
from paymoment.app.domain.wallet.ledger_store import LedgerStore
from paymoment.app.models.enums import TransactionKind
from paymoment.app.models.transaction import Transaction
from paymoment.app.services import dead_letters
from paymoment.app.services.audit import log_event, AuditAction
from paymoment.app.services.payment_provider import PaymentInitialization, VerificationStatus

logger = logging.getLogger(__name__)

_SERVICE_KIND = re.compile(r"^[a-z0-9][a-z0-9_-]{0,49}$")


class CreditStatus(str, enum.Enum):
    CREDITED = "credited"
    ALREADY_PROCESSED = "already_processed"


class DebitStatus(str, enum.Enum):
    COMPLETED = "completed"


class ResumeStatus(str, enum.Enum):
    CREDITED = "credited"
    ALREADY_PROCESSED = "already_processed"
    RETRYING = "retrying"
    ARCHIVED = "archived"


@dataclass
class CreditResult:
    status: CreditStatus
    transaction: Transaction
    balance: Decimal


@dataclass
class DebitResult:
    status: DebitStatus
    reference: str
    transaction: Transaction
    balance: Decimal


@dataclass
class ResumeOutcome:
    dlq_id: int
    reference: str
    status: ResumeStatus
    error: Optional[str] = None


def generate_reference(prefix: str) -> str:
    """Fresh collision-resistant reference, e.g. electricity-1760870400000-9f1c2a7b."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def _log_credit_outcome(reference: str, write: asyncio.Future) -> None:
    """Retrieve and log the result of a shielded credit write; its caller may be gone."""
    if write.cancelled():
        logger.error("Credit write for %s was cancelled", reference)
        return
    error = write.exception()
    if error is not None:
        logger.warning("Credit write for %s ended with %s: %s", reference, type(error).__name__, error)
    else:
        logger.info("Credit write for %s finished: %s", reference, write.result().status.value)


class BalanceCreditService:

    def __init__(self, ledger: LedgerStore, payment_provider):
        self.ledger = ledger
        self.payment_provider = payment_provider

    async def get_balance(self, account_id: int) -> Decimal:
        return from_minor_units(await self.ledger.get_balance(account_id))

    async def list_transactions(self, account_id: int, limit: int = None) -> list[Transaction]:
        return await self.ledger.list_transactions(account_id, limit)

    async def initialize_deposit(self, account_id: int, amount) -> PaymentInitialization:
        """
        Start a provider checkout for a deposit.

        Nothing is written to the ledger; the returned reference is later
        presented to credit_deposit.
        """
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise ValueError("Deposit amount must be positive")

        account = await self.ledger.get_account(account_id)
        reference = generate_reference(f"dep{account_id}")
        initialization = await self.payment_provider.initialize(account.email, amount_minor, reference=reference)

        await self._audit(
            AuditAction.DEPOSIT_INITIALIZED, account_id, initialization.reference,
            {"amount": str(from_minor_units(amount_minor))}
        )
        return initialization

    async def credit_deposit(self, account_id: int, reference: str, claimed_amount=None) -> CreditResult:
        """
        Verify a claimed payment reference and credit it exactly once.

        Flow:
        1. Replay check (reference already credited)
        2. Provider verification, with no database transaction open
        3. Amount check against the claim
        4. Atomic ledger write, shielded from caller cancellation

        Returns:
            CreditResult with status CREDITED, or ALREADY_PROCESSED on replay

        Raises:
            AccountNotFoundError: Unknown account
            PaymentRejectedError: Provider says the payment failed (terminal)
            AmountMismatchError: Verified amount differs from the claim (terminal)
            ReferenceConflictError: Reference credited to another account
            PaymentPendingError / ProviderUnavailableError: Indeterminate, retry
            CreditPendingError: Verified but not yet written; queued for resume
        """
        reference = (reference or "").strip()
        if not reference:
            raise ValueError("Payment reference is required")
        claimed_minor = to_minor_units(claimed_amount) if claimed_amount is not None else None

        existing = await self.ledger.get_transaction_by_reference(reference)
        if existing is not None:
            return await self._replayed(account_id, existing)

        await self.ledger.get_account(account_id)

        try:
            verification = await self.payment_provider.verify(reference)
        except PaymentIndeterminateError as e:
            await self._audit(AuditAction.DEPOSIT_INDETERMINATE, account_id, reference, {"error": e.message})
            raise

        if verification.status == VerificationStatus.PENDING:
            await self._audit(
                AuditAction.DEPOSIT_INDETERMINATE, account_id, reference,
                {"provider_status": verification.provider_status}
            )
            raise PaymentPendingError(reference, verification.provider_status or "pending")

        if verification.status != VerificationStatus.SUCCESS or verification.amount_minor <= 0:
            await self._audit(
                AuditAction.DEPOSIT_REJECTED, account_id, reference,
                {"provider_status": verification.provider_status}
            )
            raise PaymentRejectedError(reference)

        if claimed_minor is not None and claimed_minor != verification.amount_minor:
            await self._audit(
                AuditAction.DEPOSIT_REJECTED, account_id, reference,
                {
                    "reason": "amount_mismatch",
                    "claimed_amount": str(from_minor_units(claimed_minor)),
                    "verified_amount": str(from_minor_units(verification.amount_minor)),
                }
            )
            raise AmountMismatchError(
                reference, from_minor_units(claimed_minor), from_minor_units(verification.amount_minor)
            )

        # The provider has committed funds; the write must land even if the
        # caller goes away.
        write = asyncio.ensure_future(
            self._complete_credit(
                account_id, reference, verification.amount_minor,
                payer_email=verification.payer_email, capture_failure=True
            )
        )
        write.add_done_callback(functools.partial(_log_credit_outcome, reference))
        return await asyncio.shield(write)

    async def debit_for_service(self, account_id: int, kind: str, description: Optional[str], amount) -> DebitResult:
        """
        Pay for a service (electricity, airtime, ...) from the wallet balance.

        Raises:
            AccountNotFoundError: Unknown account
            InsufficientFundsError: Balance below amount; balance unchanged
        """
        service = (kind or "").strip().lower()
        if not _SERVICE_KIND.match(service):
            raise ValueError(f"Invalid service kind: {kind!r}")
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise ValueError("Payment amount must be positive")

        balance = await self.ledger.get_balance(account_id)
        reference = generate_reference(service)

        try:
            if balance < amount_minor:
                raise InsufficientFundsError(account_id, from_minor_units(balance), from_minor_units(amount_minor))
            # The store re-checks funds atomically; the read above is only a fast reject
            transaction = await self.ledger.record_completed_transaction(
                account_id,
                TransactionKind.PAYMENT,
                amount_minor,
                reference,
                description=description or f"{service} payment",
                service=service,
            )
        except InsufficientFundsError as e:
            await self._audit(
                AuditAction.SERVICE_DEBIT_DECLINED, account_id, reference,
                {"service": service, "amount": str(e.amount), "balance": str(e.balance)}
            )
            raise

        await self._audit(
            AuditAction.SERVICE_DEBITED, account_id, reference,
            {"service": service, "amount": str(transaction.amount)}
        )
        return DebitResult(
            status=DebitStatus.COMPLETED,
            reference=reference,
            transaction=transaction,
            balance=transaction.balance_after,
        )

    async def resume_pending_credits(self, limit: int = 50) -> list[ResumeOutcome]:
        """
        Re-drive verified credits whose ledger write failed.

        Each dead letter carries the reference and the provider-verified
        amount; writing it again is idempotent on the reference.
        """
        async with self.ledger.session_factory() as db:
            items = await dead_letters.list_retryable(db, dead_letters.CREDIT_DEPOSIT_TASK, limit)

        outcomes = []
        for item in items:
            payload = item.payload or {}
            reference = payload.get("reference", "")
            try:
                result = await self._complete_credit(
                    payload["account_id"], reference, payload["amount_minor"], capture_failure=False
                )
            except (KeyError, AccountNotFoundError, ReferenceConflictError) as e:
                error = f"Cannot resume: {e}"
                async with self.ledger.session_factory() as db:
                    await dead_letters.mark_archived(db, item.id, error)
                logger.error("Archived dead letter %s: %s", item.id, error)
                outcomes.append(ResumeOutcome(item.id, reference, ResumeStatus.ARCHIVED, error))
                continue
            except (SQLAlchemyError, AppException) as e:
                error = f"{type(e).__name__}: {e}"
                async with self.ledger.session_factory() as db:
                    await dead_letters.mark_retrying(db, item.id, error)
                logger.warning("Dead letter %s still failing: %s", item.id, error)
                outcomes.append(ResumeOutcome(item.id, reference, ResumeStatus.RETRYING, error))
                continue

            async with self.ledger.session_factory() as db:
                await dead_letters.mark_processed(db, item.id)
            await self._audit(AuditAction.DEPOSIT_RESUMED, payload["account_id"], reference, {"dlq_id": item.id})
            outcomes.append(ResumeOutcome(item.id, reference, ResumeStatus(result.status.value)))

        return outcomes

    async def _complete_credit(
        self,
        account_id: int,
        reference: str,
        amount_minor: int,
        payer_email: Optional[str] = None,
        capture_failure: bool = True
    ) -> CreditResult:
        try:
            transaction = await self.ledger.record_completed_transaction(
                account_id,
                TransactionKind.DEPOSIT,
                amount_minor,
                reference,
                description=f"Deposit via {getattr(self.payment_provider, 'provider_name', 'provider')}",
            )
        except DuplicateReferenceError as e:
            # A concurrent or earlier request won the insert
            return await self._replayed(account_id, e.existing)
        except SQLAlchemyError as e:
            if not capture_failure:
                raise
            dlq_id = await self._defer_credit(account_id, reference, amount_minor, payer_email, e)
            raise CreditPendingError(reference, dlq_id) from e

        await self._audit(
            AuditAction.DEPOSIT_CREDITED, account_id, reference,
            {"amount": str(transaction.amount), "payer_email": payer_email}
        )
        return CreditResult(
            status=CreditStatus.CREDITED,
            transaction=transaction,
            balance=transaction.balance_after,
        )

    async def _replayed(self, account_id: int, existing: Transaction) -> CreditResult:
        if existing.account_id != account_id or existing.kind != TransactionKind.DEPOSIT:
            await self._audit(
                AuditAction.DEPOSIT_REJECTED, account_id, existing.reference,
                {"reason": "reference_conflict"}
            )
            raise ReferenceConflictError(existing.reference)

        balance = await self.ledger.get_balance(account_id)
        await self._audit(
            AuditAction.DEPOSIT_REPLAYED, account_id, existing.reference,
            {"transaction_id": existing.id}
        )
        return CreditResult(
            status=CreditStatus.ALREADY_PROCESSED,
            transaction=existing,
            balance=from_minor_units(balance),
        )

    async def _defer_credit(
        self,
        account_id: int,
        reference: str,
        amount_minor: int,
        payer_email: Optional[str],
        error: Exception
    ) -> Optional[int]:
        payload = {
            "account_id": account_id,
            "reference": reference,
            "amount_minor": amount_minor,
            "payer_email": payer_email,
        }
        try:
            async with self.ledger.session_factory() as db:
                item = await dead_letters.capture(
                    db, dead_letters.CREDIT_DEPOSIT_TASK, payload, f"{type(error).__name__}: {error}"
                )
        except SQLAlchemyError:
            logger.critical("Verified credit could not be recorded or queued: %s", payload, exc_info=True)
            return None

        logger.error("Verified credit %s queued as dead letter %s", reference, item.id)
        await self._audit(AuditAction.DEPOSIT_CREDIT_PENDING, account_id, reference, {"dlq_id": item.id})
        return item.id

    async def _audit(
        self,
        action: str,
        account_id: int,
        reference: Optional[str],
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        # The audit trail must never change a payment outcome
        try:
            async with self.ledger.session_factory() as db:
                await log_event(
                    db,
                    action=action,
                    actor_id=account_id,
                    account_id=account_id,
                    reference=reference,
                    metadata=metadata,
                )
        except SQLAlchemyError:
            logger.exception("Failed to write audit event %s for %s", action, reference)

"""
Ledger Store (Domain Storage).

Durable storage of accounts and their transaction history.
Every balance change is a relative UPDATE plus the INSERT of its
transaction row, committed together or not at all.
"""

import logging
from typing import Optional, Union

from sqlalchemy import select, update, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from paymoment.app.core.config import settings
from paymoment.app.core.exceptions import (
    AccountNotFoundError,
    DuplicateReferenceError,
    InsufficientFundsError,
)
from paymoment.app.core.money import from_minor_units
from paymoment.app.models.account import Account
from paymoment.app.models.enums import TransactionKind, TransactionStatus
from paymoment.app.models.transaction import Transaction

logger = logging.getLogger(__name__)


class LedgerStore:
    """
    Accounts and transactions backed by the relational database.

    Each call opens its own short transaction from the session factory, so
    callers never hold a database transaction across slow I/O.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def create_account(
        self,
        email: str,
        username: str,
        hashed_password: str,
        initial_balance_minor: int = 0,
        is_superuser: bool = False
    ) -> Account:
        """
        Create an account with its starting balance.

        Raises:
            IntegrityError: If email or username is already taken
        """
        if initial_balance_minor < 0:
            raise ValueError("Starting balance cannot be negative")

        async with self.session_factory() as session:
            async with session.begin():
                account = Account(
                    email=email,
                    username=username,
                    hashed_password=hashed_password,
                    balance_minor=initial_balance_minor,
                    is_active=True,
                    is_superuser=is_superuser,
                )
                session.add(account)
                await session.flush()
                await session.refresh(account)

        logger.info("Created account %s with starting balance %s", account.id, account.balance)
        return account

    async def get_account(self, account_id: int) -> Account:
        async with self.session_factory() as session:
            account = await session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def get_balance(self, account_id: int) -> int:
        """
        Current balance in minor units.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        async with self.session_factory() as session:
            balance = await session.scalar(
                select(Account.balance_minor).where(Account.id == account_id)
            )
        if balance is None:
            raise AccountNotFoundError(account_id)
        return balance

    async def record_completed_transaction(
        self,
        account_id: int,
        kind: Union[TransactionKind, str],
        amount_minor: int,
        reference: str,
        description: Optional[str] = None,
        service: Optional[str] = None
    ) -> Transaction:
        """
        Apply a completed transaction to an account.

        Flow (single database transaction):
        1. Relative balance update; debits only match while balance >= amount
        2. Insert the transaction row (unique reference)
        3. Commit. Any failure rolls back both.

        Args:
            account_id: Owning account
            kind: Transaction kind; DEPOSIT credits, everything else debits
            amount_minor: Positive amount in minor units
            reference: Globally unique idempotency key
            description: Free text shown in history
            service: Paid-for service label for debits

        Returns:
            The committed Transaction

        Raises:
            DuplicateReferenceError: A transaction with this reference exists
            InsufficientFundsError: Debit larger than the current balance
            AccountNotFoundError: Unknown account
        """
        kind = TransactionKind(kind)
        if amount_minor <= 0:
            raise ValueError("Transaction amount must be positive")
        if not reference:
            raise ValueError("Transaction reference is required")

        delta = kind.signed(amount_minor)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    stmt = update(Account).where(Account.id == account_id)
                    if not kind.is_credit:
                        stmt = stmt.where(Account.balance_minor >= amount_minor)
                    stmt = (
                        stmt.values(balance_minor=Account.balance_minor + delta)
                        .returning(Account.balance_minor)
                        .execution_options(synchronize_session=False)
                    )
                    result = await session.execute(stmt)
                    balance_after = result.scalar_one_or_none()

                    if balance_after is None:
                        current = await session.scalar(
                            select(Account.balance_minor).where(Account.id == account_id)
                        )
                        if current is None:
                            raise AccountNotFoundError(account_id)
                        raise InsufficientFundsError(
                            account_id, from_minor_units(current), from_minor_units(amount_minor)
                        )

                    transaction = Transaction(
                        account_id=account_id,
                        kind=kind,
                        status=TransactionStatus.COMPLETED,
                        reference=reference,
                        service=service,
                        description=description,
                        amount_minor=amount_minor,
                        balance_after_minor=balance_after,
                    )
                    session.add(transaction)
                    await session.flush()
        except IntegrityError:
            # Only the reference can collide once the balance update matched
            existing = await self.get_transaction_by_reference(reference)
            if existing is None:
                raise
            logger.info("Reference %s already recorded as transaction %s", reference, existing.id)
            raise DuplicateReferenceError(reference, existing)

        logger.info(
            "Recorded %s %s of %s on account %s (balance %s)",
            kind.value, reference, transaction.amount, account_id, transaction.balance_after
        )
        return transaction

    async def get_transaction_by_reference(self, reference: str) -> Optional[Transaction]:
        async with self.session_factory() as session:
            return await session.scalar(
                select(Transaction).where(Transaction.reference == reference)
            )

    async def list_transactions(self, account_id: int, limit: int = None) -> list[Transaction]:
        """
        Most recent transactions first, at most `limit` rows.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        if limit is None:
            limit = settings.default_history_limit
        limit = max(1, min(limit, settings.max_history_limit))

        async with self.session_factory() as session:
            exists = await session.scalar(select(Account.id).where(Account.id == account_id))
            if exists is None:
                raise AccountNotFoundError(account_id)

            result = await session.execute(
                select(Transaction)
                .where(Transaction.account_id == account_id)
                .order_by(desc(Transaction.created_at), desc(Transaction.id))
                .limit(limit)
            )
            return list(result.scalars().all())

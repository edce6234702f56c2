"""
Ledger Store tests.

Balance updates and transaction rows commit together, references are
unique, and debits never overdraw.
"""

import asyncio

import pytest
from sqlalchemy import select, func

from paymoment.app.core.exceptions import (
    AccountNotFoundError,
    DuplicateReferenceError,
    InsufficientFundsError,
)
from paymoment.app.models.enums import TransactionKind, TransactionStatus
from paymoment.app.models.transaction import Transaction


async def count_transactions(session_factory, account_id):
    async with session_factory() as session:
        return await session.scalar(
            select(func.count(Transaction.id)).where(Transaction.account_id == account_id)
        )


@pytest.mark.asyncio
async def test_create_account_sets_starting_balance(ledger, make_account):
    account = await make_account("alice", "5000")

    assert account.id is not None
    assert await ledger.get_balance(account.id) == 500000
    assert (await ledger.get_account(account.id)).username == "alice"


@pytest.mark.asyncio
async def test_negative_starting_balance_rejected(ledger):
    with pytest.raises(ValueError):
        await ledger.create_account("neg@example.com", "neg", "x", initial_balance_minor=-1)


@pytest.mark.asyncio
async def test_deposit_increases_balance_and_records_row(ledger, make_account):
    account = await make_account("bob", "5000")

    transaction = await ledger.record_completed_transaction(
        account.id, TransactionKind.DEPOSIT, 200000, "ref-deposit-1", description="Deposit"
    )

    assert transaction.status == TransactionStatus.COMPLETED
    assert transaction.balance_after_minor == 700000
    assert await ledger.get_balance(account.id) == 700000
    assert (await ledger.get_transaction_by_reference("ref-deposit-1")).id == transaction.id


@pytest.mark.asyncio
async def test_debit_records_service(ledger, make_account):
    account = await make_account("carol", "100")

    transaction = await ledger.record_completed_transaction(
        account.id, "payment", 2500, "electricity-1", service="electricity"
    )

    assert transaction.kind == TransactionKind.PAYMENT
    assert transaction.service == "electricity"
    assert await ledger.get_balance(account.id) == 7500


@pytest.mark.asyncio
async def test_insufficient_funds_leaves_no_trace(ledger, session_factory, make_account):
    account = await make_account("dave", "40")

    with pytest.raises(InsufficientFundsError) as exc:
        await ledger.record_completed_transaction(account.id, TransactionKind.PAYMENT, 10000, "airtime-1")

    assert exc.value.status_code == 402
    assert await ledger.get_balance(account.id) == 4000
    assert await count_transactions(session_factory, account.id) == 0


@pytest.mark.asyncio
async def test_duplicate_reference_applies_once(ledger, session_factory, make_account):
    account = await make_account("erin", "0")
    first = await ledger.record_completed_transaction(account.id, TransactionKind.DEPOSIT, 1000, "ref-dup")

    with pytest.raises(DuplicateReferenceError) as exc:
        await ledger.record_completed_transaction(account.id, TransactionKind.DEPOSIT, 1000, "ref-dup")

    assert exc.value.existing.id == first.id
    assert await ledger.get_balance(account.id) == 1000
    assert await count_transactions(session_factory, account.id) == 1


@pytest.mark.asyncio
async def test_unknown_account(ledger):
    with pytest.raises(AccountNotFoundError):
        await ledger.get_balance(999)
    with pytest.raises(AccountNotFoundError):
        await ledger.record_completed_transaction(999, TransactionKind.DEPOSIT, 100, "ref-ghost")
    with pytest.raises(AccountNotFoundError):
        await ledger.list_transactions(999)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -100])
async def test_non_positive_amount_rejected(ledger, make_account, amount):
    account = await make_account("frank", "10")

    with pytest.raises(ValueError):
        await ledger.record_completed_transaction(account.id, TransactionKind.DEPOSIT, amount, "ref-zero")


@pytest.mark.asyncio
async def test_history_most_recent_first_with_limit(ledger, make_account):
    account = await make_account("grace", "0")
    for i in range(5):
        await ledger.record_completed_transaction(account.id, TransactionKind.DEPOSIT, 100, f"ref-h{i}")

    history = await ledger.list_transactions(account.id, limit=3)

    assert [t.reference for t in history] == ["ref-h4", "ref-h3", "ref-h2"]
    assert history[0].balance_after_minor == 500


@pytest.mark.asyncio
async def test_history_limit_is_clamped(ledger, make_account, mocker):
    mocker.patch("paymoment.app.domain.wallet.ledger_store.settings.max_history_limit", 2)
    account = await make_account("heidi", "0")
    for i in range(3):
        await ledger.record_completed_transaction(account.id, TransactionKind.DEPOSIT, 100, f"ref-c{i}")

    assert len(await ledger.list_transactions(account.id, limit=50)) == 2
    assert len(await ledger.list_transactions(account.id, limit=0)) == 1


@pytest.mark.asyncio
async def test_concurrent_debits_never_overdraw(ledger, session_factory, make_account):
    account = await make_account("ivan", "100")

    results = await asyncio.gather(
        *[
            ledger.record_completed_transaction(account.id, TransactionKind.PAYMENT, 3000, f"data-{i}")
            for i in range(5)
        ],
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, Transaction)]
    declined = [r for r in results if isinstance(r, InsufficientFundsError)]
    assert len(succeeded) == 3
    assert len(declined) == 2
    assert await ledger.get_balance(account.id) == 1000
    assert await count_transactions(session_factory, account.id) == 3

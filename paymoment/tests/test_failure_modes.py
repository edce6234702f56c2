"""
Failure Injection Tests.

Validates resilience against component failures and money edge cases.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from paymoment.app.core.money import to_minor_units, from_minor_units
from paymoment.app.core.reliability import CircuitBreaker, CircuitOpenError
from paymoment.app.core.token_revocation import is_token_revoked, revoke_token
from paymoment.app.models.dlq import DLQStatus
from paymoment.app.services import dead_letters


async def failing_func():
    raise ValueError("Boom")


async def ok_func():
    return "ok"


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    with pytest.raises(CircuitOpenError):
        await cb.call(ok_func)
    assert cb.state == "OPEN"


@pytest.mark.asyncio
async def test_circuit_breaker_success_resets_count():
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert await cb.call(ok_func) == "ok"
    with pytest.raises(ValueError):
        await cb.call(failing_func)

    assert cb.state == "CLOSED"


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_trial():
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=0)

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Timeout elapsed: one trial call goes through; failing it reopens
    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    assert await cb.call(ok_func) == "ok"
    assert cb.state == "CLOSED"


@pytest.mark.asyncio
async def test_dlq_capture_and_status_transitions(db_session):
    """Test that a failed task is captured in the DLQ and tracks retries."""
    item = await dead_letters.capture(
        db_session, dead_letters.CREDIT_DEPOSIT_TASK, {"reference": "ref-1"}, "Payment gateway timeout"
    )

    assert item.id is not None
    assert item.status == DLQStatus.FAILED
    assert item.retry_count == 0

    item = await dead_letters.mark_retrying(db_session, item.id, "still down")
    assert item.status == DLQStatus.RETRYING
    assert item.retry_count == 1
    assert item.last_retry_at is not None

    retryable = await dead_letters.list_retryable(db_session, dead_letters.CREDIT_DEPOSIT_TASK)
    assert [i.id for i in retryable] == [item.id]

    await dead_letters.mark_archived(db_session, item.id, "gave up")
    assert await dead_letters.list_retryable(db_session, dead_letters.CREDIT_DEPOSIT_TASK) == []
    assert await dead_letters.mark_processed(db_session, 999) is None


@pytest.mark.asyncio
async def test_revocation_check_fails_open_when_redis_down():
    redis = AsyncMock()
    redis.exists.side_effect = RedisConnectionError("down")

    assert await is_token_revoked(redis, "token") is False


@pytest.mark.asyncio
async def test_revoke_reports_redis_failure():
    redis = AsyncMock()
    redis.set.side_effect = RedisConnectionError("down")

    assert await revoke_token(redis, "token", 1) is False


@pytest.mark.parametrize(
    "amount, minor",
    [("10.50", 1050), (Decimal("2000"), 200000), (7, 700), ("0.01", 1), ("0", 0)],
)
def test_to_minor_units(amount, minor):
    assert to_minor_units(amount) == minor


@pytest.mark.parametrize("amount", ["0.001", "abc", "NaN", "Infinity", Decimal("1.005")])
def test_to_minor_units_rejects_bad_input(amount):
    with pytest.raises(ValueError):
        to_minor_units(amount)


def test_from_minor_units():
    assert from_minor_units(1050) == Decimal("10.50")
    assert str(from_minor_units(700000)) == "7000.00"

"""
Integration tests for the Authentication Flow.

Verifies Register -> Login -> Me -> Logout.
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from paymoment.app.models.account import Account
from paymoment.app.services.audit import AuditAction, get_account_audit_history


@pytest.mark.asyncio
async def test_register_login_me_flow(client):
    # 1. Register
    reg_payload = {"email": "ada@example.com", "username": "ada", "password": "password123"}
    response = await client.post("/v1/auth/register", json=reg_payload)
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["username"] == "ada"
    assert data["token_type"] == "bearer"
    assert Decimal(data["balance"]) == Decimal("0")

    # 2. Login by email
    response = await client.post("/v1/auth/login", json={"username": "ada@example.com", "password": "password123"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    # 3. Me
    response = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    me = response.json()
    assert me["email"] == "ada@example.com"
    assert me["is_superuser"] is False
    assert Decimal(me["balance"]) == Decimal("0")


@pytest.mark.asyncio
async def test_register_applies_signup_bonus(client, mocker):
    mocker.patch("paymoment.app.api.v1.endpoints.auth.settings.signup_bonus", Decimal("100.00"))

    response = await client.post(
        "/v1/auth/register", json={"email": "bob@example.com", "username": "bob", "password": "password123"}
    )

    assert response.status_code == 201
    assert Decimal(response.json()["balance"]) == Decimal("100.00")


@pytest.mark.asyncio
async def test_duplicate_registration_rejected(client, make_account):
    await make_account("cyd")

    response = await client.post(
        "/v1/auth/register", json={"email": "other@example.com", "username": "cyd", "password": "password123"}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Username already registered"

    response = await client.post(
        "/v1/auth/register", json={"email": "cyd@example.com", "username": "cyd2", "password": "password123"}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Email already registered"


@pytest.mark.asyncio
async def test_register_validation(client):
    response = await client.post(
        "/v1/auth/register", json={"email": "not-an-email", "username": "dd", "password": "123"}
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
@pytest.mark.parametrize("password", ["p" * 80, "é" * 40])
async def test_register_rejects_password_over_72_bytes(client, password):
    response = await client.post(
        "/v1/auth/register", json={"email": "long@example.com", "username": "longpw", "password": password}
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_login_with_overlong_password_is_rejected(client, make_account):
    await make_account("ema")

    response = await client.post("/v1/auth/login", json={"username": "ema", "password": "p" * 100})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_concurrent_registration_creates_one_account(client, db_session):
    body = {"email": "race@example.com", "username": "racer", "password": "password123"}

    responses = await asyncio.gather(*[client.post("/v1/auth/register", json=body) for _ in range(4)])

    codes = sorted(r.status_code for r in responses)
    assert codes == [201, 400, 400, 400]
    for response in responses:
        if response.status_code == 400:
            assert "already registered" in response.json()["message"]

    count = await db_session.scalar(
        select(func.count()).select_from(Account).where(Account.username == "racer")
    )
    assert count == 1


@pytest.mark.asyncio
async def test_bad_password_is_audited(client, db_session, make_account):
    account = await make_account("dee")

    response = await client.post("/v1/auth/login", json={"username": "dee", "password": "wrong-password"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"
    history = await get_account_audit_history(db_session, account.id, action=AuditAction.LOGIN_FAILED)
    assert len(history) == 1
    assert history[0].meta_data == {"reason": "Invalid password"}


@pytest.mark.asyncio
async def test_logout_revokes_token(client, login, mock_redis, make_account):
    await make_account("eli")
    headers = await login("eli")

    response = await client.post("/v1/auth/logout", headers=headers)
    assert response.status_code == 200
    assert len(mock_redis.store) == 1
    assert list(mock_redis.expiry.values()) == [30 * 60]

    response = await client.get("/v1/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been revoked"


@pytest.mark.asyncio
async def test_protected_routes_require_token(client):
    response = await client.get("/v1/wallet/balance")
    assert response.status_code in (401, 403)

    response = await client.get("/v1/wallet/balance", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["redis"] == "ok"
    assert "X-Correlation-ID" in response.headers

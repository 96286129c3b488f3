"""
Integration tests for Authentication Flow.

Verifies Register -> Login -> Me flow and role rules.
"""

import pytest
from sqlalchemy import select

from hopelink.app.models.audit_log import AuditLog


@pytest.mark.asyncio
async def test_register_login_me(client):
    response = await client.post("/v1/auth/register", json={
        "email": "vol@example.com",
        "username": "maria",
        "password": "password123",
        "role": "volunteer"
    })
    assert response.status_code == 201
    data = response.json()
    assert data["role"] == "volunteer"
    assert data["token_type"] == "bearer"

    response = await client.post("/v1/auth/login", json={
        "username": "vol@example.com",
        "password": "password123"
    })
    assert response.status_code == 200
    token = response.json()["access_token"]

    response = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["username"] == "maria"
    assert response.json()["role"] == "volunteer"


@pytest.mark.asyncio
async def test_register_defaults_to_donor(client):
    response = await client.post("/v1/auth/register", json={
        "email": "donor@example.com",
        "username": "dana",
        "password": "password123"
    })
    assert response.status_code == 201
    assert response.json()["role"] == "donor"


@pytest.mark.asyncio
async def test_admin_cannot_register(client):
    response = await client.post("/v1/auth/register", json={
        "email": "root@example.com",
        "username": "root",
        "password": "password123",
        "role": "admin"
    })
    assert response.status_code == 403
    assert response.json()["message"] == "Admin users cannot be registered via API"
    assert response.json()["error_code"] == "ERR_FORBIDDEN"


@pytest.mark.asyncio
async def test_duplicate_username(client, donor):
    user, _ = donor
    response = await client.post("/v1/auth/register", json={
        "email": "other@example.com",
        "username": user.username,
        "password": "password123"
    })
    assert response.status_code == 400
    assert response.json()["message"] == "Username already registered"


@pytest.mark.asyncio
async def test_wrong_password_is_audited(client, donor, db_session):
    user, _ = donor
    response = await client.post("/v1/auth/login", json={
        "username": user.username,
        "password": "not-the-password"
    })
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"

    result = await db_session.execute(
        select(AuditLog).where(AuditLog.action == "LOGIN_FAILED")
    )
    log = result.scalar_one()
    assert log.actor_id == user.id
    assert log.meta_data["reason"] == "Invalid password"


@pytest.mark.asyncio
async def test_missing_token(client):
    response = await client.get("/v1/auth/me")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_invalid_token(client):
    response = await client.get("/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["message"] == "Could not validate credentials"


@pytest.mark.asyncio
async def test_blocked_user_is_rejected(client, donor, admin):
    user, headers = donor
    _, admin_headers = admin

    response = await client.post(
        f"/v1/admin/users/{user.id}/block", json={"reason": "spam"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["action"] == "USER_BLOCKED"

    response = await client.get("/v1/auth/me", headers=headers)
    assert response.status_code == 403
    assert response.json()["message"] == "User account is inactive"

    response = await client.post("/v1/auth/login", json={
        "username": user.username,
        "password": "secret123"
    })
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_password_longer_than_bcrypt_limit_is_rejected(client):
    response = await client.post("/v1/auth/register", json={
        "email": "long@example.com",
        "username": "longpw",
        "password": "x" * 80
    })
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_seeded_admin_can_log_in(client, session_factory):
    from hopelink.seed_users import seed_users

    assert await seed_users(session_factory) == 4
    assert await seed_users(session_factory) == 0

    response = await client.post("/v1/auth/login", json={
        "username": "admin",
        "password": "admin123"
    })
    assert response.status_code == 200
    assert response.json()["role"] == "admin"

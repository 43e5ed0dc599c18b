"""
Tests for token validation, revocation and the capability guards.
"""

import runpy

import pytest

from windpark_backend.app.core.config import settings
from windpark_backend.app.core.exceptions import InsufficientPermissionsError
from windpark_backend.app.core.guards import authorize
from windpark_backend.app.core.jwt import create_access_token
from windpark_backend.app.core.token_revocation import revoke_all_user_tokens, revoke_token
from windpark_backend.app.models.enums import UserRole
from windpark_backend.tests.conftest import make_token

SETTLEMENTS_URL = "/v1/energy/settlements"


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_valid_token_is_accepted(client):
    response = await client.get(SETTLEMENTS_URL, headers=bearer(make_token(UserRole.VIEWER)))

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_revoked_token_is_rejected_immediately(client):
    token = make_token(UserRole.MANAGER, user_id=10)
    assert (await client.get(SETTLEMENTS_URL, headers=bearer(token))).status_code == 200

    assert await revoke_token(token, user_id=10) is True

    response = await client.get(SETTLEMENTS_URL, headers=bearer(token))
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"
    assert response.json()["message"] == "Token has been revoked"


@pytest.mark.asyncio
async def test_revoking_all_user_tokens(client):
    first = make_token(UserRole.MANAGER, user_id=30)
    other_user = make_token(UserRole.MANAGER, user_id=31)

    await revoke_all_user_tokens(30)

    assert (await client.get(SETTLEMENTS_URL, headers=bearer(first))).status_code == 401
    assert (await client.get(SETTLEMENTS_URL, headers=bearer(other_user))).status_code == 200


@pytest.mark.asyncio
async def test_garbage_token_is_rejected(client):
    response = await client.get(SETTLEMENTS_URL, headers=bearer("not-a-jwt"))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_without_tenant_is_rejected(client):
    token = create_access_token(data={"sub": "user5", "user_id": 5, "role": "MANAGER"})

    response = await client.get(SETTLEMENTS_URL, headers=bearer(token))

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token payload"


@pytest.mark.asyncio
async def test_unknown_role_is_forbidden(client):
    token = create_access_token(data={"sub": "user5", "user_id": 5, "tenant_id": 1, "role": "DRIVER"})

    response = await client.get(SETTLEMENTS_URL, headers=bearer(token))

    assert response.status_code == 403


def test_authorize_returns_tenant_context():
    auth = authorize(
        {"sub": "user7", "user_id": "7", "tenant_id": "3", "role": "ADMIN"}, "energy:delete"
    )

    assert auth.tenant_id == 3
    assert auth.actor_id == 7
    assert auth.username == "user7"
    assert auth.is_admin


@pytest.mark.parametrize("role,capability", [
    ("VIEWER", "energy:create"),
    ("VIEWER", "energy:settlements:finalize"),
    ("MANAGER", "energy:delete"),
    ("MANAGER", "invoices:delete"),
])
def test_authorize_denies_missing_capability(role, capability):
    with pytest.raises(InsufficientPermissionsError) as exc_info:
        authorize({"sub": "u", "user_id": 1, "tenant_id": 1, "role": role}, capability)

    assert exc_info.value.details == {"capability": capability, "role": role}


@pytest.mark.asyncio
async def test_health_reports_redis_and_correlation_id(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["redis"] == "ok"
    assert response.headers["X-Correlation-ID"] == "abc-123"
    assert "X-Process-Time" in response.headers


@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_module_entry_point_starts_uvicorn(mocker):
    run = mocker.patch("uvicorn.run")

    runpy.run_module("windpark_backend.app.main", run_name="__main__")

    run.assert_called_once_with(
        "windpark_backend.app.main:app", host=settings.host, port=settings.port, reload=settings.debug
    )

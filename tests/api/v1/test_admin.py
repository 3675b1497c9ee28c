"""Tests for admin session management endpoints."""

import pytest
from httpx import AsyncClient

from app.models.account import AccountRole
from app.models.base import utc_now
from app.services.session_store import SessionStore

DEFAULT_PASSWORD = "Secret123"  # make_account default


async def _bearer(client: AsyncClient, login: str) -> dict[str, str]:
    response = await client.post(
        "/api/v1/auth/login", json={"login": login, "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.mark.api
class TestRevokeAccountSessions:
    async def test_admin_revokes_sessions(
        self, client: AsyncClient, make_account, session_store: SessionStore
    ):
        await make_account("root", role=AccountRole.ADMIN)
        member = await make_account("member")
        await _bearer(client, "member")
        await _bearer(client, "member")
        admin_headers = await _bearer(client, "root")

        response = await client.post(
            f"/api/v1/admin/accounts/{member.id}/revoke-sessions", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["revoked"] == 2
        assert await session_store.list_usable(member.id, utc_now()) == []

    async def test_moderator_is_forbidden(self, client: AsyncClient, make_account):
        await make_account("mod", role=AccountRole.MODERATOR)
        member = await make_account("member")
        headers = await _bearer(client, "mod")

        response = await client.post(
            f"/api/v1/admin/accounts/{member.id}/revoke-sessions", headers=headers
        )

        assert response.status_code == 403

    async def test_unknown_account(self, client: AsyncClient, make_account):
        await make_account("root", role=AccountRole.ADMIN)
        headers = await _bearer(client, "root")

        response = await client.post(
            "/api/v1/admin/accounts/01890a5d-ac96-774b-bcce-b302099a8057/revoke-sessions",
            headers=headers,
        )

        assert response.status_code == 404

    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/admin/accounts/01890a5d-ac96-774b-bcce-b302099a8057/revoke-sessions"
        )

        assert response.status_code == 401

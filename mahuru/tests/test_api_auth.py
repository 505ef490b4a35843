"""Tests for the account routes under /api/v1/auth."""

import pytest

SIGNUP = {"email": "ana@example.com", "password": "kiaora123", "name": "Ana"}


class TestSignUp:
    @pytest.mark.asyncio
    async def test_signup_returns_session_and_profile(self, api_client, api_services) -> None:
        async with api_client:
            resp = await api_client.post("/api/v1/auth/signup", json=SIGNUP)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["token"]
        assert data["needs_verification"] is True
        assert data["user"]["email"] == "ana@example.com"
        assert data["profile"]["current_day"] == 1
        assert data["profile"]["name"] == "Ana"
        assert api_services.auth.outbox[-1].kind == "verification"

    @pytest.mark.asyncio
    async def test_weak_password(self, api_client) -> None:
        async with api_client:
            resp = await api_client.post(
                "/api/v1/auth/signup", json={**SIGNUP, "password": "abc"}
            )
        assert resp.status_code == 422
        assert resp.json()["error"] == {
            "code": "WEAK_PASSWORD",
            "message": "Password must be at least 6 characters",
        }

    @pytest.mark.asyncio
    async def test_duplicate_account(self, api_client) -> None:
        async with api_client:
            await api_client.post("/api/v1/auth/signup", json=SIGNUP)
            resp = await api_client.post("/api/v1/auth/signup", json=SIGNUP)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "ACCOUNT_EXISTS"

    @pytest.mark.asyncio
    async def test_missing_field(self, api_client) -> None:
        async with api_client:
            resp = await api_client.post("/api/v1/auth/signup", json={"email": "ana@example.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


class TestSignIn:
    @pytest.mark.asyncio
    async def test_sign_in_and_me(self, api_client) -> None:
        async with api_client:
            await api_client.post("/api/v1/auth/signup", json=SIGNUP)
            resp = await api_client.post(
                "/api/v1/auth/signin", json={"email": "ANA@example.com", "password": "kiaora123"}
            )
            token = resp.json()["data"]["token"]
            me = await api_client.get(
                "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
            )
        assert resp.status_code == 200
        assert me.status_code == 200
        assert me.json()["data"]["profile"]["email"] == "ana@example.com"

    @pytest.mark.asyncio
    async def test_wrong_password(self, api_client) -> None:
        async with api_client:
            await api_client.post("/api/v1/auth/signup", json=SIGNUP)
            resp = await api_client.post(
                "/api/v1/auth/signin", json={"email": "ana@example.com", "password": "nope-nope"}
            )
        assert resp.status_code == 401
        assert resp.json()["error"] == {
            "code": "INVALID_CREDENTIALS",
            "message": "Incorrect email or password",
        }

    @pytest.mark.asyncio
    async def test_disabled_account(self, api_client, api_services) -> None:
        async with api_client:
            await api_client.post("/api/v1/auth/signup", json=SIGNUP)
            api_services.auth.disable("ana@example.com")
            resp = await api_client.post(
                "/api/v1/auth/signin", json={"email": "ana@example.com", "password": "kiaora123"}
            )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ACCOUNT_DISABLED"

    @pytest.mark.asyncio
    async def test_sign_out_ends_session(self, api_client, auth_headers) -> None:
        _, headers = await auth_headers()
        async with api_client:
            out = await api_client.post("/api/v1/auth/signout", headers=headers)
            me = await api_client.get("/api/v1/auth/me", headers=headers)
        assert out.status_code == 200
        assert me.status_code == 401

    @pytest.mark.asyncio
    async def test_sign_out_when_signed_out(self, api_client) -> None:
        async with api_client:
            resp = await api_client.post("/api/v1/auth/signout")
        assert resp.json() == {"ok": True, "data": None, "error": None}


class TestPasswordFlows:
    @pytest.mark.asyncio
    async def test_reset_does_not_reveal_unknown_accounts(self, api_client, api_services) -> None:
        async with api_client:
            resp = await api_client.post(
                "/api/v1/auth/password-reset", json={"email": "ghost@example.com"}
            )
        assert resp.status_code == 200
        assert resp.json()["ok"] is True
        assert api_services.auth.outbox == []

    @pytest.mark.asyncio
    async def test_reset_known_account(self, api_client, api_services, auth_headers) -> None:
        await auth_headers()
        async with api_client:
            resp = await api_client.post(
                "/api/v1/auth/password-reset", json={"email": "ana@example.com"}
            )
        assert resp.status_code == 200
        assert api_services.auth.outbox[-1].kind == "password_reset"

    @pytest.mark.asyncio
    async def test_reset_invalid_email(self, api_client) -> None:
        async with api_client:
            resp = await api_client.post("/api/v1/auth/password-reset", json={"email": "not-an-email"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "INVALID_EMAIL"

    @pytest.mark.asyncio
    async def test_change_password(self, api_client, auth_headers) -> None:
        _, headers = await auth_headers()
        async with api_client:
            resp = await api_client.post(
                "/api/v1/auth/password",
                json={"current_password": "kiaora123", "new_password": "tenakoe456"},
                headers=headers,
            )
            signin = await api_client.post(
                "/api/v1/auth/signin", json={"email": "ana@example.com", "password": "tenakoe456"}
            )
        assert resp.status_code == 200
        assert signin.status_code == 200

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, api_client, auth_headers) -> None:
        _, headers = await auth_headers()
        async with api_client:
            resp = await api_client.post(
                "/api/v1/auth/password",
                json={"current_password": "guess-again", "new_password": "tenakoe456"},
                headers=headers,
            )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "WRONG_CURRENT_PASSWORD"

    @pytest.mark.asyncio
    async def test_verification_requires_session(self, api_client) -> None:
        async with api_client:
            resp = await api_client.post("/api/v1/auth/verification")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "NO_SESSION"

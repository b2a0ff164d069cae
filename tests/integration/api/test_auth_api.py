#!/usr/bin/env python3
"""
Integration Tests for Authentication API
Tests for securevault/api/v1/auth.py endpoints
"""

import time

import pytest
from httpx import AsyncClient
from jose import jwt
from sqlalchemy import func, select
from unittest.mock import AsyncMock, MagicMock

from securevault.api.v1.auth import STATE_COOKIE_NAME
from securevault.core.config import settings
from securevault.core.exceptions import IdentityProviderException
from securevault.core.security import OIDCTokenVerifier, get_oidc_provider, get_token_verifier
from securevault.db.models import User
from securevault.main import app


@pytest.fixture
def fake_provider():
    """Identity provider stand-in; no network calls"""
    provider = MagicMock()
    provider.authorization_url = AsyncMock(return_value="https://idp.test/authorize?state=x")
    provider.exchange_code = AsyncMock()
    provider.end_session_url = AsyncMock(return_value="https://idp.test/logout")
    app.dependency_overrides[get_oidc_provider] = lambda: provider
    return provider


@pytest.mark.integration
class TestCurrentUser:
    """Test GET /api/auth/user"""

    @pytest.mark.asyncio
    async def test_without_token_returns_401(self, client: AsyncClient):
        """Test missing credentials are rejected"""
        response = await client.get("/api/auth/user")

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "authentication_error"
        assert error["timestamp"]

    @pytest.mark.asyncio
    async def test_valid_token_creates_user(self, client: AsyncClient, token_factory):
        """Test first request with a valid token provisions the user"""
        token = token_factory(
            "alice-sub",
            email="alice@example.com",
            given_name="Alice",
            family_name="Liddell",
            picture="https://img.test/alice.png",
        )

        response = await client.get("/api/auth/user", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        result = response.json()
        assert result["id"] == "alice-sub"
        assert result["email"] == "alice@example.com"
        assert result["first_name"] == "Alice"
        assert result["last_name"] == "Liddell"
        assert result["name"] == "Alice Liddell"
        assert result["profile_image_url"] == "https://img.test/alice.png"

    @pytest.mark.asyncio
    async def test_repeated_requests_reuse_user(self, client: AsyncClient, token_factory, db_session):
        """Test the same subject maps to the same user"""
        headers = {"Authorization": f"Bearer {token_factory('bob-sub', email='bob@example.com')}"}

        first = await client.get("/api/auth/user", headers=headers)
        second = await client.get("/api/auth/user", headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["id"] == second.json()["id"] == "bob-sub"

        result = await db_session.execute(select(func.count()).select_from(User))
        assert result.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_bad_signature_returns_401(self, client: AsyncClient):
        """Test tokens signed with another key are rejected"""
        token = jwt.encode(
            {
                "sub": "mallory",
                "aud": settings.OIDC_CLIENT_ID,
                "iss": settings.OIDC_ISSUER,
                "exp": int(time.time()) + 3600,
            },
            "not-the-test-key",
            algorithm="HS256",
        )

        response = await client.get("/api/auth/user", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_wrong_audience_returns_401(self, client: AsyncClient, token_factory):
        """Test tokens issued for another client are rejected"""
        token = token_factory("carol", aud="other-client")
        response = await client.get("/api/auth/user", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_token_returns_401(self, client: AsyncClient, token_factory):
        """Test expired tokens are rejected"""
        headers = {"Authorization": f"Bearer {token_factory('dave', exp=int(time.time()) - 60)}"}

        response = await client.get("/api/auth/user", headers=headers)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_authorization_header(self, client: AsyncClient):
        """Test non-Bearer authorization headers are rejected"""
        response = await client.get("/api/auth/user", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid authorization header format"

    @pytest.mark.asyncio
    async def test_session_cookie_authenticates(self, client: AsyncClient, token_factory):
        """Test the session cookie is accepted in place of a header"""
        client.cookies.set(settings.SESSION_COOKIE_NAME, token_factory("erin", email="erin@example.com"))

        response = await client.get("/api/auth/user")

        assert response.status_code == 200
        assert response.json()["id"] == "erin"


@pytest.mark.integration
class TestLoginFlow:
    """Test /api/login, /api/callback and /api/logout"""

    @pytest.mark.asyncio
    async def test_login_redirects_to_provider(self, client: AsyncClient, fake_provider):
        """Test login redirects and sets the state cookie"""
        response = await client.get("/api/login")

        assert response.status_code == 302
        assert response.headers["location"] == "https://idp.test/authorize?state=x"
        assert STATE_COOKIE_NAME in response.cookies
        state = fake_provider.authorization_url.await_args.args[0]
        assert response.cookies[STATE_COOKIE_NAME] == state

    @pytest.mark.asyncio
    async def test_callback_with_mismatched_state(self, client: AsyncClient, fake_provider):
        """Test callback rejects a state that doesn't match the cookie"""
        client.cookies.set(STATE_COOKIE_NAME, "expected")

        response = await client.get("/api/callback", params={"code": "abc", "state": "forged"})

        assert response.status_code == 401
        fake_provider.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_callback_with_provider_error(self, client: AsyncClient, fake_provider):
        """Test provider errors surface as authentication errors"""
        response = await client.get("/api/callback", params={"error": "access_denied"})

        assert response.status_code == 401
        assert response.json()["error"]["details"] == {"error": "access_denied"}

    @pytest.mark.asyncio
    async def test_callback_starts_session(self, client: AsyncClient, fake_provider, token_factory):
        """Test a successful callback provisions the user and sets the session cookie"""
        id_token = token_factory("frank", email="frank@example.com", given_name="Frank")
        fake_provider.exchange_code.return_value = {"id_token": id_token}
        client.cookies.set(STATE_COOKIE_NAME, "state-123")

        response = await client.get("/api/callback", params={"code": "abc", "state": "state-123"})

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert response.cookies[settings.SESSION_COOKIE_NAME] == id_token
        fake_provider.exchange_code.assert_awaited_once_with("abc")

        me = await client.get("/api/auth/user", headers={"Authorization": f"Bearer {id_token}"})
        assert me.json()["first_name"] == "Frank"

    @pytest.mark.asyncio
    async def test_logout_redirects_to_end_session(self, client: AsyncClient, fake_provider):
        """Test logout clears the session and redirects to the provider"""
        response = await client.get("/api/logout")

        assert response.status_code == 302
        assert response.headers["location"] == "https://idp.test/logout"
        assert settings.SESSION_COOKIE_NAME in response.headers.get("set-cookie", "")



    @pytest.mark.asyncio
    async def test_logout_when_provider_unreachable(self, client: AsyncClient, fake_provider):
        """Test logout still ends the local session without the provider"""
        fake_provider.end_session_url.side_effect = IdentityProviderException()

        response = await client.get("/api/logout")

        assert response.status_code == 302
        assert response.headers["location"] == settings.OIDC_POST_LOGOUT_REDIRECT_URI

    @pytest.mark.asyncio
    async def test_login_when_provider_unreachable_returns_503(self, client: AsyncClient, fake_provider):
        """Test provider outages are not reported as lost sessions"""
        fake_provider.authorization_url.side_effect = IdentityProviderException()

        response = await client.get("/api/login")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "identity_provider_unavailable"


@pytest.mark.integration
class TestProviderOutage:
    """Test token verification while signing keys cannot be fetched"""

    @pytest.mark.asyncio
    async def test_current_user_returns_503(self, client: AsyncClient, token_factory):
        """Test a valid session gets 503 rather than 401 when keys are unavailable"""

        async def unavailable():
            raise IdentityProviderException()

        app.dependency_overrides[get_token_verifier] = lambda: OIDCTokenVerifier(
            key_loader=unavailable,
            audience=settings.OIDC_CLIENT_ID,
            issuer=settings.OIDC_ISSUER,
            algorithms=["HS256"],
        )

        response = await client.get("/api/auth/user", headers={"Authorization": f"Bearer {token_factory('alice')}"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "identity_provider_unavailable"

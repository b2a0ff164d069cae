"""
Conftest for API integration tests
Defines fixtures specific to API testing

Note: These tests use ASGI transport for testing without requiring a running server.
Each test gets a fresh SQLite database; identity tokens are signed with a test
HS256 key and MinIO calls are replaced with mocks.
"""

import time
import uuid
from typing import Any, Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from unittest.mock import AsyncMock, MagicMock

from securevault.core.config import settings
from securevault.core.security import OIDCTokenVerifier, get_token_verifier
from securevault.db import session as db_session_module
from securevault.db.session import close_db, init_db
from securevault.main import app

TEST_SIGNING_KEY = "securevault-test-signing-key"


def make_token(sub: str, **claims: Any) -> str:
    """Sign an ID token the test verifier accepts"""
    payload = {
        "sub": sub,
        "aud": settings.OIDC_CLIENT_ID,
        "iss": settings.OIDC_ISSUER,
        "iat": int(time.time()),
        "exp": int(time.time()) + 3600,
    }
    payload.update(claims)
    return jwt.encode(payload, TEST_SIGNING_KEY, algorithm="HS256")


def auth_header(sub: str, **claims: Any) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, **claims)}"}


async def _test_key() -> str:
    return TEST_SIGNING_KEY


def _test_verifier() -> OIDCTokenVerifier:
    return OIDCTokenVerifier(
        key_loader=_test_key,
        audience=settings.OIDC_CLIENT_ID,
        issuer=settings.OIDC_ISSUER,
        algorithms=["HS256"],
    )


@pytest.fixture
def storage(monkeypatch):
    """Mocked object store calls"""
    mocks = {
        "upload": AsyncMock(side_effect=lambda name, data, content_type="application/octet-stream": name),
        "delete": AsyncMock(return_value=None),
        "presign": AsyncMock(return_value="http://minio.test/presigned"),
    }
    monkeypatch.setattr("securevault.services.files.upload_object", mocks["upload"])
    monkeypatch.setattr("securevault.services.files.delete_object", mocks["delete"])
    monkeypatch.setattr("securevault.api.v1.files.get_presigned_url", mocks["presign"])
    return mocks


@pytest_asyncio.fixture
async def client(tmp_path, storage) -> AsyncClient:
    """
    Test HTTP client using ASGI transport
    Tests the FastAPI app directly without requiring a running server
    """
    # ASGI transport doesn't trigger lifespan
    await init_db(database_url=f"sqlite+aiosqlite:///{tmp_path / 'securevault.db'}", create_tables=True)
    app.dependency_overrides[get_token_verifier] = _test_verifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await close_db()


@pytest_asyncio.fixture
async def db_session(client: AsyncClient):
    """Direct database session on the test database"""
    async with db_session_module.get_session_maker()() as session:
        yield session


class SignedInUser:
    """A signed-in identity used by the API tests"""

    def __init__(self, sub: str, email: Optional[str] = None):
        self.id = sub
        self.email = email or f"{sub}@example.com"
        self.headers = auth_header(sub, email=self.email, given_name="Test", family_name=sub.title())


async def _signed_in(client: AsyncClient, name: str) -> SignedInUser:
    user = SignedInUser(f"{name}-{uuid.uuid4().hex[:8]}")
    response = await client.get("/api/auth/user", headers=user.headers)
    assert response.status_code == 200
    return user


@pytest_asyncio.fixture
async def owner(client: AsyncClient) -> SignedInUser:
    """User that creates the buckets under test"""
    return await _signed_in(client, "owner")


@pytest_asyncio.fixture
async def other_user(client: AsyncClient) -> SignedInUser:
    """User with no access until granted"""
    return await _signed_in(client, "other")


@pytest_asyncio.fixture
async def bucket(client: AsyncClient, owner: SignedInUser) -> Dict[str, Any]:
    """Private bucket owned by `owner`"""
    response = await client.post(
        "/api/buckets",
        headers=owner.headers,
        json={"name": f"bucket-{uuid.uuid4().hex[:8]}", "description": "Test bucket"},
    )
    assert response.status_code == 201
    return response.json()


async def upload(
    client: AsyncClient,
    user: SignedInUser,
    bucket_id: int,
    content: bytes = b"hello vault",
    filename: str = "notes.txt",
    **fields: str,
):
    """POST a multipart upload and return the response"""
    data = {"bucket_id": str(bucket_id)}
    data.update(fields)
    return await client.post(
        "/api/files/upload",
        headers=user.headers,
        data=data,
        files={"file": (filename, content, "text/plain")},
    )


async def grant(client: AsyncClient, user: SignedInUser, bucket_id: int, user_id: str, permission: str):
    return await client.post(
        f"/api/buckets/{bucket_id}/permissions",
        headers=user.headers,
        json={"user_id": user_id, "permission": permission},
    )


@pytest.fixture
def upload_file(client: AsyncClient):
    """Upload helper bound to the test client"""

    async def _upload(user: SignedInUser, bucket_id: int, **kwargs):
        return await upload(client, user, bucket_id, **kwargs)

    return _upload


@pytest.fixture
def grant_permission(client: AsyncClient):
    """Permission grant helper bound to the test client"""

    async def _grant(user: SignedInUser, bucket_id: int, user_id: str, permission: str):
        return await grant(client, user, bucket_id, user_id, permission)

    return _grant


@pytest.fixture
def sign_in(client: AsyncClient):
    """Create further signed-in users"""

    async def _sign_in(name: str = "user") -> SignedInUser:
        return await _signed_in(client, name)

    return _sign_in


@pytest.fixture
def token_factory():
    """Sign ID tokens for arbitrary subjects and claims"""
    return make_token


@pytest.fixture
def unreachable_storage(monkeypatch, storage):
    """Real storage calls against a MinIO client that cannot connect"""
    from urllib3.exceptions import MaxRetryError

    from securevault.storage import client as storage_client

    def refuse(*args, **kwargs):
        raise MaxRetryError(None, "/securevault", reason=ConnectionRefusedError("Connection refused"))

    minio = MagicMock()
    minio.put_object.side_effect = refuse
    minio.remove_object.side_effect = refuse
    minio.presigned_get_object.side_effect = refuse
    monkeypatch.setattr(storage_client, "_client", minio)
    monkeypatch.setattr("securevault.services.files.upload_object", storage_client.upload_object)
    monkeypatch.setattr("securevault.services.files.delete_object", storage_client.delete_object)
    monkeypatch.setattr("securevault.api.v1.files.get_presigned_url", storage_client.get_presigned_url)
    return minio

#!/usr/bin/env python3
"""
Integration Tests for Buckets API
Tests for securevault/api/v1/buckets.py endpoints
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from securevault.core.config import settings
from securevault.db.models import AccessLog


@pytest.mark.integration
class TestBucketCreate:
    """Test POST /api/buckets"""

    @pytest.mark.asyncio
    async def test_create_bucket_returns_201(self, client: AsyncClient, owner):
        """Test the creator becomes the owner"""
        response = await client.post(
            "/api/buckets",
            headers=owner.headers,
            json={"name": "  reports  ", "description": "Quarterly reports"},
        )

        assert response.status_code == 201
        result = response.json()
        assert result["name"] == "reports"
        assert result["owner_id"] == owner.id
        assert result["is_public"] is False
        assert result["max_size"] == settings.DEFAULT_BUCKET_MAX_SIZE

    @pytest.mark.asyncio
    async def test_duplicate_name_returns_409(self, client: AsyncClient, owner, other_user):
        """Test bucket names are unique across owners"""
        first = await client.post("/api/buckets", headers=owner.headers, json={"name": "shared"})
        second = await client.post("/api/buckets", headers=other_user.headers, json={"name": "shared"})

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "conflict"

    @pytest.mark.asyncio
    async def test_blank_name_returns_400(self, client: AsyncClient, owner):
        """Test whitespace-only names are rejected"""
        response = await client.post("/api/buckets", headers=owner.headers, json={"name": "   "})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "validation_error"
        assert error["details"]["errors"][0]["field"] == "name"

    @pytest.mark.asyncio
    async def test_unauthenticated_returns_401(self, client: AsyncClient):
        """Test bucket creation requires authentication"""
        response = await client.post("/api/buckets", json={"name": "anon"})

        assert response.status_code == 401


@pytest.mark.integration
class TestBucketListAndGet:
    """Test GET /api/buckets and GET /api/buckets/{id}"""

    @pytest.mark.asyncio
    async def test_owner_sees_bucket(self, client: AsyncClient, owner, bucket):
        """Test owned buckets are listed with owner and files"""
        response = await client.get("/api/buckets", headers=owner.headers)

        assert response.status_code == 200
        results = response.json()
        assert [b["id"] for b in results] == [bucket["id"]]
        assert results[0]["owner"]["id"] == owner.id
        assert results[0]["files"] == []
        assert results[0]["permissions"] == []

    @pytest.mark.asyncio
    async def test_private_bucket_hidden_from_others(self, client: AsyncClient, other_user, bucket):
        """Test users without a grant don't see private buckets"""
        response = await client.get("/api/buckets", headers=other_user.headers)

        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_public_bucket_listed_but_not_readable(self, client: AsyncClient, owner, other_user):
        """Test public buckets are listed for everyone without granting access"""
        created = await client.post(
            "/api/buckets",
            headers=owner.headers,
            json={"name": "public-bucket", "is_public": True},
        )
        bucket_id = created.json()["id"]

        listing = await client.get("/api/buckets", headers=other_user.headers)
        detail = await client.get(f"/api/buckets/{bucket_id}", headers=other_user.headers)

        assert [b["id"] for b in listing.json()] == [bucket_id]
        assert detail.status_code == 403

    @pytest.mark.asyncio
    async def test_get_bucket_details(self, client: AsyncClient, owner, bucket, upload_file):
        """Test bucket detail includes its files"""
        await upload_file(owner, bucket["id"], filename="a.txt")

        response = await client.get(f"/api/buckets/{bucket['id']}", headers=owner.headers)

        assert response.status_code == 200
        result = response.json()
        assert result["name"] == bucket["name"]
        assert [f["original_name"] for f in result["files"]] == ["a.txt"]

    @pytest.mark.asyncio
    async def test_get_without_permission_returns_403(self, client: AsyncClient, other_user, bucket):
        """Test users with no permission are rejected"""
        response = await client.get(f"/api/buckets/{bucket['id']}", headers=other_user.headers)

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "authorization_error"
        assert error["details"]["required_permission"] == "read"

    @pytest.mark.asyncio
    async def test_get_missing_bucket_returns_404(self, client: AsyncClient, owner):
        """Test unknown bucket ids return not found"""
        response = await client.get("/api/buckets/9999", headers=owner.headers)

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Bucket not found"


@pytest.mark.integration
class TestBucketUpdate:
    """Test PUT /api/buckets/{id}"""

    @pytest.mark.asyncio
    async def test_owner_updates_bucket(self, client: AsyncClient, owner, bucket):
        """Test only supplied fields change"""
        response = await client.put(
            f"/api/buckets/{bucket['id']}",
            headers=owner.headers,
            json={"description": "Updated", "is_public": True},
        )

        assert response.status_code == 200
        result = response.json()
        assert result["description"] == "Updated"
        assert result["is_public"] is True
        assert result["name"] == bucket["name"]

    @pytest.mark.asyncio
    async def test_writer_cannot_update(self, client: AsyncClient, owner, other_user, bucket, grant_permission):
        """Test write access is not enough to change settings"""
        await grant_permission(owner, bucket["id"], other_user.id, "write")

        response = await client.put(
            f"/api/buckets/{bucket['id']}",
            headers=other_user.headers,
            json={"description": "Hijacked"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_granted_admin_can_update(self, client: AsyncClient, owner, other_user, bucket, grant_permission):
        """Test an explicit admin grant allows settings changes"""
        await grant_permission(owner, bucket["id"], other_user.id, "admin")

        response = await client.put(
            f"/api/buckets/{bucket['id']}",
            headers=other_user.headers,
            json={"max_size": 1024},
        )

        assert response.status_code == 200
        assert response.json()["max_size"] == 1024


@pytest.mark.integration
class TestBucketDelete:
    """Test DELETE /api/buckets/{id}"""

    @pytest.mark.asyncio
    async def test_delete_removes_bucket_and_objects(
        self, client: AsyncClient, owner, bucket, upload_file, storage
    ):
        """Test deleted buckets disappear and their stored objects are removed"""
        uploaded = await upload_file(owner, bucket["id"])
        file_name = uploaded.json()["name"]

        response = await client.delete(f"/api/buckets/{bucket['id']}", headers=owner.headers)

        assert response.status_code == 200
        assert response.json() == {"success": True}

        listing = await client.get("/api/buckets", headers=owner.headers)
        assert listing.json() == []

        files = await client.get("/api/files", headers=owner.headers)
        assert files.json() == []

        storage["delete"].assert_awaited_once_with(f"{bucket['id']}/{file_name}")

    @pytest.mark.asyncio
    async def test_delete_succeeds_when_storage_unreachable(
        self, client: AsyncClient, owner, bucket, upload_file, db_session, request
    ):
        """Test bucket deletion is committed and audited even if objects cannot be removed"""
        await upload_file(owner, bucket["id"])
        minio = request.getfixturevalue("unreachable_storage")

        response = await client.delete(f"/api/buckets/{bucket['id']}", headers=owner.headers)

        assert response.status_code == 200
        minio.remove_object.assert_called_once()

        logs = (await db_session.execute(select(AccessLog).where(AccessLog.action == "delete"))).scalars().all()
        assert [(log.bucket_id, log.file_id) for log in logs] == [(bucket["id"], None)]

    @pytest.mark.asyncio
    async def test_reader_cannot_delete(self, client: AsyncClient, owner, other_user, bucket, grant_permission):
        """Test deletion requires admin"""
        await grant_permission(owner, bucket["id"], other_user.id, "read")

        response = await client.delete(f"/api/buckets/{bucket['id']}", headers=other_user.headers)

        assert response.status_code == 403

        still_there = await client.get(f"/api/buckets/{bucket['id']}", headers=owner.headers)
        assert still_there.status_code == 200

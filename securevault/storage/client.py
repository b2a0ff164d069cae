"""
MinIO Object Storage Client
Stores uploaded file contents; metadata lives in the database
"""

import asyncio
import io
from datetime import timedelta
from typing import Optional

from minio import Minio
from minio.error import MinioException
from urllib3.exceptions import HTTPError

from securevault.core.config import settings
from securevault.core.exceptions import StorageException
from securevault.core.logging import get_logger

logger = get_logger(__name__)

# minio-py raises urllib3 errors when the server is unreachable
_STORAGE_ERRORS = (MinioException, HTTPError)

# Global MinIO client
_client: Optional[Minio] = None


def get_minio_client() -> Minio:
    """Get MinIO client"""
    if _client is None:
        raise StorageException("Object storage client not initialized")
    return _client


async def init_minio() -> None:
    """Initialize MinIO client and create the storage bucket"""
    global _client

    try:
        logger.info(f"Connecting to MinIO at {settings.MINIO_ENDPOINT}")

        endpoint = settings.MINIO_ENDPOINT
        if "://" in endpoint:
            endpoint = endpoint.split("://")[1]

        _client = Minio(
            endpoint,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL,
        )

        exists = await asyncio.to_thread(_client.bucket_exists, settings.MINIO_BUCKET)
        if not exists:
            await asyncio.to_thread(_client.make_bucket, settings.MINIO_BUCKET)
            logger.info(f"Created storage bucket: {settings.MINIO_BUCKET}")

        logger.info("MinIO initialized successfully")

    except _STORAGE_ERRORS as e:
        logger.error(f"Failed to initialize MinIO: {e}")
        raise StorageException(
            message="Failed to initialize object storage",
            details={"error": str(e)},
        )


async def upload_object(
    object_name: str,
    data: bytes,
    content_type: str = "application/octet-stream",
) -> str:
    """Upload file contents, returning the object name"""
    client = get_minio_client()

    try:
        await asyncio.to_thread(
            client.put_object,
            settings.MINIO_BUCKET,
            object_name,
            io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        logger.debug(f"Uploaded object: {object_name}")
        return object_name

    except _STORAGE_ERRORS as e:
        logger.error(f"Failed to upload object {object_name}: {e}")
        raise StorageException(
            message="Failed to upload file",
            details={"object_name": object_name},
        )


async def delete_object(object_name: str) -> None:
    """Delete stored file contents"""
    client = get_minio_client()

    try:
        await asyncio.to_thread(client.remove_object, settings.MINIO_BUCKET, object_name)
        logger.debug(f"Deleted object: {object_name}")

    except _STORAGE_ERRORS as e:
        logger.error(f"Failed to delete object {object_name}: {e}")
        raise StorageException(
            message="Failed to delete file",
            details={"object_name": object_name},
        )


async def get_presigned_url(
    object_name: str,
    download_name: Optional[str] = None,
    expires: int = settings.PRESIGNED_URL_EXPIRES_SECONDS,
) -> str:
    """Generate a time-limited download URL"""
    client = get_minio_client()

    response_headers = None
    if download_name:
        response_headers = {
            "response-content-disposition": f'attachment; filename="{download_name}"'
        }

    try:
        return await asyncio.to_thread(
            client.presigned_get_object,
            settings.MINIO_BUCKET,
            object_name,
            expires=timedelta(seconds=expires),
            response_headers=response_headers,
        )

    except _STORAGE_ERRORS as e:
        logger.error(f"Failed to generate presigned URL for {object_name}: {e}")
        raise StorageException(
            message="Failed to generate download URL",
            details={"object_name": object_name},
        )

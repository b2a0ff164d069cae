"""
File Service
Upload handling, file queries and deletion
"""

import hashlib
import mimetypes
import os
import uuid
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from securevault.core.exceptions import QuotaExceededException, StorageException
from securevault.core.logging import get_logger
from securevault.db.models import Bucket, File
from securevault.models.file import FileUpdate, FileUploadMetadata
from securevault.monitoring.metrics import file_upload_bytes_total, files_uploaded_total
from securevault.services.buckets import BucketService
from securevault.storage.client import delete_object, upload_object

logger = get_logger(__name__)

MAX_EXTENSION_LENGTH = 20


def compute_checksum(content: bytes) -> str:
    """SHA-256 hex digest used for integrity verification"""
    return hashlib.sha256(content).hexdigest()


def build_storage_name(original_name: Optional[str]) -> str:
    """Random object name keeping the original extension"""
    extension = os.path.splitext(original_name or "")[1].lower()
    if len(extension) > MAX_EXTENSION_LENGTH:
        extension = ""
    return f"{uuid.uuid4().hex}{extension}"


def escape_like(value: str) -> str:
    """Make LIKE wildcards in user input match literally (escape char is backslash)"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def resolve_mime_type(filename: Optional[str], content_type: Optional[str]) -> str:
    if content_type:
        return content_type[:100]
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or "application/octet-stream"


class FileService:
    """File data access"""

    @staticmethod
    async def list_files(
        db: AsyncSession,
        bucket_ids: List[int],
        search: Optional[str] = None,
    ) -> List[File]:
        """
        Files in the given buckets, with bucket and uploader loaded

        Args:
            bucket_ids: Buckets to include
            search: Case-insensitive substring matched against name,
                original name and description
        """
        if not bucket_ids:
            return []

        query = (
            select(File)
            .options(joinedload(File.bucket), joinedload(File.uploader))
            .where(File.bucket_id.in_(bucket_ids))
        )

        search = (search or "").strip()
        if search:
            pattern = f"%{escape_like(search)}%"
            query = query.where(
                or_(
                    File.name.ilike(pattern, escape="\\"),
                    File.original_name.ilike(pattern, escape="\\"),
                    File.description.ilike(pattern, escape="\\"),
                )
            )

        query = query.order_by(File.created_at.desc(), File.id.desc())
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_with_details(db: AsyncSession, file_id: int) -> Optional[File]:
        result = await db.execute(
            select(File)
            .options(joinedload(File.bucket), joinedload(File.uploader))
            .where(File.id == file_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        bucket: Bucket,
        uploader_id: str,
        metadata: FileUploadMetadata,
        original_name: str,
        content_type: Optional[str],
        content: bytes,
    ) -> File:
        """
        Store the bytes and persist the metadata row

        Raises:
            QuotaExceededException: If the bucket would exceed max_size
            StorageException: If the object store rejects the upload
        """
        used = await BucketService.get_used_size(db, bucket.id)
        if used + len(content) > bucket.max_size:
            raise QuotaExceededException(
                details={
                    "bucket_id": bucket.id,
                    "max_size": bucket.max_size,
                    "used_size": used,
                    "file_size": len(content),
                }
            )

        file = File(
            name=build_storage_name(original_name),
            original_name=original_name[:255],
            mime_type=resolve_mime_type(original_name, content_type),
            size=len(content),
            bucket_id=bucket.id,
            uploader_id=uploader_id,
            path=metadata.path,
            tags=metadata.tags,
            description=metadata.description,
            checksum=compute_checksum(content),
        )

        await upload_object(file.storage_key, content, file.mime_type)

        db.add(file)
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            await FileService._discard_object(file.storage_key)
            raise

        files_uploaded_total.inc()
        file_upload_bytes_total.inc(file.size)
        logger.info(f"File uploaded: {file.id} ({file.original_name}, {file.size} bytes) to bucket {bucket.id} by {uploader_id}")
        return file

    @staticmethod
    async def update(db: AsyncSession, file: File, data: FileUpdate) -> File:
        """Apply the metadata fields present in data"""
        updates = data.model_dump(exclude_unset=True)
        if "tags" in updates and updates["tags"] is None:
            updates["tags"] = []
        if "path" in updates and updates["path"] is None:
            updates["path"] = "/"

        for field, value in updates.items():
            setattr(file, field, value)

        await db.commit()
        logger.info(f"File updated: {file.id} fields={sorted(updates)}")
        return file

    @staticmethod
    async def delete(db: AsyncSession, file: File) -> None:
        """Delete the metadata row, then the stored object"""
        storage_key = file.storage_key
        await db.delete(file)
        await db.commit()

        await FileService._discard_object(storage_key)
        logger.info(f"File deleted: {file.id} from bucket {file.bucket_id}")

    @staticmethod
    async def discard_objects(storage_keys: List[str]) -> None:
        """Remove stored objects left behind by deleted rows"""
        for key in storage_keys:
            await FileService._discard_object(key)

    @staticmethod
    async def _discard_object(storage_key: str) -> None:
        # The metadata row is authoritative; an orphaned object is only logged
        try:
            await delete_object(storage_key)
        except StorageException as e:
            logger.warning(f"Failed to remove stored object {storage_key}: {e.message}")

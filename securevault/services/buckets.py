"""
Bucket Service
Bucket CRUD and visibility queries
"""

from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from securevault.core.exceptions import ConflictException
from securevault.core.logging import get_logger
from securevault.db.models import Bucket, BucketPermission, File
from securevault.models.bucket import BucketCreate, BucketUpdate

logger = get_logger(__name__)

# Columns that cannot be cleared through an update
_NON_NULLABLE_FIELDS = {"name", "is_public", "max_size"}


def _with_details(query):
    return query.options(
        joinedload(Bucket.owner),
        selectinload(Bucket.files),
        selectinload(Bucket.permissions),
    )


class BucketService:
    """Bucket data access"""

    @staticmethod
    async def list_visible(db: AsyncSession, user_id: str) -> List[Bucket]:
        """
        Buckets the user owns, holds a grant on, or that are public,
        with owner, files and permissions loaded; newest first
        """
        granted = select(BucketPermission.bucket_id).where(BucketPermission.user_id == user_id)

        query = _with_details(
            select(Bucket).where(
                or_(
                    Bucket.owner_id == user_id,
                    Bucket.is_public.is_(True),
                    Bucket.id.in_(granted),
                )
            )
        ).order_by(Bucket.created_at.desc(), Bucket.id.desc())

        result = await db.execute(query)
        return list(result.scalars().unique().all())

    @staticmethod
    async def get(db: AsyncSession, bucket_id: int) -> Optional[Bucket]:
        result = await db.execute(select(Bucket).where(Bucket.id == bucket_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_with_details(db: AsyncSession, bucket_id: int) -> Optional[Bucket]:
        result = await db.execute(_with_details(select(Bucket).where(Bucket.id == bucket_id)))
        return result.scalars().unique().one_or_none()

    @staticmethod
    async def create(db: AsyncSession, owner_id: str, data: BucketCreate) -> Bucket:
        """Create a bucket owned by owner_id"""
        bucket = Bucket(owner_id=owner_id, **data.model_dump())
        db.add(bucket)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException(
                message="Bucket name already exists",
                details={"name": data.name},
            )

        logger.info(f"Bucket created: {bucket.id} ({bucket.name}) by {owner_id}")
        return bucket

    @staticmethod
    async def update(db: AsyncSession, bucket: Bucket, data: BucketUpdate) -> Bucket:
        """Apply the fields present in data"""
        updates = data.model_dump(exclude_unset=True)
        for field, value in updates.items():
            if value is None and field in _NON_NULLABLE_FIELDS:
                continue
            setattr(bucket, field, value)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException(
                message="Bucket name already exists",
                details={"name": updates.get("name")},
            )

        logger.info(f"Bucket updated: {bucket.id} fields={sorted(updates)}")
        return bucket

    @staticmethod
    async def delete(db: AsyncSession, bucket_id: int) -> List[str]:
        """
        Delete a bucket together with its files and grants

        Returns:
            Storage keys of the deleted files
        """
        bucket = await BucketService.get_with_details(db, bucket_id)
        if bucket is None:
            return []

        storage_keys = [file.storage_key for file in bucket.files]
        await db.delete(bucket)
        await db.commit()

        logger.info(f"Bucket deleted: {bucket_id} ({len(storage_keys)} files)")
        return storage_keys

    @staticmethod
    async def get_used_size(db: AsyncSession, bucket_id: int) -> int:
        """Total size in bytes of the files in a bucket"""
        result = await db.execute(
            select(func.coalesce(func.sum(File.size), 0)).where(File.bucket_id == bucket_id)
        )
        return int(result.scalar_one())

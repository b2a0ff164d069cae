"""
Permission Service
Bucket-level access control: owner is admin, otherwise one explicit grant per user
"""

from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from securevault.core.exceptions import (
    AuthorizationException,
    NotFoundException,
    ValidationException,
)
from securevault.core.logging import get_logger
from securevault.db.models import Bucket, BucketPermission, User

logger = get_logger(__name__)


class PermissionLevel(str, Enum):
    """Effective permission of a user on a bucket, in increasing order"""

    NONE = "none"
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def satisfies(self, required: "PermissionLevel") -> bool:
        return self.rank >= required.rank


_RANKS = {
    PermissionLevel.NONE: 0,
    PermissionLevel.READ: 1,
    PermissionLevel.WRITE: 2,
    PermissionLevel.ADMIN: 3,
}

# Levels that can be stored in a permission row
GRANTABLE_LEVELS = (PermissionLevel.READ, PermissionLevel.WRITE, PermissionLevel.ADMIN)


class PermissionChecker:
    """Resolve and enforce bucket permissions"""

    @staticmethod
    async def get_user_permission(
        db: AsyncSession,
        user_id: str,
        bucket_id: int,
    ) -> PermissionLevel:
        """
        Resolve the effective permission level

        Args:
            db: Database session
            user_id: Acting user
            bucket_id: Bucket to check

        Returns:
            ADMIN for the owner, the stored level of the user's grant,
            or NONE when neither applies (including unknown buckets)
        """
        result = await db.execute(select(Bucket.owner_id).where(Bucket.id == bucket_id))
        owner_id = result.scalar_one_or_none()

        if owner_id is not None and owner_id == user_id:
            return PermissionLevel.ADMIN

        result = await db.execute(
            select(BucketPermission.permission).where(
                BucketPermission.bucket_id == bucket_id,
                BucketPermission.user_id == user_id,
            )
        )
        level = result.scalar_one_or_none()

        if level is None:
            return PermissionLevel.NONE
        return PermissionLevel(level)

    @staticmethod
    async def require_permission(
        db: AsyncSession,
        user_id: str,
        bucket_id: int,
        required: PermissionLevel,
    ) -> PermissionLevel:
        """
        Require at least the given level or raise

        Raises:
            AuthorizationException: If the resolved level is lower than required
        """
        level = await PermissionChecker.get_user_permission(db, user_id, bucket_id)

        if not level.satisfies(required):
            logger.debug(f"User {user_id} denied {required.value} on bucket {bucket_id} (has {level.value})")
            raise AuthorizationException(
                message=f"{required.value.capitalize()} access required",
                details={
                    "bucket_id": bucket_id,
                    "required_permission": required.value,
                },
            )

        return level

    @staticmethod
    async def get_permission_by_id(
        db: AsyncSession,
        permission_id: int,
    ) -> Optional[BucketPermission]:
        result = await db.execute(
            select(BucketPermission).where(BucketPermission.id == permission_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_permissions(
        db: AsyncSession,
        bucket_id: int,
    ) -> List[BucketPermission]:
        """All explicit grants on a bucket"""
        result = await db.execute(
            select(BucketPermission)
            .where(BucketPermission.bucket_id == bucket_id)
            .order_by(BucketPermission.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def grant_permission(
        db: AsyncSession,
        bucket: Bucket,
        user_id: str,
        level: PermissionLevel,
        granted_by: str,
    ) -> Tuple[BucketPermission, bool]:
        """
        Grant a level to a user, replacing any existing grant for the pair

        Returns:
            (permission row, created) where created is False when an
            existing grant was updated
        """
        if level not in GRANTABLE_LEVELS:
            raise ValidationException(
                message="Invalid permission level",
                details={
                    "permission": level.value,
                    "valid_permissions": [lvl.value for lvl in GRANTABLE_LEVELS],
                },
            )

        if user_id == bucket.owner_id:
            raise ValidationException(
                message="Bucket owner already holds admin access",
                details={"user_id": user_id, "bucket_id": bucket.id},
            )

        result = await db.execute(select(User.id).where(User.id == user_id))
        if result.scalar_one_or_none() is None:
            raise NotFoundException("User", details={"user_id": user_id})

        result = await db.execute(
            select(BucketPermission).where(
                BucketPermission.bucket_id == bucket.id,
                BucketPermission.user_id == user_id,
            )
        )
        existing = result.scalar_one_or_none()

        if existing:
            existing.permission = level.value
            existing.granted_by = granted_by
            await db.commit()
            logger.info(f"Updated permission for user {user_id} on bucket {bucket.id} to {level.value}")
            return existing, False

        permission = BucketPermission(
            bucket_id=bucket.id,
            user_id=user_id,
            permission=level.value,
            granted_by=granted_by,
        )
        db.add(permission)
        await db.commit()
        logger.info(f"Granted {level.value} to user {user_id} on bucket {bucket.id}")
        return permission, True

    @staticmethod
    async def revoke_permission(
        db: AsyncSession,
        permission: BucketPermission,
    ) -> None:
        """Delete an explicit grant"""
        await db.delete(permission)
        await db.commit()
        logger.info(f"Revoked permission {permission.id} from user {permission.user_id} on bucket {permission.bucket_id}")

    @staticmethod
    async def get_accessible_bucket_ids(
        db: AsyncSession,
        user_id: str,
    ) -> List[int]:
        """
        Buckets on which the user holds an effective permission

        Returns buckets where:
        - User is owner
        - User has an explicit grant
        """
        result = await db.execute(select(Bucket.id).where(Bucket.owner_id == user_id))
        owned_ids = {row[0] for row in result.all()}

        result = await db.execute(
            select(BucketPermission.bucket_id).where(BucketPermission.user_id == user_id)
        )
        granted_ids = {row[0] for row in result.all()}

        return sorted(owned_ids | granted_ids)

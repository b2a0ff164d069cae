"""
Permission Management API Routes
Grant, revoke, and list bucket permissions
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from securevault.api.dependencies import get_current_user
from securevault.core.exceptions import NotFoundException
from securevault.core.logging import get_logger
from securevault.core.permissions import PermissionChecker, PermissionLevel
from securevault.db.models import User as UserModel
from securevault.db.session import get_db_session
from securevault.models.common import SuccessResponse
from securevault.models.permission import PermissionGrantRequest, PermissionResponse
from securevault.services.buckets import BucketService

logger = get_logger(__name__)
router = APIRouter()


@router.get("/buckets/{bucket_id}/permissions", response_model=List[PermissionResponse])
async def list_bucket_permissions(
    bucket_id: int,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """List explicit grants on a bucket (admin only)"""
    if await BucketService.get(db, bucket_id) is None:
        raise NotFoundException("Bucket", details={"bucket_id": bucket_id})
    await PermissionChecker.require_permission(db, current_user.id, bucket_id, PermissionLevel.ADMIN)

    permissions = await PermissionChecker.list_permissions(db, bucket_id)
    return [PermissionResponse.model_validate(perm) for perm in permissions]


@router.post(
    "/buckets/{bucket_id}/permissions",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_bucket_permission(
    bucket_id: int,
    request: PermissionGrantRequest,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """
    Grant a permission level on a bucket (admin only)

    A user holds at most one grant per bucket; granting again changes its
    level and responds with 200 instead of 201.
    """
    bucket = await BucketService.get(db, bucket_id)
    if bucket is None:
        raise NotFoundException("Bucket", details={"bucket_id": bucket_id})
    await PermissionChecker.require_permission(db, current_user.id, bucket_id, PermissionLevel.ADMIN)

    permission, created = await PermissionChecker.grant_permission(
        db,
        bucket=bucket,
        user_id=request.user_id,
        level=PermissionLevel(request.permission),
        granted_by=current_user.id,
    )
    if not created:
        response.status_code = status.HTTP_200_OK

    logger.info(
        f"Permission granted: {request.permission} on bucket {bucket_id} "
        f"to user {request.user_id} by {current_user.id}"
    )
    return PermissionResponse.model_validate(permission)


@router.delete("/permissions/{permission_id}", response_model=SuccessResponse)
async def revoke_bucket_permission(
    permission_id: int,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """Revoke a grant (admin on the grant's bucket)"""
    permission = await PermissionChecker.get_permission_by_id(db, permission_id)
    if permission is None:
        raise NotFoundException("Permission", details={"permission_id": permission_id})

    await PermissionChecker.require_permission(
        db, current_user.id, permission.bucket_id, PermissionLevel.ADMIN
    )
    await PermissionChecker.revoke_permission(db, permission)

    return SuccessResponse()

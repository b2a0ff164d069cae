"""
Buckets API Routes
Bucket listing, creation, update and deletion
"""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from securevault.api.dependencies import get_current_user
from securevault.core.exceptions import NotFoundException
from securevault.core.logging import get_logger
from securevault.core.permissions import PermissionChecker, PermissionLevel
from securevault.db.models import User as UserModel
from securevault.db.session import get_db_session
from securevault.models.bucket import (
    BucketCreate,
    BucketDetailResponse,
    BucketResponse,
    BucketUpdate,
)
from securevault.models.common import SuccessResponse
from securevault.services.audit import AccessAction, AuditLogger, get_audit_logger
from securevault.services.buckets import BucketService
from securevault.services.files import FileService

logger = get_logger(__name__)
router = APIRouter()


async def _get_bucket_or_404(db: AsyncSession, bucket_id: int):
    bucket = await BucketService.get(db, bucket_id)
    if bucket is None:
        raise NotFoundException("Bucket", details={"bucket_id": bucket_id})
    return bucket


@router.get("", response_model=List[BucketDetailResponse])
async def list_buckets(
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """Buckets the user owns, has been granted, or that are public"""
    buckets = await BucketService.list_visible(db, current_user.id)
    return [BucketDetailResponse.model_validate(bucket) for bucket in buckets]


@router.post("", response_model=BucketResponse, status_code=status.HTTP_201_CREATED)
async def create_bucket(
    data: BucketCreate,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """Create a bucket; the caller becomes its owner"""
    bucket = await BucketService.create(db, current_user.id, data)
    return BucketResponse.model_validate(bucket)


@router.get("/{bucket_id}", response_model=BucketDetailResponse)
async def get_bucket(
    bucket_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Bucket details with files and grants"""
    await _get_bucket_or_404(db, bucket_id)
    await PermissionChecker.require_permission(db, current_user.id, bucket_id, PermissionLevel.READ)

    bucket = await BucketService.get_with_details(db, bucket_id)
    audit.record(background_tasks, request, current_user.id, AccessAction.VIEW, bucket_id=bucket_id)

    return BucketDetailResponse.model_validate(bucket)


@router.put("/{bucket_id}", response_model=BucketResponse)
async def update_bucket(
    bucket_id: int,
    data: BucketUpdate,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """Update bucket settings (admin only)"""
    bucket = await _get_bucket_or_404(db, bucket_id)
    await PermissionChecker.require_permission(db, current_user.id, bucket_id, PermissionLevel.ADMIN)

    bucket = await BucketService.update(db, bucket, data)
    return BucketResponse.model_validate(bucket)


@router.delete("/{bucket_id}", response_model=SuccessResponse)
async def delete_bucket(
    bucket_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Delete a bucket with its files and grants (admin only)"""
    await _get_bucket_or_404(db, bucket_id)
    await PermissionChecker.require_permission(db, current_user.id, bucket_id, PermissionLevel.ADMIN)

    storage_keys = await BucketService.delete(db, bucket_id)
    await FileService.discard_objects(storage_keys)

    audit.record(background_tasks, request, current_user.id, AccessAction.DELETE, bucket_id=bucket_id)
    logger.info(f"Bucket {bucket_id} deleted by {current_user.id}")

    return SuccessResponse()

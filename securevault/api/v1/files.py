"""
Files API Routes
File upload, query, download and deletion
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from securevault.api.dependencies import get_current_user
from securevault.core.config import settings
from securevault.core.exceptions import NotFoundException, ValidationException, validation_error_details
from securevault.core.logging import get_logger
from securevault.core.permissions import PermissionChecker, PermissionLevel
from securevault.db.models import User as UserModel
from securevault.db.session import get_db_session
from securevault.models.common import SuccessResponse
from securevault.models.file import (
    FileDetailResponse,
    FileDownloadResponse,
    FileResponse,
    FileUpdate,
    FileUploadMetadata,
)
from securevault.services.audit import AccessAction, AuditLogger, get_audit_logger
from securevault.services.buckets import BucketService
from securevault.services.files import FileService
from securevault.storage.client import get_presigned_url

logger = get_logger(__name__)
router = APIRouter()


async def _get_file_or_404(db: AsyncSession, file_id: int):
    file = await FileService.get_with_details(db, file_id)
    if file is None:
        raise NotFoundException("File", details={"file_id": file_id})
    return file


@router.get("", response_model=List[FileDetailResponse])
async def list_files(
    bucket_id: Optional[int] = Query(None, description="Restrict to one bucket"),
    search: Optional[str] = Query(None, description="Case-insensitive match on name or description"),
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """
    Query files

    With bucket_id the caller needs read access to that bucket; without it
    the query covers every bucket the caller holds a permission on.
    """
    if bucket_id is not None:
        if await BucketService.get(db, bucket_id) is None:
            raise NotFoundException("Bucket", details={"bucket_id": bucket_id})
        await PermissionChecker.require_permission(db, current_user.id, bucket_id, PermissionLevel.READ)
        bucket_ids = [bucket_id]
    else:
        bucket_ids = await PermissionChecker.get_accessible_bucket_ids(db, current_user.id)

    files = await FileService.list_files(db, bucket_ids, search)
    return [FileDetailResponse.model_validate(file) for file in files]


@router.post("/upload", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    request: Request,
    background_tasks: BackgroundTasks,
    file: Optional[UploadFile] = File(None),
    bucket_id: Optional[str] = Form(None),
    path: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """
    Upload a file into a bucket

    - **file**: file contents (max MAX_UPLOAD_SIZE_MB)
    - **bucket_id**: target bucket, requires write access
    - **path**: virtual folder, defaults to "/"
    - **description**: optional free text
    - **tags**: optional comma-separated list
    """
    if file is None or not file.filename:
        raise ValidationException(message="No file uploaded", details={"field": "file"})

    try:
        metadata = FileUploadMetadata(
            bucket_id=bucket_id,
            path=path,
            description=description,
            tags=tags,
        )
    except ValidationError as e:
        raise ValidationException(
            message="Invalid file data",
            details=validation_error_details(e.errors()),
        )

    limit = settings.max_upload_size_bytes
    content = await file.read(limit + 1)
    if len(content) > limit:
        raise ValidationException(
            message="File too large",
            details={"max_size_mb": settings.MAX_UPLOAD_SIZE_MB},
        )

    bucket = await BucketService.get(db, metadata.bucket_id)
    if bucket is None:
        raise NotFoundException("Bucket", details={"bucket_id": metadata.bucket_id})

    await PermissionChecker.require_permission(db, current_user.id, bucket.id, PermissionLevel.WRITE)

    stored = await FileService.create(
        db,
        bucket=bucket,
        uploader_id=current_user.id,
        metadata=metadata,
        original_name=file.filename,
        content_type=file.content_type,
        content=content,
    )

    audit.record(
        background_tasks, request, current_user.id, AccessAction.UPLOAD,
        bucket_id=stored.bucket_id, file_id=stored.id,
    )
    return FileResponse.model_validate(stored)


@router.get("/{file_id}", response_model=FileDetailResponse)
async def get_file(
    file_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """File details"""
    file = await _get_file_or_404(db, file_id)
    await PermissionChecker.require_permission(db, current_user.id, file.bucket_id, PermissionLevel.READ)

    audit.record(
        background_tasks, request, current_user.id, AccessAction.VIEW,
        bucket_id=file.bucket_id, file_id=file.id,
    )
    return FileDetailResponse.model_validate(file)


@router.get("/{file_id}/download", response_model=FileDownloadResponse)
async def download_file(
    file_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Time-limited download URL for the stored contents"""
    file = await _get_file_or_404(db, file_id)
    await PermissionChecker.require_permission(db, current_user.id, file.bucket_id, PermissionLevel.READ)

    url = await get_presigned_url(file.storage_key, download_name=file.original_name)

    audit.record(
        background_tasks, request, current_user.id, AccessAction.DOWNLOAD,
        bucket_id=file.bucket_id, file_id=file.id,
    )
    return FileDownloadResponse(
        file_id=file.id,
        download_url=url,
        expires_in=settings.PRESIGNED_URL_EXPIRES_SECONDS,
    )


@router.patch("/{file_id}", response_model=FileResponse)
async def update_file(
    file_id: int,
    data: FileUpdate,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """Edit description, tags or virtual path (write access)"""
    file = await _get_file_or_404(db, file_id)
    await PermissionChecker.require_permission(db, current_user.id, file.bucket_id, PermissionLevel.WRITE)

    file = await FileService.update(db, file, data)
    return FileResponse.model_validate(file)


@router.delete("/{file_id}", response_model=SuccessResponse)
async def delete_file(
    file_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Delete a file (write access)"""
    file = await _get_file_or_404(db, file_id)
    await PermissionChecker.require_permission(db, current_user.id, file.bucket_id, PermissionLevel.WRITE)

    bucket_id = file.bucket_id
    await FileService.delete(db, file)

    audit.record(
        background_tasks, request, current_user.id, AccessAction.DELETE,
        bucket_id=bucket_id, file_id=file_id,
    )
    return SuccessResponse()

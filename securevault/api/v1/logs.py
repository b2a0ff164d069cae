"""
Access Log API Routes
Audit trail retrieval
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from securevault.api.dependencies import get_current_user
from securevault.core.permissions import PermissionChecker, PermissionLevel
from securevault.db.models import User as UserModel
from securevault.db.session import get_db_session
from securevault.models.access_log import AccessLogResponse
from securevault.services.audit import AccessLogService

router = APIRouter()


@router.get("", response_model=List[AccessLogResponse])
async def list_access_logs(
    bucket_id: Optional[int] = Query(None, description="Entries for one bucket (admin only)"),
    file_id: Optional[int] = Query(None, description="Entries for one file"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    current_user: UserModel = Depends(get_current_user),
):
    """
    Audit entries, newest first

    Scoped to a bucket the caller must be its admin and sees every user's
    entries; otherwise only the caller's own entries are returned.
    """
    user_filter: Optional[str] = current_user.id
    if bucket_id is not None:
        await PermissionChecker.require_permission(db, current_user.id, bucket_id, PermissionLevel.ADMIN)
        user_filter = None

    logs = await AccessLogService.list_logs(
        db,
        bucket_id=bucket_id,
        file_id=file_id,
        user_id=user_filter,
        limit=limit,
        offset=offset,
    )
    return [AccessLogResponse.model_validate(log) for log in logs]

"""
Permission Pydantic Models
"""

from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field


class PermissionGrantRequest(BaseModel):
    """Grant a level on a bucket to a user"""
    user_id: str = Field(..., min_length=1, description="User to grant permission to")
    permission: Literal["read", "write", "admin"]


class PermissionResponse(BaseModel):
    """Explicit grant row"""
    id: int
    bucket_id: int
    user_id: str
    permission: str
    granted_by: str
    created_at: datetime

    model_config = {"from_attributes": True}

"""
Bucket Pydantic Models
Request/response schemas for bucket endpoints
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from securevault.core.config import settings
from securevault.models.auth import UserResponse
from securevault.models.permission import PermissionResponse


class BucketCreate(BaseModel):
    """Bucket creation schema; the caller becomes the owner"""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    is_public: bool = False
    max_size: int = Field(settings.DEFAULT_BUCKET_MAX_SIZE, gt=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class BucketUpdate(BaseModel):
    """Partial bucket update; omitted fields are left unchanged"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_public: Optional[bool] = None
    max_size: Optional[int] = Field(None, gt=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class BucketResponse(BaseModel):
    """Bucket row"""
    id: int
    name: str
    description: Optional[str]
    owner_id: str
    is_public: bool
    max_size: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BucketFileSummary(BaseModel):
    """File entry nested in a bucket listing"""
    id: int
    name: str
    original_name: str
    mime_type: str
    size: int
    path: str
    tags: List[str]
    description: Optional[str]
    checksum: Optional[str]
    uploader_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class BucketDetailResponse(BucketResponse):
    """Bucket with its owner, files and explicit grants"""
    owner: UserResponse
    files: List[BucketFileSummary]
    permissions: List[PermissionResponse]

"""
File Pydantic Models
Request/response schemas for file endpoints
"""

from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, Field, field_validator

from securevault.models.auth import UserResponse
from securevault.models.bucket import BucketResponse


def parse_tags(value: Any) -> List[str]:
    """Accept a comma-separated string or a list; trim entries and drop blanks"""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValueError("tags must be a comma-separated string or a list of strings")
    tags = []
    for tag in value:
        if not isinstance(tag, str):
            raise ValueError("tags must be strings")
        tag = tag.strip()
        if tag:
            tags.append(tag)
    return tags


def normalize_path(value: Optional[str]) -> str:
    """Virtual folder path, always starting with '/'"""
    value = (value or "").strip()
    if not value:
        return "/"
    if not value.startswith("/"):
        value = f"/{value}"
    return value


class FileUploadMetadata(BaseModel):
    """Form fields accompanying an upload"""
    bucket_id: int = Field(..., gt=0)
    path: str = Field("/", max_length=500)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> List[str]:
        return parse_tags(v)

    @field_validator("path", mode="before")
    @classmethod
    def clean_path(cls, v: Optional[str]) -> str:
        return normalize_path(v)


class FileUpdate(BaseModel):
    """Editable file metadata"""
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    path: Optional[str] = Field(None, max_length=500)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Optional[List[str]]:
        if v is None:
            return None
        return parse_tags(v)

    @field_validator("path", mode="before")
    @classmethod
    def clean_path(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return normalize_path(v)


class FileResponse(BaseModel):
    """File metadata row"""
    id: int
    name: str
    original_name: str
    mime_type: str
    size: int
    bucket_id: int
    uploader_id: str
    path: str
    tags: List[str]
    description: Optional[str]
    checksum: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class FileDetailResponse(FileResponse):
    """File with its bucket and uploader"""
    bucket: BucketResponse
    uploader: UserResponse


class FileDownloadResponse(BaseModel):
    """Time-limited download link"""
    file_id: int
    download_url: str
    expires_in: int

"""
SQLAlchemy Database Models
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from securevault.db.base import Base, IntegerIDMixin, TimestampMixin, utcnow
from securevault.core.config import settings


class User(TimestampMixin, Base):
    """User synchronised from identity-provider claims"""

    __tablename__ = "users"

    # OIDC subject identifier
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    profile_image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    owned_buckets: Mapped[List["Bucket"]] = relationship(back_populates="owner")

    @property
    def name(self) -> Optional[str]:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) or None


class Bucket(IntegerIDMixin, TimestampMixin, Base):
    """Named, permission-scoped container for files"""

    __tablename__ = "buckets"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_size: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=settings.DEFAULT_BUCKET_MAX_SIZE
    )

    # Relationships
    owner: Mapped[User] = relationship(back_populates="owned_buckets")
    files: Mapped[List["File"]] = relationship(
        back_populates="bucket",
        cascade="all, delete-orphan",
        order_by="File.id.desc()",
    )
    permissions: Mapped[List["BucketPermission"]] = relationship(
        back_populates="bucket",
        cascade="all, delete-orphan",
        order_by="BucketPermission.id",
    )


class File(IntegerIDMixin, TimestampMixin, Base):
    """Metadata row for an object stored in a bucket"""

    __tablename__ = "files"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bucket_id: Mapped[int] = mapped_column(
        ForeignKey("buckets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    uploader_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    # Virtual folder inside the bucket
    path: Mapped[str] = mapped_column(String(500), nullable=False, default="/")
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    bucket: Mapped[Bucket] = relationship(back_populates="files")
    uploader: Mapped[User] = relationship()

    @property
    def storage_key(self) -> str:
        """Object name in the storage backend"""
        return f"{self.bucket_id}/{self.name}"


class BucketPermission(IntegerIDMixin, Base):
    """Explicit grant of one permission level to one user on one bucket"""

    __tablename__ = "bucket_permissions"
    __table_args__ = (
        UniqueConstraint("bucket_id", "user_id", name="uq_bucket_permissions_bucket_user"),
        CheckConstraint(
            "permission IN ('read', 'write', 'admin')",
            name="ck_bucket_permissions_level",
        ),
    )

    bucket_id: Mapped[int] = mapped_column(
        ForeignKey("buckets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    permission: Mapped[str] = mapped_column(String(20), nullable=False)
    granted_by: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    bucket: Mapped[Bucket] = relationship(back_populates="permissions")


class AccessLog(IntegerIDMixin, Base):
    """Append-only audit record"""

    __tablename__ = "access_logs"
    __table_args__ = (
        CheckConstraint(
            "action IN ('view', 'download', 'upload', 'delete')",
            name="ck_access_logs_action",
        ),
    )

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    # Plain columns: entries outlive the files and buckets they reference
    file_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    bucket_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

"""
Audit Logging
Best-effort access log sink and audit queries
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from fastapi import BackgroundTasks, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from securevault.core.config import settings
from securevault.core.logging import get_logger
from securevault.db.models import AccessLog
from securevault.db.session import get_session_maker
from securevault.monitoring.metrics import audit_log_write_failures_total, audit_log_writes_total

logger = get_logger(__name__)


class AccessAction(str, Enum):
    """Kinds of audited access"""

    VIEW = "view"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    DELETE = "delete"


def client_ip(request: Request) -> Optional[str]:
    """Client address, honouring X-Forwarded-For only behind a trusted proxy"""
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()[:45]
    if request.client:
        return request.client.host[:45]
    return None


class AuditLogger:
    """
    Writes access log entries after the response has been produced

    Each entry is inserted in its own session with a bounded number of
    retries. A write that still fails is logged and counted, never raised,
    so the primary operation's outcome is unaffected.
    """

    def __init__(
        self,
        session_factory: Callable[[], async_sessionmaker] = get_session_maker,
        max_retries: int = settings.AUDIT_LOG_MAX_RETRIES,
        retry_delay: float = settings.AUDIT_LOG_RETRY_DELAY_SECONDS,
    ):
        self._session_factory = session_factory
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    def record(
        self,
        background_tasks: BackgroundTasks,
        request: Request,
        user_id: str,
        action: AccessAction,
        bucket_id: Optional[int] = None,
        file_id: Optional[int] = None,
    ) -> None:
        """Schedule one entry for the current request"""
        entry = {
            "user_id": user_id,
            "bucket_id": bucket_id,
            "file_id": file_id,
            "action": action.value,
            "ip_address": client_ip(request),
            "user_agent": request.headers.get("user-agent"),
        }
        background_tasks.add_task(self.write, entry)

    async def write(self, entry: Dict[str, Any]) -> bool:
        """Insert an entry, retrying transient failures; returns success"""
        for attempt in range(1, self.max_retries + 1):
            try:
                async with self._session_factory()() as session:
                    session.add(AccessLog(**entry))
                    await session.commit()
                audit_log_writes_total.labels(action=entry["action"]).inc()
                return True
            except Exception as e:
                # Driver errors such as refused connections are not always wrapped by SQLAlchemy
                message = (
                    f"Audit write failed (attempt {attempt}/{self.max_retries}) "
                    f"for {entry['action']} by {entry['user_id']}: {e}"
                )
                if attempt < self.max_retries:
                    logger.warning(message)
                    await asyncio.sleep(self.retry_delay * attempt)
                else:
                    logger.exception(message)

        audit_log_write_failures_total.inc()
        logger.error(f"Dropped audit entry after {self.max_retries} attempts: {entry}")
        return False


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Dependency returning the process-wide audit logger"""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


class AccessLogService:
    """Audit log queries"""

    @staticmethod
    async def list_logs(
        db: AsyncSession,
        bucket_id: Optional[int] = None,
        file_id: Optional[int] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AccessLog]:
        """Entries matching every given filter, newest first"""
        query = select(AccessLog)

        if bucket_id is not None:
            query = query.where(AccessLog.bucket_id == bucket_id)
        if file_id is not None:
            query = query.where(AccessLog.file_id == file_id)
        if user_id is not None:
            query = query.where(AccessLog.user_id == user_id)

        query = query.order_by(AccessLog.timestamp.desc(), AccessLog.id.desc()).offset(offset).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

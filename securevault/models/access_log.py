"""
Access Log Pydantic Models
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class AccessLogResponse(BaseModel):
    """Audit entry"""
    id: int
    user_id: str
    file_id: Optional[int]
    bucket_id: Optional[int]
    action: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    timestamp: datetime

    model_config = {"from_attributes": True}

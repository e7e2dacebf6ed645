import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from voiceconnect.schemas.common import PageMeta


class NotificationResponse(BaseModel):
    id: uuid.UUID
    type: str
    title: str
    message: str
    data: Dict[str, Any]
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationList(PageMeta):
    notifications: List[NotificationResponse]
    unread_count: int


class UnreadCount(BaseModel):
    count: int


class ReadAllResponse(BaseModel):
    updated: int

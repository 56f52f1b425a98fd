from typing import Any, Dict, List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel
from app.schemas.base import Pagination

class Notification(BaseModel):
    id: UUID
    channel: str
    purpose: str
    title: str
    body: str
    action_url: Optional[str] = None
    meta: Dict[str, Any] = {}
    language: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class NotificationList(BaseModel):
    notifications: List[Notification]
    pagination: Pagination

class UnreadCount(BaseModel):
    unread: int

# sangh_api/schemas/notification_schema.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from .sangh_post_schema import PaginationSchema


class NotificationSchema(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    type: str
    message: str
    is_read: bool = False
    entity_id: str
    entity_type: str
    post_id: Optional[str] = None
    created_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationSchema] = []
    unread_count: int = 0
    pagination: PaginationSchema

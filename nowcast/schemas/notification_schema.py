from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime
from enum import Enum

class NotificationType(str, Enum):
    LIKE = "LIKE"
    REPLY = "REPLY"
    REPOST = "REPOST"
    FOLLOW = "FOLLOW"
    MENTION = "MENTION"

class NotificationEvent(BaseModel):
    """Payload published on the notification channel"""
    type: NotificationType
    user_id: int  # recipient
    actor_id: int
    actor_name: str
    post_id: Optional[int] = None
    message: str

class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: NotificationType
    actor_id: int
    actor_name: str
    post_id: Optional[int] = None
    read: bool
    created_at: datetime

class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    page: int
    limit: int
    has_more: bool
    unread_count: int

class MarkReadRequest(BaseModel):
    ids: Optional[List[int]] = None

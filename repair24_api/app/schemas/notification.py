"""
Pydantic models for user notifications.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


NotificationType = Literal[
    "quote_received",
    "quote_accepted",
    "quote_rejected",
    "job_assigned",
    "job_completed",
    "payment_received",
    "payment_released",
    "system_update",
    "profile_verified",
]
NotificationPriority = Literal["low", "normal", "high", "urgent"]
NotificationChannel = Literal["in_app", "web_push", "email", "sms"]


class NotificationCreate(BaseModel):
    user_id: int
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    priority: NotificationPriority = "normal"
    channels: List[NotificationChannel] = Field(default_factory=lambda: ["in_app"])
    data: Optional[Dict[str, Any]] = None
    service_request_id: Optional[int] = None
    amount: Optional[float] = None
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    expires_at: Optional[datetime] = None


class NotificationRead(BaseModel):
    id: str
    user_id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    channels: List[NotificationChannel]
    sent_channels: List[NotificationChannel] = []
    status: Literal["pending", "sent", "failed"]
    read: bool = False
    data: Optional[Dict[str, Any]] = None
    service_request_id: Optional[int] = None
    amount: Optional[float] = None
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = {
        "from_attributes": True,
    }


class NotificationList(BaseModel):
    notifications: List[NotificationRead]
    unread_count: int
    total: int
    page: int
    limit: int


class NotificationUpdate(BaseModel):
    read: bool = True

from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from enum import Enum

class NotificationType(str, Enum):
    CHECKIN = "checkin"
    DOCK_ASSIGNMENT = "dock_assignment"
    STATUS_CHANGE = "status_change"
    DENIAL = "denial"

class NotificationChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"

class NotificationRequest(BaseModel):
    type: NotificationType
    channel: NotificationChannel = NotificationChannel.EMAIL
    destination: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)

class NotificationResult(BaseModel):
    success: bool
    channel: NotificationChannel
    destination: str
    message_id: Optional[str] = None
    error: Optional[str] = None

class EmailSendRequest(BaseModel):
    type: NotificationType
    to_email: str
    data: Dict[str, Any] = Field(default_factory=dict)

class SmsSendRequest(BaseModel):
    phone_number: str
    message: str = Field(..., min_length=1)

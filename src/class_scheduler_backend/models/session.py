'''
Notification and maintenance models.
'''
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from ..database.db_enums import NotificationTypeEnum


class NotificationCreate(BaseModel):
    """One message handed to the notification sink."""
    user_id: UUID
    title: str
    message: str
    notification_type: NotificationTypeEnum
    data: dict[str, Any] = Field(default_factory=dict)


class MaintenanceError(BaseModel):
    class_id: UUID
    error: str


class MaintenanceResult(BaseModel):
    classes_processed: int = 0
    sessions_generated: int = 0
    errors: list[MaintenanceError] = Field(default_factory=list)
    duration_ms: float = 0.0


class MaintenanceStats(BaseModel):
    active_classes: int
    classes_with_time_slots: int
    upcoming_sessions: int

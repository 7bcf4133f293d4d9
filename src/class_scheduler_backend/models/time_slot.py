'''
Class time slot (weekly template) API models.

Input models carry raw values; range and format checks live in
TimeSlotService so they surface as scheduling ValidationErrors.
'''
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..core.time_interval import get_day_name

# --- API Write Models (Input) ---

class TimeSlotCreate(BaseModel):
    subject: str
    day_of_week: int = Field(..., description="0=Sunday, 6=Saturday")
    start_time: str = Field(..., description="HH:MM, e.g. '14:00'")
    end_time: str = Field(..., description="HH:MM, e.g. '16:00'")


class TimeSlotUpdate(BaseModel):
    """All fields are optional; missing ones keep their current value."""
    subject: Optional[str] = None
    day_of_week: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None


# --- API Read Models (Output) ---

class TimeSlotRead(BaseModel):
    id: UUID
    class_id: UUID
    subject: str
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def day_name(self) -> str:
        return get_day_name(self.day_of_week)


class WeekCancellationRead(BaseModel):
    id: UUID
    time_slot_id: UUID
    week_start: date
    reason: Optional[str] = None
    created_by: UUID
    created_at: datetime
    time_slot: TimeSlotRead

    model_config = ConfigDict(from_attributes=True)

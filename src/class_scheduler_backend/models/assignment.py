'''
Tutor assignment API models and the pattern-specific recurrence configs.
'''
from datetime import date, datetime
from typing import Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ..database.db_enums import RecurrencePatternEnum, AssignmentStatusEnum

# --- Recurrence Configs (one variant per pattern) ---

class WeeklyRecurrenceConfig(BaseModel):
    """
    WEEKLY pattern: teach on explicit week numbers, or every other week.
    Week 1 is the week containing the assignment's start date.
    """
    weeks: Optional[list[int]] = None
    pattern: Optional[Literal['alternating']] = None
    start_week: int = Field(1, ge=1)

    model_config = ConfigDict(extra='forbid', alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode='after')
    def validate_selector(self) -> 'WeeklyRecurrenceConfig':
        if self.weeks is None and self.pattern is None:
            raise ValueError("WEEKLY config needs either 'weeks' or pattern='alternating'")
        if self.weeks is not None and any(week < 1 for week in self.weeks):
            raise ValueError("week numbers start at 1")
        return self


class ConsecutiveDaysRecurrenceConfig(BaseModel):
    """CONSECUTIVE_DAYS pattern: each tutor teaches a block of this many sessions in a row."""
    consecutive_days: int = Field(1, ge=1)

    model_config = ConfigDict(extra='forbid', alias_generator=to_camel, populate_by_name=True)


RecurrenceConfig = Union[WeeklyRecurrenceConfig, ConsecutiveDaysRecurrenceConfig]

# Patterns absent from this table take no config.
RECURRENCE_CONFIG_MODELS: dict[RecurrencePatternEnum, type[BaseModel]] = {
    RecurrencePatternEnum.WEEKLY: WeeklyRecurrenceConfig,
    RecurrencePatternEnum.CONSECUTIVE_DAYS: ConsecutiveDaysRecurrenceConfig,
}


def parse_recurrence_config(pattern: RecurrencePatternEnum | str, raw: Optional[dict]) -> Optional[RecurrenceConfig]:
    """
    Parses a stored/incoming config into its pattern variant.
    Returns None when the pattern takes no config or none was given.
    Raises pydantic.ValidationError on a malformed payload.
    """
    config_model = RECURRENCE_CONFIG_MODELS.get(RecurrencePatternEnum(pattern))
    if config_model is None or raw is None:
        return None
    return config_model.model_validate(raw)


# --- API Write Models (Input) ---

class TutorAssignmentCreate(BaseModel):
    """
    Assigns a tutor to one slot, or to every slot of a subject when
    time_slot_id is omitted.
    """
    subject: str
    tutor_id: UUID
    recurrence_pattern: RecurrencePatternEnum
    time_slot_id: Optional[UUID] = None
    recurrence_config: Optional[dict] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_window(self) -> 'TutorAssignmentCreate':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError('end_date cannot be before start_date')
        return self


# --- API Read Models (Output) ---

class TutorAssignmentRead(BaseModel):
    id: UUID
    class_id: UUID
    tutor_id: UUID
    subject: str
    time_slot_id: Optional[UUID] = None
    recurrence_pattern: RecurrencePatternEnum
    recurrence_config: Optional[dict] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: AssignmentStatusEnum
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

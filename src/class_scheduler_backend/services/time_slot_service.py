'''
Time Slot Service

Owner-only management of a class's weekly slot catalog.
'''
from datetime import time
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..core.time_interval import TimeInterval, WeeklyInterval, get_day_name, parse_hhmm
from ..models import time_slot as time_slot_models
from ..common.exceptions import SchedulingError, ValidationError, ConflictError
from ..common.logger import log
from .class_service import ClassService
from .session_generator_service import SessionGeneratorService


class TimeSlotService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        class_service: Annotated[ClassService, Depends(ClassService)],
        session_generator: Annotated[SessionGeneratorService, Depends(SessionGeneratorService)]
    ):
        self.db = db
        self.class_service = class_service
        self.session_generator = session_generator

    # --- Validation Helpers ---

    @staticmethod
    def _parse_time(value: str, label: str = "") -> time:
        try:
            return parse_hhmm(value)
        except ValueError:
            prefix = f"{label} " if label else ""
            raise ValidationError(f"Invalid {prefix}time format. Use HH:MM format (e.g., 14:00)")

    @staticmethod
    def _validate_day(day_of_week: int):
        if not 0 <= day_of_week <= 6:
            raise ValidationError("Day of week must be between 0 (Sunday) and 6 (Saturday)")

    @staticmethod
    def _build_interval(start: time, end: time) -> TimeInterval:
        if start >= end:
            raise ValidationError("Start time must be before end time")
        return TimeInterval(start, end)

    async def _validate_subject(self, class_id: UUID, subject: str):
        if subject not in await self.class_service.get_class_subjects(class_id):
            raise ValidationError(f"Subject '{subject}' is not taught in this class")

    async def _ensure_no_overlap(self, class_id: UUID, window: WeeklyInterval, exclude_slot_id: Optional[UUID] = None):
        """Adjacent slots (one ends when the next starts) do not overlap."""
        for slot in await self.class_service.get_active_time_slots(class_id):
            if slot.id == exclude_slot_id:
                continue
            existing = WeeklyInterval(slot.day_of_week, TimeInterval(slot.start_time, slot.end_time))
            if window.overlaps(existing):
                raise ConflictError(
                    f"Time slot overlaps with existing slot: {slot.subject} on "
                    f"{get_day_name(slot.day_of_week)} {existing.interval}"
                )

    # --- Public Read Methods ---

    async def get_class_time_slots(self, class_id: UUID) -> list[time_slot_models.TimeSlotRead]:
        """Active slots of the class, ordered by day then start time."""
        await self.class_service.get_class_internal(class_id)
        slots = await self.class_service.get_active_time_slots(class_id)
        return [time_slot_models.TimeSlotRead.model_validate(slot) for slot in slots]

    # --- Public Write Methods ---

    async def create_slot(
        self,
        class_id: UUID,
        data: time_slot_models.TimeSlotCreate,
        actor: db_models.Users
    ) -> db_models.ClassTimeSlots:
        log.info(f"User {actor.id} attempting to create time slot for class {class_id}.")
        try:
            class_ = await self.class_service.get_class_internal(class_id)
            self.class_service.authorize_owner(class_, actor, "create time slots")

            start = self._parse_time(data.start_time)
            end = self._parse_time(data.end_time)
            interval = self._build_interval(start, end)
            self._validate_day(data.day_of_week)
            await self._validate_subject(class_id, data.subject)
            await self._ensure_no_overlap(class_id, WeeklyInterval(data.day_of_week, interval))

            slot = db_models.ClassTimeSlots(
                class_id=class_id,
                subject=data.subject,
                day_of_week=data.day_of_week,
                start_time=start,
                end_time=end,
                is_active=True,
            )
            self.db.add(slot)
            await self.db.flush()
            await self.db.refresh(slot)

            log.info(f"Created time slot {slot.id}: {data.subject} on {get_day_name(data.day_of_week)} {interval}.")
            return slot

        except SchedulingError:
            raise
        except Exception as e:
            log.error(f"Error creating time slot for class {class_id}: {e}", exc_info=True)
            raise

    async def update_slot(
        self,
        time_slot_id: UUID,
        data: time_slot_models.TimeSlotUpdate,
        actor: db_models.Users
    ) -> db_models.ClassTimeSlots:
        """
        Applies a partial update. Future live sessions materialized under the
        old (day, start, end, subject) are cancelled when the shape changes.
        """
        log.info(f"User {actor.id} attempting to update time slot {time_slot_id}.")
        try:
            slot = await self.class_service.get_time_slot_internal(time_slot_id)
            class_ = await self.class_service.get_class_internal(slot.class_id)
            self.class_service.authorize_owner(class_, actor, "update time slots")

            start = self._parse_time(data.start_time, "start") if data.start_time is not None else slot.start_time
            end = self._parse_time(data.end_time, "end") if data.end_time is not None else slot.end_time
            interval = self._build_interval(start, end)
            day_of_week = data.day_of_week if data.day_of_week is not None else slot.day_of_week
            self._validate_day(day_of_week)
            subject = data.subject if data.subject is not None else slot.subject
            if subject != slot.subject:
                await self._validate_subject(slot.class_id, subject)
            await self._ensure_no_overlap(slot.class_id, WeeklyInterval(day_of_week, interval), exclude_slot_id=slot.id)

            shape_changed = (
                (day_of_week, start, end, subject)
                != (slot.day_of_week, slot.start_time, slot.end_time, slot.subject)
            )
            if shape_changed and slot.is_active:
                await self.session_generator.cancel_future_for_slot(
                    slot.id,
                    f"Time slot changed: {self.session_generator.describe_slot(slot)}"
                )

            slot.day_of_week = day_of_week
            slot.start_time = start
            slot.end_time = end
            slot.subject = subject
            await self.db.flush()

            log.info(f"Updated time slot {slot.id} to {subject} on {get_day_name(day_of_week)} {interval}.")
            return slot

        except SchedulingError:
            raise
        except Exception as e:
            log.error(f"Error updating time slot {time_slot_id}: {e}", exc_info=True)
            raise

    async def delete_slot(self, time_slot_id: UUID, actor: db_models.Users) -> int:
        """
        Cancels the slot's future sessions, soft-deactivates the slot and its
        tutor assignments. Returns the number of cancelled sessions.
        """
        log.info(f"User {actor.id} attempting to delete time slot {time_slot_id}.")
        try:
            slot = await self.class_service.get_time_slot_internal(time_slot_id)
            class_ = await self.class_service.get_class_internal(slot.class_id)
            self.class_service.authorize_owner(class_, actor, "delete time slots")

            cancelled = await self.session_generator.cancel_future_for_slot(
                slot.id,
                f"Time slot deleted: {self.session_generator.describe_slot(slot)}"
            )

            slot.is_active = False
            await self.db.execute(
                update(db_models.ClassTutorAssignments)
                .where(db_models.ClassTutorAssignments.time_slot_id == slot.id)
                .values(is_active=False)
                .execution_options(synchronize_session='fetch')
            )
            await self.db.flush()

            log.info(f"Deleted time slot {slot.id}; {cancelled} future sessions cancelled.")
            return cancelled

        except SchedulingError:
            raise
        except Exception as e:
            log.error(f"Error deleting time slot {time_slot_id}: {e}", exc_info=True)
            raise

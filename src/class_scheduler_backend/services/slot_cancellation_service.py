'''
Slot Cancellation Service

Per-week overrides of the weekly template: cancelling one occurrence of a
slot and reinstating it later.
'''
from datetime import date, timedelta
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import NotificationTypeEnum
from ..core.time_interval import get_week_start, week_bounds
from ..models.session import NotificationCreate
from ..models import time_slot as time_slot_models
from ..common.exceptions import SchedulingError, NotFoundError, ConflictError
from ..common.logger import log
from .class_service import ClassService
from .notification_service import NotificationService
from .session_generator_service import SessionGeneratorService


class SlotCancellationService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        class_service: Annotated[ClassService, Depends(ClassService)],
        session_generator: Annotated[SessionGeneratorService, Depends(SessionGeneratorService)],
        notification_service: Annotated[NotificationService, Depends(NotificationService)]
    ):
        self.db = db
        self.class_service = class_service
        self.session_generator = session_generator
        self.notification_service = notification_service

    async def _get_cancellation(self, time_slot_id: UUID, week_start: date) -> Optional[db_models.ClassSlotCancellations]:
        stmt = select(db_models.ClassSlotCancellations).filter(
            db_models.ClassSlotCancellations.time_slot_id == time_slot_id,
            db_models.ClassSlotCancellations.week_start == week_start
        )
        return (await self.db.execute(stmt)).scalars().first()

    # --- Public Read Methods ---

    async def get_week_cancellations(self, class_id: UUID, week_start: date) -> list[time_slot_models.WeekCancellationRead]:
        """Overrides on the class's active slots for the week containing week_start."""
        monday = get_week_start(week_start)
        stmt = select(db_models.ClassSlotCancellations).join(
            db_models.ClassSlotCancellations.time_slot
        ).options(
            selectinload(db_models.ClassSlotCancellations.time_slot)
        ).filter(
            db_models.ClassSlotCancellations.week_start == monday,
            db_models.ClassTimeSlots.class_id == class_id,
            db_models.ClassTimeSlots.is_active.is_(True)
        )
        result = await self.db.execute(stmt)
        return [time_slot_models.WeekCancellationRead.model_validate(c) for c in result.scalars().all()]

    # --- Public Write Methods ---

    async def cancel_for_week(
        self,
        time_slot_id: UUID,
        week_start: date,
        reason: Optional[str],
        actor: db_models.Users
    ) -> db_models.ClassSlotCancellations:
        """
        Records the override and cancels the live sessions of that slot in that
        week. Members and the affected tutors are notified.
        """
        log.info(f"User {actor.id} attempting to cancel time slot {time_slot_id} for week of {week_start}.")
        try:
            slot = await self.class_service.get_time_slot_internal(time_slot_id)
            class_ = await self.class_service.get_class_internal(slot.class_id)
            self.class_service.authorize_owner(class_, actor, "cancel time slots")

            monday = get_week_start(week_start)
            if await self._get_cancellation(slot.id, monday):
                raise ConflictError("This time slot is already cancelled for this week")

            cancellation = db_models.ClassSlotCancellations(
                time_slot_id=slot.id,
                week_start=monday,
                reason=reason,
                created_by=actor.id,
            )
            self.db.add(cancellation)
            await self.db.flush()

            week_begin, week_end = week_bounds(monday)
            sessions = await self.session_generator.find_live_sessions_for_slot(slot, week_begin, week_end)
            session_reason = f"Time slot cancelled for week: {reason}" if reason else "Time slot cancelled for this week"
            cancelled = await self.session_generator.cancel_sessions(sessions, session_reason)
            log.info(f"Cancelled time slot {slot.id} for week {monday}; {cancelled} sessions cancelled.")

            tutor_ids = {s.tutor_id for s in sessions if s.tutor_id is not None}
            await self._notify_week_cancelled(slot, class_, monday, reason, tutor_ids)
            return cancellation

        except SchedulingError:
            raise
        except Exception as e:
            log.error(f"Error cancelling time slot {time_slot_id} for week {week_start}: {e}", exc_info=True)
            raise

    async def reinstate_for_week(
        self,
        time_slot_id: UUID,
        week_start: date,
        actor: db_models.Users
    ) -> list[db_models.TutoringSessions]:
        """
        Removes the override and regenerates that single week. The cancelled
        session stays as history; a new session row is created.
        """
        log.info(f"User {actor.id} attempting to reinstate time slot {time_slot_id} for week of {week_start}.")
        try:
            slot = await self.class_service.get_time_slot_internal(time_slot_id)
            class_ = await self.class_service.get_class_internal(slot.class_id)
            self.class_service.authorize_owner(class_, actor, "reinstate time slots")

            monday = get_week_start(week_start)
            cancellation = await self._get_cancellation(slot.id, monday)
            if not cancellation:
                raise NotFoundError("No cancellation found for this time slot and week")

            await self.db.delete(cancellation)
            await self.db.flush()

            sessions = await self.session_generator.generate_for_slot(slot.id, 1, monday)
            log.info(f"Reinstated time slot {slot.id} for week {monday}; regenerated {len(sessions)} sessions.")
            return sessions

        except SchedulingError:
            raise
        except Exception as e:
            log.error(f"Error reinstating time slot {time_slot_id} for week {week_start}: {e}", exc_info=True)
            raise

    # --- Notifications ---

    async def _notify_week_cancelled(
        self,
        slot: db_models.ClassTimeSlots,
        class_: db_models.Classes,
        monday: date,
        reason: Optional[str],
        tutor_ids: set[UUID]
    ):
        week_label = f"{monday.isoformat()} - {(monday + timedelta(days=6)).isoformat()}"
        slot_label = self.session_generator.describe_slot(slot)
        reason_suffix = f" Reason: {reason}" if reason else ""
        data = {
            "class_id": str(class_.id),
            "class_name": class_.name,
            "time_slot_id": str(slot.id),
            "week_start": monday.isoformat(),
            "reason": reason,
        }

        recipients = list(await self.class_service.get_active_member_ids(class_.id))
        recipients.extend(sorted(tutor_ids - set(recipients), key=str))

        notifications = [
            NotificationCreate(
                user_id=user_id,
                title="Class Session Cancelled",
                message=f"{class_.name}: {slot_label} is cancelled for the week {week_label}.{reason_suffix}",
                notification_type=NotificationTypeEnum.SESSION_CANCELLED,
                data=data,
            )
            for user_id in recipients
        ]
        await self.notification_service.dispatch(notifications)

'''
Session Maintenance Service

Keeps a rolling window of materialized sessions for every active class.
'''
import time
from datetime import datetime, timedelta
from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy import select, func, exists
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import SessionStatusEnum
from ..core.time_interval import get_week_start, schedule_now
from ..models.session import MaintenanceError, MaintenanceResult, MaintenanceStats
from ..common.config import settings
from ..common.logger import log
from .session_generator_service import SessionGeneratorService


class SessionMaintenanceService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        session_generator: Annotated[SessionGeneratorService, Depends(SessionGeneratorService)]
    ):
        self.db = db
        self.session_generator = session_generator

    async def _get_active_classes_with_slots(self) -> list[db_models.Classes]:
        has_active_slot = exists().where(
            db_models.ClassTimeSlots.class_id == db_models.Classes.id,
            db_models.ClassTimeSlots.is_active.is_(True)
        )
        stmt = select(db_models.Classes).filter(
            db_models.Classes.is_active.is_(True),
            has_active_slot
        ).order_by(db_models.Classes.created_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def maintain_session_window(self, weeks: Optional[int] = None) -> MaintenanceResult:
        """
        Fills missing weeks from the current Monday to the end of the window
        for each active class. A failing class is rolled back to its savepoint,
        recorded and skipped.
        """
        weeks = weeks or settings.SESSION_WINDOW_WEEKS
        started = time.perf_counter()

        window_start = get_week_start(schedule_now())
        window_end = window_start + timedelta(weeks=weeks, days=-1)
        log.info(f"Starting session window maintenance: {window_start} - {window_end} ({weeks} weeks).")

        classes = await self._get_active_classes_with_slots()
        log.info(f"Found {len(classes)} active classes with time slots.")

        result = MaintenanceResult()
        for class_ in classes:
            class_id, class_name = class_.id, class_.name
            try:
                async with self.db.begin_nested():
                    generated = await self.session_generator.fill_gaps(class_id, window_start, window_end)
            except Exception as e:
                log.error(f"Failed to generate sessions for class {class_id} ({class_name}): {e}", exc_info=True)
                result.errors.append(MaintenanceError(class_id=class_id, error=str(e)))
                continue

            result.classes_processed += 1
            result.sessions_generated += len(generated)
            if generated:
                log.info(f"Generated {len(generated)} sessions for class {class_id} ({class_name}).")

        result.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        log.info(f"Session window maintenance completed: {result.classes_processed} classes, "
                 f"{result.sessions_generated} sessions, {len(result.errors)} errors in {result.duration_ms} ms.")
        if result.errors:
            log.warning(f"Session window maintenance had {len(result.errors)} errors: "
                        f"{[e.class_id for e in result.errors]}")
        return result

    async def get_maintenance_stats(self, weeks: Optional[int] = None) -> MaintenanceStats:
        weeks = weeks or settings.SESSION_WINDOW_WEEKS
        now = schedule_now()
        window_end: datetime = now + timedelta(weeks=weeks)

        active_classes = (await self.db.execute(
            select(func.count()).select_from(db_models.Classes).filter(db_models.Classes.is_active.is_(True))
        )).scalar() or 0

        classes_with_time_slots = len(await self._get_active_classes_with_slots())

        upcoming_sessions = (await self.db.execute(
            select(func.count()).select_from(db_models.TutoringSessions).filter(
                db_models.TutoringSessions.scheduled_start >= now,
                db_models.TutoringSessions.scheduled_start <= window_end,
                db_models.TutoringSessions.status.in_(SessionStatusEnum.live_values())
            )
        )).scalar() or 0

        return MaintenanceStats(
            active_classes=active_classes,
            classes_with_time_slots=classes_with_time_slots,
            upcoming_sessions=upcoming_sessions,
        )

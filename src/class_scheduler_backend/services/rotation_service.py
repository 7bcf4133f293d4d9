'''
Rotation Service

Loads what the rotation engine needs (slots, session history) and resolves
which tutor teaches each session of a batch.
'''
from datetime import datetime, time
from typing import Annotated, Optional, Sequence
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..core import rotation
from ..core.time_interval import day_of_week_of
from ..common.logger import log
from .class_service import ClassService


class RotationService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        class_service: Annotated[ClassService, Depends(ClassService)]
    ):
        self.db = db
        self.class_service = class_service

    # --- Slot Matching ---

    def match_slot(
        self,
        session: db_models.TutoringSessions,
        slots: Sequence[db_models.ClassTimeSlots]
    ) -> Optional[db_models.ClassTimeSlots]:
        """
        The slot a session was materialized from: by explicit reference when
        the session carries one, otherwise by (day, start time, subject) among
        active slots.
        """
        if session.time_slot_id is not None:
            return next((s for s in slots if s.id == session.time_slot_id), None)

        session_day = day_of_week_of(session.scheduled_start)
        session_start = session.scheduled_start.time()
        return next(
            (
                s for s in slots
                if s.is_active
                and s.day_of_week == session_day
                and s.start_time == session_start
                and s.subject == session.subject
            ),
            None
        )

    # --- Session History ---

    async def _subject_history(self, class_id: UUID, subject: str) -> list[datetime]:
        stmt = select(db_models.TutoringSessions.scheduled_start).filter(
            db_models.TutoringSessions.class_id == class_id,
            db_models.TutoringSessions.subject == subject
        ).order_by(db_models.TutoringSessions.scheduled_start)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _shape_history(starts: list[datetime], day_of_week: int, start_time: time) -> list[datetime]:
        return [s for s in starts if day_of_week_of(s) == day_of_week and s.time() == start_time]

    # --- Main Method ---

    async def resolve(
        self,
        sessions: Sequence[db_models.TutoringSessions],
        assignments: Sequence[db_models.ClassTutorAssignments]
    ) -> dict[UUID, UUID]:
        """
        Maps session id -> tutor id for the sessions a tutor could be found for.
        All sessions must belong to the same class. Unresolved sessions are
        simply absent from the result.
        """
        resolved: dict[UUID, UUID] = {}
        if not sessions:
            return resolved

        class_id = sessions[0].class_id
        slots = await self.class_service.get_all_time_slots(class_id)
        history_by_subject: dict[str, list[datetime]] = {}

        for session in sessions:
            slot = self.match_slot(session, slots)
            if slot is None:
                log.warning(f"No matching time slot found for session {session.id} ({session.scheduled_start}).")
                continue

            session_date = session.scheduled_start.date()
            active = rotation.active_assignments_for(assignments, slot.id, session.subject, session_date)
            if not active:
                continue

            if session.subject not in history_by_subject:
                history_by_subject[session.subject] = await self._subject_history(class_id, session.subject)
            history = self._shape_history(
                history_by_subject[session.subject],
                day_of_week_of(session.scheduled_start),
                session.scheduled_start.time()
            )

            session_index = rotation.compute_session_index(session.scheduled_start, history)
            if session_index == -1:
                log.warning(f"Session {session.id} not found in the history of slot {slot.id}.")
                continue

            tutor_id = rotation.select_tutor(active, session.scheduled_start, session_index)
            if tutor_id is not None:
                resolved[session.id] = tutor_id

        log.info(f"Resolved tutors for {len(resolved)}/{len(sessions)} sessions of class {class_id}.")
        return resolved

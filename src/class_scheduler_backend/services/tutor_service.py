'''
Tutor Service
'''
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.engine import get_db_session
from ..database import models as db_models
from ..core.time_interval import TimeInterval, WeeklyInterval
from ..common.exceptions import NotFoundError
from ..common.logger import log


class TutorService:
    """
    Read access to tutor records: hourly rate, subject expertise and
    weekly availability.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_tutor_internal(self, tutor_id: UUID) -> db_models.Tutors:
        """Fetches a tutor with subjects and availability eagerly loaded."""
        log.info(f"Internal fetch for tutor by ID: {tutor_id}")
        stmt = select(db_models.Tutors).options(
            selectinload(db_models.Tutors.tutor_subjects),
            selectinload(db_models.Tutors.availability_intervals)
        ).filter(db_models.Tutors.id == tutor_id)

        result = await self.db.execute(stmt)
        tutor = result.scalars().first()
        if not tutor:
            raise NotFoundError("Tutor not found")
        return tutor

    async def get_hourly_rate(self, tutor_id: UUID) -> Optional[Decimal]:
        """None when the tutor does not exist or has no rate set."""
        stmt = select(db_models.Tutors.hourly_rate).filter(db_models.Tutors.id == tutor_id)
        return (await self.db.execute(stmt)).scalar()

    def has_expertise(self, tutor: db_models.Tutors, subject: str) -> bool:
        return any(ts.subject == subject for ts in tutor.tutor_subjects)

    def is_available_for(self, tutor: db_models.Tutors, window: WeeklyInterval) -> bool:
        """
        True if one declared availability interval fully covers the window.
        A tutor who declared no availability is treated as always available.
        """
        if not tutor.availability_intervals:
            return True
        return any(
            WeeklyInterval(a.day_of_week, TimeInterval(a.start_time, a.end_time)).contains(window)
            for a in tutor.availability_intervals
        )

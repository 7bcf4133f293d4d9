'''
Class Service
'''
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..common.exceptions import NotFoundError, AuthorizationError
from ..common.logger import log


class ClassService:
    """
    Read access to classes and their time slot catalog, plus the
    class-owner authorization check shared by every write service.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    # --- Authorization Helper ---

    def authorize_owner(self, class_: db_models.Classes, actor: db_models.Users, action: str):
        """Raises AuthorizationError unless the actor created the class."""
        if class_.owner_id != actor.id:
            log.warning(f"SECURITY: User {actor.id} tried to {action} for class {class_.id} owned by {class_.owner_id}.")
            raise AuthorizationError(f"Only the class creator can {action}")

    # --- Internal Fetchers (No Auth) ---

    async def get_class_internal(self, class_id: UUID) -> db_models.Classes:
        log.info(f"Internal fetch for class by ID: {class_id}")
        class_ = await self.db.get(db_models.Classes, class_id)
        if not class_:
            raise NotFoundError("Class not found")
        return class_

    async def get_time_slot_internal(self, time_slot_id: UUID) -> db_models.ClassTimeSlots:
        log.info(f"Internal fetch for time slot by ID: {time_slot_id}")
        slot = await self.db.get(db_models.ClassTimeSlots, time_slot_id)
        if not slot:
            raise NotFoundError("Time slot not found")
        return slot

    async def get_active_time_slots(self, class_id: UUID) -> list[db_models.ClassTimeSlots]:
        stmt = select(db_models.ClassTimeSlots).filter(
            db_models.ClassTimeSlots.class_id == class_id,
            db_models.ClassTimeSlots.is_active.is_(True)
        ).order_by(
            db_models.ClassTimeSlots.day_of_week,
            db_models.ClassTimeSlots.start_time,
            db_models.ClassTimeSlots.created_at
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_all_time_slots(self, class_id: UUID) -> list[db_models.ClassTimeSlots]:
        """Active and deactivated slots, for resolving explicit slot references."""
        stmt = select(db_models.ClassTimeSlots).filter(db_models.ClassTimeSlots.class_id == class_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_class_subjects(self, class_id: UUID) -> set[str]:
        stmt = select(db_models.ClassSubjects.subject).filter(db_models.ClassSubjects.class_id == class_id)
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def get_active_member_ids(self, class_id: UUID) -> list[UUID]:
        stmt = select(db_models.ClassMembers.student_id).filter(
            db_models.ClassMembers.class_id == class_id,
            db_models.ClassMembers.is_active.is_(True)
        ).order_by(db_models.ClassMembers.joined_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_active_members(self, class_id: UUID) -> int:
        stmt = select(func.count()).select_from(db_models.ClassMembers).filter(
            db_models.ClassMembers.class_id == class_id,
            db_models.ClassMembers.is_active.is_(True)
        )
        return (await self.db.execute(stmt)).scalar() or 0

'''
Tutor Assignment Service

Registry of rotation assignments: which tutors teach a class subject (or
one of its slots) and under which recurrence pattern.
'''
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import AssignmentStatusEnum, RecurrencePatternEnum, NotificationTypeEnum
from ..core.time_interval import TimeInterval, WeeklyInterval
from ..models import assignment as assignment_models
from ..models.session import NotificationCreate
from ..common.exceptions import SchedulingError, ValidationError, NotFoundError, AuthorizationError
from ..common.logger import log
from .class_service import ClassService
from .tutor_service import TutorService
from .notification_service import NotificationService
from .session_generator_service import SessionGeneratorService


class TutorAssignmentService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        class_service: Annotated[ClassService, Depends(ClassService)],
        tutor_service: Annotated[TutorService, Depends(TutorService)],
        session_generator: Annotated[SessionGeneratorService, Depends(SessionGeneratorService)],
        notification_service: Annotated[NotificationService, Depends(NotificationService)]
    ):
        self.db = db
        self.class_service = class_service
        self.tutor_service = tutor_service
        self.session_generator = session_generator
        self.notification_service = notification_service

    async def _get_assignment_internal(self, assignment_id: UUID) -> db_models.ClassTutorAssignments:
        log.info(f"Internal fetch for tutor assignment by ID: {assignment_id}")
        assignment = await self.db.get(db_models.ClassTutorAssignments, assignment_id)
        if not assignment:
            raise NotFoundError("Assignment not found")
        return assignment

    @staticmethod
    def _validate_recurrence_config(pattern: RecurrencePatternEnum, raw: Optional[dict]) -> Optional[dict]:
        """Returns the normalized config to store, None for patterns that take none."""
        if pattern not in assignment_models.RECURRENCE_CONFIG_MODELS:
            return None
        if raw is None:
            raise ValidationError(f"{pattern.value} pattern requires a recurrence config")
        try:
            config = assignment_models.parse_recurrence_config(pattern, raw)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid recurrence config for {pattern.value}: {e.errors()[0]['msg']}")
        return config.model_dump(exclude_none=True)

    async def _validate_time_slot(
        self,
        time_slot_id: UUID,
        class_id: UUID,
        subject: str,
        tutor: db_models.Tutors
    ):
        slot = await self.db.get(db_models.ClassTimeSlots, time_slot_id)
        if not slot or not slot.is_active or slot.class_id != class_id or slot.subject != subject:
            raise ValidationError("Time slot is invalid or does not match the subject")

        window = WeeklyInterval(slot.day_of_week, TimeInterval(slot.start_time, slot.end_time))
        if not self.tutor_service.is_available_for(tutor, window):
            raise ValidationError(f"Tutor is not available on {window}")

    # --- Public Read Methods ---

    async def get_class_assignments(self, class_id: UUID) -> list[assignment_models.TutorAssignmentRead]:
        """Active assignments of the class, newest first."""
        await self.class_service.get_class_internal(class_id)
        stmt = select(db_models.ClassTutorAssignments).filter(
            db_models.ClassTutorAssignments.class_id == class_id,
            db_models.ClassTutorAssignments.is_active.is_(True)
        ).order_by(db_models.ClassTutorAssignments.created_at.desc())
        result = await self.db.execute(stmt)
        return [assignment_models.TutorAssignmentRead.model_validate(a) for a in result.scalars().all()]

    # --- Public Write Methods ---

    async def create_assignment(
        self,
        class_id: UUID,
        data: assignment_models.TutorAssignmentCreate,
        actor: db_models.Users
    ) -> db_models.ClassTutorAssignments:
        """Creates a PENDING assignment; it joins the rotation once the tutor accepts."""
        log.info(f"User {actor.id} attempting to assign tutor {data.tutor_id} to class {class_id} ({data.subject}).")
        try:
            class_ = await self.class_service.get_class_internal(class_id)
            self.class_service.authorize_owner(class_, actor, "assign tutors")

            if data.subject not in await self.class_service.get_class_subjects(class_id):
                raise ValidationError(f"Subject '{data.subject}' is not taught in this class")

            tutor = await self.tutor_service.get_tutor_internal(data.tutor_id)
            if not self.tutor_service.has_expertise(tutor, data.subject):
                raise ValidationError("Tutor does not have expertise in this subject")

            if data.time_slot_id is not None:
                await self._validate_time_slot(data.time_slot_id, class_id, data.subject, tutor)

            recurrence_config = self._validate_recurrence_config(data.recurrence_pattern, data.recurrence_config)

            assignment = db_models.ClassTutorAssignments(
                class_id=class_id,
                tutor_id=tutor.id,
                subject=data.subject,
                time_slot_id=data.time_slot_id,
                recurrence_pattern=data.recurrence_pattern.value,
                recurrence_config=recurrence_config,
                start_date=data.start_date,
                end_date=data.end_date,
                status=AssignmentStatusEnum.PENDING.value,
                is_active=True,
            )
            self.db.add(assignment)
            await self.db.flush()
            await self.db.refresh(assignment)

            log.info(f"Created tutor assignment {assignment.id} ({data.recurrence_pattern.value}) for class {class_id}.")
            return assignment

        except SchedulingError:
            raise
        except Exception as e:
            log.error(f"Error creating tutor assignment for class {class_id}: {e}", exc_info=True)
            raise

    async def update_assignment_status(
        self,
        assignment_id: UUID,
        status: AssignmentStatusEnum,
        actor: db_models.Users
    ) -> db_models.ClassTutorAssignments:
        """
        Accept/decline by the assigned tutor. Accepting re-runs the rotation for
        the class's future sessions that have no tutor yet.
        """
        log.info(f"User {actor.id} attempting to set assignment {assignment_id} to {status.value}.")
        try:
            assignment = await self._get_assignment_internal(assignment_id)
            if assignment.tutor_id != actor.id:
                log.warning(f"SECURITY: User {actor.id} tried to update assignment {assignment_id} of tutor {assignment.tutor_id}.")
                raise AuthorizationError("Only the assigned tutor can update assignment status")

            assignment.status = status.value
            await self.db.flush()

            if status == AssignmentStatusEnum.ACCEPTED and assignment.is_active:
                await self.session_generator.reapply_assignments(assignment.class_id)

            class_ = await self.class_service.get_class_internal(assignment.class_id)
            await self.notification_service.dispatch([
                NotificationCreate(
                    user_id=class_.owner_id,
                    title="Tutor Assignment Updated",
                    message=f"A tutor has {status.value.lower()} the {assignment.subject} assignment for {class_.name}.",
                    notification_type=NotificationTypeEnum.ASSIGNMENT_STATUS_CHANGED,
                    data={
                        "class_id": str(class_.id),
                        "assignment_id": str(assignment.id),
                        "tutor_id": str(assignment.tutor_id),
                        "status": status.value,
                    },
                )
            ])
            return assignment

        except SchedulingError:
            raise
        except Exception as e:
            log.error(f"Error updating status of assignment {assignment_id}: {e}", exc_info=True)
            raise

    async def remove_assignment(self, assignment_id: UUID, actor: db_models.Users) -> None:
        """Soft-deactivates the assignment. Already generated sessions are kept."""
        log.info(f"User {actor.id} attempting to remove assignment {assignment_id}.")
        try:
            assignment = await self._get_assignment_internal(assignment_id)
            class_ = await self.class_service.get_class_internal(assignment.class_id)
            self.class_service.authorize_owner(class_, actor, "remove tutor assignments")

            assignment.is_active = False
            await self.db.flush()
            log.info(f"Deactivated tutor assignment {assignment_id}.")

        except SchedulingError:
            raise
        except Exception as e:
            log.error(f"Error removing assignment {assignment_id}: {e}", exc_info=True)
            raise

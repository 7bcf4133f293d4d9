'''
Pytest configuration for the scheduling services.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any code is imported.
2. Providing a clean, isolated database session for each test
   (a fresh in-memory database, rolled back and disposed afterwards).
3. Providing instances of all service classes, pre-injected with the test session.
4. Seeding a class with an owner, students, tutors and one weekly time slot.
'''

import os

# Must happen before the settings singleton is created.
os.environ["TEST_MODE"] = "True"

import pytest
import datetime
from typing import AsyncGenerator
from unittest.mock import AsyncMock

from sqlalchemy.ext.asyncio import AsyncSession

# --- Constant Imports ----
from tests.constants import (
    TEST_OWNER_ID,
    TEST_OTHER_USER_ID,
    TEST_TUTOR_A_ID,
    TEST_TUTOR_B_ID,
    TEST_TUTOR_C_ID,
    TEST_STUDENT_IDS,
    TEST_CLASS_ID,
    TEST_TIME_SLOT_ID,
    TEST_SUBJECT,
    TEST_OTHER_SUBJECT,
)
from tests.database import factories

# --- Application Imports ---
from src.class_scheduler_backend.common.config import settings
from src.class_scheduler_backend.database import engine as db_engine
from src.class_scheduler_backend.database import models as db_models
from src.class_scheduler_backend.database.db_enums import UserRole
from src.class_scheduler_backend.services.class_service import ClassService
from src.class_scheduler_backend.services.tutor_service import TutorService
from src.class_scheduler_backend.services.notification_service import NotificationService
from src.class_scheduler_backend.services.rotation_service import RotationService
from src.class_scheduler_backend.services.session_generator_service import SessionGeneratorService
from src.class_scheduler_backend.services.time_slot_service import TimeSlotService
from src.class_scheduler_backend.services.slot_cancellation_service import SlotCancellationService
from src.class_scheduler_backend.services.tutor_assignment_service import TutorAssignmentService
from src.class_scheduler_backend.services.session_maintenance_service import SessionMaintenanceService


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio' (solves 'trio' error).
    2. Promotes the scope to 'session' (solves 'ScopeMismatch').
    """
    return "asyncio"


# --- 1. Function-Scoped Session Fixture ---

@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provides a single, isolated database session per test.

    The engine is in-memory SQLite with a single static connection, so
    disposing it at the end throws the whole database away.
    """
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."

    db_engine.create_db_engine_and_session_factory()
    await db_engine.init_db_schema()

    session = db_engine.AsyncSessionLocal()
    factories.test_db_session = session
    try:
        yield session
    finally:
        factories.test_db_session = None
        await session.rollback()
        await session.close()
        await db_engine.dispose_db_engine()


# --- 2. SERVICE FIXTURES ---

@pytest.fixture(scope="function")
def class_service(db_session: AsyncSession) -> ClassService:
    return ClassService(db=db_session)

@pytest.fixture(scope="function")
def tutor_service(db_session: AsyncSession) -> TutorService:
    return TutorService(db=db_session)

@pytest.fixture(scope="function")
def notification_service(db_session: AsyncSession) -> NotificationService:
    return NotificationService(db=db_session)

@pytest.fixture(scope="function")
def rotation_service(db_session: AsyncSession, class_service: ClassService) -> RotationService:
    return RotationService(db=db_session, class_service=class_service)

@pytest.fixture(scope="function")
def session_generator(
    db_session: AsyncSession,
    class_service: ClassService,
    tutor_service: TutorService,
    rotation_service: RotationService,
    notification_service: NotificationService
) -> SessionGeneratorService:
    return SessionGeneratorService(
        db=db_session,
        class_service=class_service,
        tutor_service=tutor_service,
        rotation_service=rotation_service,
        notification_service=notification_service
    )

@pytest.fixture(scope="function")
def time_slot_service(
    db_session: AsyncSession,
    class_service: ClassService,
    session_generator: SessionGeneratorService
) -> TimeSlotService:
    return TimeSlotService(db=db_session, class_service=class_service, session_generator=session_generator)

@pytest.fixture(scope="function")
def slot_cancellation_service(
    db_session: AsyncSession,
    class_service: ClassService,
    session_generator: SessionGeneratorService,
    notification_service: NotificationService
) -> SlotCancellationService:
    return SlotCancellationService(
        db=db_session,
        class_service=class_service,
        session_generator=session_generator,
        notification_service=notification_service
    )

@pytest.fixture(scope="function")
def tutor_assignment_service(
    db_session: AsyncSession,
    class_service: ClassService,
    tutor_service: TutorService,
    session_generator: SessionGeneratorService,
    notification_service: NotificationService
) -> TutorAssignmentService:
    return TutorAssignmentService(
        db=db_session,
        class_service=class_service,
        tutor_service=tutor_service,
        session_generator=session_generator,
        notification_service=notification_service
    )

@pytest.fixture(scope="function")
def session_maintenance_service(
    db_session: AsyncSession,
    session_generator: SessionGeneratorService
) -> SessionMaintenanceService:
    return SessionMaintenanceService(db=db_session, session_generator=session_generator)

@pytest.fixture(scope="function")
def failing_notification_service(notification_service: NotificationService) -> NotificationService:
    """The real service with its storage step replaced by a failing mock."""
    notification_service.create_bulk_notifications = AsyncMock(side_effect=RuntimeError("notifications table unavailable"))
    return notification_service


# --- 3. SEEDED ORM FIXTURES ---

@pytest.fixture(scope="function")
async def test_owner_orm(db_session: AsyncSession) -> db_models.Users:
    owner = factories.UserFactory(id=TEST_OWNER_ID, role=UserRole.ADMIN.value)
    await db_session.flush()
    return owner

@pytest.fixture(scope="function")
async def test_other_user_orm(db_session: AsyncSession) -> db_models.Users:
    user = factories.UserFactory(id=TEST_OTHER_USER_ID, role=UserRole.ADMIN.value)
    await db_session.flush()
    return user

@pytest.fixture(scope="function")
async def test_students_orm(db_session: AsyncSession) -> list[db_models.Students]:
    students = [factories.StudentFactory(id=student_id) for student_id in TEST_STUDENT_IDS]
    await db_session.flush()
    return students

@pytest.fixture(scope="function")
async def test_tutors_orm(db_session: AsyncSession) -> list[db_models.Tutors]:
    """Tutors A, B and C, all teaching TEST_SUBJECT at the default hourly rate."""
    tutors = []
    for tutor_id in (TEST_TUTOR_A_ID, TEST_TUTOR_B_ID, TEST_TUTOR_C_ID):
        tutor = factories.TutorFactory(id=tutor_id)
        factories.TutorSubjectFactory(tutor=tutor, subject=TEST_SUBJECT)
        tutors.append(tutor)
    await db_session.flush()
    return tutors

@pytest.fixture(scope="function")
async def test_class_orm(
    db_session: AsyncSession,
    test_owner_orm: db_models.Users,
    test_students_orm: list[db_models.Students]
) -> db_models.Classes:
    """A class teaching Math and Physics with three active students."""
    class_ = factories.ClassFactory(id=TEST_CLASS_ID, owner_id=test_owner_orm.id, name="Grade 10 Science")
    factories.ClassSubjectFactory(class_id=class_.id, subject=TEST_SUBJECT)
    factories.ClassSubjectFactory(class_id=class_.id, subject=TEST_OTHER_SUBJECT)
    for i, student in enumerate(test_students_orm):
        factories.ClassMemberFactory(
            class_id=class_.id,
            student_id=student.id,
            joined_at=datetime.datetime(2029, 9, 1) + datetime.timedelta(minutes=i)
        )
    await db_session.flush()
    return class_

@pytest.fixture(scope="function")
async def test_time_slot_orm(db_session: AsyncSession, test_class_orm: db_models.Classes) -> db_models.ClassTimeSlots:
    """Monday 14:00-16:00 Math."""
    slot = factories.TimeSlotFactory(
        id=TEST_TIME_SLOT_ID,
        class_id=test_class_orm.id,
        subject=TEST_SUBJECT,
        day_of_week=1,
        start_time=datetime.time(14, 0),
        end_time=datetime.time(16, 0)
    )
    await db_session.flush()
    return slot

@pytest.fixture(scope="function")
async def round_robin_assignments(
    db_session: AsyncSession,
    test_class_orm: db_models.Classes,
    test_tutors_orm: list[db_models.Tutors]
) -> list[db_models.ClassTutorAssignments]:
    """Accepted ROUND_ROBIN assignments for tutors A, B, C in that created_at order."""
    assignments = [
        factories.TutorAssignmentFactory(
            class_id=test_class_orm.id,
            tutor_id=tutor.id,
            created_at=datetime.datetime(2029, 12, 1, 9, 0) + datetime.timedelta(minutes=i)
        )
        for i, tutor in enumerate(test_tutors_orm)
    ]
    await db_session.flush()
    return assignments

import factory
import uuid
import datetime
from decimal import Decimal
from factory.alchemy import SQLAlchemyModelFactory
from factory.faker import Faker

from src.class_scheduler_backend.database import models as db_models
from src.class_scheduler_backend.database.db_enums import (
    UserRole, SessionStatusEnum, RecurrencePatternEnum, AssignmentStatusEnum
)
from tests.constants import TEST_SUBJECT, TEST_HOURLY_RATE, TEST_WEEK_START

# Set by the `db_session` fixture in conftest.py before any factory is used.
test_db_session = None

class BaseFactory(SQLAlchemyModelFactory):
    """
    Objects are only added to the AsyncSession; tests flush them with
    `await db_session.flush()` since factory_boy cannot await.
    """
    class Meta:
        abstract = True
        sqlalchemy_session_persistence = None

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        # This ensures the session is set before any factory is used
        if test_db_session is None:
            raise RuntimeError(
                "The 'test_db_session' global must be set by the db_session fixture before using factories."
            )
        cls._meta.sqlalchemy_session = test_db_session
        return super()._create(model_class, *args, **kwargs)


class UserFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    first_name = Faker("first_name")
    last_name = Faker("last_name")
    role = UserRole.ADMIN.value
    is_active = True

    class Meta:
        model = db_models.Users

class TutorFactory(UserFactory):
    role = UserRole.TUTOR.value
    hourly_rate = Decimal(TEST_HOURLY_RATE)

    class Meta:
        model = db_models.Tutors

class StudentFactory(UserFactory):
    role = UserRole.STUDENT.value
    grade = 10

    class Meta:
        model = db_models.Students

class TutorSubjectFactory(BaseFactory):
    subject = TEST_SUBJECT
    tutor_id = factory.SelfAttribute('tutor.id')
    tutor = factory.SubFactory(TutorFactory)

    class Meta:
        model = db_models.TutorSubjects

class TutorAvailabilityIntervalFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    day_of_week = 1
    start_time = datetime.time(9, 0)
    end_time = datetime.time(17, 0)
    tutor_id = factory.SelfAttribute('tutor.id')
    tutor = factory.SubFactory(TutorFactory)

    class Meta:
        model = db_models.TutorAvailabilityIntervals

class ClassFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    name = factory.Sequence(lambda n: f"Class {n}")
    owner_id = factory.LazyFunction(uuid.uuid4)
    is_active = True
    created_at = factory.LazyFunction(datetime.datetime.now)

    class Meta:
        model = db_models.Classes

class ClassSubjectFactory(BaseFactory):
    subject = TEST_SUBJECT

    class Meta:
        model = db_models.ClassSubjects

class ClassMemberFactory(BaseFactory):
    is_active = True
    joined_at = factory.LazyFunction(datetime.datetime.now)

    class Meta:
        model = db_models.ClassMembers

class TimeSlotFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    subject = TEST_SUBJECT
    day_of_week = 1
    start_time = datetime.time(14, 0)
    end_time = datetime.time(16, 0)
    is_active = True
    created_at = factory.LazyFunction(datetime.datetime.now)

    class Meta:
        model = db_models.ClassTimeSlots

class SlotCancellationFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    week_start = TEST_WEEK_START
    reason = "Public holiday"
    created_at = factory.LazyFunction(datetime.datetime.now)

    class Meta:
        model = db_models.ClassSlotCancellations

class TutorAssignmentFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    subject = TEST_SUBJECT
    recurrence_pattern = RecurrencePatternEnum.ROUND_ROBIN.value
    recurrence_config = None
    status = AssignmentStatusEnum.ACCEPTED.value
    is_active = True
    created_at = factory.Sequence(lambda n: datetime.datetime(2029, 12, 1, 9, 0) + datetime.timedelta(minutes=n))
    time_slot_id = None
    start_date = None
    end_date = None

    class Meta:
        model = db_models.ClassTutorAssignments

class TutoringSessionFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    subject = TEST_SUBJECT
    scheduled_start = datetime.datetime(2030, 1, 7, 14, 0)
    scheduled_end = factory.LazyAttribute(lambda o: o.scheduled_start + datetime.timedelta(hours=2))
    price = Decimal('0')
    status = SessionStatusEnum.PENDING.value
    tutor_id = None
    time_slot_id = None
    created_at = factory.LazyFunction(datetime.datetime.now)

    class Meta:
        model = db_models.TutoringSessions

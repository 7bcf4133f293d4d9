import pytest
import uuid
import datetime
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.class_scheduler_backend.database import models as db_models
from src.class_scheduler_backend.database.db_enums import SessionStatusEnum, NotificationTypeEnum
from src.class_scheduler_backend.services.slot_cancellation_service import SlotCancellationService
from src.class_scheduler_backend.services.session_generator_service import SessionGeneratorService
from src.class_scheduler_backend.models import time_slot as time_slot_models
from src.class_scheduler_backend.common.exceptions import ConflictError, NotFoundError, AuthorizationError

from tests.constants import TEST_WEEK_START, TEST_TUTOR_A_ID
from tests.database import factories

ONE_WEEK = datetime.timedelta(weeks=1)


async def sessions_of_week(db_session: AsyncSession, class_id, week_start: datetime.date) -> list[db_models.TutoringSessions]:
    begin = datetime.datetime.combine(week_start, datetime.time.min)
    stmt = select(db_models.TutoringSessions).filter(
        db_models.TutoringSessions.class_id == class_id,
        db_models.TutoringSessions.scheduled_start >= begin,
        db_models.TutoringSessions.scheduled_start < begin + ONE_WEEK
    ).order_by(db_models.TutoringSessions.created_at)
    return list((await db_session.execute(stmt)).scalars().all())


@pytest.mark.anyio
class TestSlotCancellationServiceCancel:

    async def test_cancel_for_week_cancels_only_that_week(
        self,
        session_generator: SessionGeneratorService,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_owner_orm: db_models.Users
    ):
        sessions = await session_generator.generate_for_slot(test_time_slot_orm.id, 3, TEST_WEEK_START)

        # Any day of the week is normalized to its Monday.
        wednesday = TEST_WEEK_START + ONE_WEEK + datetime.timedelta(days=2)
        cancellation = await slot_cancellation_service.cancel_for_week(
            test_time_slot_orm.id, wednesday, "School trip", test_owner_orm
        )

        assert cancellation.week_start == TEST_WEEK_START + ONE_WEEK
        assert cancellation.created_by == test_owner_orm.id
        assert [s.status for s in sessions] == [
            SessionStatusEnum.PENDING.value,
            SessionStatusEnum.CANCELLED.value,
            SessionStatusEnum.PENDING.value,
        ]
        assert sessions[1].cancellation_reason == "Time slot cancelled for week: School trip"

    async def test_duplicate_cancellation_conflicts(
        self,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_owner_orm: db_models.Users
    ):
        await slot_cancellation_service.cancel_for_week(test_time_slot_orm.id, TEST_WEEK_START, None, test_owner_orm)

        with pytest.raises(ConflictError):
            await slot_cancellation_service.cancel_for_week(
                test_time_slot_orm.id, TEST_WEEK_START + datetime.timedelta(days=4), None, test_owner_orm
            )

    async def test_notifies_members_and_affected_tutors(
        self,
        db_session: AsyncSession,
        session_generator: SessionGeneratorService,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_owner_orm: db_models.Users,
        test_students_orm: list[db_models.Students],
        round_robin_assignments: list[db_models.ClassTutorAssignments]
    ):
        await session_generator.generate_for_slot(test_time_slot_orm.id, 1, TEST_WEEK_START)

        await slot_cancellation_service.cancel_for_week(test_time_slot_orm.id, TEST_WEEK_START, "Holiday", test_owner_orm)

        stmt = select(db_models.Notifications).filter(
            db_models.Notifications.notification_type == NotificationTypeEnum.SESSION_CANCELLED.value
        )
        notifications = (await db_session.execute(stmt)).scalars().all()
        recipients = {n.user_id for n in notifications}

        assert len(notifications) == len(test_students_orm) + 1
        assert recipients == {s.id for s in test_students_orm} | {TEST_TUTOR_A_ID}

    async def test_only_owner_can_cancel(
        self,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_other_user_orm: db_models.Users
    ):
        with pytest.raises(AuthorizationError):
            await slot_cancellation_service.cancel_for_week(test_time_slot_orm.id, TEST_WEEK_START, None, test_other_user_orm)

    async def test_missing_slot(self, slot_cancellation_service: SlotCancellationService, test_owner_orm: db_models.Users):
        with pytest.raises(NotFoundError):
            await slot_cancellation_service.cancel_for_week(uuid.uuid4(), TEST_WEEK_START, None, test_owner_orm)


@pytest.mark.anyio
class TestSlotCancellationServiceReinstate:

    async def test_reinstate_round_trip(
        self,
        db_session: AsyncSession,
        session_generator: SessionGeneratorService,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_owner_orm: db_models.Users
    ):
        original = (await session_generator.generate_for_slot(test_time_slot_orm.id, 1, TEST_WEEK_START))[0]

        await slot_cancellation_service.cancel_for_week(test_time_slot_orm.id, TEST_WEEK_START, None, test_owner_orm)
        regenerated = await slot_cancellation_service.reinstate_for_week(test_time_slot_orm.id, TEST_WEEK_START, test_owner_orm)

        week_sessions = await sessions_of_week(db_session, test_time_slot_orm.class_id, TEST_WEEK_START)
        live = [s for s in week_sessions if s.status != SessionStatusEnum.CANCELLED.value]

        assert len(regenerated) == 1
        assert len(live) == 1
        assert live[0].id == regenerated[0].id != original.id
        assert (live[0].scheduled_start, live[0].scheduled_end) == (original.scheduled_start, original.scheduled_end)
        assert original.status == SessionStatusEnum.CANCELLED.value

    async def test_reinstate_keeps_rotation_phase(
        self,
        session_generator: SessionGeneratorService,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_owner_orm: db_models.Users,
        round_robin_assignments: list[db_models.ClassTutorAssignments]
    ):
        sessions = await session_generator.generate_for_slot(test_time_slot_orm.id, 2, TEST_WEEK_START)
        second_week = TEST_WEEK_START + ONE_WEEK

        await slot_cancellation_service.cancel_for_week(test_time_slot_orm.id, second_week, None, test_owner_orm)
        regenerated = await slot_cancellation_service.reinstate_for_week(test_time_slot_orm.id, second_week, test_owner_orm)

        assert regenerated[0].tutor_id == sessions[1].tutor_id

    async def test_reinstate_without_cancellation(
        self,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_owner_orm: db_models.Users
    ):
        with pytest.raises(NotFoundError):
            await slot_cancellation_service.reinstate_for_week(test_time_slot_orm.id, TEST_WEEK_START, test_owner_orm)

    async def test_only_owner_can_reinstate(
        self,
        db_session: AsyncSession,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_owner_orm: db_models.Users,
        test_other_user_orm: db_models.Users
    ):
        factories.SlotCancellationFactory(time_slot_id=test_time_slot_orm.id, created_by=test_owner_orm.id)
        await db_session.flush()

        with pytest.raises(AuthorizationError):
            await slot_cancellation_service.reinstate_for_week(test_time_slot_orm.id, TEST_WEEK_START, test_other_user_orm)


@pytest.mark.anyio
class TestSlotCancellationServiceRead:

    async def test_get_week_cancellations(
        self,
        db_session: AsyncSession,
        slot_cancellation_service: SlotCancellationService,
        test_time_slot_orm: db_models.ClassTimeSlots,
        test_owner_orm: db_models.Users
    ):
        inactive_slot = factories.TimeSlotFactory(class_id=test_time_slot_orm.class_id, day_of_week=4, is_active=False)
        factories.SlotCancellationFactory(time_slot_id=test_time_slot_orm.id, created_by=test_owner_orm.id)
        factories.SlotCancellationFactory(time_slot_id=inactive_slot.id, created_by=test_owner_orm.id)
        factories.SlotCancellationFactory(
            time_slot_id=test_time_slot_orm.id,
            created_by=test_owner_orm.id,
            week_start=TEST_WEEK_START + ONE_WEEK
        )
        await db_session.flush()

        cancellations = await slot_cancellation_service.get_week_cancellations(
            test_time_slot_orm.class_id, TEST_WEEK_START + datetime.timedelta(days=5)
        )

        assert len(cancellations) == 1
        assert isinstance(cancellations[0], time_slot_models.WeekCancellationRead)
        assert cancellations[0].time_slot.id == test_time_slot_orm.id
        assert cancellations[0].week_start == TEST_WEEK_START

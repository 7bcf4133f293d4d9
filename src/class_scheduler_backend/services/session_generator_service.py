'''
Session Generator Service

Materializes weekly time slot templates into dated tutoring sessions,
hands each new batch to the rotation engine and prices the result.
'''
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Annotated, Optional, Sequence
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import SessionStatusEnum, AssignmentStatusEnum, NotificationTypeEnum
from ..core.pricing import calculate_session_price
from ..core.time_interval import (
    TimeInterval,
    day_of_week_of,
    get_day_name,
    get_date_for_day_of_week,
    get_week_start,
    schedule_now,
    week_bounds,
)
from ..models.session import NotificationCreate
from ..common.config import settings
from ..common.logger import log
from .class_service import ClassService
from .tutor_service import TutorService
from .rotation_service import RotationService
from .notification_service import NotificationService


class SessionGeneratorService:
    """
    Turns (slot, week) pairs into sessions. Generation is idempotent: the
    (class, start, end) of a live session is its identity, and an existing
    identity is never created twice.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        class_service: Annotated[ClassService, Depends(ClassService)],
        tutor_service: Annotated[TutorService, Depends(TutorService)],
        rotation_service: Annotated[RotationService, Depends(RotationService)],
        notification_service: Annotated[NotificationService, Depends(NotificationService)]
    ):
        self.db = db
        self.class_service = class_service
        self.tutor_service = tutor_service
        self.rotation_service = rotation_service
        self.notification_service = notification_service

    # --- Slot <-> Session Matching ---

    @staticmethod
    def session_matches_slot(session: db_models.TutoringSessions, slot: db_models.ClassTimeSlots) -> bool:
        """
        Sessions materialized by this service reference their slot. Older rows
        without a reference are matched on the slot's shape
        (day, start, end, subject).
        """
        if session.time_slot_id is not None:
            return session.time_slot_id == slot.id
        return (
            session.subject == slot.subject
            and day_of_week_of(session.scheduled_start) == slot.day_of_week
            and session.scheduled_start.time() == slot.start_time
            and session.scheduled_end.time() == slot.end_time
        )

    async def find_live_sessions_for_slot(
        self,
        slot: db_models.ClassTimeSlots,
        start_from: datetime,
        until: Optional[datetime] = None
    ) -> list[db_models.TutoringSessions]:
        """PENDING/CONFIRMED sessions of the slot starting in [start_from, until)."""
        stmt = select(db_models.TutoringSessions).filter(
            db_models.TutoringSessions.class_id == slot.class_id,
            db_models.TutoringSessions.scheduled_start >= start_from,
            db_models.TutoringSessions.status.in_(SessionStatusEnum.live_values())
        ).order_by(db_models.TutoringSessions.scheduled_start)
        if until is not None:
            stmt = stmt.filter(db_models.TutoringSessions.scheduled_start < until)

        result = await self.db.execute(stmt)
        return [s for s in result.scalars().all() if self.session_matches_slot(s, slot)]

    @staticmethod
    def describe_slot(slot: db_models.ClassTimeSlots) -> str:
        return f"{slot.subject} on {get_day_name(slot.day_of_week)} {TimeInterval(slot.start_time, slot.end_time)}"

    # --- Idempotent Insert ---

    async def _find_live_session(self, class_id: UUID, scheduled_start: datetime, scheduled_end: datetime) -> Optional[db_models.TutoringSessions]:
        stmt = select(db_models.TutoringSessions).filter(
            db_models.TutoringSessions.class_id == class_id,
            db_models.TutoringSessions.scheduled_start == scheduled_start,
            db_models.TutoringSessions.scheduled_end == scheduled_end,
            db_models.TutoringSessions.status != SessionStatusEnum.CANCELLED.value
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _insert_session(self, slot: db_models.ClassTimeSlots, scheduled_start: datetime, scheduled_end: datetime) -> Optional[db_models.TutoringSessions]:
        """
        Inserts a PENDING, unassigned, zero-priced session. Returns None when a
        concurrent writer inserted the same identity first.
        """
        session = db_models.TutoringSessions(
            class_id=slot.class_id,
            time_slot_id=slot.id,
            tutor_id=None,
            subject=slot.subject,
            scheduled_start=scheduled_start,
            scheduled_end=scheduled_end,
            price=Decimal('0'),
            status=SessionStatusEnum.PENDING.value,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(session)
                await self.db.flush()
        except IntegrityError:
            existing = await self._find_live_session(slot.class_id, scheduled_start, scheduled_end)
            log.info(f"Session for class {slot.class_id} at {scheduled_start} was created concurrently "
                     f"(existing: {existing.id if existing else 'unknown'}), skipping.")
            return None
        return session

    # --- Generation ---

    async def generate_for_slot(
        self,
        slot_id: UUID,
        weeks_ahead: Optional[int] = None,
        start_from_week: Optional[date | datetime] = None
    ) -> list[db_models.TutoringSessions]:
        """
        Materializes `weeks_ahead` weeks of a slot starting at the week of
        `start_from_week` (default: current week). Returns only the sessions
        created by this call.
        """
        weeks_ahead = settings.DEFAULT_WEEKS_AHEAD if weeks_ahead is None else weeks_ahead
        slot = await self.class_service.get_time_slot_internal(slot_id)

        if not slot.is_active:
            log.info(f"Time slot {slot_id} is not active, skipping session generation.")
            return []

        interval = TimeInterval(slot.start_time, slot.end_time)
        first_week = get_week_start(start_from_week or schedule_now())
        generated: list[db_models.TutoringSessions] = []

        for week_offset in range(weeks_ahead):
            week_start = first_week + timedelta(weeks=week_offset)

            if await self._is_week_cancelled(slot.id, week_start):
                log.info(f"Time slot {slot_id} is cancelled for week {week_start}, skipping.")
                continue

            session_date = get_date_for_day_of_week(week_start, slot.day_of_week)
            scheduled_start, scheduled_end = interval.on(session_date)

            existing = await self._find_live_session(slot.class_id, scheduled_start, scheduled_end)
            if existing:
                log.info(f"Session {existing.id} already exists at {scheduled_start}, skipping.")
                continue

            session = await self._insert_session(slot, scheduled_start, scheduled_end)
            if session is None:
                continue

            generated.append(session)
            log.info(f"Generated session {session.id} for class {slot.class_id}: {slot.subject} at {scheduled_start}.")

        if generated:
            await self.apply_tutor_assignments(generated)
            await self._notify_sessions_generated(generated, slot.class_id)

        return generated

    async def generate_for_class(self, class_id: UUID, weeks_ahead: Optional[int] = None) -> list[db_models.TutoringSessions]:
        """Runs generate_for_slot for every active slot of the class."""
        class_ = await self.class_service.get_class_internal(class_id)
        if not class_.is_active:
            log.info(f"Class {class_id} is not active, skipping session generation.")
            return []

        slots = await self.class_service.get_active_time_slots(class_id)
        if not slots:
            log.info(f"No active time slots found for class {class_id}.")
            return []

        all_generated = []
        for slot in slots:
            all_generated.extend(await self.generate_for_slot(slot.id, weeks_ahead))

        log.info(f"Generated {len(all_generated)} sessions for class {class_id} ({weeks_ahead} weeks ahead).")
        return all_generated

    async def check_sessions_exist(self, class_id: UUID, week_start: date) -> bool:
        """True if the class has any session (of any status) in that week."""
        week_begin, week_end = week_bounds(get_week_start(week_start))
        stmt = select(db_models.TutoringSessions.id).filter(
            db_models.TutoringSessions.class_id == class_id,
            db_models.TutoringSessions.scheduled_start >= week_begin,
            db_models.TutoringSessions.scheduled_start < week_end
        ).limit(1)
        return (await self.db.execute(stmt)).first() is not None

    async def fill_gaps(self, class_id: UUID, start: date | datetime, end: date | datetime) -> list[db_models.TutoringSessions]:
        """
        Regenerates every week in [week(start), week(end)] in which the class
        has no session at all. Repairs drift from missed generation triggers.
        """
        slots = await self.class_service.get_active_time_slots(class_id)
        if not slots:
            log.info(f"No active time slots found for class {class_id}.")
            return []

        generated = []
        current_week = get_week_start(start)
        last_week = get_week_start(end)

        while current_week <= last_week:
            if not await self.check_sessions_exist(class_id, current_week):
                log.info(f"Class {class_id} has no sessions in week {current_week}, generating.")
                for slot in slots:
                    generated.extend(await self.generate_for_slot(slot.id, 1, current_week))
            current_week += timedelta(weeks=1)

        return generated

    async def _is_week_cancelled(self, time_slot_id: UUID, week_start: date) -> bool:
        stmt = select(db_models.ClassSlotCancellations.id).filter(
            db_models.ClassSlotCancellations.time_slot_id == time_slot_id,
            db_models.ClassSlotCancellations.week_start == week_start
        )
        return (await self.db.execute(stmt)).first() is not None

    # --- Cancellation Cascade ---

    async def cancel_sessions(self, sessions: Sequence[db_models.TutoringSessions], reason: str) -> int:
        for session in sessions:
            session.status = SessionStatusEnum.CANCELLED.value
            session.cancellation_reason = reason
        await self.db.flush()
        return len(sessions)

    async def cancel_future_for_slot(self, slot_id: UUID, reason: Optional[str] = None) -> int:
        """
        Cancels every PENDING/CONFIRMED session of the slot from now on.
        Must run before (or together with) deactivating the slot.
        """
        slot = await self.class_service.get_time_slot_internal(slot_id)
        future_sessions = await self.find_live_sessions_for_slot(slot, schedule_now())
        reason = reason or f"Time slot deleted/deactivated: {self.describe_slot(slot)}"

        cancelled = await self.cancel_sessions(future_sessions, reason)
        log.info(f"Cancelled {cancelled} future sessions for time slot {slot_id}.")
        return cancelled

    # --- Tutor Resolution & Pricing ---

    async def _get_rotation_assignments(self, class_id: UUID) -> list[db_models.ClassTutorAssignments]:
        stmt = select(db_models.ClassTutorAssignments).filter(
            db_models.ClassTutorAssignments.class_id == class_id,
            db_models.ClassTutorAssignments.is_active.is_(True),
            db_models.ClassTutorAssignments.status == AssignmentStatusEnum.ACCEPTED.value
        ).order_by(db_models.ClassTutorAssignments.created_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def apply_tutor_assignments(self, sessions: Sequence[db_models.TutoringSessions]) -> int:
        """
        Resolves a tutor for each session of one class; resolved sessions get
        the tutor, a computed price and CONFIRMED status. Returns how many
        sessions were assigned.
        """
        if not sessions:
            return 0

        class_id = sessions[0].class_id
        assignments = await self._get_rotation_assignments(class_id)
        if not assignments:
            log.info(f"No active tutor assignments found for class {class_id}.")
            return 0

        tutor_by_session = await self.rotation_service.resolve(sessions, assignments)
        if not tutor_by_session:
            return 0

        roster = await self.class_service.count_active_members(class_id)
        rates: dict[UUID, Optional[Decimal]] = {}
        assigned = 0

        for session in sessions:
            tutor_id = tutor_by_session.get(session.id)
            if tutor_id is None:
                continue

            if tutor_id not in rates:
                rates[tutor_id] = await self.tutor_service.get_hourly_rate(tutor_id)
            hourly_rate = rates[tutor_id]
            if hourly_rate is None:
                log.warning(f"Tutor {tutor_id} has no hourly rate, leaving session {session.id} unassigned.")
                continue

            session.tutor_id = tutor_id
            session.price = calculate_session_price(hourly_rate, session.scheduled_start, session.scheduled_end, roster)
            session.status = SessionStatusEnum.CONFIRMED.value
            assigned += 1
            log.info(f"Assigned tutor {tutor_id} to session {session.id} at price {session.price} "
                     f"(rate {hourly_rate}, roster {roster}).")

        await self.db.flush()
        return assigned

    async def reapply_assignments(self, class_id: UUID) -> int:
        """
        Re-runs tutor resolution for the class's future sessions that are still
        PENDING without a tutor, e.g. after an assignment was accepted.
        """
        stmt = select(db_models.TutoringSessions).filter(
            db_models.TutoringSessions.class_id == class_id,
            db_models.TutoringSessions.status == SessionStatusEnum.PENDING.value,
            db_models.TutoringSessions.tutor_id.is_(None),
            db_models.TutoringSessions.scheduled_start >= schedule_now()
        ).order_by(db_models.TutoringSessions.scheduled_start)
        sessions = list((await self.db.execute(stmt)).scalars().all())

        assigned = await self.apply_tutor_assignments(sessions)
        log.info(f"Re-applied assignments for class {class_id}: {assigned}/{len(sessions)} sessions assigned.")
        return assigned

    async def recalculate_prices_for_tutor(self, tutor_id: UUID, new_hourly_rate: Decimal) -> int:
        """Re-prices every future live (PENDING or CONFIRMED) session of a tutor after a rate change."""
        stmt = select(db_models.TutoringSessions).filter(
            db_models.TutoringSessions.tutor_id == tutor_id,
            db_models.TutoringSessions.status.in_(SessionStatusEnum.live_values()),
            db_models.TutoringSessions.scheduled_start >= schedule_now()
        )
        sessions = list((await self.db.execute(stmt)).scalars().all())
        if not sessions:
            log.info(f"No future live sessions found for tutor {tutor_id}.")
            return 0

        rosters: dict[UUID, int] = {}
        for session in sessions:
            if session.class_id not in rosters:
                rosters[session.class_id] = await self.class_service.count_active_members(session.class_id)
            old_price = session.price
            session.price = calculate_session_price(
                new_hourly_rate, session.scheduled_start, session.scheduled_end, rosters[session.class_id]
            )
            log.info(f"Updated price of session {session.id}: {old_price} -> {session.price}.")

        await self.db.flush()
        log.info(f"Recalculated prices of {len(sessions)} sessions for tutor {tutor_id}.")
        return len(sessions)

    # --- Notifications ---

    async def _notify_sessions_generated(self, sessions: Sequence[db_models.TutoringSessions], class_id: UUID):
        """One summary notification per active class member for the whole batch."""
        member_ids = await self.class_service.get_active_member_ids(class_id)
        if not member_ids:
            log.info(f"No active class members to notify for class {class_id}.")
            return

        class_ = await self.class_service.get_class_internal(class_id)
        ordered = sorted(sessions, key=lambda s: s.scheduled_start)
        first, last = ordered[0].scheduled_start, ordered[-1].scheduled_start
        count = len(ordered)
        verb = "sessions have" if count > 1 else "session has"

        data = {
            "class_id": str(class_id),
            "class_name": class_.name,
            "session_count": count,
            "session_ids": [str(s.id) for s in ordered],
            "start_date": first.isoformat(),
            "end_date": last.isoformat(),
        }
        notifications = [
            NotificationCreate(
                user_id=member_id,
                title="New Sessions Generated",
                message=f"{count} new {verb} been generated for {class_.name} "
                        f"from {first.date().isoformat()} to {last.date().isoformat()}.",
                notification_type=NotificationTypeEnum.SESSION_GENERATED,
                data=data,
            )
            for member_id in member_ids
        ]
        await self.notification_service.dispatch(notifications)

from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKeyConstraint, Index, JSON, Numeric, PrimaryKeyConstraint, SmallInteger, String, Text, Time, UniqueConstraint, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

from ..core.time_interval import schedule_now
from .db_enums import (
    UserRole,
    SessionStatusEnum,
    RecurrencePatternEnum,
    AssignmentStatusEnum,
    NotificationTypeEnum,
)

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), 'postgresql')


class Base(DeclarativeBase):
    pass



class Users(Base):
    __tablename__ = 'users'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='users_pkey'),
        UniqueConstraint('email', name='users_email_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(Enum(*UserRole.get_all_names(), name='user_role'))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    first_name: Mapped[Optional[str]] = mapped_column(Text)
    last_name: Mapped[Optional[str]] = mapped_column(Text)


class Tutors(Users):
    __tablename__ = 'tutors'
    __table_args__ = (
        CheckConstraint('hourly_rate >= 0', name='non_negative_hourly_rate'),
        ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE', name='tutors_id_fkey'),
        PrimaryKeyConstraint('id', name='tutors_pkey')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    hourly_rate: Mapped[Optional[decimal.Decimal]] = mapped_column(Numeric(10, 2))

    tutor_subjects: Mapped[list['TutorSubjects']] = relationship('TutorSubjects', back_populates='tutor', cascade='all, delete-orphan')
    availability_intervals: Mapped[list['TutorAvailabilityIntervals']] = relationship('TutorAvailabilityIntervals', back_populates='tutor', cascade='all, delete-orphan')


class Students(Users):
    __tablename__ = 'students'
    __table_args__ = (
        ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE', name='students_id_fkey'),
        PrimaryKeyConstraint('id', name='students_pkey')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    grade: Mapped[Optional[int]] = mapped_column(SmallInteger)


class TutorSubjects(Base):
    __tablename__ = 'tutor_subjects'
    __table_args__ = (
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], ondelete='CASCADE', name='tutor_subjects_tutor_id_fkey'),
        PrimaryKeyConstraint('tutor_id', 'subject', name='tutor_subjects_pkey')
    )

    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    subject: Mapped[str] = mapped_column(Text, primary_key=True)

    tutor: Mapped['Tutors'] = relationship('Tutors', back_populates='tutor_subjects')


class TutorAvailabilityIntervals(Base):
    __tablename__ = 'tutor_availability_intervals'
    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='availability_day_of_week_range'),
        CheckConstraint('start_time < end_time', name='availability_start_before_end'),
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], ondelete='CASCADE', name='tutor_availability_intervals_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='tutor_availability_intervals_pkey')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    day_of_week: Mapped[int] = mapped_column(SmallInteger)
    start_time: Mapped[datetime.time] = mapped_column(Time)
    end_time: Mapped[datetime.time] = mapped_column(Time)

    tutor: Mapped['Tutors'] = relationship('Tutors', back_populates='availability_intervals')


class Classes(Base):
    __tablename__ = 'classes'
    __table_args__ = (
        ForeignKeyConstraint(['owner_id'], ['users.id'], name='classes_owner_id_fkey'),
        PrimaryKeyConstraint('id', name='classes_pkey')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=schedule_now)

    class_subjects: Mapped[list['ClassSubjects']] = relationship('ClassSubjects', back_populates='class_', cascade='all, delete-orphan')
    members: Mapped[list['ClassMembers']] = relationship('ClassMembers', back_populates='class_', cascade='all, delete-orphan')
    time_slots: Mapped[list['ClassTimeSlots']] = relationship('ClassTimeSlots', back_populates='class_')


class ClassSubjects(Base):
    __tablename__ = 'class_subjects'
    __table_args__ = (
        ForeignKeyConstraint(['class_id'], ['classes.id'], ondelete='CASCADE', name='class_subjects_class_id_fkey'),
        PrimaryKeyConstraint('class_id', 'subject', name='class_subjects_pkey')
    )

    class_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    subject: Mapped[str] = mapped_column(Text, primary_key=True)

    class_: Mapped['Classes'] = relationship('Classes', back_populates='class_subjects')


class ClassMembers(Base):
    __tablename__ = 'class_members'
    __table_args__ = (
        ForeignKeyConstraint(['class_id'], ['classes.id'], ondelete='CASCADE', name='class_members_class_id_fkey'),
        ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE', name='class_members_student_id_fkey'),
        PrimaryKeyConstraint('class_id', 'student_id', name='class_members_pkey')
    )

    class_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    joined_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=schedule_now)

    class_: Mapped['Classes'] = relationship('Classes', back_populates='members')


class ClassTimeSlots(Base):
    __tablename__ = 'class_time_slots'
    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='time_slot_day_of_week_range'),
        CheckConstraint('start_time < end_time', name='time_slot_start_before_end'),
        ForeignKeyConstraint(['class_id'], ['classes.id'], ondelete='CASCADE', name='class_time_slots_class_id_fkey'),
        PrimaryKeyConstraint('id', name='class_time_slots_pkey'),
        Index('idx_time_slots_class_active', 'class_id', 'is_active')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    subject: Mapped[str] = mapped_column(Text)
    day_of_week: Mapped[int] = mapped_column(SmallInteger)  # 0=Sunday, 6=Saturday
    start_time: Mapped[datetime.time] = mapped_column(Time)
    end_time: Mapped[datetime.time] = mapped_column(Time)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=schedule_now)

    class_: Mapped['Classes'] = relationship('Classes', back_populates='time_slots')
    cancellations: Mapped[list['ClassSlotCancellations']] = relationship('ClassSlotCancellations', back_populates='time_slot', cascade='all, delete-orphan')


class ClassSlotCancellations(Base):
    __tablename__ = 'class_slot_cancellations'
    __table_args__ = (
        ForeignKeyConstraint(['time_slot_id'], ['class_time_slots.id'], ondelete='CASCADE', name='class_slot_cancellations_time_slot_id_fkey'),
        ForeignKeyConstraint(['created_by'], ['users.id'], name='class_slot_cancellations_created_by_fkey'),
        PrimaryKeyConstraint('id', name='class_slot_cancellations_pkey'),
        UniqueConstraint('time_slot_id', 'week_start', name='class_slot_cancellations_time_slot_id_week_start_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    time_slot_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    week_start: Mapped[datetime.date] = mapped_column(Date)  # always a Monday
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=schedule_now)

    time_slot: Mapped['ClassTimeSlots'] = relationship('ClassTimeSlots', back_populates='cancellations')


class ClassTutorAssignments(Base):
    __tablename__ = 'class_tutor_assignments'
    __table_args__ = (
        ForeignKeyConstraint(['class_id'], ['classes.id'], ondelete='CASCADE', name='class_tutor_assignments_class_id_fkey'),
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], name='class_tutor_assignments_tutor_id_fkey'),
        ForeignKeyConstraint(['time_slot_id'], ['class_time_slots.id'], name='class_tutor_assignments_time_slot_id_fkey'),
        PrimaryKeyConstraint('id', name='class_tutor_assignments_pkey'),
        Index('idx_assignments_class_active', 'class_id', 'is_active')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    subject: Mapped[str] = mapped_column(Text)
    recurrence_pattern: Mapped[str] = mapped_column(Enum(*RecurrencePatternEnum.get_all_names(), name='recurrence_pattern_enum'))
    status: Mapped[str] = mapped_column(Enum(*AssignmentStatusEnum.get_all_names(), name='assignment_status_enum'), default=AssignmentStatusEnum.PENDING.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=schedule_now)
    time_slot_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)  # None => every slot of the subject
    recurrence_config: Mapped[Optional[dict]] = mapped_column(JSONType)
    start_date: Mapped[Optional[datetime.date]] = mapped_column(Date)
    end_date: Mapped[Optional[datetime.date]] = mapped_column(Date)


class TutoringSessions(Base):
    __tablename__ = 'tutoring_sessions'
    __table_args__ = (
        CheckConstraint('scheduled_start < scheduled_end', name='session_start_before_end'),
        ForeignKeyConstraint(['class_id'], ['classes.id'], ondelete='CASCADE', name='tutoring_sessions_class_id_fkey'),
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], name='tutoring_sessions_tutor_id_fkey'),
        ForeignKeyConstraint(['time_slot_id'], ['class_time_slots.id'], name='tutoring_sessions_time_slot_id_fkey'),
        PrimaryKeyConstraint('id', name='tutoring_sessions_pkey'),
        # Identity key of a materialized occurrence. Cancelled rows are kept as
        # history, so only live rows take part in the uniqueness.
        Index(
            'uq_tutoring_sessions_identity_live',
            'class_id', 'scheduled_start', 'scheduled_end',
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'")
        ),
        Index('idx_tutoring_sessions_class_start', 'class_id', 'scheduled_start')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    subject: Mapped[str] = mapped_column(Text)
    scheduled_start: Mapped[datetime.datetime] = mapped_column(DateTime)
    scheduled_end: Mapped[datetime.datetime] = mapped_column(DateTime)
    price: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), default=decimal.Decimal('0'))
    status: Mapped[str] = mapped_column(Enum(*SessionStatusEnum.get_all_names(), name='session_status_enum'), default=SessionStatusEnum.PENDING.value)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=schedule_now)
    tutor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    time_slot_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)


class Notifications(Base):
    __tablename__ = 'notifications'
    __table_args__ = (
        ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='notifications_user_id_fkey'),
        PrimaryKeyConstraint('id', name='notifications_pkey'),
        Index('idx_notifications_user_id', 'user_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    title: Mapped[str] = mapped_column(Text)
    message: Mapped[str] = mapped_column(Text)
    notification_type: Mapped[str] = mapped_column(Enum(*NotificationTypeEnum.get_all_names(), name='notification_type_enum'))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=schedule_now)
    data: Mapped[Optional[dict]] = mapped_column(JSONType)

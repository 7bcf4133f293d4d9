'''
Enums shared by the ORM models, the pydantic models and the services.
'''
import enum


# --- Base Enum Class ---
class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member values."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class UserRole(ListableEnum):
    ADMIN = 'admin'
    STUDENT = 'student'
    TUTOR = 'tutor'


class SessionStatusEnum(ListableEnum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'
    COMPLETED = 'COMPLETED'

    @classmethod
    def live_values(cls) -> list[str]:
        """Statuses of sessions that are still going to happen."""
        return [cls.PENDING.value, cls.CONFIRMED.value]


class RecurrencePatternEnum(ListableEnum):
    ROUND_ROBIN = 'ROUND_ROBIN'
    WEEKLY = 'WEEKLY'
    CONSECUTIVE_DAYS = 'CONSECUTIVE_DAYS'
    MANUAL = 'MANUAL'


class AssignmentStatusEnum(ListableEnum):
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    DECLINED = 'DECLINED'


class NotificationTypeEnum(ListableEnum):
    SESSION_GENERATED = 'SESSION_GENERATED'
    SESSION_CANCELLED = 'SESSION_CANCELLED'
    ASSIGNMENT_STATUS_CHANGED = 'ASSIGNMENT_STATUS_CHANGED'

'''
Tutor rotation engine.

Decides which tutor teaches a materialized session from the competing
rotation assignments of its slot. Pure logic: the caller supplies the
assignments and the slot's session history, no database access happens here.

Objects are duck-typed ORM rows:
    assignment: id, tutor_id, time_slot_id, subject, recurrence_pattern,
                recurrence_config, status, is_active, start_date, end_date,
                created_at
'''
from datetime import date, datetime
from typing import Callable, Iterable, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from ..database.db_enums import RecurrencePatternEnum, AssignmentStatusEnum
from ..models.assignment import (
    WeeklyRecurrenceConfig,
    ConsecutiveDaysRecurrenceConfig,
    parse_recurrence_config,
)
from ..common.logger import log
from .time_interval import get_week_start


# --- Filtering & Ordering ---

def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def assignment_covers(assignment, time_slot_id: UUID, subject: str, session_date: date) -> bool:
    """
    True when the assignment takes part in the rotation of this slot on this date:
    active, accepted, same subject, bound to this slot (or subject-wide) and
    inside its validity window.
    """
    if not assignment.is_active or assignment.status != AssignmentStatusEnum.ACCEPTED.value:
        return False
    if assignment.subject != subject:
        return False
    if assignment.time_slot_id is not None and assignment.time_slot_id != time_slot_id:
        return False
    if assignment.start_date and _as_date(assignment.start_date) > session_date:
        return False
    if assignment.end_date and _as_date(assignment.end_date) < session_date:
        return False
    return True


def active_assignments_for(
    assignments: Iterable,
    time_slot_id: UUID,
    subject: str,
    session_date: date
) -> list:
    """Covering assignments in created_at order (stable sort)."""
    covering = [a for a in assignments if assignment_covers(a, time_slot_id, subject, session_date)]
    return sorted(covering, key=lambda a: a.created_at)


def compute_session_index(scheduled_start: datetime, history_starts: Iterable[datetime]) -> int:
    """
    Zero-based position of `scheduled_start` in the slot's full history.
    Regenerated occurrences share their start with a cancelled row, so
    positions are counted over distinct starts. Returns -1 if absent.
    """
    ordered = sorted(set(history_starts))
    try:
        return ordered.index(scheduled_start)
    except ValueError:
        return -1


def week_number(anchor: date | datetime, session_date: date | datetime) -> int:
    """Week 1 is the week containing `anchor`."""
    weeks = (get_week_start(session_date) - get_week_start(anchor)).days // 7
    return weeks + 1


# --- Pattern Handlers ---

def _load_config(assignment):
    try:
        return parse_recurrence_config(assignment.recurrence_pattern, assignment.recurrence_config)
    except PydanticValidationError as e:
        log.warning(f"Ignoring invalid recurrence config on assignment {assignment.id}: {e}")
        return None


def _peers(assignment, active: Sequence) -> list:
    return [a for a in active if a.recurrence_pattern == assignment.recurrence_pattern]


def apply_round_robin(assignment, session_start: datetime, session_index: int, active: Sequence) -> Optional[UUID]:
    peers = _peers(assignment, active)
    if not peers:
        return None
    return peers[session_index % len(peers)].tutor_id


def apply_weekly(assignment, session_start: datetime, session_index: int, active: Sequence) -> Optional[UUID]:
    config = _load_config(assignment)
    if not isinstance(config, WeeklyRecurrenceConfig):
        log.warning(f"WEEKLY pattern requires recurrence_config (assignment {assignment.id}).")
        return None

    anchor = assignment.start_date or assignment.created_at
    current_week = week_number(anchor, session_start)

    if config.weeks is not None:
        return assignment.tutor_id if current_week in config.weeks else None

    if config.pattern == 'alternating' and (current_week - config.start_week) % 2 == 0:
        return assignment.tutor_id

    return None


def apply_consecutive_days(assignment, session_start: datetime, session_index: int, active: Sequence) -> Optional[UUID]:
    config = _load_config(assignment)
    if not isinstance(config, ConsecutiveDaysRecurrenceConfig):
        log.warning(f"CONSECUTIVE_DAYS pattern requires recurrence_config (assignment {assignment.id}).")
        return None

    peers = _peers(assignment, active)
    position = next((i for i, peer in enumerate(peers) if peer.id == assignment.id), -1)
    if position == -1:
        return None

    block = config.consecutive_days
    cycle_length = len(peers) * block
    turn = (session_index % cycle_length) // block
    return assignment.tutor_id if turn == position else None


def apply_manual(assignment, session_start: datetime, session_index: int, active: Sequence) -> Optional[UUID]:
    # Manual assignments are made out of band.
    return None


PatternHandler = Callable[[object, datetime, int, Sequence], Optional[UUID]]

PATTERN_HANDLERS: dict[RecurrencePatternEnum, PatternHandler] = {
    RecurrencePatternEnum.ROUND_ROBIN: apply_round_robin,
    RecurrencePatternEnum.WEEKLY: apply_weekly,
    RecurrencePatternEnum.CONSECUTIVE_DAYS: apply_consecutive_days,
    RecurrencePatternEnum.MANUAL: apply_manual,
}


def select_tutor(active: Sequence, session_start: datetime, session_index: int) -> Optional[UUID]:
    """
    Evaluates each active assignment's pattern in order; first match wins.
    `active` must already be filtered and sorted by active_assignments_for().
    """
    for assignment in active:
        handler = PATTERN_HANDLERS.get(RecurrencePatternEnum(assignment.recurrence_pattern))
        tutor_id = handler(assignment, session_start, session_index, active)
        if tutor_id is not None:
            return tutor_id
    return None

"""
School-wide settings and the schedule configuration derived from them.

Service settings read from the environment live at the bottom of this module.
"""

import os
from dataclasses import dataclass
from typing import Optional

from school_timetable.models import ScheduleConfig

DAYS = ['Mon', 'Tues', 'Wed', 'Thurs', 'Fri']
NUM_DAYS = len(DAYS)
ALL_WEEKDAYS_MASK = 0b11111


@dataclass(frozen=True)
class SchoolSettings:
    """School-wide timetable settings.

    Defaults describe an integral-day school: five morning periods around a
    20 minute break, two afternoon periods after lunch, and a shortened last
    weekday. That gives 7+7+7+7+6 = 34 periods per week.
    """
    morning_enabled: bool = True
    afternoon_enabled: bool = True
    integral_day: bool = True
    morning_start: str = "07:00"
    morning_end: str = "12:00"
    afternoon_start: str = "13:00"
    afternoon_end: str = "14:40"
    lesson_duration: int = 50
    morning_break_start: Optional[str] = "09:30"
    afternoon_break_start: Optional[str] = "15:00"
    break_duration: int = 20
    max_morning_slots: int = 6
    max_afternoon_slots: int = 5
    active_weekdays: int = ALL_WEEKDAYS_MASK  # bit 0 = Monday


def to_minutes(time_str: str) -> int:
    """Convert 'HH:MM' to minutes after midnight."""
    try:
        hours, minutes = time_str.split(':')
        value = int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time '{time_str}', expected HH:MM")
    if not 0 <= value < 24 * 60:
        raise ValueError(f"Invalid time '{time_str}', expected HH:MM")
    return value


def count_shift_slots(start: str, end: str, lesson_duration: int,
                      break_start: Optional[str], break_duration: int,
                      max_positions: int) -> int:
    """Count the lesson periods that fit in one shift.

    Walks the shift in lesson-length steps. A break starting exactly at the
    current time takes one order position and its own duration. Stops when the
    next lesson would overrun the shift end or the order positions run out.
    """
    if lesson_duration <= 0:
        raise ValueError(f"Lesson duration must be positive, got {lesson_duration}")

    current = to_minutes(start)
    shift_end = to_minutes(end)
    break_at = to_minutes(break_start) if break_start else None
    position = 1
    lessons = 0

    while current + lesson_duration <= shift_end and position <= max_positions:
        if break_at is not None and current == break_at:
            current += break_duration
            position += 1
            # The lesson right after a break is not re-checked against the shift end
        lessons += 1
        current += lesson_duration
        position += 1

    return lessons


def resolve_schedule_config(settings: Optional[SchoolSettings] = None) -> ScheduleConfig:
    """Derive the per-day slot table and weekly capacity.

    A missing settings record means "use the documented defaults".
    """
    if settings is None:
        settings = SchoolSettings()

    morning = 0
    if settings.morning_enabled:
        morning = count_shift_slots(
            settings.morning_start, settings.morning_end, settings.lesson_duration,
            settings.morning_break_start, settings.break_duration, settings.max_morning_slots,
        )
    afternoon = 0
    if settings.afternoon_enabled:
        afternoon = count_shift_slots(
            settings.afternoon_start, settings.afternoon_end, settings.lesson_duration,
            settings.afternoon_break_start, settings.break_duration, settings.max_afternoon_slots,
        )

    active = [d for d in range(NUM_DAYS) if settings.active_weekdays & (1 << d)]
    per_day = morning + afternoon

    slots_per_day = {}
    for day in range(NUM_DAYS):
        if day not in active:
            slots_per_day[day] = 0
        elif settings.integral_day and day == active[-1]:
            # Last active weekday ends one period early
            slots_per_day[day] = max(per_day - 1, 0)
        else:
            slots_per_day[day] = per_day

    return ScheduleConfig(
        slots_per_day=slots_per_day,
        weekly_capacity=sum(slots_per_day.values()),
        morning_slot_count=morning,
        afternoon_slot_count=afternoon,
        lesson_duration=settings.lesson_duration,
    )


def settings_from_dict(data: Optional[dict]) -> SchoolSettings:
    """Build settings from a stored record, ignoring unknown keys."""
    if not data:
        return SchoolSettings()
    known = SchoolSettings.__dataclass_fields__
    return SchoolSettings(**{k: v for k, v in data.items() if k in known and v is not None})


# Service settings
DEBUG_SOLVER = os.environ.get("DEBUG_SOLVER", "").lower() in ("1", "true", "yes")
PORT = int(os.environ.get("PORT", 8080))
FRONTEND_URL = os.environ.get("FRONTEND_URL")
MAX_ATTEMPTS = int(os.environ.get("MAX_ATTEMPTS", 100))
ACCEPTANCE_THRESHOLD = float(os.environ.get("ACCEPTANCE_THRESHOLD", 80.0))

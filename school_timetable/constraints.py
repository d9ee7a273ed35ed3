"""
Pure placement predicates over a partially filled WeekGrid.

None of these mutate the grid. Each is O(classes at the slot) or O(slots in
a day).
"""

from school_timetable.models import ScheduleConfig, TeacherWorkload, WeekGrid

MAX_CONSECUTIVE_SUBJECT = 2


def class_busy(grid: WeekGrid, day: int, slot: int, class_id: str) -> bool:
    return grid.get(day, slot, class_id) is not None


def teacher_busy(grid: WeekGrid, day: int, slot: int, teacher_id: str) -> bool:
    return any(l.teacher_id == teacher_id for l in grid.lessons_at(day, slot))


def room_busy(grid: WeekGrid, day: int, slot: int, room_id: str) -> bool:
    return any(l.room_id == room_id for l in grid.lessons_at(day, slot))


def too_many_consecutive_subject(grid: WeekGrid, config: ScheduleConfig, day: int, slot: int,
                                 class_id: str, subject: str,
                                 max_consecutive: int = MAX_CONSECUTIVE_SUBJECT) -> bool:
    """Would placing `subject` here make a run longer than `max_consecutive`?

    Placement is not chronological, so the run is counted in both directions.
    """
    count = 1

    s = slot - 1
    while s >= 0:
        lesson = grid.get(day, s, class_id)
        if lesson is None or lesson.subject != subject:
            break
        count += 1
        s -= 1

    s = slot + 1
    while s < config.slot_count(day):
        lesson = grid.get(day, s, class_id)
        if lesson is None or lesson.subject != subject:
            break
        count += 1
        s += 1

    return count > max_consecutive


def teacher_unavailable(teacher: TeacherWorkload, day: int, slot: int) -> bool:
    prefs = teacher.prefs
    return day in prefs.unavailable_days or (day, slot) in prefs.unavailable_slots


def teacher_lessons_on_day(grid: WeekGrid, config: ScheduleConfig, day: int, teacher_id: str) -> int:
    return sum(
        1
        for slot in range(config.slot_count(day))
        if teacher_busy(grid, day, slot, teacher_id)
    )


def teacher_daily_limit_reached(teacher: TeacherWorkload, grid: WeekGrid,
                                config: ScheduleConfig, day: int) -> bool:
    limit = teacher.prefs.max_lessons_per_day
    if not limit:
        return False
    return teacher_lessons_on_day(grid, config, day, teacher.teacher_id) >= limit


def teacher_consecutive_overflow(grid: WeekGrid, config: ScheduleConfig, day: int, slot: int,
                                 teacher_id: str, max_consecutive: int) -> bool:
    """Would the teacher teach more than `max_consecutive` periods in a row?

    Any class or subject counts towards the run.
    """
    if not max_consecutive or max_consecutive <= 0:
        return False

    count = 1
    s = slot - 1
    while s >= 0 and teacher_busy(grid, day, s, teacher_id):
        count += 1
        s -= 1
    s = slot + 1
    while s < config.slot_count(day) and teacher_busy(grid, day, s, teacher_id):
        count += 1
        s += 1

    return count > max_consecutive


def can_place(grid: WeekGrid, config: ScheduleConfig, teacher: TeacherWorkload,
              day: int, slot: int, class_id: str, subject: str) -> bool:
    """All hard constraints for one candidate cell, cheapest checks first."""
    if class_busy(grid, day, slot, class_id):
        return False
    if teacher_unavailable(teacher, day, slot):
        return False
    if teacher_busy(grid, day, slot, teacher.teacher_id):
        return False
    if too_many_consecutive_subject(grid, config, day, slot, class_id, subject):
        return False
    if teacher_daily_limit_reached(teacher, grid, config, day):
        return False
    if teacher_consecutive_overflow(grid, config, day, slot, teacher.teacher_id,
                                    teacher.prefs.max_consecutive):
        return False
    return True

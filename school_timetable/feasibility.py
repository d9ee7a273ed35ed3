"""
Pre-flight workload checks, run once before any generation attempt.
"""

import logging
from collections import Counter, defaultdict

from school_timetable.constraints import MAX_CONSECUTIVE_SUBJECT
from school_timetable.exceptions import FeasibilityError
from school_timetable.lesson_requests import required_counts
from school_timetable.models import Lesson, ScheduleConfig, TeacherWorkload

logger = logging.getLogger(__name__)


def check_feasibility(workloads: list[TeacherWorkload], config: ScheduleConfig) -> list[str]:
    """Return every capacity violation in the declared workloads.

    An empty list means the input can possibly fit; it says nothing about how
    hard placement will be.
    """
    errors = []
    capacity = config.weekly_capacity
    active_days = config.active_days

    for teacher in workloads:
        total = teacher.total_periods
        prefs = teacher.prefs

        if total > capacity:
            errors.append(
                f"Teacher '{teacher.name}' has {total} periods but the week only has {capacity} slots"
            )

        if prefs.max_lessons_per_week is not None and total > prefs.max_lessons_per_week:
            errors.append(
                f"Teacher '{teacher.name}' has {total} periods but their weekly maximum is "
                f"{prefs.max_lessons_per_week}"
            )

        if prefs.max_lessons_per_day:
            available_days = len([d for d in active_days if d not in prefs.unavailable_days])
            ceiling = available_days * prefs.max_lessons_per_day
            if total > ceiling:
                errors.append(
                    f"Teacher '{teacher.name}' has {total} periods but can teach at most {ceiling} "
                    f"({available_days} available days x {prefs.max_lessons_per_day} per day)"
                )

    class_totals: dict[str, int] = defaultdict(int)
    class_teachers: dict[str, list[str]] = defaultdict(list)
    for teacher in workloads:
        for alloc in teacher.allocations:
            for class_id in alloc.class_ids:
                class_totals[class_id] += alloc.lessons_per_week
                if teacher.name not in class_teachers[class_id]:
                    class_teachers[class_id].append(teacher.name)

    for class_id, total in class_totals.items():
        if total > capacity:
            errors.append(
                f"Class '{class_id}' has {total} periods (from {', '.join(class_teachers[class_id])}) "
                f"but the week only has {capacity} slots"
            )

    return errors


def validate_workloads(workloads: list[TeacherWorkload], config: ScheduleConfig) -> None:
    """Raise FeasibilityError if any teacher or class exceeds its capacity."""
    errors = check_feasibility(workloads, config)
    if errors:
        for error in errors:
            logger.warning(f"Feasibility: {error}")
        raise FeasibilityError(errors)


def lesson_label(lesson: Lesson) -> str:
    return f"{lesson.subject}/{lesson.class_id} ({lesson.teacher_id}) on day {lesson.day}, slot {lesson.slot}"


def check_locked_lessons(locked_lessons, workloads: list[TeacherWorkload],
                         config: ScheduleConfig) -> list[str]:
    """Return every reason the locked lessons cannot seed a timetable.

    Locked lessons must sit on real slots, must not double-book a class or a
    teacher, must not exceed the consecutive-subject cap, and must each cover
    a declared period.
    """
    errors = []
    declared = required_counts(workloads)
    used = Counter()
    class_cells = {}
    teacher_cells = {}
    subjects = defaultdict(dict)  # (class, day) -> {slot: subject}

    for lesson in locked_lessons:
        label = lesson_label(lesson)
        if not 0 <= lesson.slot < config.slot_count(lesson.day):
            errors.append(f"Locked lesson {label} is outside the school week")
            continue

        cell = (lesson.day, lesson.slot, lesson.class_id)
        if cell in class_cells:
            errors.append(f"Locked lesson {label} clashes with {lesson_label(class_cells[cell])}")
            continue
        class_cells[cell] = lesson

        teacher_cell = (lesson.day, lesson.slot, lesson.teacher_id)
        if teacher_cell in teacher_cells:
            errors.append(f"Locked lesson {label} double-books the teacher with "
                          f"{lesson_label(teacher_cells[teacher_cell])}")
        else:
            teacher_cells[teacher_cell] = lesson

        key = (lesson.teacher_id, lesson.subject, lesson.class_id)
        used[key] += 1
        if used[key] > declared[key]:
            errors.append(f"Locked lesson {label} exceeds the {declared[key]} declared period(s)")

        subjects[lesson.class_id, lesson.day][lesson.slot] = lesson.subject

    for (class_id, day), by_slot in sorted(subjects.items()):
        run = 0
        for slot in range(config.slot_count(day)):
            subject = by_slot.get(slot)
            if subject is not None and subject == by_slot.get(slot - 1):
                run += 1
            else:
                run = 1 if subject is not None else 0
            if run == MAX_CONSECUTIVE_SUBJECT + 1:
                errors.append(f"Locked lessons give {class_id} more than {MAX_CONSECUTIVE_SUBJECT} "
                              f"consecutive periods of {subject} on day {day}")

    return errors


def validate_locked_lessons(locked_lessons, workloads: list[TeacherWorkload],
                            config: ScheduleConfig) -> None:
    errors = check_locked_lessons(locked_lessons, workloads, config)
    if errors:
        for error in errors:
            logger.warning(f"Locked lessons: {error}")
        raise FeasibilityError(errors)

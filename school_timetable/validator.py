"""
Audit any stored timetable, generated or hand-edited.

Double-bookings are critical; three or more consecutive periods of the same
subject for a class are a warning. The audit never modifies the lessons.
"""

import logging
from collections import defaultdict
from typing import Optional

from school_timetable.config import DAYS, resolve_schedule_config
from school_timetable.models import Conflict, ScheduleConfig, TeacherWorkload, ValidationReport

logger = logging.getLogger(__name__)

CONSECUTIVE_WARNING_RUN = 3
WEEKS_PER_MONTH = 4


def slot_label(day: int, slot: int) -> str:
    day_name = DAYS[day] if 0 <= day < len(DAYS) else f'Day {day + 1}'
    return f'{day_name}, period {slot + 1}'


def teacher_capacity(teacher: TeacherWorkload, config: ScheduleConfig) -> int:
    """Weekly periods a teacher can cover, from their monthly hours when known."""
    if teacher.workload_monthly is None:
        return config.weekly_capacity
    weekly_minutes = teacher.workload_monthly / WEEKS_PER_MONTH * 60
    return min(int(weekly_minutes // config.lesson_duration), config.weekly_capacity)


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(part * 100 / whole + 0.5)


def find_double_bookings(lessons: list, names: dict) -> list[Conflict]:
    conflicts = []

    by_teacher = defaultdict(list)
    for lesson in lessons:
        by_teacher[lesson.teacher_id, lesson.day, lesson.slot].append(lesson)

    for (teacher_id, day, slot), group in sorted(by_teacher.items()):
        class_ids = sorted({l.class_id for l in group})
        if len(class_ids) < 2:
            continue
        name = names.get(teacher_id, teacher_id)
        label = slot_label(day, slot)
        conflicts.append(Conflict(
            type='teacher_double_booking',
            severity='critical',
            description='Teacher in two classes at the same time',
            details={
                'teacher': name,
                'day': day,
                'slot': slot,
                'classes': class_ids,
                'message': f"{name} is in {', '.join(class_ids)} simultaneously on {label}",
            },
        ))

    by_class = defaultdict(list)
    for lesson in lessons:
        by_class[lesson.class_id, lesson.day, lesson.slot].append(lesson)

    for (class_id, day, slot), group in sorted(by_class.items()):
        if len(group) < 2:
            continue
        teachers = [names.get(l.teacher_id, l.teacher_id) for l in group]
        label = slot_label(day, slot)
        conflicts.append(Conflict(
            type='class_double_booking',
            severity='critical',
            description='Class with two lessons at the same time',
            details={
                'class': class_id,
                'day': day,
                'slot': slot,
                'teachers': teachers,
                'message': f"Class {class_id} has {' and '.join(teachers)} on {label}",
            },
        ))

    return conflicts


def find_consecutive_runs(lessons: list, min_run: int = CONSECUTIVE_WARNING_RUN) -> list[Conflict]:
    """One warning per maximal run of `min_run` or more identical subjects."""
    per_class_day = defaultdict(dict)
    for lesson in lessons:
        # With a double-booked cell, the first lesson in sort order stands for the slot
        per_class_day[lesson.class_id, lesson.day].setdefault(lesson.slot, lesson)

    warnings = []
    for (class_id, day), by_slot in sorted(per_class_day.items()):
        run_start = None
        prev = None
        for slot in sorted(by_slot) + [None]:
            lesson = by_slot.get(slot) if slot is not None else None
            continues = (
                prev is not None and lesson is not None
                and slot == prev.slot + 1 and lesson.subject == prev.subject
            )
            if continues:
                prev = lesson
                continue
            if prev is not None and prev.slot - run_start + 1 >= min_run:
                length = prev.slot - run_start + 1
                warnings.append(Conflict(
                    type='consecutive_limit',
                    severity='warning',
                    description=(
                        f"{class_id} - {DAYS[day] if 0 <= day < len(DAYS) else day}: "
                        f"{length} consecutive periods of {prev.subject} "
                        f"(periods {run_start + 1}-{prev.slot + 1})"
                    ),
                    details={
                        'class': class_id,
                        'day': day,
                        'subject': prev.subject,
                        'startSlot': run_start,
                        'endSlot': prev.slot,
                        'length': length,
                    },
                ))
            run_start = slot
            prev = lesson

    return warnings


def validate_schedule(
    lessons,
    workloads: list[TeacherWorkload],
    config: Optional[ScheduleConfig] = None,
    classes: Optional[list[str]] = None,
) -> ValidationReport:
    """
    Audit a timetable and compute utilization and coverage statistics.

    Args:
        lessons: A WeekGrid or any iterable of Lesson records (may contain duplicates)
        workloads: Teacher workloads, for names, utilization and coverage
        config: Schedule configuration (documented defaults if None)
        classes: All class ids of the school; derived from workloads and lessons if None

    Returns:
        ValidationReport, valid when there is no critical conflict
    """
    if config is None:
        config = resolve_schedule_config()

    lessons = sorted(lessons, key=lambda l: (l.day, l.slot, l.class_id, l.teacher_id, l.subject))
    names = {t.teacher_id: t.name for t in workloads}

    conflicts = find_double_bookings(lessons, names)
    warnings = find_consecutive_runs(lessons)

    utilization = {}
    for teacher in workloads:
        capacity = teacher_capacity(teacher, config)
        used = sum(1 for l in lessons if l.teacher_id == teacher.teacher_id)
        utilization[teacher.teacher_id] = {
            'name': teacher.name,
            'used': used,
            'capacity': capacity,
            'percentage': percentage(used, capacity),
        }

    if classes is None:
        class_set = {l.class_id for l in lessons}
        for teacher in workloads:
            for alloc in teacher.allocations:
                class_set.update(alloc.class_ids)
        classes = sorted(class_set)

    covered_by_subject = defaultdict(set)
    for teacher in workloads:
        for alloc in teacher.allocations:
            covered_by_subject[alloc.subject].update(alloc.class_ids)

    coverage = {}
    for subject in sorted(covered_by_subject):
        covered = len(covered_by_subject[subject] & set(classes))
        coverage[subject] = {
            'covered': covered,
            'total': len(classes),
            'percentage': percentage(covered, len(classes)),
        }

    critical = [c for c in conflicts if c.severity == 'critical']
    logger.info(
        f"Validated {len(lessons)} lessons: {len(critical)} critical conflicts, "
        f"{len(warnings)} consecutive-subject warnings"
    )

    return ValidationReport(
        valid=not critical,
        conflicts=conflicts,
        warnings=warnings,
        stats={
            'total_lessons': len(lessons),
            'teacher_utilization': utilization,
            'subject_coverage': coverage,
            'consecutive_violations': len(warnings),
        },
    )


def format_validation_report(report: ValidationReport) -> str:
    """Plain text rendering of a validation report."""
    rule = '-' * 47
    lines = ['', '=' * 47, '          TIMETABLE VALIDATION REPORT', '=' * 47, '']

    if report.valid:
        lines.append('VALID - no critical conflicts')
    else:
        lines.append('INVALID - critical conflicts detected')
    lines.append('')

    if report.conflicts:
        lines += ['CRITICAL CONFLICTS:', rule]
        for idx, conflict in enumerate(report.conflicts, 1):
            lines.append(f'{idx}. {conflict.description}')
            if conflict.details.get('message'):
                lines.append(f"   -> {conflict.details['message']}")
        lines.append('')

    if report.warnings:
        lines += ['WARNINGS:', rule]
        for idx, warning in enumerate(report.warnings, 1):
            lines.append(f'{idx}. {warning.description}')
        lines.append('')

    stats = report.stats
    lines += ['STATISTICS:', rule]
    lines.append(f"Total lessons: {stats['total_lessons']}")
    lines.append(f"Consecutive-subject violations: {stats['consecutive_violations']}")
    lines.append('')
    lines.append('Teacher utilization:')
    for util in stats['teacher_utilization'].values():
        bar = '#' * min(util['percentage'] // 5, 20)
        lines.append(
            f"  {util['name']:<20} {util['used']:>2}/{util['capacity']:<2} [{bar:<20}] {util['percentage']}%"
        )
    lines += ['', '=' * 47]
    return '\n'.join(lines) + '\n'

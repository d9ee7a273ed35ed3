"""
Unroll teacher workloads into atomic lesson placement requests.
"""

import random
from collections import Counter

from school_timetable.models import Allocation, LessonRequest, TeacherWorkload


def compute_priority(teacher: TeacherWorkload, allocation: Allocation) -> int:
    """Placement difficulty of one period of `allocation`.

    Higher means more constrained: every unavailable day weighs 10, every
    unavailable slot 2, a daily cap 5, plus the periods per week of the
    allocation itself.
    """
    prefs = teacher.prefs
    priority = len(prefs.unavailable_days) * 10
    priority += len(prefs.unavailable_slots) * 2
    if prefs.max_lessons_per_day:
        priority += 5
    priority += allocation.lessons_per_week
    return priority


def total_required_periods(workloads: list[TeacherWorkload]) -> int:
    return sum(t.total_periods for t in workloads)


def required_counts(workloads: list[TeacherWorkload]) -> Counter:
    """Periods needed per (teacher_id, subject, class_id)."""
    needed = Counter()
    for teacher in workloads:
        for alloc in teacher.allocations:
            for class_id in alloc.class_ids:
                needed[(teacher.teacher_id, alloc.subject, class_id)] += alloc.lessons_per_week
    return needed


def build_lesson_requests(
    workloads: list[TeacherWorkload],
    rng: random.Random,
    locked_lessons: tuple = (),
) -> list[LessonRequest]:
    """Build the requests for one attempt, most constrained first.

    Classes are shuffled per allocation and the whole list is shuffled before
    a stable sort on priority, so equal-priority requests come out in a
    different order on every attempt. Periods already covered by locked
    lessons are skipped.
    """
    covered = Counter((l.teacher_id, l.subject, l.class_id) for l in locked_lessons)

    requests = []
    for teacher in workloads:
        for alloc in teacher.allocations:
            priority = compute_priority(teacher, alloc)
            class_ids = list(alloc.class_ids)
            rng.shuffle(class_ids)
            for class_id in class_ids:
                key = (teacher.teacher_id, alloc.subject, class_id)
                for _ in range(alloc.lessons_per_week):
                    if covered[key] > 0:
                        covered[key] -= 1
                        continue
                    requests.append(LessonRequest(
                        teacher_id=teacher.teacher_id,
                        subject=alloc.subject,
                        class_id=class_id,
                        priority=priority,
                    ))

    rng.shuffle(requests)
    requests.sort(key=lambda r: -r.priority)
    return requests


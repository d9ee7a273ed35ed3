import pytest

from school_timetable.config import resolve_schedule_config
from school_timetable.models import (
    Allocation, Lesson, Room, ScheduleConfig, TeacherPreferences, TeacherWorkload,
)


@pytest.fixture
def config():
    return resolve_schedule_config()


@pytest.fixture
def tiny_config():
    """One day with two periods."""
    return ScheduleConfig(slots_per_day={0: 2}, weekly_capacity=2,
                          morning_slot_count=2, afternoon_slot_count=0)


@pytest.fixture
def make_teacher():
    def _make(teacher_id, allocations, name=None, **prefs):
        return TeacherWorkload(
            teacher_id=teacher_id,
            name=name or teacher_id,
            allocations=[Allocation(subject, per_week, list(classes))
                         for subject, per_week, classes in allocations],
            preferences=TeacherPreferences(**prefs) if prefs else None,
        )
    return _make


@pytest.fixture
def rooms():
    return [
        Room(id='R1', name='Room 1', type='classroom'),
        Room(id='R2', name='Room 2', type='classroom'),
        Room(id='LAB', name='Science Lab', type='laboratory'),
        Room(id='GYM', name='Gym', type='gymnasium'),
    ]


@pytest.fixture
def lesson():
    def _make(teacher_id, subject, class_id, day, slot, room_id=None):
        return Lesson(teacher_id=teacher_id, subject=subject, class_id=class_id,
                      day=day, slot=slot, room_id=room_id)
    return _make

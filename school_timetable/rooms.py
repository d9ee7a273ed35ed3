"""
Best-effort room assignment.

A lesson without a free room is still placed; the room is only an annotation.
"""

import unicodedata
from typing import Optional

from school_timetable.constraints import room_busy
from school_timetable.models import WeekGrid

ROOM_TYPES = ['classroom', 'laboratory', 'gymnasium', 'auditorium', 'library']

# Keys are normalized subject names (lowercase, no accents)
SUBJECT_ROOM_TYPES = {
    'science': ['laboratory'],
    'sciences': ['laboratory'],
    'physics': ['laboratory'],
    'chemistry': ['laboratory'],
    'biology': ['laboratory'],
    'computing': ['laboratory'],
    'computer science': ['laboratory'],
    'digital education': ['laboratory'],
    'physical education': ['gymnasium'],
    'pe': ['gymnasium'],
    'arts': ['classroom', 'auditorium'],
    'music': ['auditorium', 'classroom'],
    'reading': ['library', 'classroom'],
}

DEFAULT_ROOM_TYPES = ['classroom']


def normalize_subject(subject: str) -> str:
    decomposed = unicodedata.normalize('NFKD', subject)
    stripped = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    return ' '.join(stripped.lower().split())


def preferred_room_types(subject: str) -> list[str]:
    return SUBJECT_ROOM_TYPES.get(normalize_subject(subject), DEFAULT_ROOM_TYPES)


def allocate_room(grid: WeekGrid, day: int, slot: int, subject: str,
                  rooms) -> Optional[str]:
    """Pick a free room for `subject`, favouring its preferred room types.

    Returns the room id, or None when every room is taken at (day, slot).
    """
    if not rooms:
        return None

    for room_type in preferred_room_types(subject):
        for room in rooms:
            if room.type == room_type and not room_busy(grid, day, slot, room.id):
                return room.id

    for room in rooms:
        if not room_busy(grid, day, slot, room.id):
            return room.id

    return None


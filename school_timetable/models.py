"""
Data model for the timetable engine.

The grid is a sparse day -> slot -> class mapping. Everything the generator
reads is immutable; the grid is the only mutable state and each generation
attempt owns its own copy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional


class Shift(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    BOTH = "both"


@dataclass(frozen=True)
class Lesson:
    teacher_id: str
    subject: str
    class_id: str
    day: int
    slot: int
    room_id: Optional[str] = None
    locked: bool = False  # Locked lessons are never reconsidered by the generator


@dataclass
class Allocation:
    subject: str
    lessons_per_week: int
    class_ids: list

    @property
    def total_periods(self) -> int:
        return self.lessons_per_week * len(self.class_ids)


@dataclass(frozen=True)
class TeacherPreferences:
    preferred_shift: Optional[Shift] = None
    max_lessons_per_day: Optional[int] = None
    max_lessons_per_week: Optional[int] = None
    unavailable_days: frozenset = frozenset()
    unavailable_slots: frozenset = frozenset()  # {(day, slot), ...}
    max_consecutive: int = 3


DEFAULT_PREFERENCES = TeacherPreferences()


@dataclass
class TeacherWorkload:
    teacher_id: str
    name: str
    allocations: list = field(default_factory=list)
    preferences: Optional[TeacherPreferences] = None
    workload_monthly: Optional[int] = None  # hours per month, used for utilization stats

    @property
    def prefs(self) -> TeacherPreferences:
        return self.preferences or DEFAULT_PREFERENCES

    @property
    def total_periods(self) -> int:
        return sum(a.total_periods for a in self.allocations)


@dataclass(frozen=True)
class Room:
    id: str
    name: str
    type: str = "classroom"
    capacity: int = 40


@dataclass(frozen=True)
class LessonRequest:
    teacher_id: str
    subject: str
    class_id: str
    priority: int = 0


@dataclass(frozen=True)
class ScheduleConfig:
    slots_per_day: dict  # day index -> number of slots (0 for inactive days)
    weekly_capacity: int
    morning_slot_count: int
    afternoon_slot_count: int
    lesson_duration: int = 50

    @property
    def active_days(self) -> list[int]:
        return [d for d in sorted(self.slots_per_day) if self.slots_per_day[d] > 0]

    def slot_count(self, day: int) -> int:
        return self.slots_per_day.get(day, 0)

    def candidate_slots(self) -> list[tuple[int, int]]:
        """All valid (day, slot) pairs, day-major."""
        return [
            (day, slot)
            for day in sorted(self.slots_per_day)
            for slot in range(self.slots_per_day[day])
        ]

    def is_morning(self, slot: int) -> bool:
        return slot < self.morning_slot_count


class WeekGrid:
    """Sparse day -> slot -> class_id -> Lesson mapping.

    A class cell holds at most one lesson. Teacher uniqueness per slot is
    enforced by the generator, not by the container, so that hand-edited
    grids can still be represented and audited.
    """

    def __init__(self):
        self._cells: dict[int, dict[int, dict[str, Lesson]]] = {}

    def get(self, day: int, slot: int, class_id: str) -> Optional[Lesson]:
        return self._cells.get(day, {}).get(slot, {}).get(class_id)

    def lessons_at(self, day: int, slot: int) -> list[Lesson]:
        return list(self._cells.get(day, {}).get(slot, {}).values())

    def place(self, lesson: Lesson) -> None:
        cell = self._cells.setdefault(lesson.day, {}).setdefault(lesson.slot, {})
        if lesson.class_id in cell:
            raise ValueError(
                f"Class {lesson.class_id} already has a lesson on day {lesson.day}, slot {lesson.slot}"
            )
        cell[lesson.class_id] = lesson

    def lessons(self) -> list[Lesson]:
        """All lessons in chronological order, then by class."""
        result = []
        for day in sorted(self._cells):
            for slot in sorted(self._cells[day]):
                cell = self._cells[day][slot]
                result.extend(cell[c] for c in sorted(cell))
        return result

    def copy(self) -> "WeekGrid":
        # Lessons are frozen, so copying the dict structure is a full value snapshot
        other = WeekGrid()
        other._cells = {
            day: {slot: dict(cell) for slot, cell in slots.items()}
            for day, slots in self._cells.items()
        }
        return other

    @classmethod
    def from_lessons(cls, lessons) -> "WeekGrid":
        grid = cls()
        for lesson in lessons:
            grid.place(lesson)
        return grid

    def __iter__(self) -> Iterator[Lesson]:
        return iter(self.lessons())

    def __len__(self) -> int:
        return sum(len(cell) for slots in self._cells.values() for cell in slots.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, WeekGrid):
            return NotImplemented
        return self.lessons() == other.lessons()


@dataclass
class UnplacedLesson:
    teacher: str  # teacher name when known, id otherwise
    subject: str
    class_id: str
    missing: int


@dataclass
class GenerationResult:
    grid: WeekGrid
    placed_lessons: list
    unplaced_requests: list
    completion_rate: float
    total_required: int
    attempts: int = 1
    seed: Optional[int] = None
    warnings: list = field(default_factory=list)
    unplaced_summary: list = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.unplaced_requests


@dataclass
class Conflict:
    type: str  # 'teacher_double_booking', 'class_double_booking' or 'consecutive_limit'
    severity: str  # 'critical' or 'warning'
    description: str
    details: dict = field(default_factory=dict)


@dataclass
class ValidationReport:
    valid: bool
    conflicts: list
    warnings: list
    stats: dict

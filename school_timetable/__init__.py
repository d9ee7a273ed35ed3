"""Weekly timetable generation and validation for secondary schools."""

from school_timetable.solver import generate_schedule
from school_timetable.validator import validate_schedule

__all__ = ['generate_schedule', 'validate_schedule']

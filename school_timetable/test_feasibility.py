import dataclasses

import pytest

from school_timetable import solver
from school_timetable.exceptions import FeasibilityError
from school_timetable.feasibility import (
    check_feasibility, check_locked_lessons, validate_locked_lessons, validate_workloads,
)


def test_light_workload_passes(config, make_teacher):
    teacher = make_teacher('t1', [('Math', 3, ['6A', '6B'])], name='Ana')
    assert check_feasibility([teacher], config) == []
    validate_workloads([teacher], config)


def test_teacher_over_weekly_capacity(config, make_teacher):
    teacher = make_teacher('t1', [('Math', 5, ['6A', '6B', '6C', '6D', '6E', '7A', '7B'])], name='Ana')
    errors = check_feasibility([teacher], config)
    assert len(errors) == 1
    assert "'Ana'" in errors[0]
    assert '35' in errors[0] and '34' in errors[0]


def test_teacher_over_own_weekly_maximum(config, make_teacher):
    teacher = make_teacher('t1', [('Math', 4, ['6A', '6B'])], name='Ana', max_lessons_per_week=6)
    errors = check_feasibility([teacher], config)
    assert errors == ["Teacher 'Ana' has 8 periods but their weekly maximum is 6"]


def test_teacher_over_available_days_times_daily_cap(config, make_teacher):
    teacher = make_teacher('t1', [('Math', 13, ['6A'])], name='Ana',
                           unavailable_days=frozenset({0, 1}), max_lessons_per_day=4)
    errors = check_feasibility([teacher], config)
    assert len(errors) == 1
    assert '12' in errors[0] and '3 available days' in errors[0]


def test_class_overload_cites_every_teacher(config, make_teacher):
    alice = make_teacher('t1', [('Math', 34, ['6A'])], name='Alice')
    bob = make_teacher('t2', [('History', 17, ['6A', '6B'])], name='Bob')
    with pytest.raises(FeasibilityError) as exc:
        validate_workloads([alice, bob], config)
    assert len(exc.value.errors) == 1
    message = exc.value.errors[0]
    assert "'6A'" in message
    assert 'Alice' in message and 'Bob' in message


def test_rejection_survives_heavier_load_or_smaller_week(config, make_teacher):
    teacher = make_teacher('t1', [('Math', 12, ['6A', '6B', '6C'])], name='Ana')
    assert check_feasibility([teacher], config)

    heavier = make_teacher('t1', [('Math', 13, ['6A', '6B', '6C'])], name='Ana')
    assert check_feasibility([heavier], config)

    smaller = dataclasses.replace(config, weekly_capacity=config.weekly_capacity - 5)
    assert check_feasibility([teacher], smaller)


def test_generation_never_runs_when_rejected(config, make_teacher, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError('generator must not run')

    monkeypatch.setattr(solver, 'generate_grid', fail)
    teacher = make_teacher('t1', [('Math', 35, ['6A'])], name='Ana')
    with pytest.raises(FeasibilityError):
        solver.generate_schedule([teacher], config)


def test_consistent_locked_lessons_pass(config, make_teacher, lesson):
    teacher = make_teacher('t1', [('Math', 2, ['6A'])])
    locked = [lesson('t1', 'Math', '6A', 0, 0), lesson('t1', 'Math', '6A', 0, 1)]
    assert check_locked_lessons(locked, [teacher], config) == []


def test_locked_lessons_for_undeclared_work_or_busy_class(config, make_teacher, lesson):
    ana = make_teacher('t1', [('Math', 1, ['6A'])])
    bruno = make_teacher('t2', [('Art', 1, ['6A'])])
    locked = [lesson('t1', 'Math', '6A', 2, 2), lesson('t2', 'Art', '6A', 2, 2), lesson('t1', 'History', '6B', 3, 0)]
    errors = check_locked_lessons(locked, [ana, bruno], config)
    assert len(errors) == 2
    assert 'clashes with Math/6A' in errors[0]
    assert 'exceeds the 0 declared period(s)' in errors[1]
    with pytest.raises(FeasibilityError):
        validate_locked_lessons(locked, [ana, bruno], config)

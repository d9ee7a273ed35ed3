from school_timetable.constraints import (
    can_place, class_busy, room_busy, teacher_busy, teacher_consecutive_overflow,
    teacher_daily_limit_reached, teacher_unavailable, too_many_consecutive_subject,
)
from school_timetable.models import WeekGrid


def test_occupancy_predicates(lesson):
    grid = WeekGrid.from_lessons([lesson('t1', 'Math', '6A', 0, 0, room_id='R1')])
    assert class_busy(grid, 0, 0, '6A')
    assert not class_busy(grid, 0, 0, '6B')
    assert not class_busy(grid, 0, 1, '6A')
    assert teacher_busy(grid, 0, 0, 't1')
    assert not teacher_busy(grid, 0, 0, 't2')
    assert room_busy(grid, 0, 0, 'R1')
    assert not room_busy(grid, 0, 0, 'R2')
    assert not room_busy(grid, 1, 0, 'R1')


def test_consecutive_subject_counts_backwards(config, lesson):
    grid = WeekGrid.from_lessons([
        lesson('t1', 'Math', '6A', 0, 0),
        lesson('t1', 'Math', '6A', 0, 1),
    ])
    assert too_many_consecutive_subject(grid, config, 0, 2, '6A', 'Math')
    assert not too_many_consecutive_subject(grid, config, 0, 3, '6A', 'Math')
    assert not too_many_consecutive_subject(grid, config, 0, 2, '6A', 'History')
    assert not too_many_consecutive_subject(grid, config, 0, 2, '6B', 'Math')


def test_consecutive_subject_counts_both_directions(config, lesson):
    grid = WeekGrid.from_lessons([
        lesson('t1', 'Math', '6A', 0, 1),
        lesson('t1', 'Math', '6A', 0, 3),
    ])
    assert too_many_consecutive_subject(grid, config, 0, 2, '6A', 'Math')
    assert not too_many_consecutive_subject(grid, config, 0, 2, '6A', 'Math', max_consecutive=3)


def test_teacher_unavailable(make_teacher):
    teacher = make_teacher('t1', [], unavailable_days=frozenset({1}),
                           unavailable_slots=frozenset({(2, 3)}))
    assert teacher_unavailable(teacher, 1, 0)
    assert teacher_unavailable(teacher, 2, 3)
    assert not teacher_unavailable(teacher, 2, 4)
    assert not teacher_unavailable(make_teacher('t2', []), 1, 0)


def test_daily_limit(config, lesson, make_teacher):
    teacher = make_teacher('t1', [], max_lessons_per_day=2)
    grid = WeekGrid.from_lessons([
        lesson('t1', 'Math', '6A', 0, 0),
        lesson('t1', 'Math', '6B', 0, 3),
    ])
    assert teacher_daily_limit_reached(teacher, grid, config, 0)
    assert not teacher_daily_limit_reached(teacher, grid, config, 1)
    assert not teacher_daily_limit_reached(make_teacher('t1', []), grid, config, 0)


def test_teacher_consecutive_overflow_spans_classes(config, lesson):
    grid = WeekGrid.from_lessons([
        lesson('t1', 'Math', '6A', 0, 0),
        lesson('t1', 'Science', '6B', 0, 1),
    ])
    assert teacher_consecutive_overflow(grid, config, 0, 2, 't1', 2)
    assert not teacher_consecutive_overflow(grid, config, 0, 3, 't1', 2)
    assert not teacher_consecutive_overflow(grid, config, 0, 2, 't1', 3)
    assert not teacher_consecutive_overflow(grid, config, 0, 2, 't2', 2)


def test_can_place_combines_hard_constraints(config, lesson, make_teacher):
    teacher = make_teacher('t1', [], unavailable_days=frozenset({4}))
    grid = WeekGrid.from_lessons([
        lesson('t1', 'Math', '6A', 0, 0),
        lesson('t2', 'History', '6B', 0, 1),
    ])
    assert not can_place(grid, config, teacher, 0, 0, '6B', 'Math')   # teacher busy
    assert not can_place(grid, config, teacher, 0, 1, '6B', 'Math')   # class busy
    assert not can_place(grid, config, teacher, 4, 0, '6B', 'Math')   # unavailable
    assert can_place(grid, config, teacher, 0, 1, '6A', 'Math')


def test_predicates_do_not_mutate(config, lesson, make_teacher):
    grid = WeekGrid.from_lessons([lesson('t1', 'Math', '6A', 0, 0)])
    before = grid.copy()
    can_place(grid, config, make_teacher('t1', []), 0, 1, '6A', 'Math')
    too_many_consecutive_subject(grid, config, 0, 1, '6A', 'Math')
    assert grid == before

"""
School Timetable Solver - randomized greedy placement with restarts

Each attempt unrolls the teacher workloads into lesson requests, places them
most-constrained-first into a private grid and never backtracks. The retry
controller runs many seeded attempts and keeps the one with the highest
completion rate. An OR-Tools CP-SAT engine with the same hard constraints can
be selected instead of the greedy pass.
"""

import logging
import random
import threading
import time
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from ortools.sat.python import cp_model

from school_timetable.config import ACCEPTANCE_THRESHOLD, MAX_ATTEMPTS, resolve_schedule_config
from school_timetable.constraints import (
    MAX_CONSECUTIVE_SUBJECT, can_place, class_busy, teacher_busy, teacher_unavailable,
)
from school_timetable.exceptions import GenerationFailure
from school_timetable.feasibility import validate_locked_lessons, validate_workloads
from school_timetable.lesson_requests import build_lesson_requests, total_required_periods
from school_timetable.models import (
    GenerationResult, Lesson, LessonRequest, ScheduleConfig, Shift, TeacherWorkload,
    UnplacedLesson, WeekGrid,
)
from school_timetable.rooms import allocate_room

logger = logging.getLogger(__name__)

ENGINES = ('greedy', 'cpsat')
MAX_TIME_PER_ATTEMPT = 10.0
TOP_PROBLEM_TEACHERS = 3


def completion_rate(placed: int, total_required: int) -> float:
    if total_required == 0:
        return 100.0
    return min(100.0, placed / total_required * 100)


def order_candidates(candidates: list, teacher: TeacherWorkload, rng: random.Random) -> list:
    """Bias the scan towards the teacher's preferred shift.

    Morning scans early slots first, afternoon late slots first, anything
    else is a random order.
    """
    shift = teacher.prefs.preferred_shift
    if shift == Shift.MORNING:
        return sorted(candidates, key=lambda c: (c[1], c[0]))
    if shift == Shift.AFTERNOON:
        return sorted(candidates, key=lambda c: (-c[1], c[0]))
    shuffled = candidates.copy()
    rng.shuffle(shuffled)
    return shuffled


def generate_grid(
    requests: list[LessonRequest],
    config: ScheduleConfig,
    teachers: dict,
    rooms,
    rng: random.Random,
    total_required: Optional[int] = None,
    locked_lessons=(),
    cancel_event: Optional[threading.Event] = None,
    deadline: Optional[float] = None,
) -> GenerationResult:
    """One greedy, single-pass attempt.

    Every request goes to the first candidate slot passing all hard
    constraints; if there is none it stays unplaced. Placed lessons are never
    moved again. Once `cancel_event` is set or the `deadline` (a `time.time()`
    value) has passed, the remaining requests are left unplaced.
    """
    grid = WeekGrid()
    placed = []
    for lesson in locked_lessons:
        grid.place(lesson)
        placed.append(lesson)

    unplaced = []
    candidates = config.candidate_slots()

    for idx, req in enumerate(requests):
        if (cancel_event is not None and cancel_event.is_set()) or \
                (deadline is not None and time.time() > deadline):
            unplaced.extend(requests[idx:])
            break

        teacher = teachers[req.teacher_id]
        allocated = False
        for day, slot in order_candidates(candidates, teacher, rng):
            if not can_place(grid, config, teacher, day, slot, req.class_id, req.subject):
                continue
            lesson = Lesson(
                teacher_id=req.teacher_id,
                subject=req.subject,
                class_id=req.class_id,
                day=day,
                slot=slot,
                room_id=allocate_room(grid, day, slot, req.subject, rooms),
            )
            grid.place(lesson)
            placed.append(lesson)
            allocated = True
            break

        if not allocated:
            unplaced.append(req)

    if total_required is None:
        total_required = len(placed) + len(unplaced)

    return GenerationResult(
        grid=grid,
        placed_lessons=placed,
        unplaced_requests=unplaced,
        completion_rate=completion_rate(len(placed), total_required),
        total_required=total_required,
    )


def solve_with_cpsat(
    requests: list[LessonRequest],
    config: ScheduleConfig,
    teachers: dict,
    rooms,
    rng: random.Random,
    seed: int = 0,
    time_limit: float = MAX_TIME_PER_ATTEMPT,
    total_required: Optional[int] = None,
    locked_lessons=(),
) -> GenerationResult:
    """Place as many requests as possible with CP-SAT.

    Same hard constraints as the greedy pass, expressed as a model that
    maximizes the number of placed periods. Rooms are assigned afterwards.
    """
    locked_grid = WeekGrid.from_lessons(locked_lessons)

    by_group: dict[tuple, list[LessonRequest]] = defaultdict(list)
    for req in requests:
        by_group[(req.teacher_id, req.subject, req.class_id)].append(req)
    groups = list(by_group.items())

    model = cp_model.CpModel()
    slots = config.candidate_slots()

    x = {}
    class_slot_vars = defaultdict(list)     # (class, day, slot) -> vars
    teacher_slot_vars = defaultdict(list)   # (teacher, day, slot) -> vars
    subject_slot_vars = defaultdict(list)   # (class, subject, day, slot) -> vars

    for g, ((teacher_id, subject, class_id), reqs) in enumerate(groups):
        teacher = teachers[teacher_id]
        group_vars = []
        for day, slot in slots:
            if teacher_unavailable(teacher, day, slot):
                continue
            if class_busy(locked_grid, day, slot, class_id) or teacher_busy(locked_grid, day, slot, teacher_id):
                continue
            var = model.NewBoolVar(f'x_{g}_{day}_{slot}')
            x[g, day, slot] = var
            group_vars.append(var)
            class_slot_vars[class_id, day, slot].append(var)
            teacher_slot_vars[teacher_id, day, slot].append(var)
            subject_slot_vars[class_id, subject, day, slot].append(var)
        if group_vars:
            model.Add(sum(group_vars) <= len(reqs))

    # No double-booking of a class or a teacher
    for bucket in (class_slot_vars, teacher_slot_vars):
        for vars_ in bucket.values():
            if len(vars_) > 1:
                model.AddAtMostOne(vars_)

    # At most two consecutive periods of the same subject per class
    window = MAX_CONSECUTIVE_SUBJECT + 1
    for class_id, subject in {(k[2], k[1]) for k, _ in groups}:
        for day in config.active_days:
            for start in range(config.slot_count(day) - window + 1):
                vars_ = []
                fixed = 0
                for s in range(start, start + window):
                    vars_.extend(subject_slot_vars.get((class_id, subject, day, s), []))
                    locked = locked_grid.get(day, s, class_id)
                    if locked is not None and locked.subject == subject:
                        fixed += 1
                if vars_:
                    model.Add(sum(vars_) <= max(MAX_CONSECUTIVE_SUBJECT - fixed, 0))

    # Teacher daily cap and consecutive cap
    for teacher_id in {k[0] for k, _ in groups}:
        prefs = teachers[teacher_id].prefs
        for day in config.active_days:
            n_slots = config.slot_count(day)
            busy = [teacher_busy(locked_grid, day, s, teacher_id) for s in range(n_slots)]
            if prefs.max_lessons_per_day:
                day_vars = [v for s in range(n_slots) for v in teacher_slot_vars.get((teacher_id, day, s), [])]
                if day_vars:
                    model.Add(sum(day_vars) <= max(prefs.max_lessons_per_day - sum(busy), 0))
            k = prefs.max_consecutive
            if k and k > 0:
                for start in range(n_slots - k):
                    vars_ = [v for s in range(start, start + k + 1)
                             for v in teacher_slot_vars.get((teacher_id, day, s), [])]
                    if vars_:
                        fixed = sum(busy[start:start + k + 1])
                        model.Add(sum(vars_) <= max(k - fixed, 0))

    if x:
        model.Maximize(sum(x.values()))

    solver = cp_model.CpSolver()
    solver.parameters.random_seed = seed
    solver.parameters.max_time_in_seconds = time_limit
    solver.parameters.num_search_workers = 1  # Deterministic with seed
    status = solver.Solve(model)

    chosen = []
    if status in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        chosen = [key for key, var in x.items() if solver.Value(var)]
    else:
        logger.debug(f"CP-SAT seed {seed}: no solution ({solver.StatusName(status)})")
    rng.shuffle(chosen)

    grid = locked_grid.copy()
    placed = list(locked_lessons)
    used = Counter()
    for g, day, slot in chosen:
        (teacher_id, subject, class_id), _ = groups[g]
        lesson = Lesson(
            teacher_id=teacher_id,
            subject=subject,
            class_id=class_id,
            day=day,
            slot=slot,
            room_id=allocate_room(grid, day, slot, subject, rooms),
        )
        grid.place(lesson)
        placed.append(lesson)
        used[g] += 1

    unplaced = []
    for g, (_, reqs) in enumerate(groups):
        unplaced.extend(reqs[used[g]:])

    if total_required is None:
        total_required = len(placed) + len(unplaced)

    return GenerationResult(
        grid=grid,
        placed_lessons=placed,
        unplaced_requests=unplaced,
        completion_rate=completion_rate(len(placed), total_required),
        total_required=total_required,
    )


def summarize_unplaced(unplaced: list[LessonRequest], teachers: dict) -> list[UnplacedLesson]:
    """Aggregate unplaced requests per (teacher, subject, class)."""
    counts = Counter((r.teacher_id, r.subject, r.class_id) for r in unplaced)
    summary = []
    for (teacher_id, subject, class_id), missing in counts.items():
        teacher = teachers.get(teacher_id)
        summary.append(UnplacedLesson(
            teacher=teacher.name if teacher else teacher_id,
            subject=subject,
            class_id=class_id,
            missing=missing,
        ))
    summary.sort(key=lambda u: (-u.missing, u.teacher, u.subject, u.class_id))
    return summary


def identify_problem_teachers(summary: list[UnplacedLesson]) -> list[dict]:
    """Teachers ranked by unplaced periods, most affected first."""
    per_teacher = Counter()
    for item in summary:
        per_teacher[item.teacher] += item.missing
    ranked = sorted(per_teacher.items(), key=lambda kv: (-kv[1], kv[0]))
    return [{'teacher': name, 'missing': missing} for name, missing in ranked]


def generate_schedule(
    workloads: list[TeacherWorkload],
    config: Optional[ScheduleConfig] = None,
    rooms=(),
    *,
    max_attempts: int = MAX_ATTEMPTS,
    acceptance_threshold: float = ACCEPTANCE_THRESHOLD,
    engine: str = 'greedy',
    workers: int = 1,
    start_seed: int = 0,
    max_time_seconds: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
    locked_lessons=(),
    on_progress: Optional[Callable] = None,
) -> GenerationResult:
    """
    Main entry point for schedule generation.

    Args:
        workloads: Teacher workload declarations
        config: Resolved schedule configuration (documented defaults if None)
        rooms: Room catalog, may be empty
        max_attempts: Attempt budget
        acceptance_threshold: Minimum completion rate (percent) to accept the best attempt
        engine: 'greedy' (default) or 'cpsat'
        workers: Attempts run concurrently in a thread pool when > 1
        start_seed: Seed of the first attempt; attempt i uses start_seed + i
        max_time_seconds: Optional wall-clock budget for all attempts
        cancel_event: Optional event; when set, running attempts stop between requests
        locked_lessons: Pre-placed lessons that every attempt keeps
        on_progress: Optional callback(current, total, message)

    Returns:
        The best GenerationResult, with warnings when it is below 100%.

    Raises:
        FeasibilityError: declared workloads exceed capacity or the locked lessons
            are inconsistent; nothing was attempted.
        GenerationFailure: the best completion rate stayed below the threshold.
    """
    start_time = time.time()

    if engine not in ENGINES:
        raise ValueError(f"Unknown engine '{engine}', expected one of {ENGINES}")
    if config is None:
        config = resolve_schedule_config()

    validate_workloads(workloads, config)
    locked_lessons = tuple(locked_lessons)
    validate_locked_lessons(locked_lessons, workloads, config)

    teachers = {t.teacher_id: t for t in workloads}
    total_required = total_required_periods(workloads)

    if total_required == 0:
        return GenerationResult(
            grid=WeekGrid.from_lessons(locked_lessons),
            placed_lessons=list(locked_lessons),
            unplaced_requests=[],
            completion_rate=100.0,
            total_required=0,
            attempts=0,
            warnings=['No lessons to place.'],
        )

    logger.info(
        f"Generating schedule: {len(workloads)} teachers, {total_required} periods, "
        f"capacity {config.weekly_capacity}/week, engine={engine}, attempts={max_attempts}"
    )

    if max_time_seconds:
        time_per_attempt = min(MAX_TIME_PER_ATTEMPT, max_time_seconds / max_attempts)
    else:
        time_per_attempt = MAX_TIME_PER_ATTEMPT
    deadline = start_time + max_time_seconds if max_time_seconds else None

    def run_attempt(attempt: int) -> GenerationResult:
        seed = start_seed + attempt
        rng = random.Random(seed)
        requests = build_lesson_requests(workloads, rng, locked_lessons)
        if engine == 'cpsat':
            result = solve_with_cpsat(
                requests, config, teachers, rooms, rng,
                seed=seed,
                time_limit=time_per_attempt,
                total_required=total_required,
                locked_lessons=locked_lessons,
            )
        else:
            result = generate_grid(
                requests, config, teachers, rooms, rng,
                total_required=total_required,
                locked_lessons=locked_lessons,
                cancel_event=cancel_event,
                deadline=deadline,
            )
        result.seed = seed
        logger.debug(f"Attempt {attempt + 1} (seed {seed}): {result.completion_rate:.1f}% placed")
        return result

    def out_of_budget() -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        return bool(max_time_seconds) and time.time() - start_time > max_time_seconds

    best: Optional[GenerationResult] = None
    attempts_made = 0
    batch_size = max(1, workers)
    pool = ThreadPoolExecutor(max_workers=batch_size) if batch_size > 1 else None

    try:
        attempt = 0
        while attempt < max_attempts and not out_of_budget():
            batch = list(range(attempt, min(attempt + batch_size, max_attempts)))
            if on_progress:
                on_progress(batch[-1] + 1, max_attempts, f'Attempt {batch[-1] + 1}/{max_attempts}...')

            if pool is not None:
                results = list(pool.map(run_attempt, batch))
            else:
                results = [run_attempt(a) for a in batch]

            # Reduce in attempt order so ties keep the earliest attempt
            done = False
            for a, result in zip(batch, results):
                attempts_made = a + 1
                if best is None or result.completion_rate > best.completion_rate:
                    best = result
                if result.completion_rate >= 100.0:
                    done = True
                    break
            if done:
                break
            attempt += len(batch)
    finally:
        if pool is not None:
            pool.shutdown(wait=True)

    elapsed = time.time() - start_time

    if best is None:
        raise GenerationFailure(
            'Generation was cancelled before any attempt completed.',
            {'totalRequired': total_required, 'attempts': 0, 'bestRate': 0.0, 'problemTeachers': []},
        )

    best.attempts = attempts_made
    best.unplaced_summary = summarize_unplaced(best.unplaced_requests, teachers)
    problem_teachers = identify_problem_teachers(best.unplaced_summary)
    rate = best.completion_rate

    logger.info(
        f"Best of {attempts_made} attempts: {rate:.1f}% placed "
        f"({len(best.placed_lessons)}/{total_required}) in {elapsed:.1f}s"
    )

    if rate >= acceptance_threshold:
        if rate < 100.0:
            missing = len(best.unplaced_requests)
            top = ', '.join(
                f"{p['teacher']} ({p['missing']})" for p in problem_teachers[:TOP_PROBLEM_TEACHERS]
            )
            best.warnings = [
                f"Could not place 100% of the lessons ({rate:.1f}% placed).",
                f"Unplaced periods: {missing}",
                f"Most affected teachers: {top}",
                "Edit the timetable manually or run the generator again.",
            ]
            for warning in best.warnings:
                logger.warning(warning)
        return best

    top_teachers = problem_teachers[:TOP_PROBLEM_TEACHERS]
    message = '\n'.join([
        'Unable to place the declared workloads.',
        f'- Required periods: {total_required}',
        f'- Attempts made: {attempts_made}',
        f'- Best completion rate: {rate:.1f}%',
        'Suggestions: reduce some teachers\' workloads, reduce the number of classes per subject, '
        'or add more teachers to share the lessons.',
        'Teachers with the most conflicts:',
        *[f"- {p['teacher']}: {p['missing']} unplaced periods" for p in top_teachers],
    ])
    logger.warning(f"Generation failed: best rate {rate:.1f}% below threshold {acceptance_threshold:.1f}%")
    raise GenerationFailure(message, {
        'totalRequired': total_required,
        'attempts': attempts_made,
        'bestRate': round(rate, 1),
        'threshold': acceptance_threshold,
        'problemTeachers': top_teachers,
        'unplaced': [
            {'teacher': u.teacher, 'subject': u.subject, 'classId': u.class_id, 'missing': u.missing}
            for u in best.unplaced_summary
        ],
    })

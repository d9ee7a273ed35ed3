"""
FastAPI service for the school timetable generator.

Loading workloads and persisting the accepted lessons is the caller's job;
this layer only converts payloads and maps engine outcomes to responses.
"""

import logging
import time
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from school_timetable import config as service_config
from school_timetable.config import resolve_schedule_config, settings_from_dict
from school_timetable.exceptions import FeasibilityError, GenerationFailure
from school_timetable.models import (
    Allocation, Lesson, Room, Shift, TeacherPreferences, TeacherWorkload,
)
from school_timetable.rooms import ROOM_TYPES, SUBJECT_ROOM_TYPES
from school_timetable.solver import ENGINES, generate_schedule
from school_timetable.validator import format_validation_report, validate_schedule

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if service_config.DEBUG_SOLVER else logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

if service_config.DEBUG_SOLVER:
    logger.info("DEBUG_SOLVER is enabled - verbose logging active")

app = FastAPI(
    title="School Timetable API",
    description="Greedy timetable generator with restarts and a post-hoc conflict validator",
    version="1.0.0"
)

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]

if service_config.FRONTEND_URL:
    ALLOWED_ORIGINS.append(service_config.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AllocationIn(BaseModel):
    subject: str
    lessonsPerWeek: int = Field(ge=1)
    classIds: list[str]


class PreferencesIn(BaseModel):
    preferredShift: Optional[Shift] = None
    maxLessonsPerDay: Optional[int] = Field(default=None, ge=1)
    maxLessonsPerWeek: Optional[int] = Field(default=None, ge=0)
    unavailableDays: list[int] = []
    unavailableSlots: list[list[int]] = []  # [[day, slot], ...]
    maxConsecutive: int = 3


class TeacherIn(BaseModel):
    id: str
    name: str
    allocations: list[AllocationIn] = []
    preferences: Optional[PreferencesIn] = None
    workloadMonthly: Optional[int] = None


class RoomIn(BaseModel):
    id: str
    name: Optional[str] = None
    type: str = "classroom"
    capacity: int = 40


class LessonIn(BaseModel):
    teacherId: str
    subject: str
    classId: str
    day: int = Field(ge=0)
    slot: int = Field(ge=0)
    roomId: Optional[str] = None
    locked: bool = False


class GenerateRequest(BaseModel):
    teachers: list[TeacherIn]
    rooms: list[RoomIn] = []
    settings: Optional[dict] = None  # School-wide settings record; None uses the defaults
    lockedLessons: list[LessonIn] = []
    maxAttempts: int = Field(default=service_config.MAX_ATTEMPTS, ge=1)
    acceptanceThreshold: float = service_config.ACCEPTANCE_THRESHOLD
    engine: str = "greedy"
    workers: int = Field(default=1, ge=1)
    startSeed: int = 0
    maxTimeSeconds: Optional[float] = None


class GenerateResponse(BaseModel):
    status: str  # 'success', 'partial', 'infeasible' or 'failed'
    message: str
    lessons: list = []
    completionRate: float = 0.0
    totalRequired: int = 0
    attempts: int = 0
    warnings: list[str] = []
    unplaced: list = []
    diagnostics: Optional[dict] = None
    elapsedSeconds: float


class ValidateRequest(BaseModel):
    lessons: list[LessonIn]
    teachers: list[TeacherIn] = []
    settings: Optional[dict] = None
    classes: Optional[list[str]] = None


def to_workload(t: TeacherIn) -> TeacherWorkload:
    prefs = None
    if t.preferences is not None:
        p = t.preferences
        prefs = TeacherPreferences(
            preferred_shift=p.preferredShift,
            max_lessons_per_day=p.maxLessonsPerDay,
            max_lessons_per_week=p.maxLessonsPerWeek,
            unavailable_days=frozenset(p.unavailableDays),
            unavailable_slots=frozenset((s[0], s[1]) for s in p.unavailableSlots if len(s) == 2),
            max_consecutive=p.maxConsecutive,
        )
    return TeacherWorkload(
        teacher_id=t.id,
        name=t.name,
        allocations=[
            Allocation(subject=a.subject, lessons_per_week=a.lessonsPerWeek, class_ids=list(a.classIds))
            for a in t.allocations
        ],
        preferences=prefs,
        workload_monthly=t.workloadMonthly,
    )


def to_lesson(l: LessonIn) -> Lesson:
    return Lesson(
        teacher_id=l.teacherId,
        subject=l.subject,
        class_id=l.classId,
        day=l.day,
        slot=l.slot,
        room_id=l.roomId,
        locked=l.locked,
    )


def lesson_to_dict(lesson: Lesson) -> dict:
    return {
        'teacherId': lesson.teacher_id,
        'subject': lesson.subject,
        'classId': lesson.class_id,
        'day': lesson.day,
        'slot': lesson.slot,
        'roomId': lesson.room_id,
        'locked': lesson.locked,
    }


@app.get("/")
async def root():
    return {"message": "School Timetable API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": time.time()}


@app.get("/room-types")
async def room_types():
    return {"types": ROOM_TYPES, "subjectPreferences": SUBJECT_ROOM_TYPES}


@app.post("/generate", response_model=GenerateResponse)
def generate(request: GenerateRequest):
    """Generate a weekly timetable from teacher workloads."""
    start_time = time.time()

    if request.engine not in ENGINES:
        raise HTTPException(status_code=400, detail=f"Unknown engine '{request.engine}'")

    try:
        schedule_config = resolve_schedule_config(settings_from_dict(request.settings))
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid settings: {e}")

    workloads = [to_workload(t) for t in request.teachers]
    rooms = [Room(id=r.id, name=r.name or r.id, type=r.type, capacity=r.capacity) for r in request.rooms]
    locked = [to_lesson(l) for l in request.lockedLessons]

    logger.info(f"=== GENERATE REQUEST === Teachers: {len(workloads)}, Rooms: {len(rooms)}, "
                f"Attempts: {request.maxAttempts}, Engine: {request.engine}")

    try:
        result = generate_schedule(
            workloads,
            schedule_config,
            rooms,
            max_attempts=request.maxAttempts,
            acceptance_threshold=request.acceptanceThreshold,
            engine=request.engine,
            workers=request.workers,
            start_seed=request.startSeed,
            max_time_seconds=request.maxTimeSeconds,
            locked_lessons=locked,
        )
    except FeasibilityError as e:
        logger.warning(f"INFEASIBLE: {e}")
        return GenerateResponse(
            status='infeasible',
            message=f'Found {len(e.errors)} workload issue(s) that make scheduling impossible.',
            diagnostics={'preflightErrors': e.errors},
            elapsedSeconds=time.time() - start_time,
        )
    except GenerationFailure as e:
        return GenerateResponse(
            status='failed',
            message=e.message,
            completionRate=e.diagnostics.get('bestRate', 0.0),
            totalRequired=e.diagnostics.get('totalRequired', 0),
            attempts=e.diagnostics.get('attempts', 0),
            unplaced=e.diagnostics.get('unplaced', []),
            diagnostics=e.diagnostics,
            elapsedSeconds=time.time() - start_time,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        elapsed = time.time() - start_time
        logger.error(f"GENERATE ERROR: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={"status": "error", "message": str(e), "elapsedSeconds": elapsed},
        )

    elapsed = time.time() - start_time
    logger.info(f"=== GENERATE RESULT === {result.completion_rate:.1f}% in {elapsed:.1f}s")

    return GenerateResponse(
        status='success' if result.is_complete else 'partial',
        message=f'Placed {len(result.placed_lessons)} of {result.total_required} periods '
                f'after {result.attempts} attempt(s)',
        lessons=[lesson_to_dict(l) for l in result.grid.lessons()],
        completionRate=round(result.completion_rate, 1),
        totalRequired=result.total_required,
        attempts=result.attempts,
        warnings=result.warnings,
        unplaced=[
            {'teacher': u.teacher, 'subject': u.subject, 'classId': u.class_id, 'missing': u.missing}
            for u in result.unplaced_summary
        ],
        elapsedSeconds=elapsed,
    )


@app.post("/validate")
def validate(request: ValidateRequest):
    """Audit a stored timetable for double-bookings and long subject runs."""
    try:
        schedule_config = resolve_schedule_config(settings_from_dict(request.settings))
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid settings: {e}")

    report = validate_schedule(
        [to_lesson(l) for l in request.lessons],
        [to_workload(t) for t in request.teachers],
        schedule_config,
        classes=request.classes,
    )

    def conflict_to_dict(c):
        return {'type': c.type, 'severity': c.severity, 'description': c.description, 'details': c.details}

    return {
        'valid': report.valid,
        'conflicts': [conflict_to_dict(c) for c in report.conflicts],
        'warnings': [conflict_to_dict(w) for w in report.warnings],
        'stats': {
            'totalLessons': report.stats['total_lessons'],
            'teacherUtilization': [
                {'teacherId': teacher_id, **util}
                for teacher_id, util in report.stats['teacher_utilization'].items()
            ],
            'subjectCoverage': [
                {'subject': subject, **cov} for subject, cov in report.stats['subject_coverage'].items()
            ],
            'consecutiveViolations': report.stats['consecutive_violations'],
        },
        'report': format_validation_report(report),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=service_config.PORT)

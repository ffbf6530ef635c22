from fastapi import FastAPI, Depends, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Optional
import logging
import os
from pathlib import Path

from habit_ledger.database import engine, get_db, Base
from habit_ledger import models  # Import all models to register them with Base
from habit_ledger.schemas import (
    TaskCreate, TaskUpdate, TaskResponse,
    StudentCreate, StudentResponse,
    ToggleRequest, ToggleOutcome, TrackerResponse, LedgerEntry,
    BadgeCreate, BadgeResponse, GoalCreate, GoalResponse, ProgressResponse,
    LeaderboardRow, TrendPoint
)
from habit_ledger.auth import verify_api_key
from habit_ledger.exceptions import (
    PersistenceFailureException, RewardNotFoundException, StudentNotFoundException,
    TaskNotFoundException, ValidationException
)
from habit_ledger.repositories.ledger_repository import SqlLedgerBackend
from habit_ledger.services.consistency_guard import GuardRegistry
from habit_ledger.services.date_service import DateService
from habit_ledger.services.goal_service import GoalService
from habit_ledger.services.points_service import PointsService
from habit_ledger.services.scheduler_service import start_scheduler, stop_scheduler
from habit_ledger.services.task_service import TaskService
from habit_ledger.services.tracker_service import build_tracker
from habit_ledger.constants import (
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, DEFAULT_LOG_FILE, CORS_ALLOWED_ORIGINS,
    PERSISTENCE_FAILURE_MESSAGE
)

LOG_DIR = os.getenv("HABIT_LEDGER_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("HABIT_LEDGER_LOG_FILE", DEFAULT_LOG_FILE)

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger("habit_ledger")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Habit Ledger API",
    description="Classroom habit tracking with a points and streak ledger",
    version="1.0.0"
)

cors_origins = os.getenv("HABIT_LEDGER_CORS_ORIGINS")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins.split(",") if cors_origins else CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

registry = GuardRegistry(SqlLedgerBackend())


def get_registry() -> GuardRegistry:
    return registry


@app.on_event("startup")
async def startup_event():
    logger.info(f"Habit Ledger API started. Logging to: {log_path}")
    start_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Habit Ledger API")
    stop_scheduler()


# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "Habit Ledger API", "status": "active"}


# Tasks

@app.post("/api/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
async def create_task(task: TaskCreate, db: Session = Depends(get_db)):
    """Create a new task"""
    return TaskService(db).create_task(task)


@app.get("/api/teachers/{teacher_id}/tasks", response_model=List[TaskResponse], dependencies=[Depends(verify_api_key)])
async def get_teacher_tasks(teacher_id: str, include_inactive: bool = False, db: Session = Depends(get_db)):
    """Get a teacher's tasks"""
    return TaskService(db).get_tasks(teacher_id, include_inactive)


@app.put("/api/tasks/{task_id}", response_model=TaskResponse, dependencies=[Depends(verify_api_key)])
async def update_task(task_id: str, task_update: TaskUpdate, db: Session = Depends(get_db)):
    """Update a task"""
    try:
        return TaskService(db).update_task(task_id, task_update)
    except TaskNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationException as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/tasks/{task_id}/deactivate", response_model=TaskResponse, dependencies=[Depends(verify_api_key)])
async def deactivate_task(task_id: str, db: Session = Depends(get_db)):
    """Remove a task from rosters without deleting its completions"""
    try:
        return TaskService(db).deactivate_task(task_id)
    except TaskNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))


# Students

@app.post("/api/students", response_model=StudentResponse, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
async def create_student(student: StudentCreate, db: Session = Depends(get_db)):
    """Create a student in a teacher's cohort"""
    return PointsService(db).create_student(student)


@app.delete("/api/students/{student_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(verify_api_key)])
async def remove_student(
    student_id: str,
    db: Session = Depends(get_db),
    guards: GuardRegistry = Depends(get_registry)
):
    """Remove a student from their cohort. Their ledger is kept."""
    try:
        PointsService(db).remove_student(student_id)
    except StudentNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))
    guards.evict(student_id)


@app.get("/api/students/{student_id}", response_model=StudentResponse, dependencies=[Depends(verify_api_key)])
async def get_student(student_id: str, db: Session = Depends(get_db)):
    """Get a student with their stored total"""
    try:
        return PointsService(db).get_student(student_id)
    except StudentNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/api/students/{student_id}/tracker", response_model=TrackerResponse, dependencies=[Depends(verify_api_key)])
async def get_tracker(
    student_id: str,
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    guards: GuardRegistry = Depends(get_registry)
):
    """Month grid of the student's roster with checked and enabled cells"""
    today = DateService.get_today()
    try:
        month_start = DateService.parse_month(month) if month else today.replace(day=1)
        roster = TaskService(db).get_roster(student_id)
        guard = await guards.get(student_id)
    except StudentNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationException as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceFailureException as e:
        logger.error(f"Could not load ledger for student {student_id}: {e}")
        raise HTTPException(status_code=503, detail=PERSISTENCE_FAILURE_MESSAGE)

    return build_tracker(student_id, roster, guard.store, month_start, today)


@app.post("/api/students/{student_id}/toggle", response_model=ToggleOutcome, dependencies=[Depends(verify_api_key)])
async def toggle_completion(
    student_id: str,
    request: ToggleRequest,
    db: Session = Depends(get_db),
    guards: GuardRegistry = Depends(get_registry)
):
    """Check or uncheck a task on a day"""
    try:
        task = TaskService(db).get_roster_task(student_id, request.task_id)
        guard = await guards.get(student_id)
    except (StudentNotFoundException, TaskNotFoundException) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceFailureException as e:
        logger.error(f"Could not load ledger for student {student_id}: {e}")
        raise HTTPException(status_code=503, detail=PERSISTENCE_FAILURE_MESSAGE)

    if not DateService.is_toggle_allowed(request.day, task, DateService.get_today()):
        raise HTTPException(status_code=400, detail=f"Task {task.id} cannot be toggled on {request.day}")

    outcome = await guard.toggle_completion(request.day, task)
    if not outcome.committed:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=outcome.model_dump(mode="json"))
    return outcome


@app.get("/api/students/{student_id}/history", response_model=List[LedgerEntry], dependencies=[Depends(verify_api_key)])
async def get_history(
    student_id: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """Completion history, newest first"""
    try:
        return PointsService(db).get_history(student_id, limit)
    except StudentNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/api/students/{student_id}/progress", response_model=ProgressResponse, dependencies=[Depends(verify_api_key)])
async def get_progress(student_id: str, db: Session = Depends(get_db)):
    """Current badge, next badge and goal progress"""
    service = PointsService(db)
    try:
        student = service.get_student(student_id)
        total = service.get_current_points(student_id)
    except StudentNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))
    return GoalService(db).get_progress(student.teacher_id, total)


@app.get("/api/students/{student_id}/trend", response_model=List[TrendPoint], dependencies=[Depends(verify_api_key)])
async def get_trend(
    student_id: str,
    days: int = Query(30, ge=1, le=366),
    db: Session = Depends(get_db)
):
    """Daily points and running total over the last days, oldest first"""
    try:
        return PointsService(db).get_trend(student_id, DateService.get_today(), days)
    except StudentNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))


# Teacher views

@app.get("/api/teachers/{teacher_id}/students", response_model=List[StudentResponse], dependencies=[Depends(verify_api_key)])
async def get_teacher_students(teacher_id: str, db: Session = Depends(get_db)):
    """Active students of a teacher's cohort"""
    return PointsService(db).get_students(teacher_id)


@app.get("/api/teachers/{teacher_id}/badges", response_model=List[BadgeResponse], dependencies=[Depends(verify_api_key)])
async def get_teacher_badges(teacher_id: str, db: Session = Depends(get_db)):
    """Active badges ordered by min_points"""
    return GoalService(db).get_badges(teacher_id)


@app.get("/api/teachers/{teacher_id}/goals", response_model=List[GoalResponse], dependencies=[Depends(verify_api_key)])
async def get_teacher_goals(teacher_id: str, db: Session = Depends(get_db)):
    """Active goals ordered by target_points"""
    return GoalService(db).get_goals(teacher_id)


@app.get("/api/teachers/{teacher_id}/leaderboard", response_model=List[LeaderboardRow], dependencies=[Depends(verify_api_key)])
async def get_leaderboard(teacher_id: str, task_name: Optional[str] = None, db: Session = Depends(get_db)):
    """Students ranked by total points, or by points on one task"""
    return PointsService(db).get_leaderboard(teacher_id, task_name)


@app.post("/api/badges", response_model=BadgeResponse, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
async def create_badge(badge: BadgeCreate, db: Session = Depends(get_db)):
    """Create a badge"""
    return GoalService(db).create_badge(badge)


@app.post("/api/goals", response_model=GoalResponse, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
async def create_goal(goal: GoalCreate, db: Session = Depends(get_db)):
    """Create a goal"""
    return GoalService(db).create_goal(goal)


@app.delete("/api/badges/{badge_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(verify_api_key)])
async def delete_badge(badge_id: int, db: Session = Depends(get_db)):
    """Retire a badge"""
    try:
        GoalService(db).deactivate_badge(badge_id)
    except RewardNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.delete("/api/goals/{goal_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(verify_api_key)])
async def delete_goal(goal_id: int, db: Session = Depends(get_db)):
    """Retire a goal"""
    try:
        GoalService(db).deactivate_goal(goal_id)
    except RewardNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from datetime import datetime, date
from typing import List, Literal, Optional

from habit_ledger.constants import DEFAULT_REQUIRED_DAYS, RECURRENCE_STREAK

RecurrenceKind = Literal["daily", "weekly", "once", "streak"]


def _to_date(value):
    """Drop the time component so window checks work on calendar days"""
    if isinstance(value, datetime):
        return value.date()
    return value


# Ledger core types

class TaskDefinition(BaseModel):
    """A task as seen by the ledger engine. Immutable from the student's side."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str
    point_value: int
    recurrence_kind: RecurrenceKind = "daily"
    required_days: Optional[int] = DEFAULT_REQUIRED_DAYS
    active_from: date
    active_until: date
    is_active: bool = True

    @field_validator("active_from", "active_until", mode="before")
    @classmethod
    def drop_time_component(cls, value):
        return _to_date(value)

    @property
    def is_streak(self) -> bool:
        return self.recurrence_kind == RECURRENCE_STREAK

    @property
    def effective_required_days(self) -> int:
        if not self.required_days or self.required_days < 1:
            return DEFAULT_REQUIRED_DAYS
        return self.required_days

    def is_active_on(self, day) -> bool:
        """Inclusive window test. A reversed window contains no days."""
        day = _to_date(day)
        return self.active_from <= day <= self.active_until


class LedgerEntry(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    task_id: str
    task_name: str
    recurrence_kind: str  # Kind at completion time, or "streak_bonus"
    day_recorded: date
    points_earned: int = 0
    recorded_at: datetime


class StreakProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    completed_days: int = 0
    required: int = DEFAULT_REQUIRED_DAYS
    bonus_awarded: bool = False


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    task_name: str
    bonus_points: int


class ToggleResult(BaseModel):
    """Mutations required to flip one completion"""
    model_config = ConfigDict(frozen=True)

    completion_id: str
    turned_on: bool
    entries_to_upsert: List[LedgerEntry] = Field(default_factory=list)
    entries_to_delete: List[str] = Field(default_factory=list)
    point_delta: int = 0
    notification: Optional[Notification] = None


class LedgerBatch(BaseModel):
    """Everything one toggle writes, committed atomically"""
    model_config = ConfigDict(frozen=True)

    entries_to_upsert: List[LedgerEntry] = Field(default_factory=list)
    entries_to_delete: List[str] = Field(default_factory=list)
    point_delta: int = 0
    activity_at: datetime


class LedgerSnapshot(BaseModel):
    """Persisted ledger state used to hydrate a session"""
    entries: List[LedgerEntry] = Field(default_factory=list)
    total_points: int = 0


class ToggleOutcome(BaseModel):
    completion_id: str
    checked: bool  # State after the call returns
    committed: bool
    point_delta: int = 0
    total_points: int
    notification: Optional[Notification] = None
    error: Optional[str] = None


# Task schemas

class TaskBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    point_value: int
    recurrence_kind: RecurrenceKind = "daily"
    required_days: int = Field(default=DEFAULT_REQUIRED_DAYS, ge=1, le=366)
    active_from: date
    active_until: date

    @field_validator("point_value")
    @classmethod
    def point_value_not_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("point_value must not be zero")
        return value

    @model_validator(mode="after")
    def window_not_reversed(self):
        if self.active_until < self.active_from:
            raise ValueError("active_until cannot be before active_from")
        return self


class TaskCreate(TaskBase):
    teacher_id: str = Field(..., min_length=1)


class TaskUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    point_value: Optional[int] = None
    required_days: Optional[int] = Field(None, ge=1, le=366)
    active_from: Optional[date] = None
    active_until: Optional[date] = None
    is_active: Optional[bool] = None


class TaskResponse(TaskBase):
    id: str
    teacher_id: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# Student schemas

class StudentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    teacher_id: str = Field(..., min_length=1)


class StudentResponse(BaseModel):
    id: str
    name: str
    teacher_id: str
    total_points: int
    last_activity_at: Optional[datetime] = None
    is_active: bool = True

    class Config:
        from_attributes = True


# Tracker schemas

class ToggleRequest(BaseModel):
    day: date
    task_id: str


class TrackerCell(BaseModel):
    day: date
    checked: bool
    enabled: bool


class TrackerRow(BaseModel):
    task: TaskDefinition
    cells: List[TrackerCell]
    streak: Optional[StreakProgress] = None


class TrackerResponse(BaseModel):
    student_id: str
    month: str  # YYYY-MM
    total_points: int
    rows: List[TrackerRow]


# Badge and goal schemas

class BadgeCreate(BaseModel):
    teacher_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    min_points: int
    max_points: int

    @model_validator(mode="after")
    def range_not_reversed(self):
        if self.max_points < self.min_points:
            raise ValueError("max_points cannot be below min_points")
        return self


class BadgeResponse(BaseModel):
    id: int
    teacher_id: str
    name: str
    description: Optional[str] = None
    min_points: int
    max_points: int

    class Config:
        from_attributes = True


class GoalCreate(BaseModel):
    teacher_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    target_points: int = Field(..., gt=0)


class GoalResponse(BaseModel):
    id: int
    teacher_id: str
    name: str
    description: Optional[str] = None
    target_points: int

    class Config:
        from_attributes = True


class GoalProgress(GoalResponse):
    is_achieved: bool
    progress: float  # Percent, 0-100


class ProgressResponse(BaseModel):
    total_points: int
    current_badge: Optional[BadgeResponse] = None
    next_badge: Optional[BadgeResponse] = None
    badge_progress: float = 0.0
    goals: List[GoalProgress] = Field(default_factory=list)


class TrendPoint(BaseModel):
    day: date
    points: int  # Earned on this day
    total_points: int  # Running total at the end of the day


class LeaderboardRow(BaseModel):
    student_id: str
    name: str
    points: int

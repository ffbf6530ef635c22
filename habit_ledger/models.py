import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date

from habit_ledger.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class TaskTemplate(Base):
    __tablename__ = "task_templates"

    id = Column(String, primary_key=True, default=_new_id)
    teacher_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    point_value = Column(Integer, default=10)  # Negative for penalty tasks
    recurrence_kind = Column(String, default="daily")  # daily, weekly, once, streak
    required_days = Column(Integer, default=1)  # Streak tasks only
    active_from = Column(Date, nullable=False)
    active_until = Column(Date, nullable=False)  # Inclusive
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)


class Student(Base):
    __tablename__ = "students"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    teacher_id = Column(String, nullable=False, index=True)

    # Running total, only ever changed by atomic increments
    total_points = Column(Integer, default=0, nullable=False)
    last_activity_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)  # False once removed from the cohort
    created_at = Column(DateTime, default=datetime.now)


class Completion(Base):
    """One ledger entry. Existence of the row means the completion is checked."""
    __tablename__ = "completions"

    student_id = Column(String, primary_key=True)
    entry_id = Column(String, primary_key=True)  # {day}_{task}, ONCE_{task}, STREAK_BONUS_{task}
    task_id = Column(String, nullable=False, index=True)
    task_name = Column(String, nullable=False)  # Denormalized at write time
    recurrence_kind = Column(String, nullable=False)  # Kind at completion, or streak_bonus
    day_recorded = Column(Date, nullable=False)
    points_earned = Column(Integer, default=0)
    recorded_at = Column(DateTime, default=datetime.now)


class Badge(Base):
    __tablename__ = "badges"

    id = Column(Integer, primary_key=True, index=True)
    teacher_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    min_points = Column(Integer, nullable=False)
    max_points = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, index=True)
    teacher_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    target_points = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)

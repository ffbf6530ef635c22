"""
Task repository - Data access layer for TaskTemplate model.
Acts as the task provider for student rosters.
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_

from habit_ledger.models import TaskTemplate


class TaskRepository:
    """Repository for TaskTemplate data access"""

    @staticmethod
    def get_by_id(db: Session, task_id: str) -> Optional[TaskTemplate]:
        """Get task by ID"""
        return db.query(TaskTemplate).filter(TaskTemplate.id == task_id).first()

    @staticmethod
    def get_by_teacher(db: Session, teacher_id: str, include_inactive: bool = False) -> List[TaskTemplate]:
        """Get all tasks created by a teacher"""
        query = db.query(TaskTemplate).filter(TaskTemplate.teacher_id == teacher_id)
        if not include_inactive:
            query = query.filter(TaskTemplate.is_active == True)
        return query.order_by(TaskTemplate.created_at).all()

    @staticmethod
    def get_roster(db: Session, teacher_id: str) -> List[TaskTemplate]:
        """Get active tasks for a teacher's cohort"""
        return db.query(TaskTemplate).filter(
            and_(
                TaskTemplate.teacher_id == teacher_id,
                TaskTemplate.is_active == True
            )
        ).order_by(TaskTemplate.created_at).all()

    @staticmethod
    def create(db: Session, task: TaskTemplate) -> TaskTemplate:
        """Create new task"""
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    @staticmethod
    def update(db: Session, task: TaskTemplate) -> TaskTemplate:
        """Update existing task"""
        db.commit()
        db.refresh(task)
        return task

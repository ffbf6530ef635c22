"""
Task management service.
Handles teacher-side task CRUD and builds student rosters for the ledger engine.
"""
from typing import List

from sqlalchemy.orm import Session

from habit_ledger.exceptions import StudentNotFoundException, TaskNotFoundException, ValidationException
from habit_ledger.models import TaskTemplate
from habit_ledger.repositories.ledger_repository import StudentRepository
from habit_ledger.repositories.task_repository import TaskRepository
from habit_ledger.schemas import TaskCreate, TaskDefinition, TaskUpdate


class TaskService:
    """Service for task management"""

    def __init__(self, db: Session):
        self.db = db
        self.task_repo = TaskRepository()
        self.student_repo = StudentRepository()

    @staticmethod
    def to_definition(task: TaskTemplate) -> TaskDefinition:
        return TaskDefinition.model_validate(task)

    def get_task(self, task_id: str) -> TaskTemplate:
        task = self.task_repo.get_by_id(self.db, task_id)
        if not task:
            raise TaskNotFoundException(task_id)
        return task

    def get_tasks(self, teacher_id: str, include_inactive: bool = False) -> List[TaskTemplate]:
        return self.task_repo.get_by_teacher(self.db, teacher_id, include_inactive)

    def get_roster(self, student_id: str) -> List[TaskDefinition]:
        """Active tasks of the student's cohort"""
        student = self.student_repo.get_by_id(self.db, student_id)
        if not student:
            raise StudentNotFoundException(student_id)
        return [self.to_definition(task) for task in self.task_repo.get_roster(self.db, student.teacher_id)]

    def get_roster_task(self, student_id: str, task_id: str) -> TaskDefinition:
        """A single roster task; inactive or foreign tasks are not found"""
        for task in self.get_roster(student_id):
            if task.id == task_id:
                return task
        raise TaskNotFoundException(task_id)

    def create_task(self, task_data: TaskCreate) -> TaskTemplate:
        """Create a new task"""
        task = TaskTemplate(**task_data.model_dump())
        return self.task_repo.create(self.db, task)

    def update_task(self, task_id: str, task_update: TaskUpdate) -> TaskTemplate:
        """
        Update an existing task.

        Recurrence kind is not editable: existing entries were keyed by it.

        Raises:
            TaskNotFoundException: If the task does not exist
            ValidationException: If the update leaves an invalid task
        """
        task = self.get_task(task_id)
        update_data = task_update.model_dump(exclude_unset=True)

        if update_data.get("point_value") == 0:
            raise ValidationException("point_value", "must not be zero")

        active_from = update_data.get("active_from", task.active_from)
        active_until = update_data.get("active_until", task.active_until)
        if active_until < active_from:
            raise ValidationException("active_until", "cannot be before active_from")

        for key, value in update_data.items():
            setattr(task, key, value)
        return self.task_repo.update(self.db, task)

    def deactivate_task(self, task_id: str) -> TaskTemplate:
        """Hide a task from rosters. Completions referencing it are kept."""
        task = self.get_task(task_id)
        task.is_active = False
        return self.task_repo.update(self.db, task)

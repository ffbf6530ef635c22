"""
Points service.
Read-side queries over the ledger: totals, history, leaderboards and the
reconciliation audit.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from habit_ledger.exceptions import StudentNotFoundException
from habit_ledger.models import Student
from habit_ledger.repositories.ledger_repository import (
    CompletionRepository, StudentRepository, to_ledger_entry
)
from habit_ledger.schemas import LeaderboardRow, LedgerEntry, StudentCreate, TrendPoint

logger = logging.getLogger("habit_ledger.points")


class PointsService:
    """Service for point totals and ledger history"""

    def __init__(self, db: Session):
        self.db = db
        self.student_repo = StudentRepository()
        self.completion_repo = CompletionRepository()

    def create_student(self, student_data: StudentCreate) -> Student:
        return self.student_repo.create(self.db, Student(**student_data.model_dump()))

    def get_student(self, student_id: str) -> Student:
        student = self.student_repo.get_by_id(self.db, student_id)
        if not student:
            raise StudentNotFoundException(student_id)
        return student

    def get_students(self, teacher_id: str) -> List[Student]:
        return self.student_repo.get_by_teacher(self.db, teacher_id)

    def remove_student(self, student_id: str) -> Student:
        """
        Take a student out of their cohort.

        The ledger is kept so totals stay auditable; the student just stops
        appearing in rosters and leaderboards and can no longer toggle.
        """
        student = self.get_student(student_id)
        student.is_active = False
        student = self.student_repo.update(self.db, student)
        logger.info(f"Removed student {student_id} from cohort {student.teacher_id}")
        return student

    def get_current_points(self, student_id: str) -> int:
        """Get current total points"""
        return self.get_student(student_id).total_points or 0

    def get_history(self, student_id: str, limit: int = 100) -> List[LedgerEntry]:
        """Get a student's ledger entries, newest first"""
        self.get_student(student_id)
        return [to_ledger_entry(row) for row in self.completion_repo.get_history(self.db, student_id, limit)]

    def get_trend(self, student_id: str, today: date, days: int = 30) -> List[TrendPoint]:
        """
        Running total per day over the last `days` days, ending today.

        Args:
            student_id: Student to chart
            today: Last day of the window
            days: Window length

        Returns:
            One TrendPoint per calendar day, oldest first
        """
        self.get_student(student_id)
        start = today - timedelta(days=days - 1)
        running = self.completion_repo.sum_points_before(self.db, student_id, start)
        earned = self.completion_repo.points_by_day(self.db, student_id, start, today)

        trend = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            points = earned.get(day, 0)
            running += points
            trend.append(TrendPoint(day=day, points=points, total_points=running))
        return trend

    def get_leaderboard(self, teacher_id: str, task_name: Optional[str] = None) -> List[LeaderboardRow]:
        """
        Rank a teacher's students.

        Args:
            teacher_id: Cohort owner
            task_name: Rank by points earned on this task only; None ranks by total

        Returns:
            Rows ordered by points, highest first
        """
        if task_name:
            rows = self.completion_repo.points_by_student_for_task(self.db, teacher_id, task_name)
            return [LeaderboardRow(student_id=sid, name=name, points=points) for sid, name, points in rows]

        return [
            LeaderboardRow(student_id=s.id, name=s.name, points=s.total_points or 0)
            for s in self.student_repo.get_by_teacher(self.db, teacher_id)
        ]

    def audit_totals(self) -> List[dict]:
        """
        Compare every stored total with the sum of that student's entries.

        Mismatches are reported, never repaired: the remedy is rehydration.

        Returns:
            One dict per mismatched student
        """
        mismatches = []
        for student in self.student_repo.get_all(self.db):
            ledger_sum = self.completion_repo.sum_points(self.db, student.id)
            stored = student.total_points or 0
            if stored != ledger_sum:
                logger.warning(
                    f"Total mismatch for student {student.id}: stored={stored}, ledger={ledger_sum}"
                )
                mismatches.append({
                    "student_id": student.id,
                    "stored_total": stored,
                    "ledger_total": ledger_sum,
                })
        return mismatches

"""
Ledger repository - Data access layer for Student and Completion models.
Also provides the SQLAlchemy implementation of the persistence backend.
"""
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from habit_ledger.database import SessionLocal
from habit_ledger.exceptions import PersistenceFailureException, StudentNotFoundException
from habit_ledger.models import Completion, Student
from habit_ledger.schemas import LedgerBatch, LedgerEntry, LedgerSnapshot
from habit_ledger.services.persistence import PersistenceBackend


def to_ledger_entry(row: Completion) -> LedgerEntry:
    return LedgerEntry(
        id=row.entry_id,
        task_id=row.task_id,
        task_name=row.task_name,
        recurrence_kind=row.recurrence_kind,
        day_recorded=row.day_recorded,
        points_earned=row.points_earned,
        recorded_at=row.recorded_at,
    )


class StudentRepository:
    """Repository for Student data access"""

    @staticmethod
    def get_by_id(db: Session, student_id: str) -> Optional[Student]:
        """Get an active student by ID"""
        return db.query(Student).filter(
            and_(
                Student.id == student_id,
                Student.is_active == True
            )
        ).first()

    @staticmethod
    def get_by_teacher(db: Session, teacher_id: str) -> List[Student]:
        """Get active students in a teacher's cohort, highest total first"""
        return db.query(Student).filter(
            and_(
                Student.teacher_id == teacher_id,
                Student.is_active == True
            )
        ).order_by(Student.total_points.desc(), Student.name).all()

    @staticmethod
    def get_all(db: Session) -> List[Student]:
        return db.query(Student).all()

    @staticmethod
    def create(db: Session, student: Student) -> Student:
        """Create new student"""
        db.add(student)
        db.commit()
        db.refresh(student)
        return student

    @staticmethod
    def update(db: Session, student: Student) -> Student:
        """Persist changes to a student"""
        db.commit()
        db.refresh(student)
        return student

    @staticmethod
    def increment_total(db: Session, student_id: str, delta: int, activity_at: datetime) -> int:
        """
        Add delta to the stored total in a single UPDATE statement.

        Returns:
            Number of rows updated (0 when the student does not exist)
        """
        return db.query(Student).filter(
            and_(
                Student.id == student_id,
                Student.is_active == True
            )
        ).update(
            {
                Student.total_points: Student.total_points + delta,
                Student.last_activity_at: activity_at,
            },
            synchronize_session=False
        )


class CompletionRepository:
    """Repository for Completion (ledger entry) data access"""

    @staticmethod
    def get_for_student(db: Session, student_id: str) -> List[Completion]:
        return db.query(Completion).filter(Completion.student_id == student_id).all()

    @staticmethod
    def get_history(db: Session, student_id: str, limit: int = 100) -> List[Completion]:
        """Get a student's completions, newest first"""
        return db.query(Completion).filter(
            Completion.student_id == student_id
        ).order_by(Completion.recorded_at.desc()).limit(limit).all()

    @staticmethod
    def sum_points(db: Session, student_id: str) -> int:
        """Sum of points_earned over all of a student's entries"""
        total = db.query(func.coalesce(func.sum(Completion.points_earned), 0)).filter(
            Completion.student_id == student_id
        ).scalar()
        return int(total)

    @staticmethod
    def sum_points_before(db: Session, student_id: str, day: date) -> int:
        """Sum of points_earned on entries recorded before day"""
        total = db.query(func.coalesce(func.sum(Completion.points_earned), 0)).filter(
            and_(
                Completion.student_id == student_id,
                Completion.day_recorded < day
            )
        ).scalar()
        return int(total)

    @staticmethod
    def points_by_day(db: Session, student_id: str, start: date, end: date) -> Dict[date, int]:
        """Points earned per day_recorded in [start, end]; days without entries are absent"""
        rows = db.query(Completion.day_recorded, func.sum(Completion.points_earned)).filter(
            and_(
                Completion.student_id == student_id,
                Completion.day_recorded >= start,
                Completion.day_recorded <= end
            )
        ).group_by(Completion.day_recorded).all()
        return {day: int(points) for day, points in rows}

    @staticmethod
    def points_by_student_for_task(db: Session, teacher_id: str, task_name: str) -> List[Tuple[str, str, int]]:
        """Points earned on one task name per student of a cohort, highest first"""
        earned = func.coalesce(func.sum(Completion.points_earned), 0)
        rows = db.query(Student.id, Student.name, earned).outerjoin(
            Completion,
            (Completion.student_id == Student.id) & (Completion.task_name == task_name)
        ).filter(
            and_(
                Student.teacher_id == teacher_id,
                Student.is_active == True
            )
        ).group_by(Student.id, Student.name).order_by(earned.desc(), Student.name).all()
        return [(student_id, name, int(points)) for student_id, name, points in rows]

    @staticmethod
    def upsert(db: Session, student_id: str, entry: LedgerEntry) -> None:
        """Insert or replace the entry with this id. Does not commit."""
        db.merge(Completion(
            student_id=student_id,
            entry_id=entry.id,
            task_id=entry.task_id,
            task_name=entry.task_name,
            recurrence_kind=entry.recurrence_kind,
            day_recorded=entry.day_recorded,
            points_earned=entry.points_earned,
            recorded_at=entry.recorded_at,
        ))

    @staticmethod
    def delete(db: Session, student_id: str, entry_id: str) -> None:
        """Delete the entry with this id if present. Does not commit."""
        db.query(Completion).filter(
            Completion.student_id == student_id,
            Completion.entry_id == entry_id
        ).delete(synchronize_session=False)


class SqlLedgerBackend(PersistenceBackend):
    """Persistence backend on top of SQLAlchemy sessions"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    async def load_snapshot(self, student_id: str) -> LedgerSnapshot:
        return await run_in_threadpool(self._load_snapshot, student_id)

    async def commit_batch(self, student_id: str, batch: LedgerBatch) -> None:
        await run_in_threadpool(self._commit_batch, student_id, batch)

    def _load_snapshot(self, student_id: str) -> LedgerSnapshot:
        db = self.session_factory()
        try:
            student = StudentRepository.get_by_id(db, student_id)
            if not student:
                raise StudentNotFoundException(student_id)
            rows = CompletionRepository.get_for_student(db, student_id)
            return LedgerSnapshot(
                entries=[to_ledger_entry(row) for row in rows],
                total_points=student.total_points or 0,
            )
        except SQLAlchemyError as e:
            raise PersistenceFailureException("load", str(e)) from e
        finally:
            db.close()

    def _commit_batch(self, student_id: str, batch: LedgerBatch) -> None:
        db = self.session_factory()
        try:
            for entry_id in batch.entries_to_delete:
                CompletionRepository.delete(db, student_id, entry_id)
            for entry in batch.entries_to_upsert:
                CompletionRepository.upsert(db, student_id, entry)

            updated = StudentRepository.increment_total(
                db, student_id, batch.point_delta, batch.activity_at
            )
            if updated == 0:
                db.rollback()
                raise PersistenceFailureException("batch commit", f"student {student_id} not found")

            db.commit()
        except (SQLAlchemyError, OSError) as e:
            db.rollback()
            raise PersistenceFailureException("batch commit", str(e)) from e
        finally:
            db.close()

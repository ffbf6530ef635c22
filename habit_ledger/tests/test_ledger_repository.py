"""
Tests for the SQLAlchemy persistence backend.

Tests cover:
1. Atomic batch commit of entries, total and activity timestamp
2. Upsert semantics by entry id
3. Nothing written when the batch fails
4. Snapshot loading
"""
import asyncio
from datetime import datetime

import pytest

from habit_ledger.exceptions import PersistenceFailureException, StudentNotFoundException
from habit_ledger.models import Completion, Student
from habit_ledger.repositories.ledger_repository import SqlLedgerBackend
from habit_ledger.schemas import LedgerBatch, LedgerEntry


def make_entry(entry_id="2026-03-10_task1", points=10, day=None):
    return LedgerEntry(
        id=entry_id,
        task_id="task1",
        task_name="Read 20 minutes",
        recurrence_kind="daily",
        day_recorded=day or datetime(2026, 3, 10).date(),
        points_earned=points,
        recorded_at=datetime(2026, 3, 10, 15, 0),
    )


@pytest.fixture
def sql_backend(session_factory):
    return SqlLedgerBackend(session_factory)


class TestCommitBatch:
    """Tests for commit_batch"""

    def test_writes_entries_total_and_activity(self, sql_backend, student, db_session):
        activity = datetime(2026, 3, 10, 15, 30)
        batch = LedgerBatch(
            entries_to_upsert=[make_entry(), make_entry("STREAK_BONUS_task1", points=20)],
            point_delta=30,
            activity_at=activity,
        )
        asyncio.run(sql_backend.commit_batch("student1", batch))

        db_session.expire_all()
        stored = db_session.query(Student).filter(Student.id == "student1").first()
        assert stored.total_points == 30
        assert stored.last_activity_at == activity
        assert db_session.query(Completion).count() == 2

    def test_increment_is_applied_to_stored_value(self, sql_backend, student, db_session):
        """The total is incremented in SQL, not overwritten from a cached value"""
        student.total_points = 100
        db_session.commit()

        batch = LedgerBatch(entries_to_upsert=[make_entry(points=-5)], point_delta=-5,
                            activity_at=datetime(2026, 3, 10))
        asyncio.run(sql_backend.commit_batch("student1", batch))

        db_session.expire_all()
        assert db_session.query(Student).first().total_points == 95

    def test_upsert_by_id_never_duplicates(self, sql_backend, student, db_session):
        for points in (10, 12):
            asyncio.run(sql_backend.commit_batch("student1", LedgerBatch(
                entries_to_upsert=[make_entry(points=points)],
                activity_at=datetime(2026, 3, 10),
            )))

        rows = db_session.query(Completion).all()
        assert len(rows) == 1
        assert rows[0].points_earned == 12

    def test_delete_removes_entries(self, sql_backend, student, db_session):
        asyncio.run(sql_backend.commit_batch("student1", LedgerBatch(
            entries_to_upsert=[make_entry()], point_delta=10, activity_at=datetime(2026, 3, 10),
        )))
        asyncio.run(sql_backend.commit_batch("student1", LedgerBatch(
            entries_to_delete=["2026-03-10_task1", "missing_id"], point_delta=-10,
            activity_at=datetime(2026, 3, 10),
        )))

        db_session.expire_all()
        assert db_session.query(Completion).count() == 0
        assert db_session.query(Student).first().total_points == 0

    def test_unknown_student_writes_nothing(self, sql_backend, db_session):
        batch = LedgerBatch(entries_to_upsert=[make_entry()], point_delta=10,
                            activity_at=datetime(2026, 3, 10))

        with pytest.raises(PersistenceFailureException):
            asyncio.run(sql_backend.commit_batch("ghost", batch))

        assert db_session.query(Completion).count() == 0

    def test_database_errors_become_persistence_failures(self, session_factory, student, engine):
        backend = SqlLedgerBackend(session_factory)
        batch = LedgerBatch(entries_to_upsert=[make_entry()], point_delta=10,
                            activity_at=datetime(2026, 3, 10))
        Completion.__table__.drop(engine)

        with pytest.raises(PersistenceFailureException):
            asyncio.run(backend.commit_batch("student1", batch))


class TestLoadSnapshot:
    """Tests for load_snapshot"""

    def test_loads_entries_and_total(self, sql_backend, student):
        asyncio.run(sql_backend.commit_batch("student1", LedgerBatch(
            entries_to_upsert=[make_entry()], point_delta=10, activity_at=datetime(2026, 3, 10),
        )))

        snapshot = asyncio.run(sql_backend.load_snapshot("student1"))

        assert snapshot.total_points == 10
        assert [e.id for e in snapshot.entries] == ["2026-03-10_task1"]
        assert snapshot.entries[0] == make_entry()

    def test_unknown_student(self, sql_backend):
        with pytest.raises(StudentNotFoundException):
            asyncio.run(sql_backend.load_snapshot("ghost"))

"""
Shared fixtures for habit ledger tests.
"""
import os
import tempfile

# Configure before any habit_ledger module reads the environment
os.environ.setdefault("HABIT_LEDGER_DATABASE_URL", "sqlite://")
os.environ.setdefault("HABIT_LEDGER_AUDIT_ENABLED", "false")
os.environ.setdefault("HABIT_LEDGER_LOG_DIR", tempfile.mkdtemp(prefix="habit-ledger-logs-"))
os.environ.setdefault("HABIT_LEDGER_API_KEY", "test-key")

import pytest
from datetime import date, datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from habit_ledger.database import Base
from habit_ledger import models
from habit_ledger.schemas import TaskDefinition
from habit_ledger.services.ledger_store import LedgerEntryStore
from habit_ledger.tests.fakes import FixedDateService, InMemoryBackend, RecordingSink


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def today():
    return date(2026, 3, 10)


@pytest.fixture
def now(today):
    return datetime.combine(today, datetime.min.time()) + timedelta(hours=15)


@pytest.fixture
def make_task(today):
    """Factory for task definitions active over a window around today"""
    def _make(**overrides):
        values = {
            "id": "task1",
            "name": "Read 20 minutes",
            "point_value": 10,
            "recurrence_kind": "daily",
            "required_days": 1,
            "active_from": today - timedelta(days=9),
            "active_until": today + timedelta(days=20),
        }
        values.update(overrides)
        return TaskDefinition(**values)
    return _make


@pytest.fixture
def store():
    return LedgerEntryStore()


@pytest.fixture
def backend():
    backend = InMemoryBackend()
    backend.add_student("student1")
    return backend


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def date_service(today, now):
    return FixedDateService(today, now)


@pytest.fixture
def student(db_session):
    student = models.Student(id="student1", name="Ada", teacher_id="teacher1")
    db_session.add(student)
    db_session.commit()
    db_session.refresh(student)
    return student


def add_task_template(db_session, **overrides) -> models.TaskTemplate:
    """Insert a task template for teacher1 active around the real current date"""
    real_today = date.today()
    values = {
        "teacher_id": "teacher1",
        "name": "Read 20 minutes",
        "point_value": 10,
        "recurrence_kind": "daily",
        "required_days": 1,
        "active_from": real_today - timedelta(days=10),
        "active_until": real_today + timedelta(days=10),
    }
    values.update(overrides)
    task = models.TaskTemplate(**values)
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)
    return task


@pytest.fixture
def task_template_factory(db_session):
    def _make(**overrides):
        return add_task_template(db_session, **overrides)
    return _make

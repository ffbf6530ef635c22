"""
Consistency guard.
Applies toggle results optimistically to the local ledger view, persists them
as one atomic batch and restores the previous state if persistence fails.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager, contextmanager
from datetime import date, datetime
from typing import Dict, Optional

from habit_ledger.constants import PERSISTENCE_FAILURE_MESSAGE
from habit_ledger.exceptions import PersistenceFailureException
from habit_ledger.schemas import (
    LedgerBatch, Notification, TaskDefinition, ToggleOutcome, ToggleResult
)
from habit_ledger.services.date_service import DateService
from habit_ledger.services.entry_keys import EntryKey
from habit_ledger.services.ledger_store import LedgerEntryStore
from habit_ledger.services.persistence import PersistenceBackend
from habit_ledger.services.toggle_engine import ToggleEngine

logger = logging.getLogger("habit_ledger.guard")


class NotificationSink(ABC):
    """Receives the events a UI has to surface proactively"""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        ...

    @abstractmethod
    def error(self, message: str) -> None:
        ...


class LoggingNotificationSink(NotificationSink):
    def notify(self, notification: Notification) -> None:
        logger.info(
            f"Streak bonus awarded: {notification.task_name} (+{notification.bonus_points})"
        )

    def error(self, message: str) -> None:
        logger.warning(f"User notified: {message}")


@contextmanager
def optimistic_update(store: LedgerEntryStore, result: ToggleResult):
    """
    Apply a ToggleResult to the store for the duration of the block.

    If the block raises, only the entries this result touched are restored and
    only its own delta is reverted, so concurrent toggles on other ids survive.
    """
    touched = [entry.id for entry in result.entries_to_upsert] + list(result.entries_to_delete)
    previous = {entry_id: store.get(entry_id) for entry_id in touched}

    for entry_id in result.entries_to_delete:
        store.delete(entry_id)
    for entry in result.entries_to_upsert:
        store.put(entry)
    store.apply_delta(result.point_delta)

    try:
        yield store
    except BaseException:
        for entry_id, entry in previous.items():
            if entry is None:
                store.delete(entry_id)
            else:
                store.put(entry)
        store.apply_delta(-result.point_delta)
        raise


class ConsistencyGuard:
    """Optimistic toggle session for one student"""

    def __init__(
        self,
        student_id: str,
        backend: PersistenceBackend,
        store: Optional[LedgerEntryStore] = None,
        sink: Optional[NotificationSink] = None,
        engine: Optional[ToggleEngine] = None,
        date_service: Optional[DateService] = None
    ):
        self.student_id = student_id
        self.backend = backend
        self.store = store if store is not None else LedgerEntryStore()
        self.sink = sink or LoggingNotificationSink()
        self.engine = engine or ToggleEngine()
        self.date_service = date_service or DateService()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        # Set when a commit failed in an unexpected way and the backend state is unknown
        self.stale = False

    async def hydrate(self) -> LedgerEntryStore:
        """Replace the local view with the persisted ledger"""
        snapshot = await self.backend.load_snapshot(self.student_id)
        self.store = LedgerEntryStore.from_snapshot(snapshot)
        logger.info(
            f"Hydrated ledger for student {self.student_id}: "
            f"{len(self.store)} entries, {self.store.total} points"
        )
        return self.store

    def _lock_key(self, day: date, task: TaskDefinition) -> str:
        # Streak days of one task share the bonus entry, so they serialize per task
        if task.is_streak:
            return EntryKey.streak_bonus(task.id).entry_id
        return self.engine.completion_key(day, task).entry_id

    @asynccontextmanager
    async def _locked(self, lock_key: str):
        """Hold the lock for lock_key; the lock is dropped once nobody uses it"""
        lock = self._locks.setdefault(lock_key, asyncio.Lock())
        self._lock_users[lock_key] = self._lock_users.get(lock_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[lock_key] -= 1
            if self._lock_users[lock_key] == 0:
                del self._lock_users[lock_key]
                del self._locks[lock_key]

    async def toggle_completion(self, day: date, task: TaskDefinition) -> ToggleOutcome:
        """
        Check or uncheck a task on a day.

        The local view changes before persistence completes and is restored
        if persistence fails. Persistence failures are reported through the
        sink and the returned outcome, never raised.

        Args:
            day: Calendar day being toggled
            task: Task being toggled

        Returns:
            ToggleOutcome describing the final state
        """
        async with self._locked(self._lock_key(day, task)):
            now = self.date_service.get_now()
            result = self.engine.compute(
                day, task, self.store, self.date_service.get_today(), now
            )
            return await self.apply(result, now)

    async def apply(self, result: ToggleResult, activity_at: datetime) -> ToggleOutcome:
        """Apply a precomputed ToggleResult transactionally"""
        batch = LedgerBatch(
            entries_to_upsert=result.entries_to_upsert,
            entries_to_delete=result.entries_to_delete,
            point_delta=result.point_delta,
            activity_at=activity_at,
        )

        try:
            with optimistic_update(self.store, result):
                await self.backend.commit_batch(self.student_id, batch)
        except PersistenceFailureException as e:
            logger.error(
                f"Rolled back {result.completion_id} for student {self.student_id}: {e}"
            )
            self.sink.error(PERSISTENCE_FAILURE_MESSAGE)
            return ToggleOutcome(
                completion_id=result.completion_id,
                checked=not result.turned_on,
                committed=False,
                total_points=self.store.total,
                error=PERSISTENCE_FAILURE_MESSAGE,
            )
        except Exception as e:
            self.stale = True
            logger.error(
                f"Unexpected error committing {result.completion_id} for student "
                f"{self.student_id}, view marked stale: {e}"
            )
            raise

        logger.info(
            f"Committed {result.completion_id} for student {self.student_id} "
            f"({'on' if result.turned_on else 'off'}, {result.point_delta:+d})"
        )
        if result.notification:
            self.sink.notify(result.notification)

        return ToggleOutcome(
            completion_id=result.completion_id,
            checked=result.turned_on,
            committed=True,
            point_delta=result.point_delta,
            total_points=self.store.total,
            notification=result.notification,
        )


class GuardRegistry:
    """Keeps one hydrated guard per student; stale or evicted guards are rehydrated"""

    def __init__(self, backend: PersistenceBackend, sink: Optional[NotificationSink] = None):
        self.backend = backend
        self.sink = sink
        self._guards: Dict[str, ConsistencyGuard] = {}
        self._lock = asyncio.Lock()

    async def get(self, student_id: str) -> ConsistencyGuard:
        async with self._lock:
            guard = self._guards.get(student_id)
            if guard is not None and guard.stale:
                self.evict(student_id)
                guard = None
            if guard is None:
                guard = ConsistencyGuard(student_id, self.backend, sink=self.sink)
                await guard.hydrate()
                self._guards[student_id] = guard
            return guard

    def evict(self, student_id: str) -> None:
        """Drop a cached view so the next request rehydrates from storage"""
        self._guards.pop(student_id, None)

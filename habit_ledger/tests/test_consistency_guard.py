"""
Tests for the consistency guard.

Tests cover:
1. Optimistic apply before persistence completes
2. Full rollback when the batch fails
3. Notification and error surfacing
4. Concurrent toggles on different and identical ids
5. Hydration from the backend
"""
import asyncio
from datetime import timedelta

import pytest

from habit_ledger.constants import PERSISTENCE_FAILURE_MESSAGE
from habit_ledger.exceptions import PersistenceFailureException, StudentNotFoundException
from habit_ledger.services.consistency_guard import ConsistencyGuard, GuardRegistry


@pytest.fixture
def guard(backend, sink, date_service):
    return ConsistencyGuard("student1", backend, sink=sink, date_service=date_service)


class TestCommit:
    """Tests for successful toggles"""

    def test_commit_updates_local_and_backend(self, guard, backend, make_task, today, now):
        outcome = asyncio.run(guard.toggle_completion(today, make_task(point_value=10)))

        entry_id = f"{today.isoformat()}_task1"
        assert outcome.committed is True
        assert outcome.checked is True
        assert outcome.total_points == 10
        assert guard.store.has(entry_id)
        assert entry_id in backend.entries["student1"]
        assert backend.totals["student1"] == 10
        assert backend.last_activity["student1"] == now

    def test_batch_contains_all_writes(self, guard, backend, make_task, today):
        task = make_task(recurrence_kind="streak", required_days=1, point_value=20)
        asyncio.run(guard.toggle_completion(today, task))

        batch = backend.batches[-1]
        assert len(backend.batches) == 1
        assert {e.id for e in batch.entries_to_upsert} == {f"{today.isoformat()}_task1", "STREAK_BONUS_task1"}
        assert batch.point_delta == 20

    def test_bonus_notification_surfaced(self, guard, sink, make_task, today):
        task = make_task(name="Stretch", recurrence_kind="streak", required_days=1, point_value=20)
        outcome = asyncio.run(guard.toggle_completion(today, task))

        assert outcome.notification.kind == "streak_bonus_awarded"
        assert [n.task_name for n in sink.notifications] == ["Stretch"]
        assert sink.errors == []

    def test_optimistic_state_visible_while_in_flight(self, guard, backend, make_task, today):
        """The local view changes before the batch is confirmed"""
        task = make_task(point_value=10)

        async def scenario():
            backend.commit_gate = asyncio.Event()
            pending = asyncio.create_task(guard.toggle_completion(today, task))
            await asyncio.sleep(0)
            seen = (guard.store.total, backend.totals["student1"])
            backend.commit_gate.set()
            await pending
            return seen

        assert asyncio.run(scenario()) == (10, 0)
        assert backend.totals["student1"] == 10


class TestRollback:
    """Tests for persistence failure handling"""

    def test_failure_restores_pre_toggle_state(self, guard, backend, sink, make_task, today):
        task = make_task(point_value=10)
        asyncio.run(guard.toggle_completion(today - timedelta(days=1), task))
        before_entries = sorted(e.id for e in guard.store.entries())
        before_total = guard.store.total

        backend.fail_commits = True
        outcome = asyncio.run(guard.toggle_completion(today, task))

        assert outcome.committed is False
        assert outcome.checked is False
        assert outcome.error == PERSISTENCE_FAILURE_MESSAGE
        assert sink.errors == [PERSISTENCE_FAILURE_MESSAGE]
        assert sorted(e.id for e in guard.store.entries()) == before_entries
        assert guard.store.total == before_total
        assert guard.store.is_reconciled()

    def test_failed_uncheck_restores_entries(self, guard, backend, make_task, today):
        task = make_task(recurrence_kind="streak", required_days=1, point_value=20)
        asyncio.run(guard.toggle_completion(today, task))

        backend.fail_commits = True
        outcome = asyncio.run(guard.toggle_completion(today, task))

        assert outcome.checked is True
        assert guard.store.has("STREAK_BONUS_task1")
        assert guard.store.total == 20

    def test_no_notification_on_failure(self, guard, backend, sink, make_task, today):
        backend.fail_commits = True
        task = make_task(recurrence_kind="streak", required_days=1)
        outcome = asyncio.run(guard.toggle_completion(today, task))

        assert outcome.notification is None
        assert sink.notifications == []

    def test_no_automatic_retry(self, guard, backend, make_task, today):
        backend.fail_commits = True
        asyncio.run(guard.toggle_completion(today, make_task()))
        backend.fail_commits = False

        assert backend.batches == []
        assert backend.totals["student1"] == 0

    def test_unexpected_errors_still_roll_back(self, guard, backend, make_task, today):
        async def explode(student_id, batch):
            raise RuntimeError("bug")

        backend.commit_batch = explode
        with pytest.raises(RuntimeError):
            asyncio.run(guard.toggle_completion(today, make_task()))

        assert len(guard.store) == 0
        assert guard.store.total == 0
        assert guard.stale is True

    def test_stale_guard_is_rehydrated(self, backend, make_task, today):
        """After an unexpected commit error the registry reloads the view"""
        registry = GuardRegistry(backend)
        first = asyncio.run(registry.get("student1"))

        async def explode(student_id, batch):
            raise RuntimeError("connection reset mid-commit")

        real_commit = backend.commit_batch
        backend.commit_batch = explode
        with pytest.raises(RuntimeError):
            asyncio.run(first.toggle_completion(today, make_task()))
        backend.commit_batch = real_commit
        backend.totals["student1"] = 7

        second = asyncio.run(registry.get("student1"))

        assert second is not first
        assert second.store.total == 7


class TestConcurrency:
    """Tests for overlapping toggles"""

    def test_rollback_does_not_clobber_other_task(self, guard, backend, make_task, today):
        """A failed toggle only reverts its own entries and delta"""
        reading = make_task(id="reading", point_value=10)
        chores = make_task(id="chores", point_value=4)
        real_commit = backend.commit_batch

        async def flaky_commit(student_id, batch):
            await asyncio.sleep(0)
            if batch.entries_to_upsert[0].task_id == "reading":
                await asyncio.sleep(0)
                raise PersistenceFailureException("batch commit", "timeout")
            await real_commit(student_id, batch)

        backend.commit_batch = flaky_commit

        async def scenario():
            return await asyncio.gather(
                guard.toggle_completion(today, reading),
                guard.toggle_completion(today, chores),
            )

        failed, committed = asyncio.run(scenario())

        assert failed.committed is False
        assert committed.committed is True
        assert guard.store.total == 4
        assert guard.store.has(f"{today.isoformat()}_chores")
        assert not guard.store.has(f"{today.isoformat()}_reading")
        assert backend.totals["student1"] == 4

    def test_same_id_toggles_are_serialized(self, guard, backend, make_task, today):
        """Two toggles on one id end in the original state"""
        task = make_task(point_value=10)

        async def scenario():
            return await asyncio.gather(
                guard.toggle_completion(today, task),
                guard.toggle_completion(today, task),
            )

        first, second = asyncio.run(scenario())

        assert first.checked is True
        assert second.checked is False
        assert guard.store.total == 0
        assert backend.totals["student1"] == 0
        assert backend.entries["student1"] == {}

    def test_reconciled_after_mixed_sequence(self, guard, backend, make_task, today):
        tasks = [
            make_task(id="a", point_value=10),
            make_task(id="b", point_value=-5),
            make_task(id="c", recurrence_kind="once", point_value=50),
            make_task(id="d", recurrence_kind="streak", required_days=2, point_value=30),
        ]

        async def scenario():
            for offset in range(3):
                day = today - timedelta(days=offset)
                await asyncio.gather(*(guard.toggle_completion(day, t) for t in tasks))

        asyncio.run(scenario())

        assert guard.store.is_reconciled()
        ledger_sum = sum(e.points_earned for e in backend.entries["student1"].values())
        assert backend.totals["student1"] == ledger_sum == guard.store.total

    def test_locks_released_after_use(self, guard, make_task, today):
        """Per-id locks do not accumulate over many distinct days"""
        task = make_task(point_value=1)

        async def scenario():
            await asyncio.gather(*(
                guard.toggle_completion(today - timedelta(days=offset), task) for offset in range(5)
            ))
            await guard.toggle_completion(today, task)

        asyncio.run(scenario())

        assert guard._locks == {}
        assert guard._lock_users == {}


class TestHydration:
    """Tests for loading the persisted ledger"""

    def test_hydrate_loads_snapshot(self, backend, sink, date_service, make_task, today):
        first = ConsistencyGuard("student1", backend, sink=sink, date_service=date_service)
        asyncio.run(first.toggle_completion(today, make_task(point_value=10)))

        second = ConsistencyGuard("student1", backend, sink=sink, date_service=date_service)
        store = asyncio.run(second.hydrate())

        assert store.total == 10
        assert store.has(f"{today.isoformat()}_task1")

    def test_registry_reuses_hydrated_guard(self, backend):
        registry = GuardRegistry(backend)

        async def scenario():
            return await registry.get("student1"), await registry.get("student1")

        first, second = asyncio.run(scenario())
        assert first is second

    def test_evicted_guard_rehydrates(self, backend):
        registry = GuardRegistry(backend)
        first = asyncio.run(registry.get("student1"))
        backend.totals["student1"] = 42

        registry.evict("student1")
        second = asyncio.run(registry.get("student1"))

        assert second is not first
        assert second.store.total == 42

    def test_registry_unknown_student(self, backend):
        registry = GuardRegistry(backend)
        with pytest.raises(StudentNotFoundException):
            asyncio.run(registry.get("ghost"))

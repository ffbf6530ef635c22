"""
Toggle engine.
Pure computation of the ledger mutations needed to check or uncheck a task
on a calendar day. Nothing here touches the database or the store it reads.
"""
from datetime import date, datetime

from habit_ledger.constants import (
    NOTIFICATION_STREAK_BONUS_AWARDED,
    RECURRENCE_ONCE,
    RECURRENCE_STREAK_BONUS,
)
from habit_ledger.schemas import LedgerEntry, Notification, TaskDefinition, ToggleResult
from habit_ledger.services.entry_keys import EntryKey
from habit_ledger.services.ledger_store import LedgerEntryStore
from habit_ledger.services.streak_service import calculate_streak_progress


class ToggleEngine:
    """Computes ToggleResults for a student's ledger"""

    @staticmethod
    def completion_key(day: date, task: TaskDefinition) -> EntryKey:
        """One-time tasks share a single id; everything else is keyed per day"""
        if task.recurrence_kind == RECURRENCE_ONCE:
            return EntryKey.once(task.id)
        return EntryKey.for_day(day, task.id)

    @staticmethod
    def daily_points(task: TaskDefinition) -> int:
        """Streak day markers carry nothing; the bonus carries the task value"""
        return 0 if task.is_streak else task.point_value

    def compute(
        self,
        day: date,
        task: TaskDefinition,
        store: LedgerEntryStore,
        today: date,
        now: datetime
    ) -> ToggleResult:
        """
        Compute the mutations for toggling a task on a day.

        The completion is turned off when its entry already exists, and on
        otherwise.

        Args:
            day: Calendar day the student is toggling
            task: Task being toggled
            store: Current ledger snapshot (not modified)
            today: Day the action is performed, credited to one-time tasks
            now: Timestamp recorded on new entries

        Returns:
            ToggleResult with entries to upsert/delete and the point delta
        """
        completion_id = self.completion_key(day, task).entry_id
        if store.has(completion_id):
            return self._turn_off(completion_id, task, store)
        return self._turn_on(completion_id, day, task, store, today, now)

    def _turn_on(
        self,
        completion_id: str,
        day: date,
        task: TaskDefinition,
        store: LedgerEntryStore,
        today: date,
        now: datetime
    ) -> ToggleResult:
        points = self.daily_points(task)
        credited_day = today if task.recurrence_kind == RECURRENCE_ONCE else day
        entry = LedgerEntry(
            id=completion_id,
            task_id=task.id,
            task_name=task.name,
            recurrence_kind=task.recurrence_kind,
            day_recorded=credited_day,
            points_earned=points,
            recorded_at=now,
        )
        upserts = [entry]
        delta = points
        notification = None

        if task.is_streak:
            projected = LedgerEntryStore(store.entries() + [entry], store.total)
            progress = calculate_streak_progress(task, projected)

            # Exact crossing only: later days never re-award the bonus
            if progress.completed_days == progress.required and not progress.bonus_awarded:
                upserts.append(LedgerEntry(
                    id=EntryKey.streak_bonus(task.id).entry_id,
                    task_id=task.id,
                    task_name=task.name,
                    recurrence_kind=RECURRENCE_STREAK_BONUS,
                    day_recorded=day,
                    points_earned=task.point_value,
                    recorded_at=now,
                ))
                delta += task.point_value
                notification = Notification(
                    kind=NOTIFICATION_STREAK_BONUS_AWARDED,
                    task_name=task.name,
                    bonus_points=task.point_value,
                )

        return ToggleResult(
            completion_id=completion_id,
            turned_on=True,
            entries_to_upsert=upserts,
            point_delta=delta,
            notification=notification,
        )

    def _turn_off(
        self,
        completion_id: str,
        task: TaskDefinition,
        store: LedgerEntryStore
    ) -> ToggleResult:
        # Subtract what the entry actually earned so the total stays reconcilable
        deletes = [completion_id]
        delta = -store.get(completion_id).points_earned

        if task.is_streak:
            bonus = store.get(EntryKey.streak_bonus(task.id).entry_id)
            if bonus is not None:
                # Any unchecked day revokes the bonus; remaining days are not re-counted
                deletes.append(bonus.id)
                delta -= bonus.points_earned

        return ToggleResult(
            completion_id=completion_id,
            turned_on=False,
            entries_to_delete=deletes,
            point_delta=delta,
        )


def compute_toggle(
    day: date,
    task: TaskDefinition,
    store: LedgerEntryStore,
    today: date,
    now: datetime
) -> ToggleResult:
    """Module-level shortcut for ToggleEngine().compute"""
    return ToggleEngine().compute(day, task, store, today, now)

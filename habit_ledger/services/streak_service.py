"""
Streak progress calculation.
Progress is always derived from the raw ledger entries, never stored.
"""
from habit_ledger.schemas import StreakProgress, TaskDefinition
from habit_ledger.services.entry_keys import EntryKey, KIND_DAY
from habit_ledger.services.ledger_store import LedgerEntryStore


def count_qualifying_days(task: TaskDefinition, store: LedgerEntryStore) -> int:
    """
    Count day entries for a task whose credited day lies in its active window.

    Bonus and one-time entries never count. Entries recorded for days outside
    the window are ignored even when present.
    """
    count = 0
    for entry in store.all_for_task(task.id):
        key = EntryKey.parse(entry.id)
        if key is None or key.kind != KIND_DAY or key.task_id != task.id:
            continue
        if task.is_active_on(key.day):
            count += 1
    return count


def calculate_streak_progress(task: TaskDefinition, store: LedgerEntryStore) -> StreakProgress:
    """
    Calculate how far a student is through a streak task.

    Args:
        task: Streak task
        store: Current ledger snapshot

    Returns:
        StreakProgress with completed days, required days and bonus state
    """
    return StreakProgress(
        completed_days=count_qualifying_days(task, store),
        required=task.effective_required_days,
        bonus_awarded=store.has(EntryKey.streak_bonus(task.id).entry_id),
    )

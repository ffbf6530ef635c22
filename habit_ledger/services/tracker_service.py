"""
Tracker grid service.
Renders a student's month as task rows of day cells from the local ledger view.
"""
from datetime import date
from typing import List

from habit_ledger.schemas import TaskDefinition, TrackerCell, TrackerResponse, TrackerRow
from habit_ledger.services.date_service import DateService
from habit_ledger.services.ledger_store import LedgerEntryStore
from habit_ledger.services.streak_service import calculate_streak_progress
from habit_ledger.services.toggle_engine import ToggleEngine


def build_tracker(
    student_id: str,
    roster: List[TaskDefinition],
    store: LedgerEntryStore,
    month_start: date,
    today: date
) -> TrackerResponse:
    """
    Build the month grid.

    A cell is checked when its completion entry exists. One-time tasks show
    the same state on every day since they share one entry.
    """
    days = DateService.get_month_days(month_start)
    rows = []
    for task in roster:
        cells = [
            TrackerCell(
                day=day,
                checked=store.has(ToggleEngine.completion_key(day, task).entry_id),
                enabled=DateService.is_toggle_allowed(day, task, today),
            )
            for day in days
        ]
        streak = calculate_streak_progress(task, store) if task.is_streak else None
        rows.append(TrackerRow(task=task, cells=cells, streak=streak))

    return TrackerResponse(
        student_id=student_id,
        month=month_start.strftime("%Y-%m"),
        total_points=store.total,
        rows=rows,
    )

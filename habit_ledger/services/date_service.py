"""
Date calculation service.
Handles today/now lookups, tracker month grids and toggle eligibility.
"""
import calendar
from datetime import datetime, date
from typing import List

from habit_ledger.exceptions import ValidationException
from habit_ledger.schemas import TaskDefinition


class DateService:
    """Service for date-related operations"""

    @staticmethod
    def get_today() -> date:
        """Calendar day the student is acting on"""
        return datetime.now().date()

    @staticmethod
    def get_now() -> datetime:
        return datetime.now()

    @staticmethod
    def parse_time(time_str: str) -> tuple[int, int]:
        """
        Parse time string into hour and minute.

        Args:
            time_str: Time string in "HH:MM" format

        Returns:
            Tuple of (hour, minute)

        Raises:
            ValueError: If time string is invalid
        """
        parts = time_str.split(":")
        hour = int(parts[0])
        minute = int(parts[1])
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid time: {time_str}")
        return hour, minute

    @staticmethod
    def parse_month(month_str: str) -> date:
        """
        Parse "YYYY-MM" into the first day of that month.

        Raises:
            ValidationException: If the string is not a valid month
        """
        try:
            year, month = month_str.split("-")
            return date(int(year), int(month), 1)
        except (ValueError, TypeError):
            raise ValidationException("month", f"expected YYYY-MM, got {month_str!r}")

    @staticmethod
    def get_month_days(month_start: date) -> List[date]:
        """All calendar days of the month containing month_start"""
        days_in_month = calendar.monthrange(month_start.year, month_start.month)[1]
        return [
            date(month_start.year, month_start.month, day)
            for day in range(1, days_in_month + 1)
        ]

    @staticmethod
    def is_toggle_allowed(day: date, task: TaskDefinition, today: date) -> bool:
        """
        Whether the tracker lets a student toggle this cell.

        Future days and days outside the task window are disabled.
        """
        return day <= today and task.is_active_on(day)

"""
Deterministic ledger entry ids.

Every completion is stored under an id derived from what it credits:

    {ISO-day}_{taskId}       daily, weekly and streak day entries
    ONCE_{taskId}            one-time tasks
    STREAK_BONUS_{taskId}    lump bonus for reaching a streak threshold

Parsing splits a day id on the first separator only. ISO dates never contain
the separator, so task ids that do are recovered intact.
"""
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict

from habit_ledger.constants import ID_SEPARATOR, ONCE_PREFIX, STREAK_BONUS_PREFIX

KIND_DAY = "day"
KIND_ONCE = "once"
KIND_STREAK_BONUS = "streak_bonus"


class EntryKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    task_id: str
    day: Optional[date] = None

    @classmethod
    def for_day(cls, day: date, task_id: str) -> "EntryKey":
        return cls(kind=KIND_DAY, task_id=task_id, day=day)

    @classmethod
    def once(cls, task_id: str) -> "EntryKey":
        return cls(kind=KIND_ONCE, task_id=task_id)

    @classmethod
    def streak_bonus(cls, task_id: str) -> "EntryKey":
        return cls(kind=KIND_STREAK_BONUS, task_id=task_id)

    @property
    def entry_id(self) -> str:
        if self.kind == KIND_ONCE:
            return f"{ONCE_PREFIX}{self.task_id}"
        if self.kind == KIND_STREAK_BONUS:
            return f"{STREAK_BONUS_PREFIX}{self.task_id}"
        return f"{self.day.isoformat()}{ID_SEPARATOR}{self.task_id}"

    def __str__(self) -> str:
        return self.entry_id

    @classmethod
    def parse(cls, entry_id: str) -> Optional["EntryKey"]:
        """
        Recover the key an id was built from.

        Returns:
            EntryKey, or None for ids that match no known format
        """
        if entry_id.startswith(STREAK_BONUS_PREFIX):
            task_id = entry_id[len(STREAK_BONUS_PREFIX):]
            return cls.streak_bonus(task_id) if task_id else None

        if entry_id.startswith(ONCE_PREFIX):
            task_id = entry_id[len(ONCE_PREFIX):]
            return cls.once(task_id) if task_id else None

        day_token, separator, task_id = entry_id.partition(ID_SEPARATOR)
        if not separator or not task_id:
            return None
        try:
            day = date.fromisoformat(day_token)
        except ValueError:
            return None
        return cls.for_day(day, task_id)

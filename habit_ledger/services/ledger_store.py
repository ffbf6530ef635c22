"""
In-memory view of one student's ledger.
Holds completion entries keyed by their deterministic id plus the running
point total. The consistency guard keeps it in step with the database.
"""
from typing import Dict, Iterable, List, Optional

from habit_ledger.schemas import LedgerEntry, LedgerSnapshot


class LedgerEntryStore:
    """Snapshot of a student's ledger entries and point total"""

    def __init__(self, entries: Iterable[LedgerEntry] = (), total: int = 0):
        self._entries: Dict[str, LedgerEntry] = {entry.id: entry for entry in entries}
        self._total = total

    @classmethod
    def from_snapshot(cls, snapshot: LedgerSnapshot) -> "LedgerEntryStore":
        return cls(snapshot.entries, snapshot.total_points)

    def has(self, entry_id: str) -> bool:
        return entry_id in self._entries

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        return self._entries.get(entry_id)

    def put(self, entry: LedgerEntry) -> None:
        """Insert or replace the entry stored under entry.id"""
        self._entries[entry.id] = entry

    def delete(self, entry_id: str) -> Optional[LedgerEntry]:
        """Remove an entry. Missing ids are ignored."""
        return self._entries.pop(entry_id, None)

    def all_for_task(self, task_id: str) -> List[LedgerEntry]:
        return [entry for entry in self._entries.values() if entry.task_id == task_id]

    def entries(self) -> List[LedgerEntry]:
        return list(self._entries.values())

    @property
    def total(self) -> int:
        return self._total

    def apply_delta(self, delta: int) -> int:
        self._total += delta
        return self._total

    def sum_of_entries(self) -> int:
        return sum(entry.points_earned for entry in self._entries.values())

    def is_reconciled(self) -> bool:
        """True when the running total matches the entries it was built from"""
        return self._total == self.sum_of_entries()

    def __contains__(self, entry_id: str) -> bool:
        return self.has(entry_id)

    def __len__(self) -> int:
        return len(self._entries)

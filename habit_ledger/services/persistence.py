"""
Persistence backend contract.
The consistency guard talks to storage only through this interface, so the
SQL implementation can be swapped for any store offering atomic batches and
numeric increments.
"""
from abc import ABC, abstractmethod

from habit_ledger.schemas import LedgerBatch, LedgerSnapshot


class PersistenceBackend(ABC):
    """Storage for one or more students' ledgers"""

    @abstractmethod
    async def load_snapshot(self, student_id: str) -> LedgerSnapshot:
        """
        Read back the persisted ledger of a student.

        Raises:
            StudentNotFoundException: If the student does not exist
            PersistenceFailureException: If the read fails
        """

    @abstractmethod
    async def commit_batch(self, student_id: str, batch: LedgerBatch) -> None:
        """
        Write entry upserts/deletes, the total increment and the activity
        timestamp as one atomic unit.

        Raises:
            PersistenceFailureException: If nothing could be written
        """

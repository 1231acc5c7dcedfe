"""
Generated project ledger interface.

Append-only record of which occurrences were generated or attempted. The
ledger holds no business rules; the scheduler decides what the records mean.
"""

from abc import ABC, abstractmethod
from typing import List

from hidesync_scheduler.schemas.recurring_project import GeneratedProjectRecord


class GeneratedProjectLedger(ABC):
    """Abstract interface for generated project bookkeeping."""

    @abstractmethod
    def record(self, entry: GeneratedProjectRecord) -> None:
        """Append a ledger entry."""
        pass

    @abstractmethod
    def has(self, definition_id: str, occurrence_number: int) -> bool:
        """Whether a generated record exists for the occurrence."""
        pass

    @abstractmethod
    def list_by_definition(self, definition_id: str) -> List[GeneratedProjectRecord]:
        """All records of a definition, ascending by occurrence number then attempt time."""
        pass

"""
Recurring project store interface.

Loads and saves recurring project definitions, including their scheduling
bookkeeping.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from hidesync_scheduler.schemas.recurring_project import RecurringProjectDefinition


class RecurringProjectStore(ABC):
    """Abstract interface for recurring project definition persistence."""

    @abstractmethod
    def load(self, definition_id: str) -> Optional[RecurringProjectDefinition]:
        """Get a definition by ID, or None if it does not exist."""
        pass

    @abstractmethod
    def save(self, definition: RecurringProjectDefinition) -> RecurringProjectDefinition:
        """Insert or update a definition and return the stored version."""
        pass

    @abstractmethod
    def list_definitions(
        self,
        skip: int = 0,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        **filters,
    ) -> List[RecurringProjectDefinition]:
        """
        List definitions in creation order.

        Args:
            skip: Number of definitions to skip
            limit: Maximum number of definitions to return, all when None
            search: Case-insensitive text matched against name and description
            **filters: Field values to match exactly, e.g. is_active=True
        """
        pass

# hidesync_scheduler/repositories/in_memory.py
"""
In-memory implementations of the scheduler ports.

Used by tests and by callers that run the scheduler without a database.
Stored objects are deep-copied on the way in and out so callers never share
mutable state with the store.
"""

import threading
import uuid
from typing import Dict, List, Optional

from hidesync_scheduler.core.exceptions import ConcurrentOperationException
from hidesync_scheduler.db.models.enums import GenerationStatus
from hidesync_scheduler.interfaces.generated_project_ledger import GeneratedProjectLedger
from hidesync_scheduler.interfaces.project_creator import ProjectCreator
from hidesync_scheduler.interfaces.recurring_project_store import RecurringProjectStore
from hidesync_scheduler.schemas.recurring_project import (
    GeneratedProjectRecord,
    PersistedProject,
    ProjectPayload,
    RecurringProjectDefinition,
)


class InMemoryRecurringProjectStore(RecurringProjectStore):
    """Dictionary-backed recurring project store."""

    def __init__(self):
        self._definitions: Dict[str, RecurringProjectDefinition] = {}
        self._lock = threading.Lock()

    def load(self, definition_id: str) -> Optional[RecurringProjectDefinition]:
        with self._lock:
            definition = self._definitions.get(definition_id)
            return definition.model_copy(deep=True) if definition else None

    def save(self, definition: RecurringProjectDefinition) -> RecurringProjectDefinition:
        with self._lock:
            stored = definition.model_copy(deep=True)
            self._definitions[stored.id] = stored
            return stored.model_copy(deep=True)

    def list_definitions(
        self,
        skip: int = 0,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        **filters,
    ) -> List[RecurringProjectDefinition]:
        needle = search.lower() if search else None
        with self._lock:
            matches = [
                d.model_copy(deep=True)
                for d in self._definitions.values()
                if all(getattr(d, key) == value for key, value in filters.items())
                and (needle is None or needle in f"{d.name}\n{d.description or ''}".lower())
            ]
        end = None if limit is None else skip + limit
        return matches[skip:end]


class InMemoryGeneratedProjectLedger(GeneratedProjectLedger):
    """
    List-backed ledger.

    Enforces the same rule as the database index: at most one generated
    record per (definition, occurrence number).
    """

    def __init__(self):
        self._records: List[GeneratedProjectRecord] = []
        self._lock = threading.Lock()

    def record(self, entry: GeneratedProjectRecord) -> None:
        with self._lock:
            if entry.status == GenerationStatus.GENERATED and self._has_generated(
                entry.recurring_project_id, entry.occurrence_number
            ):
                raise ConcurrentOperationException(
                    f"Occurrence {entry.occurrence_number} of recurring project "
                    f"{entry.recurring_project_id} was already generated",
                    operation="record_generated_project",
                    details={
                        "recurring_project_id": entry.recurring_project_id,
                        "occurrence_number": entry.occurrence_number,
                    },
                )
            self._records.append(entry.model_copy(deep=True))

    def has(self, definition_id: str, occurrence_number: int) -> bool:
        with self._lock:
            return self._has_generated(definition_id, occurrence_number)

    def list_by_definition(self, definition_id: str) -> List[GeneratedProjectRecord]:
        with self._lock:
            records = [r for r in self._records if r.recurring_project_id == definition_id]
        # Stable sort keeps insertion order among attempts at the same time.
        records.sort(key=lambda r: (r.occurrence_number, r.actual_generation_date))
        return [r.model_copy(deep=True) for r in records]

    def _has_generated(self, definition_id: str, occurrence_number: int) -> bool:
        return any(
            r.recurring_project_id == definition_id
            and r.occurrence_number == occurrence_number
            and r.status == GenerationStatus.GENERATED
            for r in self._records
        )


class InMemoryProjectCreator(ProjectCreator):
    """Keeps created projects in a list; handy as a test double."""

    def __init__(self):
        self.created: List[ProjectPayload] = []
        self._lock = threading.Lock()

    def create_project(self, payload: ProjectPayload) -> PersistedProject:
        with self._lock:
            self.created.append(payload.model_copy(deep=True))
        return PersistedProject(
            id=str(uuid.uuid4()),
            name=payload.name,
            status=payload.status,
            start_date=payload.start_date,
            due_date=payload.due_date,
        )

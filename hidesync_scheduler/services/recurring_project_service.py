# hidesync_scheduler/services/recurring_project_service.py
"""
Recurring project service for HideSync.

This module provides the management side of recurring projects: creating and
updating schedules, activating and deactivating them, and the read models
used by the dashboard. Generating projects is left to the scheduler.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from hidesync_scheduler.core.config import settings
from hidesync_scheduler.core.events import EventBus, RecurringProjectCreated
from hidesync_scheduler.core.exceptions import (
    ConfigurationError,
    EntityNotFoundException,
    ValidationException,
)
from hidesync_scheduler.interfaces.generated_project_ledger import GeneratedProjectLedger
from hidesync_scheduler.interfaces.recurring_project_store import RecurringProjectStore
from hidesync_scheduler.schemas.recurring_project import (
    RecurrencePattern,
    RecurringProjectCreate,
    RecurringProjectDefinition,
    RecurringProjectStats,
    RecurringProjectUpdate,
    RecurringProjectWithDetails,
)
from hidesync_scheduler.services.base_service import BaseService
from hidesync_scheduler.services.recurrence_calculator import OccurrenceCalculator

logger = logging.getLogger(__name__)

# Fields an update may change but never clear.
REQUIRED_FIELDS = {"name", "duration", "components", "auto_generate", "advance_notice_days"}


class RecurringProjectService(BaseService[RecurringProjectDefinition]):
    """
    Service for managing recurring projects in the HideSync system.

    Provides functionality for:
    - Recurring project management
    - Recurrence pattern validation and preview
    - Dashboard statistics
    """

    def __init__(
        self,
        store: RecurringProjectStore,
        ledger: GeneratedProjectLedger,
        calculator: Optional[OccurrenceCalculator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        session: Optional[Session] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize RecurringProjectService with dependencies.

        Args:
            store: Recurring project persistence
            ledger: Generated project ledger
            calculator: Occurrence calculator
            clock: Returns the current time
            session: Optional database session wrapping each operation
            event_bus: Optional event bus for publishing domain events
        """
        super().__init__(session=session, event_bus=event_bus)
        self.store = store
        self.ledger = ledger
        self.calculator = calculator or OccurrenceCalculator()
        self.clock = clock or datetime.now

    def create_recurring_project(
        self, data: RecurringProjectCreate, user_id: Optional[str] = None
    ) -> RecurringProjectDefinition:
        """
        Create a new recurring project with its recurrence pattern.

        Args:
            data: Recurring project data with recurrence pattern
            user_id: ID of the user creating the project

        Returns:
            Created recurring project

        Raises:
            ValidationException: If the recurrence pattern is invalid
        """
        pattern = data.recurrence_pattern
        first_occurrence = self._validate_pattern(
            pattern, lambda: self.calculator.first_occurrence(pattern)
        )

        fields = {
            name: getattr(data, name)
            for name in RecurringProjectCreate.model_fields
            if name != "recurrence_pattern"
        }
        definition = RecurringProjectDefinition(
            id=str(uuid.uuid4()),
            pattern=pattern,
            next_occurrence=first_occurrence,
            remaining_occurrences=pattern.end_after_occurrences,
            created_by=user_id,
            **fields,
        )

        with self.transaction():
            saved = self.store.save(definition)

        self.publish(
            RecurringProjectCreated(
                recurring_project_id=saved.id,
                name=saved.name,
                user_id=user_id,
            )
        )
        logger.info(
            f"Created recurring project {saved.id} ({pattern.frequency.value}), "
            f"first occurrence {first_occurrence}"
        )
        return saved

    def update_recurring_project(
        self, project_id: str, data: RecurringProjectUpdate
    ) -> RecurringProjectDefinition:
        """
        Update an existing recurring project and optionally its recurrence pattern.

        A pattern change recomputes the cached next occurrence from the last
        generated one; occurrences already generated are kept.

        Raises:
            EntityNotFoundException: If recurring project not found
            ValidationException: If the updated pattern is invalid
        """
        definition = self._get(project_id)

        updates = {}
        for name in data.model_fields_set:
            value = getattr(data, name)
            if name == "recurrence_pattern":
                continue
            if value is None and name in REQUIRED_FIELDS:
                continue
            updates[name] = value

        if data.recurrence_pattern is not None:
            pattern_updates = data.recurrence_pattern.model_dump(exclude_unset=True)
            try:
                pattern = RecurrencePattern.model_validate(
                    {**definition.pattern.model_dump(), **pattern_updates}
                )
            except ValidationError as e:
                errors = {}
                for err in e.errors():
                    field = ".".join(str(p) for p in err["loc"]) or "recurrence_pattern"
                    errors.setdefault(field, []).append(err["msg"])
                raise ValidationException("Invalid recurrence pattern", errors)

            updates["pattern"] = pattern
            updates["next_occurrence"] = self._validate_pattern(
                pattern,
                lambda: self._next_after_last(pattern, definition),
            )
            if pattern.end_after_occurrences is not None:
                updates["remaining_occurrences"] = max(
                    0, pattern.end_after_occurrences - definition.total_occurrences
                )
            else:
                updates["remaining_occurrences"] = None

        with self.transaction():
            saved = self.store.save(definition.model_copy(update=updates))

        logger.info(f"Updated recurring project {project_id}: {sorted(updates)}")
        return saved

    def toggle_recurring_project_active(
        self, project_id: str, is_active: bool
    ) -> RecurringProjectDefinition:
        """
        Activate or deactivate a recurring project.

        Reactivating clears the needs_attention flag set when generation was
        halted after repeated failures.

        Raises:
            EntityNotFoundException: If recurring project not found
        """
        definition = self._get(project_id)
        updates = {"is_active": is_active}
        if is_active:
            updates["needs_attention"] = False

        with self.transaction():
            saved = self.store.save(definition.model_copy(update=updates))

        logger.info(
            f"Recurring project {project_id} {'activated' if is_active else 'deactivated'}"
        )
        return saved

    def delete_recurring_project(self, project_id: str) -> RecurringProjectDefinition:
        """
        Retire a recurring project.

        The definition is deactivated rather than removed so its generation
        ledger, and the projects it points at, stay intact.

        Raises:
            EntityNotFoundException: If recurring project not found
        """
        definition = self._get(project_id)
        with self.transaction():
            saved = self.store.save(definition.model_copy(update={"is_active": False}))

        logger.info(f"Deleted recurring project {project_id}, ledger kept")
        return saved

    def get_recurring_project(self, project_id: str) -> RecurringProjectWithDetails:
        """
        Get a recurring project with its ledger and upcoming occurrences.

        Raises:
            EntityNotFoundException: If recurring project not found
        """
        definition = self._get(project_id)
        return RecurringProjectWithDetails(
            **{
                name: getattr(definition, name)
                for name in RecurringProjectDefinition.model_fields
            },
            generated_projects=self.ledger.list_by_definition(project_id),
            upcoming_occurrences=self._upcoming(definition, settings.SCHEDULER_UPCOMING_PREVIEW_LIMIT),
        )

    def list_recurring_projects(
        self,
        skip: int = 0,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        **filters,
    ) -> List[RecurringProjectDefinition]:
        """
        List recurring projects with optional filtering and pagination.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return
            search: Text matched against name and description
            **filters: Exact matches such as is_active, client_id, project_type
                or created_by; None values are ignored

        Returns:
            Recurring projects in creation order
        """
        filters = {key: value for key, value in filters.items() if value is not None}
        return self.store.list_definitions(skip=skip, limit=limit, search=search, **filters)

    def get_upcoming_occurrences(
        self, project_id: str, limit: Optional[int] = None
    ) -> List[date]:
        """
        Get the next occurrence dates of a recurring project.

        Args:
            project_id: ID of the recurring project
            limit: Maximum number of dates, defaults to the configured preview limit

        Returns:
            Ascending list of dates, empty for inactive projects
        """
        definition = self._get(project_id)
        return self._upcoming(definition, limit or settings.SCHEDULER_UPCOMING_PREVIEW_LIMIT)

    def preview_occurrences(
        self, pattern: RecurrencePattern, from_date: Optional[date] = None, limit: int = 5
    ) -> List[date]:
        """
        Compute occurrences of an unsaved pattern.

        Raises:
            ValidationException: If the pattern is invalid
        """
        return self._validate_pattern(
            pattern,
            lambda: self.calculator.upcoming_occurrences(pattern, after=from_date, limit=limit),
        )

    def get_projects_due_within(self, days: int = 7) -> List[RecurringProjectDefinition]:
        """
        Get active recurring projects whose next occurrence is due within a number of days.

        Returns:
            Recurring projects sorted by next occurrence
        """
        until = self.clock().date() + timedelta(days=days)
        due = [
            d
            for d in self.store.list_definitions(is_active=True)
            if d.next_occurrence is not None and d.next_occurrence <= until
        ]
        due.sort(key=lambda d: d.next_occurrence)
        return due

    def get_recurring_project_count(self) -> RecurringProjectStats:
        """
        Get count of recurring projects by status.

        Returns:
            Counters for the dashboard
        """
        definitions = self.store.list_definitions()
        active = sum(1 for d in definitions if d.is_active)
        return RecurringProjectStats(
            total=len(definitions),
            active=active,
            inactive=len(definitions) - active,
            needs_attention=sum(1 for d in definitions if d.needs_attention),
            due_this_week=len(self.get_projects_due_within(7)),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, project_id: str) -> RecurringProjectDefinition:
        definition = self.store.load(project_id)
        if definition is None:
            raise EntityNotFoundException("RecurringProject", project_id)
        return definition

    def _validate_pattern(self, pattern: RecurrencePattern, compute):
        """Run a calculation, reporting pattern errors as validation errors."""
        try:
            self.calculator.validate(pattern)
            return compute()
        except ConfigurationError as e:
            field = e.details.get("field", "recurrence_pattern")
            raise ValidationException(e.message, {field: [e.message]}) from e

    def _next_after_last(
        self, pattern: RecurrencePattern, definition: RecurringProjectDefinition
    ) -> Optional[date]:
        if definition.last_occurrence is None:
            return self.calculator.first_occurrence(pattern, definition.total_occurrences)
        return self.calculator.compute_next_occurrence(
            pattern, definition.last_occurrence, definition.total_occurrences
        )

    def _upcoming(self, definition: RecurringProjectDefinition, limit: int) -> List[date]:
        if not definition.is_active:
            return []
        if definition.last_occurrence is None:
            return self.calculator.upcoming_occurrences(
                definition.pattern,
                limit=limit,
                occurrences_generated=definition.total_occurrences,
            )
        return self.calculator.upcoming_occurrences(
            definition.pattern,
            after=definition.last_occurrence,
            limit=limit,
            occurrences_generated=definition.total_occurrences,
        )

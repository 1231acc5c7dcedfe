# hidesync_scheduler/repositories/recurring_project_repository.py
"""
Repository implementations for recurring projects, recurrence patterns, and generated projects.

This module provides data access via the repository pattern for the
recurring project domain models, and implements the store and ledger ports
the scheduler depends on. Conversions between rows and schemas are kept in
named functions so both directions stay in one place.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hidesync_scheduler.core.exceptions import ConcurrentOperationException
from hidesync_scheduler.db.models.enums import GenerationStatus
from hidesync_scheduler.db.models.recurring_project import (
    GeneratedProject,
    RecurrencePattern as RecurrencePatternModel,
    RecurringProject,
)
from hidesync_scheduler.interfaces.generated_project_ledger import GeneratedProjectLedger
from hidesync_scheduler.interfaces.recurring_project_store import RecurringProjectStore
from hidesync_scheduler.repositories.base_repository import BaseRepository
from hidesync_scheduler.schemas.recurring_project import (
    GeneratedProjectRecord,
    RecurrencePattern,
    RecurringProjectDefinition,
)

logger = logging.getLogger(__name__)

DEFINITION_COLUMNS = (
    "name",
    "description",
    "project_type",
    "skill_level",
    "template_id",
    "client_id",
    "duration",
    "is_active",
    "needs_attention",
    "auto_generate",
    "advance_notice_days",
    "project_suffix",
    "next_occurrence",
    "last_occurrence",
    "total_occurrences",
    "remaining_occurrences",
    "created_by",
)


# -----------------------------------------------------------------------------
# Row <-> schema conversions
# -----------------------------------------------------------------------------


def pattern_from_row(row: RecurrencePatternModel) -> RecurrencePattern:
    """Build an immutable pattern from its database row."""
    return RecurrencePattern.model_validate(
        {
            "name": row.name,
            "frequency": row.frequency,
            "interval": row.interval or 1,
            "start_date": row.start_date,
            "end_date": row.end_date,
            "end_after_occurrences": row.end_after_occurrences,
            "days_of_week": row.days_of_week,
            "day_of_month": row.day_of_month,
            "week_of_month": row.week_of_month,
            "day_of_week_monthly": row.day_of_week_monthly,
            "month": row.month,
            "custom_dates": row.custom_dates,
            "custom_expression": row.custom_expression,
            "skip_weekends": bool(row.skip_weekends),
            "skip_holidays": bool(row.skip_holidays),
            "holidays": row.holidays,
            "disabled_date_handling": row.disabled_date_handling,
        }
    )


def pattern_to_columns(pattern: RecurrencePattern) -> Dict[str, Any]:
    """Column values for storing a pattern."""
    return {
        "name": pattern.name,
        "frequency": pattern.frequency.value,
        "interval": pattern.interval,
        "start_date": pattern.start_date,
        "end_date": pattern.end_date,
        "end_after_occurrences": pattern.end_after_occurrences,
        "days_of_week": (
            sorted(int(d) for d in pattern.days_of_week) if pattern.days_of_week else None
        ),
        "day_of_month": pattern.day_of_month,
        "week_of_month": pattern.week_of_month,
        "day_of_week_monthly": (
            int(pattern.day_of_week_monthly)
            if pattern.day_of_week_monthly is not None
            else None
        ),
        "month": pattern.month,
        "custom_dates": list(pattern.custom_dates) if pattern.custom_dates else None,
        "custom_expression": pattern.custom_expression,
        "skip_weekends": pattern.skip_weekends,
        "skip_holidays": pattern.skip_holidays,
        "holidays": sorted(pattern.holidays) if pattern.holidays else None,
        "disabled_date_handling": pattern.disabled_date_handling.value,
    }


def record_from_row(row: GeneratedProject) -> GeneratedProjectRecord:
    return GeneratedProjectRecord.model_validate(row)


def definition_from_row(row: RecurringProject) -> RecurringProjectDefinition:
    """Build a definition from its row; the ledger is read separately."""
    data = {column: getattr(row, column) for column in DEFINITION_COLUMNS}
    data["id"] = row.id
    data["components"] = row.components or []
    data["is_active"] = bool(row.is_active)
    data["needs_attention"] = bool(row.needs_attention)
    data["auto_generate"] = bool(row.auto_generate)
    data["total_occurrences"] = row.total_occurrences or 0
    data["pattern"] = pattern_from_row(row.recurrence_pattern)
    return RecurringProjectDefinition.model_validate(data)


def apply_definition_to_row(
    definition: RecurringProjectDefinition, row: RecurringProject
) -> None:
    """Copy definition fields onto a row, leaving the ledger untouched."""
    for column in DEFINITION_COLUMNS:
        value = getattr(definition, column)
        if hasattr(value, "value"):
            value = value.value
        setattr(row, column, value)
    row.components = [c.model_dump(mode="json") for c in definition.components]


# -----------------------------------------------------------------------------
# Repositories
# -----------------------------------------------------------------------------


class RecurringProjectRepository(BaseRepository[RecurringProject], RecurringProjectStore):
    """Repository for recurring project entities."""

    def __init__(self, session: Session):
        """
        Initialize the RecurringProjectRepository.

        Args:
            session: SQLAlchemy database session
        """
        super().__init__(session, RecurringProject)

    def load(self, definition_id: str) -> Optional[RecurringProjectDefinition]:
        row = self.get_by_id(definition_id)
        if row is None:
            return None
        return definition_from_row(row)

    def save(self, definition: RecurringProjectDefinition) -> RecurringProjectDefinition:
        """
        Insert or update a definition together with its pattern.

        Args:
            definition: Definition to store

        Returns:
            The stored definition
        """
        row = self.get_by_id(definition.id)
        pattern_columns = pattern_to_columns(definition.pattern)

        if row is None:
            pattern_row = RecurrencePatternModel(id=str(uuid.uuid4()), **pattern_columns)
            self.session.add(pattern_row)
            row = RecurringProject(id=definition.id, recurrence_pattern=pattern_row)
            self.session.add(row)
        else:
            for key, value in pattern_columns.items():
                setattr(row.recurrence_pattern, key, value)

        apply_definition_to_row(definition, row)
        self.session.commit()
        self.session.refresh(row)
        return definition_from_row(row)

    def list_definitions(
        self,
        skip: int = 0,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        **filters,
    ) -> List[RecurringProjectDefinition]:
        stmt = self._apply_filters(select(self.model), filters)
        if search:
            term = f"%{search}%"
            stmt = stmt.where(
                or_(self.model.name.ilike(term), self.model.description.ilike(term))
            )
        stmt = stmt.order_by(self.model.created_at).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = self.session.execute(stmt).scalars().all()
        return [definition_from_row(row) for row in rows]


class GeneratedProjectRepository(BaseRepository[GeneratedProject], GeneratedProjectLedger):
    """Repository for generated project entities."""

    def __init__(self, session: Session):
        """
        Initialize the GeneratedProjectRepository.

        Args:
            session: SQLAlchemy database session
        """
        super().__init__(session, GeneratedProject)

    def record(self, entry: GeneratedProjectRecord) -> None:
        """
        Append a ledger entry.

        Raises:
            ConcurrentOperationException: If another worker already recorded
                a generated entry for the same occurrence
        """
        row = GeneratedProject(
            id=entry.id,
            recurring_project_id=entry.recurring_project_id,
            project_id=entry.project_id,
            occurrence_number=entry.occurrence_number,
            scheduled_date=entry.scheduled_date,
            actual_generation_date=entry.actual_generation_date,
            status=entry.status.value,
            notes=entry.notes,
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(
                f"Ledger rejected occurrence {entry.occurrence_number} of "
                f"recurring project {entry.recurring_project_id}: {e}"
            )
            raise ConcurrentOperationException(
                f"Occurrence {entry.occurrence_number} of recurring project "
                f"{entry.recurring_project_id} was already generated",
                operation="record_generated_project",
                details={
                    "recurring_project_id": entry.recurring_project_id,
                    "occurrence_number": entry.occurrence_number,
                },
            ) from e

    def has(self, definition_id: str, occurrence_number: int) -> bool:
        stmt = select(self.model.id).where(
            and_(
                self.model.recurring_project_id == definition_id,
                self.model.occurrence_number == occurrence_number,
                self.model.status == GenerationStatus.GENERATED.value,
            )
        )
        return self.session.execute(stmt.limit(1)).first() is not None

    def list_by_definition(self, definition_id: str) -> List[GeneratedProjectRecord]:
        stmt = (
            select(self.model)
            .where(self.model.recurring_project_id == definition_id)
            .order_by(self.model.occurrence_number, self.model.actual_generation_date)
        )
        return [record_from_row(row) for row in self.session.execute(stmt).scalars().all()]

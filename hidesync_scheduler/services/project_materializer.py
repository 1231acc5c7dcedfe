# hidesync_scheduler/services/project_materializer.py
"""
Turns a recurring project definition and an occurrence into a project payload.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Optional

from hidesync_scheduler.core.config import settings
from hidesync_scheduler.db.models.enums import ProjectStatus
from hidesync_scheduler.schemas.recurring_project import (
    OccurrenceCustomizations,
    ProjectPayload,
    RecurringProjectDefinition,
)

OCCURRENCE_PLACEHOLDER = "{n}"


def format_project_name(
    base_name: str,
    occurrence_number: int,
    project_suffix: Optional[str] = None,
    default_suffix: str = "#{n}",
) -> str:
    """
    Build the name of a generated project.

    A suffix containing ``{n}`` replaces the default numbering; any other
    suffix is appended after it.
    """
    number = str(occurrence_number)
    if project_suffix and OCCURRENCE_PLACEHOLDER in project_suffix:
        suffix = project_suffix.replace(OCCURRENCE_PLACEHOLDER, number)
    else:
        suffix = default_suffix.replace(OCCURRENCE_PLACEHOLDER, number)
        if project_suffix:
            suffix = f"{suffix} {project_suffix}"
    return f"{base_name} {suffix}".strip()


class ProjectMaterializer:
    """
    Builds concrete project payloads for recurring project occurrences.

    The only non-deterministic field of a payload is ``generated_at``, taken
    from the injected clock.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        default_suffix: Optional[str] = None,
    ):
        self.clock = clock or datetime.now
        self.default_suffix = default_suffix or settings.SCHEDULER_DEFAULT_PROJECT_SUFFIX

    def materialize(
        self,
        definition: RecurringProjectDefinition,
        occurrence_date: date,
        occurrence_number: int,
        customizations: Optional[OccurrenceCustomizations] = None,
    ) -> ProjectPayload:
        """
        Create the project payload for one occurrence.

        Args:
            definition: Recurring project definition
            occurrence_date: Date the occurrence is scheduled for
            occurrence_number: 1-based occurrence number
            customizations: Optional overrides for this occurrence only

        Returns:
            Project payload; the definition is never modified
        """
        if occurrence_number < 1:
            raise ValueError("occurrence_number is 1-based")

        overrides = customizations or OccurrenceCustomizations()

        if overrides.name:
            name = overrides.name
        else:
            name = format_project_name(
                definition.name,
                occurrence_number,
                definition.project_suffix,
                self.default_suffix,
            )

        description = (
            overrides.description
            if overrides.description is not None
            else definition.description
        )
        duration = overrides.duration if overrides.duration is not None else definition.duration
        source_components = (
            overrides.components if overrides.components is not None else definition.components
        )

        return ProjectPayload(
            name=name,
            description=description,
            project_type=definition.project_type,
            status=ProjectStatus.CONCEPT,
            start_date=occurrence_date,
            due_date=occurrence_date + timedelta(days=duration),
            template_id=definition.template_id,
            customer_id=definition.client_id,
            components=[c.model_copy(deep=True) for c in source_components],
            notes=f"Generated from recurring project {definition.name}",
            recurring_project_id=definition.id,
            occurrence_number=occurrence_number,
            generated_at=self.clock(),
        )

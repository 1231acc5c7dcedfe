# File: hidesync_scheduler/schemas/__init__.py
"""
Schemas package for the HideSync scheduler.

Pydantic models used for request validation, response serialization, and
data transfer between the scheduler and its collaborators.
"""

from .recurring_project import (
    GeneratedProjectRecord,
    ManualOccurrenceRequest,
    OccurrenceCustomizations,
    OccurrencePreviewRequest,
    PersistedProject,
    ProjectComponent,
    ProjectPayload,
    RecurrencePattern,
    RecurrencePatternUpdate,
    RecurringProjectCreate,
    RecurringProjectDefinition,
    RecurringProjectStats,
    RecurringProjectUpdate,
    RecurringProjectWithDetails,
    SchedulerAction,
    SchedulerActionKind,
)

__all__ = [
    "GeneratedProjectRecord",
    "ManualOccurrenceRequest",
    "OccurrenceCustomizations",
    "OccurrencePreviewRequest",
    "PersistedProject",
    "ProjectComponent",
    "ProjectPayload",
    "RecurrencePattern",
    "RecurrencePatternUpdate",
    "RecurringProjectCreate",
    "RecurringProjectDefinition",
    "RecurringProjectStats",
    "RecurringProjectUpdate",
    "RecurringProjectWithDetails",
    "SchedulerAction",
    "SchedulerActionKind",
]

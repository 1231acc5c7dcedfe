# hidesync_scheduler/db/models/__init__.py
"""SQLAlchemy models for the HideSync scheduler."""

from hidesync_scheduler.db.models.base import Base
from hidesync_scheduler.db.models.project import Project
from hidesync_scheduler.db.models.recurring_project import (
    RecurrencePattern,
    RecurringProject,
    GeneratedProject,
)

__all__ = [
    "Base",
    "Project",
    "RecurrencePattern",
    "RecurringProject",
    "GeneratedProject",
]

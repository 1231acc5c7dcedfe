"""
Project creation interface.

The scheduler hands every materialized payload to a project creator and only
updates its bookkeeping once the creator has confirmed the project.
"""

from abc import ABC, abstractmethod

from hidesync_scheduler.schemas.recurring_project import PersistedProject, ProjectPayload


class ProjectCreator(ABC):
    """Abstract interface for persisting generated projects."""

    @abstractmethod
    def create_project(self, payload: ProjectPayload) -> PersistedProject:
        """Persist a project payload; raises on failure."""
        pass

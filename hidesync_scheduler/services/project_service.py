# File: hidesync_scheduler/services/project_service.py
"""
Project creation for generated occurrences.

The scheduler may call ``create_project`` from a worker thread, so the service
can be given a session factory and open a fresh session per call instead of
sharing the request session across threads.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy.orm import Session

from hidesync_scheduler.db.models.project import Project
from hidesync_scheduler.db.session import transaction
from hidesync_scheduler.interfaces.project_creator import ProjectCreator
from hidesync_scheduler.schemas.recurring_project import PersistedProject, ProjectPayload

logger = logging.getLogger(__name__)


class ProjectService(ProjectCreator):
    """Persists projects produced by the materializer."""

    def __init__(
        self,
        session: Optional[Session] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        if session is None and session_factory is None:
            raise ValueError("ProjectService needs a session or a session factory")
        self.session = session
        self.session_factory = session_factory

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        if self.session_factory is None:
            with transaction(self.session) as session:
                yield session
            return

        session = self.session_factory()
        try:
            with transaction(session):
                yield session
        finally:
            session.close()

    def create_project(self, payload: ProjectPayload) -> PersistedProject:
        """
        Create a project from a materialized payload.

        Args:
            payload: Project payload

        Returns:
            The persisted project
        """
        with self._session_scope() as session:
            project = Project(
                id=str(uuid.uuid4()),
                name=payload.name,
                description=payload.description,
                type=payload.project_type.value if payload.project_type else None,
                status=payload.status.value,
                start_date=payload.start_date,
                due_date=payload.due_date,
                template_id=payload.template_id,
                customer_id=payload.customer_id,
                recurring_project_id=payload.recurring_project_id,
                occurrence_number=payload.occurrence_number,
                components=[c.model_dump(mode="json") for c in payload.components],
                notes=payload.notes,
            )
            session.add(project)
            session.flush()
            # Read back before commit expires the instance.
            persisted = PersistedProject.model_validate(project)

        logger.info(
            f"Created project {persisted.id} for occurrence {payload.occurrence_number} "
            f"of recurring project {payload.recurring_project_id}"
        )
        return persisted

# File: hidesync_scheduler/db/models/project.py
"""
Project model for the HideSync scheduler.

Only the columns a generated project needs at creation time are kept here;
the project's own status workflow lives outside the scheduler.
"""

from sqlalchemy import Column, String, Text, Integer, Date, JSON
from sqlalchemy.orm import validates

from hidesync_scheduler.db.models.base import AbstractBase, TimestampMixin
from hidesync_scheduler.db.models.enums import ProjectStatus


class Project(AbstractBase, TimestampMixin):
    """
    Project model representing leatherworking projects.
    """

    __tablename__ = "projects"

    id = Column(String, primary_key=True)

    # Basic information
    name = Column(String(255), nullable=False)
    description = Column(Text)
    type = Column(String(50), nullable=True)
    status = Column(String(50), default=ProjectStatus.CONCEPT.value, nullable=False)

    # Timeline
    start_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)

    # Relationships
    template_id = Column(String, nullable=True)
    customer_id = Column(String, nullable=True)

    # Recurrence traceability
    recurring_project_id = Column(String, nullable=True, index=True)
    occurrence_number = Column(Integer, nullable=True)

    components = Column(JSON, nullable=True)
    notes = Column(Text)

    @validates("name")
    def validate_name(self, key: str, name: str) -> str:
        if not name or len(name.strip()) < 3:
            raise ValueError("Project name must be at least 3 characters")
        return name.strip()

    @validates("due_date")
    def validate_due_date(self, key: str, due_date):
        if due_date and self.start_date and due_date < self.start_date:
            raise ValueError("Due date cannot be before start date")
        return due_date

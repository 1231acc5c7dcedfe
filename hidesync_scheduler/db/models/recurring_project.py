# hidesync_scheduler/db/models/recurring_project.py
"""
Database models for recurring projects in HideSync.

This module defines the SQLAlchemy models for recurring projects,
recurrence patterns, and the generated project ledger.
"""

from datetime import datetime, date
import json

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Boolean,
    Integer,
    ForeignKey,
    Date,
    Text,
    JSON,
    Index,
    text,
)
from sqlalchemy.orm import relationship, validates

from hidesync_scheduler.db.models.base import AbstractBase, TimestampMixin
from hidesync_scheduler.db.models.enums import (
    DisabledDateHandling,
    GenerationStatus,
    RecurrenceFrequency,
)


def _parse_date_list(value, field_name: str):
    """Normalize a JSON list of dates to ISO strings."""
    if value is None:
        return None

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise ValueError(f"Invalid {field_name} format")

    if not isinstance(value, list):
        raise ValueError(f"{field_name} must be a list of dates")

    result = []
    for item in value:
        if isinstance(item, date):
            result.append(item.isoformat())
        elif isinstance(item, str):
            try:
                result.append(datetime.strptime(item, "%Y-%m-%d").date().isoformat())
            except ValueError:
                raise ValueError(f"Invalid date format in {field_name}: {item}")
        else:
            raise ValueError(f"Invalid date format in {field_name}: {item}")
    return result


class RecurrencePattern(AbstractBase, TimestampMixin):
    """
    Model for recurrence patterns.

    Defines when a recurring project should generate new instances.
    """

    __tablename__ = "recurrence_patterns"

    id = Column(String, primary_key=True)
    name = Column(String(100), nullable=True)
    frequency = Column(String(20), nullable=False)
    interval = Column(Integer, default=1, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    end_after_occurrences = Column(Integer, nullable=True)
    days_of_week = Column(JSON, nullable=True)  # [0, 1, 5] for Sun, Mon, Fri
    day_of_month = Column(Integer, nullable=True)
    week_of_month = Column(Integer, nullable=True)  # 1-5, 5 = last
    day_of_week_monthly = Column(Integer, nullable=True)
    month = Column(Integer, nullable=True)
    custom_dates = Column(JSON, nullable=True)  # ISO date strings
    custom_expression = Column(Text, nullable=True)
    skip_weekends = Column(Boolean, default=False)
    skip_holidays = Column(Boolean, default=False)
    holidays = Column(JSON, nullable=True)  # ISO date strings
    disabled_date_handling = Column(
        String(20), default=DisabledDateHandling.NEXT.value, nullable=False
    )

    # Relationships
    recurring_projects = relationship(
        "RecurringProject", back_populates="recurrence_pattern"
    )

    @validates("frequency")
    def validate_frequency(self, key, value):
        """Validate frequency value."""
        value = value.value if isinstance(value, RecurrenceFrequency) else str(value)
        valid_frequencies = [f.value for f in RecurrenceFrequency]
        if value.lower() not in valid_frequencies:
            raise ValueError(
                f"Invalid frequency: {value}. Must be one of {valid_frequencies}"
            )
        return value.lower()

    @validates("interval")
    def validate_interval(self, key, value):
        """Validate interval value."""
        if value < 1:
            raise ValueError("Interval must be at least 1")
        return value

    @validates("days_of_week")
    def validate_days_of_week(self, key, value):
        """Validate and convert days_of_week."""
        if value is None:
            return None

        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                raise ValueError("Invalid days_of_week format")

        if not isinstance(value, list):
            raise ValueError("days_of_week must be a list of integers")

        for day in value:
            if not isinstance(day, int) or day < 0 or day > 6:
                raise ValueError("Each day in days_of_week must be an integer from 0-6")

        return [int(day) for day in value]

    @validates("custom_dates")
    def validate_custom_dates(self, key, value):
        return _parse_date_list(value, key)

    @validates("holidays")
    def validate_holidays(self, key, value):
        return _parse_date_list(value, key)

    @validates("disabled_date_handling")
    def validate_disabled_date_handling(self, key, value):
        value = value.value if isinstance(value, DisabledDateHandling) else str(value)
        try:
            DisabledDateHandling(value)
        except ValueError:
            raise ValueError(f"Invalid disabled_date_handling: {value}")
        return value


class RecurringProject(AbstractBase, TimestampMixin):
    """
    Model for recurring projects.

    Defines a project template that generates new project instances
    according to a recurrence pattern.
    """

    __tablename__ = "recurring_projects"

    id = Column(String, primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    project_type = Column(String(50), nullable=True)
    skill_level = Column(String(50), nullable=True)
    duration = Column(Integer, nullable=False, default=0)  # In days
    components = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True)
    needs_attention = Column(Boolean, default=False)
    auto_generate = Column(Boolean, default=True)
    advance_notice_days = Column(Integer, nullable=False, default=0)
    project_suffix = Column(String(50), nullable=True)

    recurrence_pattern_id = Column(
        String, ForeignKey("recurrence_patterns.id"), nullable=False
    )
    template_id = Column(String, nullable=True)
    client_id = Column(String, nullable=True)

    next_occurrence = Column(Date, nullable=True)
    last_occurrence = Column(Date, nullable=True)
    total_occurrences = Column(Integer, default=0, nullable=False)
    remaining_occurrences = Column(Integer, nullable=True)

    created_by = Column(String, nullable=True)

    # Relationships
    recurrence_pattern = relationship(
        "RecurrencePattern", back_populates="recurring_projects"
    )
    generated_projects = relationship(
        "GeneratedProject",
        back_populates="recurring_project",
        order_by="GeneratedProject.occurrence_number",
    )

    @validates("duration", "advance_notice_days")
    def validate_non_negative(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} cannot be negative")
        return value


class GeneratedProject(AbstractBase, TimestampMixin):
    """
    Model for tracking projects generated from recurring projects.

    Append-only ledger linking recurring projects to their generated
    instances, including failed attempts.
    """

    __tablename__ = "generated_projects"
    __table_args__ = (
        # At most one successful generation per occurrence number.
        Index(
            "uq_generated_projects_generated_occurrence",
            "recurring_project_id",
            "occurrence_number",
            unique=True,
            sqlite_where=text("status = 'generated'"),
            postgresql_where=text("status = 'generated'"),
        ),
    )

    id = Column(String, primary_key=True)
    recurring_project_id = Column(
        String, ForeignKey("recurring_projects.id"), nullable=False, index=True
    )
    project_id = Column(String, ForeignKey("projects.id"), nullable=True)
    occurrence_number = Column(Integer, nullable=False)
    scheduled_date = Column(Date, nullable=False)
    actual_generation_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    status = Column(String(20), nullable=False, default=GenerationStatus.GENERATED.value)
    notes = Column(Text, nullable=True)

    # Relationships
    recurring_project = relationship(
        "RecurringProject", back_populates="generated_projects"
    )
    project = relationship("Project")

    @validates("status")
    def validate_status(self, key, value):
        """Validate status value."""
        value = value.value if isinstance(value, GenerationStatus) else str(value)
        valid_statuses = [s.value for s in GenerationStatus]
        if value.lower() not in valid_statuses:
            raise ValueError(
                f"Invalid status: {value}. Must be one of {valid_statuses}"
            )
        return value.lower()

    @validates("occurrence_number")
    def validate_occurrence_number(self, key, value):
        if value < 1:
            raise ValueError("occurrence_number is 1-based")
        return value

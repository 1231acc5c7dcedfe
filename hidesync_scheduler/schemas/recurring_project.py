# hidesync_scheduler/schemas/recurring_project.py
"""
Recurring Project schemas for HideSync.

This module contains Pydantic models for recurring project management,
including recurrence patterns, recurring project definitions, the generated
project ledger, and the canonical project payload produced by
materialization.
"""

from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hidesync_scheduler.db.models.enums import (
    DayOfWeek,
    DisabledDateHandling,
    GenerationStatus,
    ProjectStatus,
    ProjectType,
    RecurrenceFrequency,
    SkillLevel,
)


class ProjectComponent(BaseModel):
    """A component snapshot carried by a recurring project template."""

    id: str = Field(..., description="Component ID")
    name: str = Field(..., description="Component name")
    description: Optional[str] = Field(None, description="Component description")
    quantity: int = Field(1, ge=1, description="Number of pieces")
    attributes: Dict[str, Any] = Field(
        default_factory=dict, description="Free-form component attributes"
    )


class RecurrencePattern(BaseModel):
    """
    Immutable description of a repeating schedule.

    Field ranges are checked here; cross-field rules (e.g. the MONTHLY
    day-selection mode) are checked by the occurrence calculator.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    name: Optional[str] = Field(None, description="Pattern name")
    frequency: RecurrenceFrequency = Field(..., description="Recurrence frequency")
    interval: int = Field(1, ge=1, description="Frequency units between occurrences")
    start_date: date = Field(..., description="Anchor date and first occurrence candidate")
    end_date: Optional[date] = Field(None, description="Last allowed occurrence date")
    end_after_occurrences: Optional[int] = Field(
        None, ge=1, description="End after n occurrences"
    )
    days_of_week: Optional[FrozenSet[DayOfWeek]] = Field(
        None, description="Days of week (weekly patterns)"
    )
    day_of_month: Optional[int] = Field(
        None, ge=1, le=31, description="Day of month, clamped to short months"
    )
    week_of_month: Optional[int] = Field(
        None, ge=1, le=5, description="Week of month, 5 means last"
    )
    day_of_week_monthly: Optional[DayOfWeek] = Field(
        None, description="Weekday used together with week_of_month"
    )
    month: Optional[int] = Field(None, ge=1, le=12, description="Month (yearly patterns)")
    custom_dates: Optional[Tuple[date, ...]] = Field(None, description="Explicit dates")
    custom_expression: Optional[str] = Field(
        None, description="Rule handed to an external evaluator"
    )
    skip_weekends: bool = Field(False, description="Whether to skip weekends")
    skip_holidays: bool = Field(False, description="Whether to skip holidays")
    holidays: FrozenSet[date] = Field(default_factory=frozenset, description="Holiday dates")
    disabled_date_handling: DisabledDateHandling = Field(
        DisabledDateHandling.NEXT, description="How to relocate disabled dates"
    )

    @field_validator("days_of_week")
    @classmethod
    def empty_days_mean_default(cls, v):
        return v or None

    @field_validator("custom_dates")
    @classmethod
    def sort_custom_dates(cls, v):
        if v is None:
            return None
        return tuple(sorted(set(v)))

    @field_validator("holidays", mode="before")
    @classmethod
    def none_holidays_to_empty(cls, v):
        return frozenset() if v is None else v


class RecurrencePatternUpdate(BaseModel):
    """Schema for updating recurrence pattern information."""

    name: Optional[str] = None
    frequency: Optional[RecurrenceFrequency] = None
    interval: Optional[int] = Field(None, ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    end_after_occurrences: Optional[int] = Field(None, ge=1)
    days_of_week: Optional[List[DayOfWeek]] = None
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    week_of_month: Optional[int] = Field(None, ge=1, le=5)
    day_of_week_monthly: Optional[DayOfWeek] = None
    month: Optional[int] = Field(None, ge=1, le=12)
    custom_dates: Optional[List[date]] = None
    custom_expression: Optional[str] = None
    skip_weekends: Optional[bool] = None
    skip_holidays: Optional[bool] = None
    holidays: Optional[List[date]] = None
    disabled_date_handling: Optional[DisabledDateHandling] = None


class GeneratedProjectRecord(BaseModel):
    """Ledger entry for one materialized or attempted occurrence."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Ledger record ID")
    project_id: Optional[str] = Field(None, description="Created project ID, None on failure")
    recurring_project_id: str = Field(..., description="Recurring project ID")
    occurrence_number: int = Field(..., ge=1, description="1-based occurrence number")
    scheduled_date: date = Field(..., description="Scheduled date")
    actual_generation_date: datetime = Field(..., description="Generation attempt timestamp")
    status: GenerationStatus = Field(..., description="Generation status")
    notes: Optional[str] = Field(None, description="Generation notes")


class RecurringProjectBase(BaseModel):
    """Base schema for recurring project data."""

    name: str = Field(..., min_length=1, max_length=100, description="Project name")
    description: Optional[str] = Field(None, description="Project description")
    project_type: Optional[ProjectType] = Field(None, description="Type of project")
    skill_level: Optional[SkillLevel] = Field(None, description="Required skill level")
    template_id: Optional[str] = Field(None, description="Project template ID")
    client_id: Optional[str] = Field(None, description="Client ID for generated projects")
    duration: int = Field(0, ge=0, description="Duration in days")
    components: List[ProjectComponent] = Field(
        default_factory=list, description="Template component snapshot"
    )
    is_active: bool = Field(True, description="Whether the recurring project is active")
    auto_generate: bool = Field(True, description="Whether to generate projects automatically")
    advance_notice_days: int = Field(0, ge=0, description="Days in advance to generate projects")
    project_suffix: Optional[str] = Field(
        None, max_length=50, description="Name suffix template, {n} is the occurrence number"
    )


class RecurringProjectCreate(RecurringProjectBase):
    """Schema for creating a new recurring project."""

    recurrence_pattern: RecurrencePattern = Field(..., description="Recurrence pattern")


class RecurringProjectUpdate(BaseModel):
    """Schema for updating recurring project information."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    project_type: Optional[ProjectType] = None
    skill_level: Optional[SkillLevel] = None
    template_id: Optional[str] = None
    client_id: Optional[str] = None
    duration: Optional[int] = Field(None, ge=0)
    components: Optional[List[ProjectComponent]] = None
    auto_generate: Optional[bool] = None
    advance_notice_days: Optional[int] = Field(None, ge=0)
    project_suffix: Optional[str] = Field(None, max_length=50)
    recurrence_pattern: Optional[RecurrencePatternUpdate] = None


class RecurringProjectDefinition(RecurringProjectBase):
    """
    A recurring schedule and its scheduling cursor.

    Bookkeeping fields are only ever changed by the scheduler.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Recurring project ID")
    pattern: RecurrencePattern = Field(..., description="Recurrence pattern")
    needs_attention: bool = Field(
        False, description="Set when an occurrence kept failing and generation was halted"
    )
    next_occurrence: Optional[date] = Field(None, description="Cached next occurrence")
    last_occurrence: Optional[date] = Field(None, description="Last generated occurrence")
    total_occurrences: int = Field(0, ge=0, description="Occurrences generated so far")
    remaining_occurrences: Optional[int] = Field(
        None, description="Occurrences left when the pattern ends after a count"
    )
    created_by: Optional[str] = Field(None, description="User who created the schedule")


class RecurringProjectWithDetails(RecurringProjectDefinition):
    """Recurring project with its ledger and upcoming occurrence preview."""

    generated_projects: List[GeneratedProjectRecord] = Field(
        default_factory=list, description="Ledger view, ascending by occurrence number"
    )
    upcoming_occurrences: List[date] = Field(default_factory=list)


class OccurrenceCustomizations(BaseModel):
    """Per-occurrence overrides that are never written back to the definition."""

    name: Optional[str] = Field(None, min_length=1, description="Full project name override")
    description: Optional[str] = None
    components: Optional[List[ProjectComponent]] = None
    duration: Optional[int] = Field(None, ge=0, description="Duration in days")


class ProjectPayload(BaseModel):
    """Canonical project shape produced by materialization."""

    name: str
    description: Optional[str] = None
    project_type: Optional[ProjectType] = None
    status: ProjectStatus = ProjectStatus.CONCEPT
    start_date: date
    due_date: date
    template_id: Optional[str] = None
    customer_id: Optional[str] = None
    components: List[ProjectComponent] = Field(default_factory=list)
    notes: Optional[str] = None
    recurring_project_id: str
    occurrence_number: int = Field(..., ge=1)
    generated_at: datetime


class PersistedProject(BaseModel):
    """A project as returned by the project-creation collaborator."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    status: ProjectStatus = ProjectStatus.CONCEPT
    start_date: Optional[date] = None
    due_date: Optional[date] = None


class SchedulerActionKind(str, Enum):
    NOOP = "noop"
    GENERATED = "generated"
    FAILED = "failed"
    ENDED = "ended"


class SchedulerAction(BaseModel):
    """Outcome of a scheduler tick or manual generation."""

    kind: SchedulerActionKind
    recurring_project_id: str
    record: Optional[GeneratedProjectRecord] = None
    reason: Optional[str] = None

    @classmethod
    def noop(cls, recurring_project_id: str, reason: str) -> "SchedulerAction":
        return cls(kind=SchedulerActionKind.NOOP, recurring_project_id=recurring_project_id, reason=reason)

    @classmethod
    def generated(cls, record: GeneratedProjectRecord) -> "SchedulerAction":
        return cls(
            kind=SchedulerActionKind.GENERATED,
            recurring_project_id=record.recurring_project_id,
            record=record,
        )

    @classmethod
    def failed(cls, record: GeneratedProjectRecord, reason: str) -> "SchedulerAction":
        return cls(
            kind=SchedulerActionKind.FAILED,
            recurring_project_id=record.recurring_project_id,
            record=record,
            reason=reason,
        )

    @classmethod
    def ended(cls, recurring_project_id: str) -> "SchedulerAction":
        return cls(kind=SchedulerActionKind.ENDED, recurring_project_id=recurring_project_id)


class ManualOccurrenceRequest(BaseModel):
    """Request body for generating an occurrence by hand."""

    scheduled_date: Optional[date] = Field(
        None, description="Date to generate for, defaults to the next occurrence"
    )
    customizations: Optional[OccurrenceCustomizations] = None


class OccurrencePreviewRequest(BaseModel):
    """Request body for previewing an unsaved pattern."""

    pattern: RecurrencePattern
    from_date: Optional[date] = Field(
        None, description="Reference date, defaults to the pattern start"
    )
    limit: int = Field(5, ge=1, le=100)


class RecurringProjectStats(BaseModel):
    """Dashboard counters for recurring projects."""

    total: int = 0
    active: int = 0
    inactive: int = 0
    needs_attention: int = 0
    due_this_week: int = 0

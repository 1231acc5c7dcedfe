# hidesync_scheduler/api/endpoints/recurring_projects.py
"""
Recurring Projects API endpoints for HideSync.

This module provides endpoints for managing recurring projects,
including creation, retrieval, project generation, and scheduling.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, Response, status

from hidesync_scheduler.api.deps import (
    get_recurring_project_scheduler,
    get_recurring_project_service,
)
from hidesync_scheduler.core.exceptions import (
    BusinessRuleException,
    ConfigurationError,
    EntityNotFoundException,
    GenerationFailure,
    ValidationException,
)
from hidesync_scheduler.db.models.enums import ProjectType
from hidesync_scheduler.schemas.recurring_project import (
    GeneratedProjectRecord,
    ManualOccurrenceRequest,
    OccurrencePreviewRequest,
    RecurringProjectCreate,
    RecurringProjectDefinition,
    RecurringProjectStats,
    RecurringProjectUpdate,
    RecurringProjectWithDetails,
    SchedulerAction,
)
from hidesync_scheduler.services.recurring_project_scheduler import RecurringProjectScheduler
from hidesync_scheduler.services.recurring_project_service import RecurringProjectService

router = APIRouter()


def _not_found(project_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Recurring project with ID {project_id} not found",
    )


@router.get("/", response_model=List[RecurringProjectDefinition])
def list_recurring_projects(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(
        100, ge=1, le=1000, description="Maximum number of records to return"
    ),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    client_id: Optional[str] = Query(None, description="Filter by client"),
    project_type: Optional[ProjectType] = Query(None, description="Filter by project type"),
    created_by: Optional[str] = Query(None, description="Filter by creating user"),
    search: Optional[str] = Query(None, description="Search in name and description"),
):
    """
    List recurring projects with optional filtering and pagination.

    Args:
        service: Recurring project service
        skip: Number of records to skip for pagination
        limit: Maximum number of records to return
        is_active: Optional filter by active status
        client_id: Optional filter by client
        project_type: Optional filter by project type
        created_by: Optional filter by creating user
        search: Optional case-insensitive text search

    Returns:
        List of recurring projects
    """
    return service.list_recurring_projects(
        skip=skip,
        limit=limit,
        search=search,
        is_active=is_active,
        client_id=client_id,
        project_type=project_type,
        created_by=created_by,
    )


@router.post("/", response_model=RecurringProjectDefinition, status_code=status.HTTP_201_CREATED)
def create_recurring_project(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    project_in: RecurringProjectCreate,
    user_id: Optional[str] = Query(None, description="ID of the creating user"),
):
    """
    Create a new recurring project.

    Args:
        service: Recurring project service
        project_in: Recurring project data for creation
        user_id: Optional ID of the creating user

    Returns:
        Created recurring project

    Raises:
        HTTPException: If the recurrence pattern is invalid
    """
    try:
        return service.create_recurring_project(project_in, user_id)
    except ValidationException as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.to_dict())


@router.post("/preview", response_model=List[date])
def preview_occurrences(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    preview_in: OccurrencePreviewRequest,
):
    """
    Compute the occurrences of a recurrence pattern without saving it.

    Args:
        service: Recurring project service
        preview_in: Pattern, reference date and number of dates

    Returns:
        Ascending list of occurrence dates
    """
    try:
        return service.preview_occurrences(
            preview_in.pattern, preview_in.from_date, preview_in.limit
        )
    except ValidationException as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.to_dict())


@router.get("/stats", response_model=RecurringProjectStats)
def get_recurring_project_stats(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
):
    """
    Get count of recurring projects by status.

    Returns:
        Dashboard counters
    """
    return service.get_recurring_project_count()


@router.get("/due", response_model=List[RecurringProjectDefinition])
def get_projects_due(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    days: int = Query(7, ge=0, le=365, description="Number of days to look ahead"),
):
    """
    Get active recurring projects whose next occurrence is due within a number of days.
    """
    return service.get_projects_due_within(days)


@router.get("/upcoming", response_model=List[RecurringProjectDefinition])
def get_upcoming_recurring_projects(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    days: int = Query(7, ge=0, le=365, description="Number of days to look ahead"),
    limit: Optional[int] = Query(
        None, ge=1, le=100, description="Maximum number of projects to return"
    ),
):
    """
    Get active recurring projects scheduled within the specified time frame.

    Returns:
        Recurring projects sorted by next occurrence
    """
    due = service.get_projects_due_within(days)
    return due if limit is None else due[:limit]


@router.get("/due-this-week", response_model=List[RecurringProjectDefinition])
def get_projects_due_this_week(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
):
    """
    Get recurring projects with occurrences due in the next seven days.
    """
    return service.get_projects_due_within(7)


@router.get("/{project_id}", response_model=RecurringProjectWithDetails)
def get_recurring_project(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    project_id: str = Path(..., description="The ID of the recurring project to retrieve"),
):
    """
    Get detailed information about a specific recurring project.

    Raises:
        HTTPException: If the recurring project doesn't exist
    """
    try:
        return service.get_recurring_project(project_id)
    except EntityNotFoundException:
        raise _not_found(project_id)


@router.patch("/{project_id}", response_model=RecurringProjectDefinition)
def update_recurring_project(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    project_id: str = Path(..., description="The ID of the recurring project to update"),
    project_in: RecurringProjectUpdate,
):
    """
    Update a recurring project.

    Raises:
        HTTPException: If the recurring project doesn't exist or the pattern is invalid
    """
    try:
        return service.update_recurring_project(project_id, project_in)
    except EntityNotFoundException:
        raise _not_found(project_id)
    except ValidationException as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.to_dict())


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_recurring_project(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    project_id: str = Path(..., description="The ID of the recurring project to delete"),
):
    """
    Delete a recurring project.

    The schedule is deactivated; its generation ledger and the projects
    already generated are kept.

    Raises:
        HTTPException: If the recurring project doesn't exist
    """
    try:
        service.delete_recurring_project(project_id)
    except EntityNotFoundException:
        raise _not_found(project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{project_id}/toggle-active", response_model=RecurringProjectDefinition)
def toggle_recurring_project_active_state(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    project_id: str = Path(..., description="The ID of the recurring project to toggle"),
    is_active: Optional[bool] = Body(
        None, embed=True, description="New state, flips the current state when omitted"
    ),
):
    """
    Activate or deactivate a recurring project.

    Reactivating a project that was halted after repeated failures clears
    its needs_attention flag.

    Raises:
        HTTPException: If the recurring project doesn't exist
    """
    try:
        if is_active is None:
            is_active = not service.get_recurring_project(project_id).is_active
        return service.toggle_recurring_project_active(project_id, is_active)
    except EntityNotFoundException:
        raise _not_found(project_id)


@router.post("/{project_id}/tick", response_model=SchedulerAction)
def tick_recurring_project(
    *,
    scheduler: RecurringProjectScheduler = Depends(get_recurring_project_scheduler),
    project_id: str = Path(..., description="The ID of the recurring project"),
):
    """
    Generate the next occurrence of a recurring project if it is due.

    Returns:
        What the scheduler did: noop, generated, failed or ended

    Raises:
        HTTPException: If the recurring project doesn't exist or its pattern is invalid
    """
    try:
        return scheduler.tick(project_id)
    except EntityNotFoundException:
        raise _not_found(project_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.to_dict())


@router.post("/{project_id}/generate", response_model=SchedulerAction)
def generate_project_instance(
    *,
    scheduler: RecurringProjectScheduler = Depends(get_recurring_project_scheduler),
    project_id: str = Path(..., description="The ID of the recurring project"),
    request: Optional[ManualOccurrenceRequest] = None,
):
    """
    Generate a project instance from a recurring project on demand.

    Args:
        scheduler: Recurring project scheduler
        project_id: ID of the recurring project
        request: Optional scheduled date and per-occurrence customizations

    Returns:
        The generated occurrence, or ended when the pattern has no more dates

    Raises:
        HTTPException: If the recurring project doesn't exist, is inactive,
            or generation fails
    """
    request = request or ManualOccurrenceRequest()
    try:
        return scheduler.generate_manual_occurrence(
            project_id,
            scheduled_date=request.scheduled_date,
            customizations=request.customizations,
            raise_on_failure=True,
        )
    except EntityNotFoundException:
        raise _not_found(project_id)
    except BusinessRuleException as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.to_dict())
    except GenerationFailure as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.to_dict())


@router.get("/{project_id}/generated-projects", response_model=List[GeneratedProjectRecord])
def list_generated_projects(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    scheduler: RecurringProjectScheduler = Depends(get_recurring_project_scheduler),
    project_id: str = Path(..., description="The ID of the recurring project"),
):
    """
    List the generation ledger of a recurring project, including failed attempts.

    Raises:
        HTTPException: If the recurring project doesn't exist
    """
    try:
        service.get_recurring_project(project_id)
    except EntityNotFoundException:
        raise _not_found(project_id)
    return scheduler.list_generated_projects(project_id)


@router.get("/{project_id}/upcoming", response_model=List[date])
def get_upcoming_occurrences(
    *,
    service: RecurringProjectService = Depends(get_recurring_project_service),
    project_id: str = Path(..., description="The ID of the recurring project"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Maximum number of dates"),
):
    """
    Get the upcoming occurrence dates of a recurring project.

    Raises:
        HTTPException: If the recurring project doesn't exist
    """
    try:
        return service.get_upcoming_occurrences(project_id, limit)
    except EntityNotFoundException:
        raise _not_found(project_id)

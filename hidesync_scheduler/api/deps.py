# File: hidesync_scheduler/api/deps.py
"""
API dependencies for the HideSync scheduler.

Builds services and the scheduler per request from the request's database
session.
"""

from datetime import datetime
from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from hidesync_scheduler.core.events import global_event_bus
from hidesync_scheduler.db.session import get_db
from hidesync_scheduler.repositories.recurring_project_repository import (
    GeneratedProjectRepository,
    RecurringProjectRepository,
)
from hidesync_scheduler.services.project_service import ProjectService
from hidesync_scheduler.services.recurring_project_scheduler import RecurringProjectScheduler
from hidesync_scheduler.services.recurring_project_service import RecurringProjectService


def get_clock() -> Callable[[], datetime]:
    """Clock used to decide what is due; overridden in tests."""
    return datetime.now


def get_recurring_project_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RecurringProjectService:
    return RecurringProjectService(
        store=RecurringProjectRepository(db),
        ledger=GeneratedProjectRepository(db),
        clock=clock,
        session=db,
        event_bus=global_event_bus,
    )


def get_recurring_project_scheduler(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RecurringProjectScheduler:
    # Project creation runs on a worker thread and gets its own sessions.
    project_sessions = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())
    return RecurringProjectScheduler(
        store=RecurringProjectRepository(db),
        ledger=GeneratedProjectRepository(db),
        project_creator=ProjectService(session_factory=project_sessions),
        clock=clock,
        event_bus=global_event_bus,
    )

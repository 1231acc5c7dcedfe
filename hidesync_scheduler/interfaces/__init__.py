# hidesync_scheduler/interfaces/__init__.py
"""Abstract ports the scheduler depends on."""

from hidesync_scheduler.interfaces.generated_project_ledger import GeneratedProjectLedger
from hidesync_scheduler.interfaces.project_creator import ProjectCreator
from hidesync_scheduler.interfaces.recurring_project_store import RecurringProjectStore

__all__ = ["GeneratedProjectLedger", "ProjectCreator", "RecurringProjectStore"]

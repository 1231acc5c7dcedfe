# hidesync_scheduler/api/api.py

from fastapi import APIRouter

from hidesync_scheduler.api.endpoints import recurring_projects

api_router = APIRouter()

api_router.include_router(
    recurring_projects.router, prefix="/recurring-projects", tags=["Recurring Projects"]
)

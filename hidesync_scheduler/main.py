# hidesync_scheduler/main.py
"""
FastAPI application for the HideSync recurring project scheduler.

Run with any ASGI server, e.g. ``uvicorn hidesync_scheduler.main:app``.
"""

import json
import logging
import os
import time
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from hidesync_scheduler import __version__
from hidesync_scheduler.api.api import api_router
from hidesync_scheduler.core.config import settings
from hidesync_scheduler.core.events import setup_event_handlers
from hidesync_scheduler.core.exceptions import HideSyncException
from hidesync_scheduler.db.session import engine

LOG_LEVEL_NAME = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.INFO)

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("hidesync_scheduler")
logger.setLevel(LOG_LEVEL)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Recurring project scheduling for the HideSync leather crafting ERP system",
    version=__version__,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
)

cors_origins = [str(origin) for origin in settings.BACKEND_CORS_ORIGINS or [] if origin]
if not cors_origins:
    cors_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    logger.warning(f"BACKEND_CORS_ORIGINS is empty, allowing local dashboards: {cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    logger.warning(f"Rejected {request.method} {request.url.path}: {json.dumps(errors)}")
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": errors})


# Domain errors that no endpoint mapped to a status code.
@app.exception_handler(HideSyncException)
async def unmapped_domain_error_handler(request: Request, exc: HideSyncException):
    logger.error(f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": exc.to_dict()},
    )


@app.middleware("http")
async def log_scheduler_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.exception(f"{request.method} {request.url.path} crashed after {elapsed_ms:.1f}ms")
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
    return response


setup_event_handlers(app)
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/", tags=["Root"], summary="Scheduler API root")
def read_root():
    """Names the service and points at its documentation."""
    return {
        "service": settings.PROJECT_NAME,
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "recurring_projects_url": f"{settings.API_V1_STR}/recurring-projects",
        "docs_url": app.docs_url,
    }


@app.get("/health", tags=["Health"], summary="Scheduler health check")
def health_check():
    """Reports database reachability and the active scheduler limits."""
    database = "ok"
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check could not reach the database: {e}")
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "failure_escalation_threshold": settings.SCHEDULER_FAILURE_ESCALATION_THRESHOLD,
        "project_creation_timeout_seconds": settings.SCHEDULER_PROJECT_CREATION_TIMEOUT_SECONDS,
        "timestamp": datetime.now().isoformat(),
    }

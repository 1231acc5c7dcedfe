# File: hidesync_scheduler/api/__init__.py
"""
API package for the HideSync scheduler.

This package contains the API layer, including endpoints, dependencies, and
routing configuration.
"""

from hidesync_scheduler.api import deps, endpoints
from hidesync_scheduler.api.api import api_router

# hidesync_scheduler/__init__.py
"""
HideSync recurring project scheduler.

Evaluates recurrence patterns for recurring leathercraft projects and
generates each concrete project instance exactly once.
"""

__version__ = "1.0.0"

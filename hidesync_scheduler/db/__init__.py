# File: hidesync_scheduler/db/__init__.py
"""Database package: models, engine and session handling."""

# File: hidesync_scheduler/db/models/base.py
"""
Base models and mixins for the HideSync scheduler.

Provides the declarative base and the shared timestamp mixin used by every
table.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, MetaData
from sqlalchemy.orm import declarative_base

Base = declarative_base(metadata=MetaData())


class TimestampMixin:
    """
    Mixin providing automatic timestamp functionality.

    Adds created_at and updated_at timestamps that are automatically
    maintained when records are created or updated.
    """

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AbstractBase(Base):
    """
    Abstract base class for all model entities.

    Subclasses declare their own primary key.
    """

    __abstract__ = True

# File: hidesync_scheduler/services/base_service.py

import logging
from contextlib import contextmanager
from typing import Generic, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hidesync_scheduler.core.events import DomainEvent, EventBus, global_event_bus
from hidesync_scheduler.core.exceptions import (
    ConcurrentOperationException,
    HideSyncException,
)

T = TypeVar("T")
logger = logging.getLogger(__name__)


class BaseService(Generic[T]):
    """
    Base service for scheduler services.

    Provides common functionality including:
    - Transaction management
    - Error standardization
    - Event publishing
    """

    def __init__(
        self,
        session: Optional[Session] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize service with dependencies.

        Args:
            session: Database session for persistence operations
            event_bus: Optional event bus for publishing domain events
        """
        self.session = session
        self.event_bus = event_bus if event_bus is not None else global_event_bus

    @contextmanager
    def transaction(self):
        """
        Provide a transactional scope around operations.

        Raises:
            Exception: Any exception that occurs during transaction execution
        """
        if self.session is None:
            yield
            return
        try:
            yield
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Transaction failed: {str(e)}", exc_info=True)
            transformed = self._transform_error(e)
            if transformed is not None:
                raise transformed from e
            raise

    def publish(self, event: DomainEvent) -> None:
        """Publish a domain event if an event bus is configured."""
        if self.event_bus is not None:
            self.event_bus.publish(event)

    def _transform_error(self, error: Exception) -> Optional[HideSyncException]:
        """Map database errors to domain exceptions."""
        if isinstance(error, IntegrityError):
            return ConcurrentOperationException(
                "Database constraint violated", details={"error": str(error.orig)}
            )
        return None

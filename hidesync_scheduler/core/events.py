# File: hidesync_scheduler/core/events.py

from typing import Dict, Any, Callable, List, Optional, Type, Union
from collections import defaultdict
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
import uuid
import logging

from fastapi import FastAPI

logger = logging.getLogger(__name__)

EventHandler = Callable[["DomainEvent"], None]


# --- Base DomainEvent ---
@dataclass(eq=False)
class DomainEvent:
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["event_type"] = self.__class__.__name__
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
        return result


# --- Recurring Project Event Definitions ---
@dataclass(eq=False)
class RecurringProjectCreated(DomainEvent):
    """Event emitted when a recurring project is created."""
    recurring_project_id: str = ""
    name: str = ""
    user_id: Optional[str] = None


@dataclass(eq=False)
class OccurrenceGenerated(DomainEvent):
    """Event emitted when a project is generated from a recurring project."""
    recurring_project_id: str = ""
    project_id: str = ""
    occurrence_number: int = 0
    scheduled_date: Optional[date] = None
    manual: bool = False


@dataclass(eq=False)
class OccurrenceFailed(DomainEvent):
    """Event emitted when generating an occurrence failed and will be retried."""
    recurring_project_id: str = ""
    occurrence_number: int = 0
    scheduled_date: Optional[date] = None
    error: str = ""
    consecutive_failures: int = 0


@dataclass(eq=False)
class RecurringProjectEnded(DomainEvent):
    """Event emitted when a recurrence pattern has no further occurrences."""
    recurring_project_id: str = ""
    total_occurrences: int = 0


@dataclass(eq=False)
class RecurringProjectNeedsAttention(DomainEvent):
    """Event emitted when an occurrence keeps failing and the schedule was halted."""
    recurring_project_id: str = ""
    occurrence_number: int = 0
    consecutive_failures: int = 0


class EventBus:
    """
    Simple in-process event bus.

    Handlers are called synchronously in subscription order. A failing
    handler is logged and never interrupts the publisher.
    """

    def __init__(self):
        self.subscribers: Dict[str, List[EventHandler]] = defaultdict(list)

    def publish(self, event: DomainEvent) -> None:
        """
        Publish an event synchronously to all registered handlers.

        Args:
            event: The domain event to publish
        """
        event_type = type(event).__name__
        logger.debug(f"Publishing event {event_type} ID {event.event_id}")
        for handler in list(self.subscribers.get(event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in handler {getattr(handler, '__name__', repr(handler))} "
                    f"for {event_type} ID {event.event_id}: {e}",
                    exc_info=True,
                )

    def subscribe(self, event_type: Union[str, Type[DomainEvent]], handler: EventHandler) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event class or event type name string
            handler: Callable to handle the event
        """
        event_type_name = event_type.__name__ if isinstance(event_type, type) else str(event_type)
        self.subscribers[event_type_name].append(handler)
        logger.debug(f"Subscribed handler {getattr(handler, '__name__', repr(handler))} to {event_type_name}")


# Global event bus instance
global_event_bus = EventBus()


def _log_needs_attention(event: RecurringProjectNeedsAttention) -> None:
    logger.error(
        f"Recurring project {event.recurring_project_id} halted after "
        f"{event.consecutive_failures} failed attempts on occurrence {event.occurrence_number}"
    )


def setup_event_handlers(app: FastAPI) -> None:
    """
    Set up FastAPI lifecycle event handlers and default subscribers.

    Args:
        app: FastAPI application instance
    """
    global_event_bus.subscribe(RecurringProjectNeedsAttention, _log_needs_attention)

    @app.on_event("startup")
    async def startup_event():
        from hidesync_scheduler.db.session import init_db

        init_db()
        logger.info("Application starting up")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Application shutting down")

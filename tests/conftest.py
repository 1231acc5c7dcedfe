# tests/conftest.py
import os

# Keep the module-level engine off disk before the package is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime, timedelta
from typing import List

import pytest
from sqlalchemy.orm import sessionmaker

from hidesync_scheduler.core.events import DomainEvent, EventBus
from hidesync_scheduler.db.models.base import Base
from hidesync_scheduler.db.models.enums import RecurrenceFrequency
from hidesync_scheduler.db.session import create_db_engine, init_db
from hidesync_scheduler.repositories.in_memory import (
    InMemoryGeneratedProjectLedger,
    InMemoryProjectCreator,
    InMemoryRecurringProjectStore,
)
from hidesync_scheduler.schemas.recurring_project import (
    ProjectComponent,
    RecurrencePattern,
    RecurringProjectDefinition,
)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self):
        self.events: List[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[DomainEvent]:
        return [e for e in self.events if isinstance(e, event_type)]


def make_pattern(**overrides) -> RecurrencePattern:
    data = {
        "frequency": RecurrenceFrequency.WEEKLY,
        "start_date": date(2025, 1, 6),
    }
    data.update(overrides)
    return RecurrencePattern(**data)


def make_definition(pattern: RecurrencePattern = None, **overrides) -> RecurringProjectDefinition:
    data = {
        "id": "rp-weekly-belt",
        "name": "Weekly Belt",
        "description": "Standard belt batch",
        "duration": 3,
        "components": [
            ProjectComponent(id="c-strap", name="Strap", quantity=1, attributes={"length_cm": 110}),
            ProjectComponent(id="c-buckle", name="Buckle", quantity=1),
        ],
        "pattern": pattern or make_pattern(),
    }
    data.update(overrides)
    return RecurringProjectDefinition(**data)


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 1, 6, 9, 0))


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    recorder = EventRecorder()
    for name in (
        "RecurringProjectCreated",
        "OccurrenceGenerated",
        "OccurrenceFailed",
        "RecurringProjectEnded",
        "RecurringProjectNeedsAttention",
    ):
        event_bus.subscribe(name, recorder)
    return recorder


@pytest.fixture
def store():
    return InMemoryRecurringProjectStore()


@pytest.fixture
def ledger():
    return InMemoryGeneratedProjectLedger()


@pytest.fixture
def creator():
    return InMemoryProjectCreator()


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

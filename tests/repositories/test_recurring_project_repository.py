# tests/repositories/test_recurring_project_repository.py
from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from conftest import make_definition, make_pattern
from hidesync_scheduler.core.events import EventBus
from hidesync_scheduler.core.exceptions import ConcurrentOperationException
from hidesync_scheduler.db.models.enums import (
    DayOfWeek,
    DisabledDateHandling,
    GenerationStatus,
    ProjectType,
    RecurrenceFrequency,
)
from hidesync_scheduler.db.models.recurring_project import RecurrencePattern as PatternRow
from hidesync_scheduler.db.models.project import Project as ProjectRow
from hidesync_scheduler.repositories.recurring_project_repository import (
    GeneratedProjectRepository,
    RecurringProjectRepository,
)
from hidesync_scheduler.schemas.recurring_project import GeneratedProjectRecord, SchedulerActionKind
from hidesync_scheduler.services.project_service import ProjectService
from hidesync_scheduler.services.recurring_project_scheduler import (
    DefinitionLockRegistry,
    RecurringProjectScheduler,
)


@pytest.fixture
def store(db_session):
    return RecurringProjectRepository(db_session)


@pytest.fixture
def ledger(db_session):
    return GeneratedProjectRepository(db_session)


def ledger_entry(occurrence_number, status=GenerationStatus.GENERATED, entry_id=None, hour=9):
    return GeneratedProjectRecord(
        id=entry_id or f"gp-{occurrence_number}-{status.value}",
        project_id=None,
        recurring_project_id="rp-weekly-belt",
        occurrence_number=occurrence_number,
        scheduled_date=date(2025, 1, 6),
        actual_generation_date=datetime(2025, 1, 6, hour, 0),
        status=status,
    )


def test_save_and_load_round_trip(store):
    pattern = make_pattern(
        frequency=RecurrenceFrequency.WEEKLY,
        start_date=date(2025, 1, 6),
        end_date=date(2025, 12, 31),
        days_of_week={DayOfWeek.MONDAY, DayOfWeek.THURSDAY},
        skip_holidays=True,
        holidays={date(2025, 12, 25), date(2025, 1, 1)},
        disabled_date_handling=DisabledDateHandling.PREVIOUS,
    )
    definition = make_definition(
        pattern,
        project_type=ProjectType.BELT,
        advance_notice_days=2,
        project_suffix="Batch {n}",
        next_occurrence=date(2025, 1, 6),
    )

    store.save(definition)
    loaded = store.load("rp-weekly-belt")

    assert loaded.pattern == pattern
    assert loaded.project_type == ProjectType.BELT
    assert loaded.components == definition.components
    assert loaded.next_occurrence == date(2025, 1, 6)
    assert loaded.advance_notice_days == 2
    assert loaded.project_suffix == "Batch {n}"


def test_save_updates_existing_row_and_pattern(store, db_session):
    store.save(make_definition())
    definition = store.load("rp-weekly-belt")

    store.save(
        definition.model_copy(
            update={
                "total_occurrences": 2,
                "last_occurrence": date(2025, 1, 13),
                "pattern": make_pattern(start_date=date(2025, 1, 6), interval=2),
            }
        )
    )

    loaded = store.load("rp-weekly-belt")
    assert loaded.total_occurrences == 2
    assert loaded.last_occurrence == date(2025, 1, 13)
    assert loaded.pattern.interval == 2
    assert db_session.execute(select(func.count(PatternRow.id))).scalar_one() == 1


def test_load_missing_returns_none(store):
    assert store.load("missing") is None


def test_list_definitions_filters_active(store):
    store.save(make_definition(id="rp-a"))
    store.save(make_definition(id="rp-b", is_active=False))

    assert {d.id for d in store.list_definitions()} == {"rp-a", "rp-b"}
    assert [d.id for d in store.list_definitions(is_active=False)] == ["rp-b"]


def test_list_definitions_filters_searches_and_paginates(store):
    store.save(make_definition(id="rp-a", client_id="client-7", created_by="user-1"))
    store.save(
        make_definition(
            id="rp-b",
            name="Wallet Restock",
            description="Card wallets for the Lisbon shop",
            project_type=ProjectType.WALLET,
            created_by="user-2",
        )
    )
    store.save(make_definition(id="rp-c", name="Belt Blanks", description=None))

    assert [d.id for d in store.list_definitions(client_id="client-7")] == ["rp-a"]
    assert [d.id for d in store.list_definitions(project_type=ProjectType.WALLET)] == ["rp-b"]
    assert [d.id for d in store.list_definitions(created_by="user-2")] == ["rp-b"]
    assert [d.id for d in store.list_definitions(search="lisbon")] == ["rp-b"]
    assert {d.id for d in store.list_definitions(search="BELT")} == {"rp-a", "rp-c"}

    pages = [store.list_definitions(skip=skip, limit=2) for skip in (0, 2)]
    assert [len(page) for page in pages] == [2, 1]
    assert {d.id for page in pages for d in page} == {"rp-a", "rp-b", "rp-c"}


def test_ledger_has_only_counts_generated_records(store, ledger):
    store.save(make_definition())
    ledger.record(ledger_entry(1, GenerationStatus.FAILED))

    assert not ledger.has("rp-weekly-belt", 1)

    ledger.record(ledger_entry(1, hour=10))
    assert ledger.has("rp-weekly-belt", 1)
    assert [r.status for r in ledger.list_by_definition("rp-weekly-belt")] == [
        GenerationStatus.FAILED,
        GenerationStatus.GENERATED,
    ]


def test_ledger_rejects_second_generated_record(store, ledger):
    store.save(make_definition())
    ledger.record(ledger_entry(1))

    with pytest.raises(ConcurrentOperationException):
        ledger.record(ledger_entry(1, entry_id="gp-duplicate"))

    # The session is still usable after the rollback.
    ledger.record(ledger_entry(2))
    assert [r.occurrence_number for r in ledger.list_by_definition("rp-weekly-belt")] == [1, 2]


def test_project_service_persists_generated_project(session_factory, db_session):
    from hidesync_scheduler.services.project_materializer import ProjectMaterializer

    payload = ProjectMaterializer(clock=lambda: datetime(2025, 1, 6, 9, 0)).materialize(
        make_definition(), date(2025, 1, 6), 1
    )
    persisted = ProjectService(session_factory=session_factory).create_project(payload)

    assert persisted.name == "Weekly Belt #1"
    assert persisted.due_date == date(2025, 1, 9)
    projects = db_session.execute(
        select(ProjectRow).where(ProjectRow.recurring_project_id == "rp-weekly-belt")
    ).scalars().all()
    assert [p.id for p in projects] == [persisted.id]
    assert projects[0].components[0]["name"] == "Strap"


def test_scheduler_over_database(store, ledger, session_factory, db_session):
    store.save(make_definition())
    scheduler = RecurringProjectScheduler(
        store=store,
        ledger=ledger,
        project_creator=ProjectService(session_factory=session_factory),
        clock=lambda: datetime(2025, 1, 6, 9, 0),
        event_bus=EventBus(),
        lock_registry=DefinitionLockRegistry(),
    )

    first = scheduler.tick("rp-weekly-belt")
    second = scheduler.tick("rp-weekly-belt")

    assert first.kind == SchedulerActionKind.GENERATED
    assert second.kind == SchedulerActionKind.NOOP
    assert store.load("rp-weekly-belt").total_occurrences == 1
    rows = db_session.execute(
        select(func.count(ProjectRow.id)).where(ProjectRow.recurring_project_id == "rp-weekly-belt")
    ).scalar_one()
    assert rows == 1
    assert [r.project_id for r in scheduler.list_generated_projects("rp-weekly-belt")] == [
        first.record.project_id
    ]

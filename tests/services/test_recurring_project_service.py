# tests/services/test_recurring_project_service.py
from datetime import date

import pytest

from conftest import make_definition, make_pattern
from hidesync_scheduler.core.events import RecurringProjectCreated
from hidesync_scheduler.core.exceptions import EntityNotFoundException, ValidationException
from hidesync_scheduler.db.models.enums import (
    DayOfWeek,
    GenerationStatus,
    RecurrenceFrequency,
)
from hidesync_scheduler.schemas.recurring_project import (
    GeneratedProjectRecord,
    RecurrencePatternUpdate,
    RecurringProjectCreate,
    RecurringProjectUpdate,
)
from hidesync_scheduler.services.recurring_project_service import RecurringProjectService


@pytest.fixture
def service(store, ledger, clock, event_bus):
    return RecurringProjectService(store=store, ledger=ledger, clock=clock, event_bus=event_bus)


def test_create_sets_first_occurrence_and_publishes_event(service, store, recorder):
    data = RecurringProjectCreate(
        name="Monthly Wallet",
        duration=5,
        recurrence_pattern=make_pattern(
            frequency=RecurrenceFrequency.MONTHLY,
            start_date=date(2025, 1, 1),
            week_of_month=1,
            day_of_week_monthly=DayOfWeek.MONDAY,
            end_after_occurrences=12,
        ),
    )

    created = service.create_recurring_project(data, user_id="user-1")

    assert created.next_occurrence == date(2025, 1, 6)
    assert created.remaining_occurrences == 12
    assert created.total_occurrences == 0
    assert created.created_by == "user-1"
    assert store.load(created.id) == created
    events = recorder.of_type(RecurringProjectCreated)
    assert [e.recurring_project_id for e in events] == [created.id]


def test_create_rejects_invalid_pattern(service, store):
    data = RecurringProjectCreate(
        name="Broken",
        recurrence_pattern=make_pattern(frequency=RecurrenceFrequency.MONTHLY),
    )

    with pytest.raises(ValidationException) as exc_info:
        service.create_recurring_project(data)

    assert "day_of_month" in exc_info.value.details["validation_errors"]
    assert store.list_definitions() == []


def test_update_pattern_recomputes_next_occurrence(service, store):
    store.save(
        make_definition(
            total_occurrences=1,
            last_occurrence=date(2025, 1, 6),
            next_occurrence=date(2025, 1, 13),
        )
    )

    updated = service.update_recurring_project(
        "rp-weekly-belt",
        RecurringProjectUpdate(
            name="Biweekly Belt",
            recurrence_pattern=RecurrencePatternUpdate(interval=2),
        ),
    )

    assert updated.name == "Biweekly Belt"
    assert updated.pattern.interval == 2
    assert updated.next_occurrence == date(2025, 1, 20)
    assert updated.total_occurrences == 1


def test_update_rejects_invalid_pattern(service, store):
    store.save(make_definition())
    with pytest.raises(ValidationException):
        service.update_recurring_project(
            "rp-weekly-belt",
            RecurringProjectUpdate(
                recurrence_pattern=RecurrencePatternUpdate(end_date=date(2024, 1, 1))
            ),
        )


def test_update_unknown_project_raises(service):
    with pytest.raises(EntityNotFoundException):
        service.update_recurring_project("missing", RecurringProjectUpdate(name="Anything"))


def test_reactivation_clears_needs_attention(service, store):
    store.save(make_definition(is_active=False, needs_attention=True))

    reactivated = service.toggle_recurring_project_active("rp-weekly-belt", True)

    assert reactivated.is_active is True
    assert reactivated.needs_attention is False


def test_get_recurring_project_includes_ledger_and_upcoming(service, store, ledger, clock):
    store.save(
        make_definition(
            total_occurrences=1,
            last_occurrence=date(2025, 1, 6),
            next_occurrence=date(2025, 1, 13),
        )
    )
    ledger.record(
        GeneratedProjectRecord(
            id="gp-1",
            project_id="p-1",
            recurring_project_id="rp-weekly-belt",
            occurrence_number=1,
            scheduled_date=date(2025, 1, 6),
            actual_generation_date=clock(),
            status=GenerationStatus.GENERATED,
        )
    )

    details = service.get_recurring_project("rp-weekly-belt")

    assert [r.id for r in details.generated_projects] == ["gp-1"]
    assert details.upcoming_occurrences[:3] == [
        date(2025, 1, 13),
        date(2025, 1, 20),
        date(2025, 1, 27),
    ]


def test_upcoming_occurrences_empty_when_inactive(service, store):
    store.save(make_definition(is_active=False))
    assert service.get_upcoming_occurrences("rp-weekly-belt") == []


def test_preview_occurrences(service):
    pattern = make_pattern(frequency=RecurrenceFrequency.DAILY, interval=2, start_date=date(2025, 1, 1))
    assert service.preview_occurrences(pattern, limit=3) == [
        date(2025, 1, 1),
        date(2025, 1, 3),
        date(2025, 1, 5),
    ]


def test_due_projects_and_stats(service, store):
    store.save(make_definition(id="rp-due", next_occurrence=date(2025, 1, 8)))
    store.save(make_definition(id="rp-later", next_occurrence=date(2025, 2, 3)))
    store.save(make_definition(id="rp-halted", is_active=False, needs_attention=True))

    due = service.get_projects_due_within(7)
    stats = service.get_recurring_project_count()

    assert [d.id for d in due] == ["rp-due"]
    assert stats.total == 3
    assert stats.active == 2
    assert stats.inactive == 1
    assert stats.needs_attention == 1
    assert stats.due_this_week == 1


def test_list_recurring_projects_ignores_unset_filters(service, store):
    store.save(make_definition(id="rp-a", client_id="client-7"))
    store.save(make_definition(id="rp-b", name="Wallet Restock", is_active=False))

    assert [d.id for d in service.list_recurring_projects(is_active=None, client_id=None)] == [
        "rp-a",
        "rp-b",
    ]
    assert [d.id for d in service.list_recurring_projects(client_id="client-7")] == ["rp-a"]
    assert [d.id for d in service.list_recurring_projects(search="wallet")] == ["rp-b"]
    assert [d.id for d in service.list_recurring_projects(skip=1, limit=5)] == ["rp-b"]


def test_delete_deactivates_and_keeps_ledger(service, store, ledger, clock):
    store.save(make_definition(next_occurrence=date(2025, 1, 6)))
    ledger.record(
        GeneratedProjectRecord(
            id="gp-1",
            project_id="p-1",
            recurring_project_id="rp-weekly-belt",
            occurrence_number=1,
            scheduled_date=date(2025, 1, 6),
            actual_generation_date=clock(),
            status=GenerationStatus.GENERATED,
        )
    )

    deleted = service.delete_recurring_project("rp-weekly-belt")

    assert deleted.is_active is False
    assert store.load("rp-weekly-belt").is_active is False
    assert [r.id for r in ledger.list_by_definition("rp-weekly-belt")] == ["gp-1"]
    assert service.get_projects_due_within(7) == []


def test_delete_unknown_project_raises(service):
    with pytest.raises(EntityNotFoundException):
        service.delete_recurring_project("missing")

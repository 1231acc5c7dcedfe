# tests/services/test_recurring_project_scheduler.py
import threading
import time
from datetime import date, datetime

import pytest

from conftest import make_definition, make_pattern
from hidesync_scheduler.core.events import (
    OccurrenceFailed,
    OccurrenceGenerated,
    RecurringProjectEnded,
    RecurringProjectNeedsAttention,
)
from hidesync_scheduler.core.exceptions import (
    BusinessRuleException,
    ConfigurationError,
    EntityNotFoundException,
    GenerationFailure,
)
from hidesync_scheduler.db.models.enums import GenerationStatus, RecurrenceFrequency
from hidesync_scheduler.repositories.in_memory import (
    InMemoryGeneratedProjectLedger,
    InMemoryProjectCreator,
)
from hidesync_scheduler.schemas.recurring_project import (
    GeneratedProjectRecord,
    OccurrenceCustomizations,
    SchedulerActionKind,
)
from hidesync_scheduler.services.recurring_project_scheduler import (
    DefinitionLockRegistry,
    RecurringProjectScheduler,
)


class FlakyProjectCreator(InMemoryProjectCreator):
    """Fails once for each listed occurrence number."""

    def __init__(self, fail_once=()):
        super().__init__()
        self.fail_once = set(fail_once)

    def create_project(self, payload):
        if payload.occurrence_number in self.fail_once:
            self.fail_once.discard(payload.occurrence_number)
            raise RuntimeError("workshop database unavailable")
        return super().create_project(payload)


class BrokenProjectCreator(InMemoryProjectCreator):
    def create_project(self, payload):
        raise RuntimeError("workshop database unavailable")


class BlockingProjectCreator(InMemoryProjectCreator):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def create_project(self, payload):
        self.release.wait(5)
        return super().create_project(payload)


class SlowProjectCreator(InMemoryProjectCreator):
    def create_project(self, payload):
        time.sleep(0.05)
        return super().create_project(payload)


@pytest.fixture
def build_scheduler(store, ledger, creator, clock, event_bus):
    def build(project_creator=None, **kwargs):
        kwargs.setdefault("failure_escalation_threshold", 3)
        kwargs.setdefault("project_creation_timeout", 5)
        return RecurringProjectScheduler(
            store=store,
            ledger=ledger,
            project_creator=project_creator or creator,
            clock=clock,
            event_bus=event_bus,
            lock_registry=DefinitionLockRegistry(),
            **kwargs,
        )

    return build


@pytest.fixture
def scheduler(build_scheduler):
    return build_scheduler()


def daily_definition(**overrides):
    pattern = make_pattern(frequency=RecurrenceFrequency.DAILY, start_date=date(2025, 1, 1))
    return make_definition(pattern, id="rp-daily", name="Daily Strap", **overrides)


# --- tick ---


def test_tick_generates_first_occurrence_on_start_date(store, ledger, creator, scheduler, recorder):
    store.save(make_definition())

    action = scheduler.tick("rp-weekly-belt")

    assert action.kind == SchedulerActionKind.GENERATED
    assert action.record.occurrence_number == 1
    assert action.record.scheduled_date == date(2025, 1, 6)
    assert action.record.status == GenerationStatus.GENERATED

    definition = store.load("rp-weekly-belt")
    assert definition.total_occurrences == 1
    assert definition.last_occurrence == date(2025, 1, 6)
    assert definition.next_occurrence == date(2025, 1, 13)

    assert [p.name for p in creator.created] == ["Weekly Belt #1"]
    assert ledger.has("rp-weekly-belt", 1)
    events = recorder.of_type(OccurrenceGenerated)
    assert len(events) == 1
    assert events[0].manual is False


def test_tick_generates_monthly_start_date(store, creator, scheduler, clock):
    pattern = make_pattern(
        frequency=RecurrenceFrequency.MONTHLY,
        start_date=date(2025, 1, 15),
        day_of_month=15,
    )
    store.save(make_definition(pattern))
    clock.now = datetime(2025, 1, 15, 9, 0)

    action = scheduler.tick("rp-weekly-belt")

    assert action.kind == SchedulerActionKind.GENERATED
    assert action.record.scheduled_date == date(2025, 1, 15)
    assert store.load("rp-weekly-belt").next_occurrence == date(2025, 2, 15)


def test_repeated_tick_is_idempotent(store, ledger, creator, scheduler):
    store.save(make_definition())

    first = scheduler.tick("rp-weekly-belt")
    second = scheduler.tick("rp-weekly-belt")

    assert first.kind == SchedulerActionKind.GENERATED
    assert second.kind == SchedulerActionKind.NOOP
    assert len(creator.created) == 1
    assert len(ledger.list_by_definition("rp-weekly-belt")) == 1


def test_tick_waits_for_advance_notice_window(store, creator, scheduler, clock):
    store.save(make_definition())
    scheduler.tick("rp-weekly-belt")

    clock.advance(days=6)
    assert scheduler.tick("rp-weekly-belt").kind == SchedulerActionKind.NOOP

    clock.advance(days=1)
    action = scheduler.tick("rp-weekly-belt")
    assert action.kind == SchedulerActionKind.GENERATED
    assert action.record.scheduled_date == date(2025, 1, 13)
    assert len(creator.created) == 2


def test_advance_notice_generates_ahead_of_time(store, creator, scheduler):
    store.save(make_definition(advance_notice_days=7))

    assert scheduler.tick("rp-weekly-belt").kind == SchedulerActionKind.GENERATED
    assert scheduler.tick("rp-weekly-belt").kind == SchedulerActionKind.GENERATED
    assert scheduler.tick("rp-weekly-belt").kind == SchedulerActionKind.NOOP
    assert [p.start_date for p in creator.created] == [date(2025, 1, 6), date(2025, 1, 13)]


def test_noop_caches_next_occurrence(store, scheduler, clock):
    clock.now = datetime(2024, 12, 20, 9, 0)
    store.save(make_definition())

    action = scheduler.tick("rp-weekly-belt")

    assert action.kind == SchedulerActionKind.NOOP
    assert store.load("rp-weekly-belt").next_occurrence == date(2025, 1, 6)


def test_inactive_definition_is_noop(store, creator, scheduler):
    store.save(make_definition(is_active=False))
    assert scheduler.tick("rp-weekly-belt").kind == SchedulerActionKind.NOOP
    assert creator.created == []


def test_auto_generate_disabled_is_noop(store, creator, scheduler):
    store.save(make_definition(auto_generate=False))
    assert scheduler.tick("rp-weekly-belt").kind == SchedulerActionKind.NOOP
    assert creator.created == []


def test_tick_unknown_definition_raises(scheduler):
    with pytest.raises(EntityNotFoundException):
        scheduler.tick("missing")


def test_invalid_pattern_raises_without_ledger_entry(store, ledger, scheduler):
    pattern = make_pattern(frequency=RecurrenceFrequency.MONTHLY, start_date=date(2025, 1, 1))
    store.save(make_definition(pattern))

    with pytest.raises(ConfigurationError):
        scheduler.tick("rp-weekly-belt")
    assert ledger.list_by_definition("rp-weekly-belt") == []


def test_pattern_ends_after_occurrence_count(store, scheduler, clock, recorder):
    pattern = make_pattern(
        frequency=RecurrenceFrequency.DAILY,
        start_date=date(2025, 1, 1),
        end_after_occurrences=3,
    )
    store.save(make_definition(pattern, remaining_occurrences=3))
    clock.now = datetime(2025, 1, 10, 9, 0)

    kinds = [scheduler.tick("rp-weekly-belt").kind for _ in range(4)]

    assert kinds == [
        SchedulerActionKind.GENERATED,
        SchedulerActionKind.GENERATED,
        SchedulerActionKind.GENERATED,
        SchedulerActionKind.ENDED,
    ]
    definition = store.load("rp-weekly-belt")
    assert definition.is_active is False
    assert definition.total_occurrences == 3
    assert definition.remaining_occurrences == 0
    assert definition.next_occurrence is None
    assert len(recorder.of_type(RecurringProjectEnded)) == 1
    assert scheduler.tick("rp-weekly-belt").kind == SchedulerActionKind.NOOP


# --- failures ---


def test_failed_occurrence_is_retried_with_same_number(store, ledger, clock, build_scheduler, recorder):
    creator = FlakyProjectCreator(fail_once={4})
    scheduler = build_scheduler(creator)
    store.save(daily_definition())
    clock.now = datetime(2025, 1, 10, 9, 0)

    for _ in range(3):
        assert scheduler.tick("rp-daily").kind == SchedulerActionKind.GENERATED

    failed = scheduler.tick("rp-daily")
    assert failed.kind == SchedulerActionKind.FAILED
    assert failed.record.occurrence_number == 4
    assert failed.record.project_id is None
    assert "workshop database unavailable" in failed.record.notes

    definition = store.load("rp-daily")
    assert definition.total_occurrences == 3
    assert definition.last_occurrence == date(2025, 1, 3)
    assert definition.next_occurrence == date(2025, 1, 4)
    assert definition.is_active is True

    retried = scheduler.tick("rp-daily")
    assert retried.kind == SchedulerActionKind.GENERATED
    assert retried.record.occurrence_number == 4
    assert retried.record.scheduled_date == date(2025, 1, 4)

    statuses = [(r.occurrence_number, r.status) for r in ledger.list_by_definition("rp-daily")]
    assert statuses == [
        (1, GenerationStatus.GENERATED),
        (2, GenerationStatus.GENERATED),
        (3, GenerationStatus.GENERATED),
        (4, GenerationStatus.FAILED),
        (4, GenerationStatus.GENERATED),
    ]
    assert len(recorder.of_type(OccurrenceFailed)) == 1


def test_repeated_failures_halt_the_schedule(store, ledger, build_scheduler, recorder):
    scheduler = build_scheduler(BrokenProjectCreator())
    store.save(make_definition())

    kinds = [scheduler.tick("rp-weekly-belt").kind for _ in range(3)]

    assert kinds == [SchedulerActionKind.FAILED] * 3
    definition = store.load("rp-weekly-belt")
    assert definition.is_active is False
    assert definition.needs_attention is True
    assert definition.total_occurrences == 0

    attention = recorder.of_type(RecurringProjectNeedsAttention)
    assert len(attention) == 1
    assert attention[0].consecutive_failures == 3
    assert attention[0].occurrence_number == 1
    assert scheduler.tick("rp-weekly-belt").kind == SchedulerActionKind.NOOP
    assert len(ledger.list_by_definition("rp-weekly-belt")) == 3


def test_project_creation_timeout_is_a_failure(store, build_scheduler):
    creator = BlockingProjectCreator()
    scheduler = build_scheduler(creator, project_creation_timeout=0.05)
    store.save(make_definition())

    try:
        action = scheduler.tick("rp-weekly-belt")
    finally:
        creator.release.set()

    assert action.kind == SchedulerActionKind.FAILED
    assert "timed out" in action.reason
    assert store.load("rp-weekly-belt").total_occurrences == 0


# --- reconciliation and concurrency ---


def test_tick_reconciles_with_ledger(store, ledger, creator, scheduler, clock):
    store.save(make_definition())
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

    action = scheduler.tick("rp-weekly-belt")

    assert action.kind == SchedulerActionKind.NOOP
    assert creator.created == []
    definition = store.load("rp-weekly-belt")
    assert definition.total_occurrences == 1
    assert definition.last_occurrence == date(2025, 1, 6)
    assert definition.next_occurrence == date(2025, 1, 13)


def test_concurrent_ticks_generate_once(store, ledger, build_scheduler):
    creator = SlowProjectCreator()
    scheduler = build_scheduler(creator)
    store.save(make_definition())
    results = []

    def run():
        results.append(scheduler.tick("rp-weekly-belt").kind)

    threads = [threading.Thread(target=run) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == sorted(
        [SchedulerActionKind.GENERATED] + [SchedulerActionKind.NOOP] * 3
    )
    assert len(creator.created) == 1
    assert len(ledger.list_by_definition("rp-weekly-belt")) == 1


class RacingLedger(InMemoryGeneratedProjectLedger):
    """Lets another worker record the occurrence just before this one does."""

    def record(self, entry):
        if entry.status == GenerationStatus.GENERATED and not self.has(
            entry.recurring_project_id, entry.occurrence_number
        ):
            super().record(
                entry.model_copy(update={"id": "gp-other-worker", "project_id": "p-other"})
            )
        super().record(entry)


class FixedIdProjectCreator(InMemoryProjectCreator):
    def create_project(self, payload):
        return super().create_project(payload).model_copy(update={"id": "p-duplicate"})


def test_lost_race_records_skipped_entry_for_orphaned_project(store, clock, event_bus):
    ledger = RacingLedger()
    scheduler = RecurringProjectScheduler(
        store=store,
        ledger=ledger,
        project_creator=FixedIdProjectCreator(),
        clock=clock,
        event_bus=event_bus,
        lock_registry=DefinitionLockRegistry(),
    )
    store.save(make_definition())

    action = scheduler.tick("rp-weekly-belt")

    assert action.kind == SchedulerActionKind.NOOP
    records = ledger.list_by_definition("rp-weekly-belt")
    assert [(r.project_id, r.status) for r in records] == [
        ("p-other", GenerationStatus.GENERATED),
        ("p-duplicate", GenerationStatus.SKIPPED),
    ]
    assert "p-duplicate" in records[1].notes
    assert store.load("rp-weekly-belt").total_occurrences == 0


# --- manual generation ---


def test_manual_generation_ignores_auto_generate_and_notice(store, creator, scheduler, recorder):
    store.save(make_definition(auto_generate=False))

    first = scheduler.generate_manual_occurrence("rp-weekly-belt")
    second = scheduler.generate_manual_occurrence(
        "rp-weekly-belt",
        customizations=OccurrenceCustomizations(name="Wedding Belt Order"),
    )

    assert first.kind == SchedulerActionKind.GENERATED
    assert second.kind == SchedulerActionKind.GENERATED
    assert second.record.scheduled_date == date(2025, 1, 13)
    assert [p.name for p in creator.created] == ["Weekly Belt #1", "Wedding Belt Order"]
    assert store.load("rp-weekly-belt").name == "Weekly Belt"
    assert all(e.manual for e in recorder.of_type(OccurrenceGenerated))


def test_manual_generation_for_explicit_date(store, scheduler):
    store.save(make_definition())

    action = scheduler.generate_manual_occurrence("rp-weekly-belt", scheduled_date=date(2025, 1, 9))

    assert action.record.scheduled_date == date(2025, 1, 9)
    assert action.record.occurrence_number == 1
    definition = store.load("rp-weekly-belt")
    assert definition.last_occurrence == date(2025, 1, 9)
    assert definition.next_occurrence == date(2025, 1, 13)


def test_manual_generation_on_inactive_definition_raises(store, scheduler):
    store.save(make_definition(is_active=False))
    with pytest.raises(BusinessRuleException):
        scheduler.generate_manual_occurrence("rp-weekly-belt")


def test_manual_generation_raises_after_recording_failure(store, ledger, build_scheduler):
    scheduler = build_scheduler(BrokenProjectCreator())
    store.save(make_definition())

    with pytest.raises(GenerationFailure) as exc_info:
        scheduler.generate_manual_occurrence("rp-weekly-belt", raise_on_failure=True)

    assert exc_info.value.occurrence_number == 1
    records = ledger.list_by_definition("rp-weekly-belt")
    assert [r.status for r in records] == [GenerationStatus.FAILED]


def test_manual_generation_on_ended_pattern(store, scheduler):
    pattern = make_pattern(start_date=date(2025, 1, 6), end_after_occurrences=1)
    store.save(make_definition(pattern))
    scheduler.generate_manual_occurrence("rp-weekly-belt")

    action = scheduler.generate_manual_occurrence("rp-weekly-belt")

    assert action.kind == SchedulerActionKind.ENDED
    assert store.load("rp-weekly-belt").is_active is False


def test_compute_next_occurrence_passthrough(scheduler):
    pattern = make_pattern(start_date=date(2025, 1, 6))
    assert scheduler.compute_next_occurrence(pattern, date(2025, 1, 6)) == date(2025, 1, 13)

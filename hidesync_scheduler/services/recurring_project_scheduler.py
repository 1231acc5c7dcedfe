# hidesync_scheduler/services/recurring_project_scheduler.py
"""
Recurring project scheduler.

Decides, for one recurring project at a time, whether its next occurrence is
due and turns it into a concrete project. Bookkeeping on the definition is
only written after the project creator has confirmed the project, and every
attempt (successful or not) is appended to the generated project ledger.

Calls for the same definition are serialized by a per-definition lock;
different definitions may be processed in parallel.
"""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from hidesync_scheduler.core.config import settings
from hidesync_scheduler.core.events import (
    EventBus,
    OccurrenceFailed,
    OccurrenceGenerated,
    RecurringProjectEnded,
    RecurringProjectNeedsAttention,
    global_event_bus,
)
from hidesync_scheduler.core.exceptions import (
    BusinessRuleException,
    ConcurrentOperationException,
    EntityNotFoundException,
    GenerationFailure,
)
from hidesync_scheduler.db.models.enums import GenerationStatus
from hidesync_scheduler.interfaces.generated_project_ledger import GeneratedProjectLedger
from hidesync_scheduler.interfaces.project_creator import ProjectCreator
from hidesync_scheduler.interfaces.recurring_project_store import RecurringProjectStore
from hidesync_scheduler.schemas.recurring_project import (
    GeneratedProjectRecord,
    OccurrenceCustomizations,
    PersistedProject,
    ProjectPayload,
    RecurrencePattern,
    RecurringProjectDefinition,
    SchedulerAction,
)
from hidesync_scheduler.services.project_materializer import ProjectMaterializer
from hidesync_scheduler.services.recurrence_calculator import OccurrenceCalculator

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class DefinitionLockRegistry:
    """Hands out one lock per recurring project ID."""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, definition_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(definition_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[definition_id] = lock
            return lock


# Shared so that schedulers built per request still serialize on the same lock.
definition_locks = DefinitionLockRegistry()


class RecurringProjectScheduler:
    """
    Generates projects from recurring project definitions.

    Args:
        store: Recurring project persistence
        ledger: Generated project ledger
        project_creator: Collaborator that persists generated projects
        calculator: Occurrence calculator
        materializer: Project payload builder
        clock: Returns the current time; ``clock().date()`` is "today"
        event_bus: Destination for domain events
        failure_escalation_threshold: Failed attempts on one occurrence
            before the schedule is halted
        project_creation_timeout: Seconds to wait for the project creator
        lock_registry: Source of per-definition locks
    """

    def __init__(
        self,
        store: RecurringProjectStore,
        ledger: GeneratedProjectLedger,
        project_creator: ProjectCreator,
        calculator: Optional[OccurrenceCalculator] = None,
        materializer: Optional[ProjectMaterializer] = None,
        clock: Optional[Clock] = None,
        event_bus: Optional[EventBus] = None,
        failure_escalation_threshold: Optional[int] = None,
        project_creation_timeout: Optional[float] = None,
        lock_registry: Optional[DefinitionLockRegistry] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.project_creator = project_creator
        self.calculator = calculator or OccurrenceCalculator()
        self.clock = clock or datetime.now
        self.materializer = materializer or ProjectMaterializer(clock=self.clock)
        self.event_bus = event_bus if event_bus is not None else global_event_bus
        self.failure_escalation_threshold = (
            failure_escalation_threshold
            or settings.SCHEDULER_FAILURE_ESCALATION_THRESHOLD
        )
        self.project_creation_timeout = (
            project_creation_timeout
            or settings.SCHEDULER_PROJECT_CREATION_TIMEOUT_SECONDS
        )
        self.lock_registry = lock_registry or definition_locks

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tick(self, definition_id: str) -> SchedulerAction:
        """
        Generate the next occurrence of a recurring project if it is due.

        Repeated calls on the same day are idempotent: once an occurrence has
        been generated the next call is a no-op until the following one
        falls inside the advance notice window.

        Raises:
            EntityNotFoundException: If the definition does not exist
            ConfigurationError: If the recurrence pattern is invalid
        """
        with self.lock_registry.lock_for(definition_id):
            definition = self._load(definition_id)

            if not definition.is_active:
                return self._noop(definition, "recurring project is inactive")

            candidate = self._candidate(definition)
            if candidate is None:
                return self._end(definition)

            if not definition.auto_generate:
                return self._noop(definition, "automatic generation is disabled")

            today = self._today()
            if (candidate - today).days > definition.advance_notice_days:
                if definition.next_occurrence != candidate:
                    self.store.save(definition.model_copy(update={"next_occurrence": candidate}))
                return self._noop(
                    definition,
                    f"next occurrence {candidate.isoformat()} is outside the advance notice window",
                )

            occurrence_number = definition.total_occurrences + 1
            if self.ledger.has(definition.id, occurrence_number):
                self._reconcile(definition, occurrence_number, candidate)
                return self._noop(
                    definition,
                    f"occurrence {occurrence_number} was already generated",
                )

            return self._attempt(
                definition,
                candidate,
                occurrence_number,
                manual=False,
                cache_candidate=True,
            )

    def generate_manual_occurrence(
        self,
        definition_id: str,
        scheduled_date: Optional[date] = None,
        customizations: Optional[OccurrenceCustomizations] = None,
        raise_on_failure: bool = False,
    ) -> SchedulerAction:
        """
        Generate an occurrence on request, ignoring auto_generate and the
        advance notice window.

        Args:
            definition_id: Recurring project ID
            scheduled_date: Date to generate for, defaults to the next occurrence
            customizations: Overrides applied to this occurrence only
            raise_on_failure: Raise GenerationFailure instead of returning a
                failed action (the failure is recorded either way)

        Raises:
            EntityNotFoundException: If the definition does not exist
            BusinessRuleException: If the definition is inactive
            GenerationFailure: On failure when ``raise_on_failure`` is set
        """
        with self.lock_registry.lock_for(definition_id):
            definition = self._load(definition_id)

            if not definition.is_active:
                raise BusinessRuleException(
                    "Cannot generate occurrences for an inactive recurring project",
                    rule_name="recurring_project_inactive",
                    details={
                        "recurring_project_id": definition.id,
                        "needs_attention": definition.needs_attention,
                    },
                )

            while self.ledger.has(definition.id, definition.total_occurrences + 1):
                definition = self._reconcile(
                    definition, definition.total_occurrences + 1, None
                )

            target = scheduled_date
            if target is None:
                target = self._candidate(definition)
                if target is None:
                    return self._end(definition)

            action = self._attempt(
                definition,
                target,
                definition.total_occurrences + 1,
                customizations=customizations,
                manual=True,
                cache_candidate=scheduled_date is None,
            )

            if raise_on_failure and action.record is not None and (
                action.record.status == GenerationStatus.FAILED
            ):
                raise GenerationFailure(
                    definition.id,
                    action.record.occurrence_number,
                    action.record.scheduled_date,
                    original_error=action.reason,
                )
            return action

    def compute_next_occurrence(
        self, pattern: RecurrencePattern, from_date: date
    ) -> Optional[date]:
        """Next occurrence of a pattern strictly after a date."""
        return self.calculator.compute_next_occurrence(pattern, from_date)

    def list_generated_projects(self, definition_id: str) -> List[GeneratedProjectRecord]:
        """Ledger records of a recurring project, ascending by occurrence number."""
        return self.ledger.list_by_definition(definition_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _today(self) -> date:
        return self.clock().date()

    def _load(self, definition_id: str) -> RecurringProjectDefinition:
        definition = self.store.load(definition_id)
        if definition is None:
            raise EntityNotFoundException("RecurringProject", definition_id)
        return definition

    def _noop(self, definition: RecurringProjectDefinition, reason: str) -> SchedulerAction:
        logger.debug(f"Recurring project {definition.id}: nothing to do, {reason}")
        return SchedulerAction.noop(definition.id, reason)

    def _candidate(self, definition: RecurringProjectDefinition) -> Optional[date]:
        if definition.next_occurrence is not None:
            return definition.next_occurrence
        if definition.last_occurrence is None:
            return self.calculator.first_occurrence(
                definition.pattern, definition.total_occurrences
            )
        return self.calculator.compute_next_occurrence(
            definition.pattern, definition.last_occurrence, definition.total_occurrences
        )

    def _advance(
        self,
        definition: RecurringProjectDefinition,
        occurred_on: date,
        occurrence_number: int,
    ) -> RecurringProjectDefinition:
        """Bookkeeping after occurrence ``occurrence_number`` was generated."""
        pattern = definition.pattern
        remaining = None
        if pattern.end_after_occurrences is not None:
            remaining = max(0, pattern.end_after_occurrences - occurrence_number)
        return definition.model_copy(
            update={
                "last_occurrence": occurred_on,
                "total_occurrences": occurrence_number,
                "remaining_occurrences": remaining,
                "next_occurrence": self.calculator.compute_next_occurrence(
                    pattern, occurred_on, occurrence_number
                ),
            }
        )

    def _reconcile(
        self,
        definition: RecurringProjectDefinition,
        occurrence_number: int,
        candidate: Optional[date],
    ) -> RecurringProjectDefinition:
        """Catch up bookkeeping with an occurrence the ledger already holds."""
        existing = next(
            (
                r
                for r in self.ledger.list_by_definition(definition.id)
                if r.occurrence_number == occurrence_number
                and r.status == GenerationStatus.GENERATED
            ),
            None,
        )
        occurred_on = existing.scheduled_date if existing is not None else candidate
        logger.info(
            f"Recurring project {definition.id}: occurrence {occurrence_number} "
            f"already in ledger, catching up bookkeeping"
        )
        return self.store.save(self._advance(definition, occurred_on, occurrence_number))

    def _end(self, definition: RecurringProjectDefinition) -> SchedulerAction:
        updates = {"is_active": False, "next_occurrence": None}
        if definition.pattern.end_after_occurrences is not None:
            updates["remaining_occurrences"] = 0
        self.store.save(definition.model_copy(update=updates))

        self.event_bus.publish(
            RecurringProjectEnded(
                recurring_project_id=definition.id,
                total_occurrences=definition.total_occurrences,
            )
        )
        logger.info(
            f"Recurring project {definition.id} ended after "
            f"{definition.total_occurrences} occurrences"
        )
        return SchedulerAction.ended(definition.id)

    def _create_project(self, payload: ProjectPayload) -> PersistedProject:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="project-creator")
        try:
            future = executor.submit(self.project_creator.create_project, payload)
            try:
                return future.result(timeout=self.project_creation_timeout)
            except FutureTimeoutError:
                future.cancel()
                raise GenerationFailure(
                    payload.recurring_project_id,
                    payload.occurrence_number,
                    payload.start_date,
                    original_error=(
                        f"project creation timed out after "
                        f"{self.project_creation_timeout} seconds"
                    ),
                )
        finally:
            # Never block on a hung creator.
            executor.shutdown(wait=False)

    def _attempt(
        self,
        definition: RecurringProjectDefinition,
        scheduled_date: date,
        occurrence_number: int,
        customizations: Optional[OccurrenceCustomizations] = None,
        manual: bool = False,
        cache_candidate: bool = False,
    ) -> SchedulerAction:
        try:
            payload = self.materializer.materialize(
                definition, scheduled_date, occurrence_number, customizations
            )
            persisted = self._create_project(payload)
        except Exception as e:
            return self._record_failure(
                definition, scheduled_date, occurrence_number, e, cache_candidate
            )

        record = GeneratedProjectRecord(
            id=str(uuid.uuid4()),
            project_id=persisted.id,
            recurring_project_id=definition.id,
            occurrence_number=occurrence_number,
            scheduled_date=scheduled_date,
            actual_generation_date=self.clock(),
            status=GenerationStatus.GENERATED,
            notes="Generated manually" if manual else None,
        )
        try:
            self.ledger.record(record)
        except ConcurrentOperationException:
            logger.warning(
                f"Recurring project {definition.id}: occurrence {occurrence_number} "
                f"was generated concurrently, project {persisted.id} is a duplicate"
            )
            # Keep the orphaned project visible in the audit trail.
            self.ledger.record(
                record.model_copy(
                    update={
                        "id": str(uuid.uuid4()),
                        "status": GenerationStatus.SKIPPED,
                        "notes": (
                            f"Duplicate of a concurrent generation; project {persisted.id} "
                            f"is not counted"
                        ),
                    }
                )
            )
            return SchedulerAction.noop(
                definition.id, f"occurrence {occurrence_number} was generated concurrently"
            )

        self.store.save(self._advance(definition, scheduled_date, occurrence_number))

        self.event_bus.publish(
            OccurrenceGenerated(
                recurring_project_id=definition.id,
                project_id=persisted.id,
                occurrence_number=occurrence_number,
                scheduled_date=scheduled_date,
                manual=manual,
            )
        )
        logger.info(
            f"Generated project {persisted.id} for occurrence {occurrence_number} "
            f"of recurring project {definition.id} scheduled {scheduled_date.isoformat()}"
        )
        return SchedulerAction.generated(record)

    def _count_consecutive_failures(self, definition_id: str, occurrence_number: int) -> int:
        count = 0
        for record in reversed(self.ledger.list_by_definition(definition_id)):
            if record.occurrence_number != occurrence_number:
                continue
            if record.status != GenerationStatus.FAILED:
                break
            count += 1
        return count

    def _record_failure(
        self,
        definition: RecurringProjectDefinition,
        scheduled_date: date,
        occurrence_number: int,
        error: Exception,
        cache_candidate: bool,
    ) -> SchedulerAction:
        reason = str(error) or type(error).__name__
        record = GeneratedProjectRecord(
            id=str(uuid.uuid4()),
            project_id=None,
            recurring_project_id=definition.id,
            occurrence_number=occurrence_number,
            scheduled_date=scheduled_date,
            actual_generation_date=self.clock(),
            status=GenerationStatus.FAILED,
            notes=reason,
        )
        self.ledger.record(record)

        failures = self._count_consecutive_failures(definition.id, occurrence_number)
        logger.warning(
            f"Failed to generate occurrence {occurrence_number} of recurring project "
            f"{definition.id} (attempt {failures}): {reason}",
            exc_info=error,
        )

        # Every threshold-th failure halts the schedule, so a reactivated
        # schedule gets a fresh set of attempts.
        escalate = failures % self.failure_escalation_threshold == 0
        updates = {}
        if cache_candidate and definition.next_occurrence != scheduled_date:
            updates["next_occurrence"] = scheduled_date
        if escalate:
            updates["is_active"] = False
            updates["needs_attention"] = True
        if updates:
            self.store.save(definition.model_copy(update=updates))

        self.event_bus.publish(
            OccurrenceFailed(
                recurring_project_id=definition.id,
                occurrence_number=occurrence_number,
                scheduled_date=scheduled_date,
                error=reason,
                consecutive_failures=failures,
            )
        )
        if escalate:
            logger.error(
                f"Recurring project {definition.id} deactivated after {failures} "
                f"failed attempts on occurrence {occurrence_number}"
            )
            self.event_bus.publish(
                RecurringProjectNeedsAttention(
                    recurring_project_id=definition.id,
                    occurrence_number=occurrence_number,
                    consecutive_failures=failures,
                )
            )
        return SchedulerAction.failed(record, reason)

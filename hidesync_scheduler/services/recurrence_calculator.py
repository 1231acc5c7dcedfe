# hidesync_scheduler/services/recurrence_calculator.py
"""
Occurrence calculation for recurrence patterns.

Everything in this module is pure: results depend only on the pattern and the
reference date, so a single calculator may be shared between threads.

Periodic frequencies (monthly, quarterly, yearly) use one slot per period,
aligned to the pattern's start month. The next occurrence after a reference
date is the earliest slot later than it, so a slot later in the same month is
not skipped and the start date is its own first occurrence when it matches.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import Callable, List, Optional

from hidesync_scheduler.core.exceptions import ConfigurationError
from hidesync_scheduler.db.models.enums import (
    DayOfWeek,
    DisabledDateHandling,
    RecurrenceFrequency,
)
from hidesync_scheduler.schemas.recurring_project import RecurrencePattern

logger = logging.getLogger(__name__)

# Upper bound on candidates rejected by skip rules for a single lookup.
MAX_CADENCE_ITERATIONS = 1000

CustomExpressionEvaluator = Callable[[str, date], Optional[date]]


def _month_index(value: date) -> int:
    return value.year * 12 + value.month - 1


def nth_weekday_of_month(
    year: int, month: int, weekday: DayOfWeek, week_of_month: int
) -> date:
    """
    Return the Nth given weekday of a month.

    Args:
        year: Calendar year
        month: Calendar month (1-12)
        weekday: Day of week to find
        week_of_month: 1-4 for the Nth occurrence, 5 for the last one

    Returns:
        The matching date
    """
    target = weekday.to_python_weekday()
    if week_of_month >= 5:
        last = date(year, month, calendar.monthrange(year, month)[1])
        return last - timedelta(days=(last.weekday() - target) % 7)

    first = date(year, month, 1)
    offset = (target - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (week_of_month - 1))


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping the day to the month's last day."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


class OccurrenceCalculator:
    """
    Computes occurrence dates for recurrence patterns.

    Custom patterns that carry a ``custom_expression`` are handed to the
    injected evaluator, which receives the expression and the reference date
    and returns the next date strictly after it (or None when exhausted).
    """

    def __init__(
        self,
        custom_expression_evaluator: Optional[CustomExpressionEvaluator] = None,
        max_iterations: int = MAX_CADENCE_ITERATIONS,
    ):
        self.custom_expression_evaluator = custom_expression_evaluator
        self.max_iterations = max_iterations

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(self, pattern: RecurrencePattern) -> None:
        """
        Check the cross-field rules of a pattern.

        Raises:
            ConfigurationError: If the pattern is structurally invalid
        """
        if pattern.end_date is not None and pattern.end_date < pattern.start_date:
            raise ConfigurationError(
                "end_date must not be before start_date", field="end_date"
            )

        has_week = pattern.week_of_month is not None
        has_weekday = pattern.day_of_week_monthly is not None
        if has_week != has_weekday:
            raise ConfigurationError(
                "week_of_month and day_of_week_monthly must be given together",
                field="week_of_month" if has_weekday else "day_of_week_monthly",
            )
        has_nth_weekday = has_week and has_weekday
        has_day_of_month = pattern.day_of_month is not None

        if pattern.frequency == RecurrenceFrequency.MONTHLY:
            if has_day_of_month == has_nth_weekday:
                raise ConfigurationError(
                    "Monthly patterns need exactly one of day_of_month or "
                    "week_of_month with day_of_week_monthly",
                    field="day_of_month",
                    details={
                        "day_of_month": pattern.day_of_month,
                        "week_of_month": pattern.week_of_month,
                        "day_of_week_monthly": pattern.day_of_week_monthly,
                    },
                )
        elif pattern.frequency in (
            RecurrenceFrequency.QUARTERLY,
            RecurrenceFrequency.YEARLY,
        ):
            if has_day_of_month and has_nth_weekday:
                raise ConfigurationError(
                    "day_of_month and week_of_month cannot be combined",
                    field="day_of_month",
                )
        elif pattern.frequency == RecurrenceFrequency.CUSTOM:
            has_dates = bool(pattern.custom_dates)
            has_expression = bool(pattern.custom_expression)
            if has_dates == has_expression:
                raise ConfigurationError(
                    "Custom patterns need exactly one of custom_dates or custom_expression",
                    field="custom_dates",
                )
            if has_expression and self.custom_expression_evaluator is None:
                raise ConfigurationError(
                    "No evaluator is configured for custom expressions",
                    field="custom_expression",
                )

    def compute_next_occurrence(
        self,
        pattern: RecurrencePattern,
        from_date: date,
        occurrences_generated: Optional[int] = None,
    ) -> Optional[date]:
        """
        Calculate the next occurrence strictly after a reference date.

        Args:
            pattern: Recurrence pattern
            from_date: Reference date, usually the last occurrence
            occurrences_generated: Occurrences already produced. When omitted
                and the pattern ends after a count, the occurrences up to
                ``from_date`` are counted from the pattern itself.

        Returns:
            Next occurrence date or None if the pattern has ended

        Raises:
            ConfigurationError: If the pattern is structurally invalid
        """
        self.validate(pattern)

        if pattern.end_after_occurrences is not None:
            if occurrences_generated is None:
                occurrences_generated = self._count_through(pattern, from_date)
            if occurrences_generated >= pattern.end_after_occurrences:
                return None

        return self._next(pattern, from_date)

    def first_occurrence(
        self, pattern: RecurrencePattern, occurrences_generated: int = 0
    ) -> Optional[date]:
        """
        Calculate the first occurrence of a pattern.

        The start date itself is the first occurrence whenever it matches the
        pattern (after skip rules).
        """
        self.validate(pattern)
        if (
            pattern.end_after_occurrences is not None
            and occurrences_generated >= pattern.end_after_occurrences
        ):
            return None
        return self._next(pattern, self._first_reference(pattern))

    def upcoming_occurrences(
        self,
        pattern: RecurrencePattern,
        after: Optional[date] = None,
        limit: int = 5,
        until: Optional[date] = None,
        occurrences_generated: Optional[int] = None,
    ) -> List[date]:
        """
        Calculate a list of upcoming occurrences.

        Args:
            pattern: Recurrence pattern
            after: Reference date; None starts with the first occurrence
            limit: Maximum number of occurrences to return
            until: Optional inclusive upper bound
            occurrences_generated: Occurrences already produced before ``after``

        Returns:
            Ascending list of occurrence dates
        """
        if after is None:
            count = occurrences_generated or 0
            current = self.first_occurrence(pattern, count)
        else:
            self.validate(pattern)
            count = occurrences_generated
            if count is None and pattern.end_after_occurrences is not None:
                count = self._count_through(pattern, after)
            current = self.compute_next_occurrence(pattern, after, count)

        occurrences: List[date] = []
        while current is not None and len(occurrences) < limit:
            if until is not None and current > until:
                break
            occurrences.append(current)
            if count is not None:
                count += 1
            current = self.compute_next_occurrence(pattern, current, count)

        return occurrences

    def is_disabled(self, pattern: RecurrencePattern, value: date) -> bool:
        """Whether a date falls on a weekend or holiday the pattern avoids."""
        if pattern.skip_weekends and value.weekday() >= 5:
            return True
        if pattern.skip_holidays and value in pattern.holidays:
            return True
        return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _first_reference(self, pattern: RecurrencePattern) -> date:
        if pattern.frequency == RecurrenceFrequency.DAILY:
            return pattern.start_date - timedelta(days=pattern.interval)
        return pattern.start_date - timedelta(days=1)

    def _count_through(self, pattern: RecurrencePattern, until: date) -> int:
        """Count pattern occurrences on or before a date, capped at the end count."""
        limit = pattern.end_after_occurrences
        count = 0
        current = self._next(pattern, self._first_reference(pattern))
        while current is not None and current <= until and count < limit:
            count += 1
            current = self._next(pattern, current)
        return count

    def _next(self, pattern: RecurrencePattern, from_date: date) -> Optional[date]:
        """Next occurrence honoring end_date and skip rules, ignoring counts."""
        cursor = from_date
        for _ in range(self.max_iterations):
            candidate = self._base_candidate(pattern, cursor)
            if candidate is None:
                return None
            if pattern.end_date is not None and candidate > pattern.end_date:
                return None
            if not self.is_disabled(pattern, candidate):
                return candidate

            if pattern.disabled_date_handling == DisabledDateHandling.SKIP:
                # Advance the cadence itself, not just the date.
                cursor = candidate
                continue

            step = -1 if pattern.disabled_date_handling == DisabledDateHandling.PREVIOUS else 1
            adjusted = self._shift(pattern, candidate, step)
            if adjusted <= from_date:
                cursor = candidate
                continue
            if pattern.end_date is not None and adjusted > pattern.end_date:
                return None
            return adjusted

        raise ConfigurationError(
            f"Skip rules rejected {self.max_iterations} consecutive candidates",
            field="disabled_date_handling",
            details={"from_date": from_date.isoformat()},
        )

    def _shift(self, pattern: RecurrencePattern, value: date, step: int) -> date:
        shifted = value
        while self.is_disabled(pattern, shifted):
            shifted += timedelta(days=step)
        return shifted

    def _base_candidate(self, pattern: RecurrencePattern, cursor: date) -> Optional[date]:
        frequency = pattern.frequency
        if frequency == RecurrenceFrequency.DAILY:
            return cursor + timedelta(days=pattern.interval)
        if frequency == RecurrenceFrequency.WEEKLY:
            return self._weekly_candidate(pattern, cursor)
        if frequency in (
            RecurrenceFrequency.MONTHLY,
            RecurrenceFrequency.QUARTERLY,
            RecurrenceFrequency.YEARLY,
        ):
            return self._periodic_candidate(pattern, cursor)
        if frequency == RecurrenceFrequency.CUSTOM:
            return self._custom_candidate(pattern, cursor)
        raise ConfigurationError(f"Unsupported frequency: {frequency}", field="frequency")

    def _weekly_candidate(self, pattern: RecurrencePattern, cursor: date) -> date:
        """Next matching weekday in a week that is a multiple of interval after the start week."""
        start = pattern.start_date
        days = pattern.days_of_week or {DayOfWeek.from_python_weekday(start.weekday())}
        weekdays = {day.to_python_weekday() for day in days}
        start_monday = start - timedelta(days=start.weekday())

        current = max(cursor + timedelta(days=1), start)
        while True:
            monday = current - timedelta(days=current.weekday())
            remainder = ((monday - start_monday).days // 7) % pattern.interval
            if remainder:
                current = monday + timedelta(weeks=pattern.interval - remainder)
                continue
            for weekday in range(current.weekday(), 7):
                if weekday in weekdays:
                    return monday + timedelta(days=weekday)
            current = monday + timedelta(weeks=1)

    def _period_months(self, pattern: RecurrencePattern) -> int:
        if pattern.frequency == RecurrenceFrequency.QUARTERLY:
            return 3 * pattern.interval
        if pattern.frequency == RecurrenceFrequency.YEARLY:
            return 12 * pattern.interval
        return pattern.interval

    def _anchor_month_index(self, pattern: RecurrencePattern) -> int:
        if pattern.frequency == RecurrenceFrequency.YEARLY:
            month = pattern.month or pattern.start_date.month
            return pattern.start_date.year * 12 + month - 1
        return _month_index(pattern.start_date)

    def _slot_date(self, pattern: RecurrencePattern, month_index: int) -> date:
        year, month = divmod(month_index, 12)
        month += 1
        if pattern.week_of_month is not None and pattern.day_of_week_monthly is not None:
            return nth_weekday_of_month(
                year, month, pattern.day_of_week_monthly, pattern.week_of_month
            )
        return clamp_day(year, month, pattern.day_of_month or pattern.start_date.day)

    def _periodic_candidate(self, pattern: RecurrencePattern, cursor: date) -> date:
        """First slot of the cadence strictly after cursor and not before start_date."""
        period = self._period_months(pattern)
        anchor = self._anchor_month_index(pattern)
        earliest = max(cursor + timedelta(days=1), pattern.start_date)

        # Start from the slot owning the month of ``earliest``; it may still fall before it.
        k = max(0, (_month_index(earliest) - anchor) // period)
        while True:
            candidate = self._slot_date(pattern, anchor + k * period)
            if candidate >= earliest:
                return candidate
            k += 1

    def _custom_candidate(self, pattern: RecurrencePattern, cursor: date) -> Optional[date]:
        if pattern.custom_dates:
            return next((d for d in pattern.custom_dates if d > cursor), None)

        result = self.custom_expression_evaluator(pattern.custom_expression, cursor)
        if result is not None and result <= cursor:
            raise ConfigurationError(
                "Custom expression evaluator did not advance past the reference date",
                field="custom_expression",
                details={"from_date": cursor.isoformat(), "result": result.isoformat()},
            )
        return result


_default_calculator = OccurrenceCalculator()


def compute_next_occurrence(
    pattern: RecurrencePattern, from_date: date
) -> Optional[date]:
    """Module-level shortcut using a calculator without a custom evaluator."""
    return _default_calculator.compute_next_occurrence(pattern, from_date)

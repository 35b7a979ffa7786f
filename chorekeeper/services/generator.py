"""
Chore instance generation.

Expands a recurring chore's pattern into due dates and materializes the
missing child chores. Generation is keyed on (parent id, due date), so
repeated runs over overlapping windows never create duplicates.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from dateutil.relativedelta import relativedelta

from chorekeeper.entities import Chore, ChoreStatus, Frequency
from chorekeeper.errors import ChoreError, GenerationFailedError, InvalidRecurringPatternError
from chorekeeper.services.interfaces import ChoreRepository
from chorekeeper.utils.dates import (
    next_occurrence_of_day_of_month,
    next_occurrence_of_last_day_of_month,
    next_occurrence_of_weekday,
    set_time,
    start_of_day,
)
from chorekeeper.utils.recurrence import RecurringPattern, describe_pattern, parse
from chorekeeper.utils.timezone import local_naive_now

logger = logging.getLogger(__name__)


@dataclass
class GenerationFailure:
    parent_id: Optional[int]
    reason: str


@dataclass
class GenerationReport:
    """Outcome of a batch generation run."""

    created: int = 0
    failures: List[GenerationFailure] = field(default_factory=list)

    def __int__(self):
        return self.created

    @property
    def failed_parent_ids(self) -> List[Optional[int]]:
        return [failure.parent_id for failure in self.failures]


class ChoreGenerator:
    """Generates child chores for recurring chores."""

    def __init__(self, repository: ChoreRepository,
                 clock: Callable[[], datetime] = local_naive_now,
                 horizon_months: int = 1):
        self.repository = repository
        self.clock = clock
        self.horizon_months = horizon_months

    @staticmethod
    def _next_occurrence_day(pattern: RecurringPattern, from_date: datetime) -> datetime:
        """Midnight of the first pattern day strictly after ``from_date``'s day."""
        if pattern.frequency == Frequency.DAILY:
            return start_of_day(from_date) + timedelta(days=1)

        if pattern.frequency == Frequency.WEEKLY:
            return min(next_occurrence_of_weekday(day, from_date) for day in pattern.days_of_week)

        if pattern.frequency == Frequency.MONTHLY:
            if pattern.use_last_day_of_month:
                return next_occurrence_of_last_day_of_month(from_date)
            return next_occurrence_of_day_of_month(pattern.day_of_month, from_date)

        raise InvalidRecurringPatternError("One-time patterns have no next occurrence")

    def generate_next_due_date(self, pattern: RecurringPattern, from_date: datetime) -> datetime:
        """
        Calculate the next due date after ``from_date``'s calendar day.

        Raises:
            InvalidRecurringPatternError: The pattern is one-time
        """
        day = self._next_occurrence_day(pattern, from_date)
        return set_time(day, pattern.due_hour, pattern.due_minute)

    def first_due_date(self, pattern: RecurringPattern, on_or_after: datetime) -> datetime:
        """First occurrence at or after ``on_or_after``."""
        due = self.generate_next_due_date(pattern, start_of_day(on_or_after) - timedelta(days=1))
        if due < on_or_after:
            due = self.generate_next_due_date(pattern, due)
        return due

    def generate_due_dates(self, pattern: Union[RecurringPattern, str, None],
                           start_date: datetime, end_date: datetime) -> List[datetime]:
        """
        Generate all due dates between start and end based on pattern.

        Args:
            pattern: Parsed pattern or stored pattern string
            start_date: Start of range (inclusive)
            end_date: End of range (inclusive)

        Returns:
            Ascending list of due timestamps; empty for one-time or invalid patterns
        """
        if isinstance(pattern, str):
            pattern = parse(pattern)
        if pattern is None or pattern.frequency == Frequency.ONE_TIME:
            return []
        if start_date > end_date:
            return []

        dates = []
        cursor = start_of_day(start_date) - timedelta(days=1)

        while True:
            due = self.generate_next_due_date(pattern, cursor)
            if due > end_date:
                break
            if due >= start_date:
                dates.append(due)
            cursor = due

        return dates

    def generate_chore_instances(self, parent: Chore, start_date: datetime,
                                 end_date: datetime) -> List[Chore]:
        """
        Create the children of ``parent`` due between start and end.

        Dates already taken by a child of this parent, deleted or not, are
        skipped.

        Args:
            parent: Recurring chore template
            start_date: Start of generation range (inclusive)
            end_date: End of generation range (inclusive)

        Returns:
            List of newly created children

        Raises:
            InvalidRecurringPatternError: Parent is not a live recurring chore with a valid pattern
            GenerationFailedError: A child could not be stored
        """
        if not parent.is_recurring or parent.is_deleted or parent.id is None:
            raise InvalidRecurringPatternError(
                f"Chore {parent.id} is not an active recurring chore", parent.id
            )

        pattern = parse(parent.recurring_pattern or '')
        if pattern is None or pattern.frequency == Frequency.ONE_TIME:
            raise InvalidRecurringPatternError(
                f'Chore {parent.id} has an invalid recurring pattern "{parent.recurring_pattern}"',
                parent.id
            )

        existing = {
            child.due_date
            for child in self.repository.get_child_chores(parent.id, include_deleted=True)
        }
        now = self.clock()
        instances = []

        for due_date in self.generate_due_dates(pattern, start_date, end_date):
            if due_date in existing:
                continue

            instance = Chore(
                title=parent.title,
                description=parent.description,
                points=parent.points,
                due_date=due_date,
                is_recurring=False,
                status=ChoreStatus.PENDING,
                parent_chore_id=parent.id,
                assigned_to_user_id=parent.assigned_to_user_id,
                created_by_user_id=parent.created_by_user_id,
                family_id=parent.family_id,
                icon_id=parent.icon_id,
                created_at=now,
                updated_at=now,
            )
            try:
                instance.id = self.repository.create(instance)
            except ChoreError as e:
                raise GenerationFailedError(parent.id, e.message) from e

            existing.add(due_date)
            instances.append(instance)
            logger.debug(f"Created instance: parent={parent.id}, due={due_date}")

        logger.info(f"Generated {len(instances)} instances for chore {parent.id} ({describe_pattern(pattern)})")

        return instances

    def calculate_end_date(self, months: Optional[int] = None) -> datetime:
        """End of the generation window: now plus ``months`` calendar months."""
        return self.clock() + relativedelta(months=self.horizon_months if months is None else months)

    def generate_all_recurring_chores(self, family_id: Optional[int] = None,
                                      end_date: Optional[datetime] = None) -> GenerationReport:
        """
        Top up children for every recurring chore.

        Each parent continues from its latest generated due date, or from now
        if it has none or that date has already passed. Occurrences missed
        while generation was not running are not backfilled. A parent that
        fails is recorded in the report and the batch continues.

        Args:
            family_id: Only generate for this family's chores
            end_date: End of generation range (default: now + horizon)

        Returns:
            GenerationReport with the number created and per-parent failures
        """
        now = self.clock()
        if end_date is None:
            end_date = self.calculate_end_date()

        report = GenerationReport()

        for parent in self.repository.get_parent_chores(family_id=family_id):
            latest = self.repository.latest_child_due_date(parent.id)
            start_date = max(latest, now) if latest else now
            try:
                instances = self.generate_chore_instances(parent, start_date, end_date)
            except ChoreError as e:
                logger.error(f"Error generating instances for chore {parent.id}: {e.message}")
                report.failures.append(GenerationFailure(parent.id, e.message))
                continue
            report.created += len(instances)

        logger.info(
            f"Recurring generation complete: {report.created} instances created, "
            f"{len(report.failures)} chores skipped"
        )

        return report

    def generate_next_month_chores(self, family_id: Optional[int] = None) -> GenerationReport:
        return self.generate_all_recurring_chores(family_id, self.calculate_end_date(months=1))

"""Due-date scheduling for chores.

Owns the recurring generation window and direct due-date changes, and
exposes the calendar helpers callers need so they don't import the date
utilities themselves.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from dateutil.relativedelta import relativedelta

from chorekeeper.entities import Chore, ChoreStatus
from chorekeeper.errors import InvalidDataError, InvalidStateTransitionError, NotFoundError
from chorekeeper.services.interfaces import ChoreRepository
from chorekeeper.services.validator import ChoreValidator
from chorekeeper.utils import dates
from chorekeeper.utils.recurrence import matches_pattern
from chorekeeper.utils.timezone import local_naive_now

logger = logging.getLogger(__name__)


class ChoreScheduler:
    """Schedules chores and decides when recurring generation should run."""

    def __init__(self, repository: ChoreRepository, validator: ChoreValidator,
                 clock: Callable[[], datetime] = local_naive_now,
                 horizon_months: int = 1, trigger_days: int = 3):
        self.repository = repository
        self.validator = validator
        self.clock = clock
        self.horizon_months = horizon_months
        self.trigger_days = trigger_days

    def get_recurring_chore_end_date(self) -> datetime:
        """Instances should always exist up to this moment."""
        return self.clock() + relativedelta(months=self.horizon_months)

    def should_generate_next_month_chores(self) -> bool:
        """True during the last ``trigger_days`` days of the current month."""
        today = self.clock()
        days_left = dates.days_in_month(today.month, today.year) - today.day
        return days_left < self.trigger_days

    def schedule_chore(self, chore_id: int, due_date: datetime) -> Chore:
        """
        Set a pending chore's due date.

        A generated chore can only move to another unused occurrence of its
        parent's pattern.

        Raises:
            NotFoundError: Chore not found
            InvalidDataError: Due date is invalid or not allowed for this chore
            InvalidStateTransitionError: Chore is no longer pending
        """
        return self._set_due_date(chore_id, due_date, 'schedule')

    def reschedule_chore(self, chore_id: int, due_date: datetime) -> Chore:
        """Like ``schedule_chore`` but the due date must actually change."""
        chore = self._get(chore_id)
        if chore.due_date == due_date:
            raise InvalidDataError(f"Chore {chore_id} is already due at {due_date}", chore_id)
        return self._set_due_date(chore_id, due_date, 'reschedule')

    def _get(self, chore_id: int) -> Chore:
        chore = self.repository.get(chore_id)
        if chore is None or chore.is_deleted:
            raise NotFoundError(chore_id)
        return chore

    def _set_due_date(self, chore_id: int, due_date: datetime, action: str) -> Chore:
        chore = self._get(chore_id)

        is_valid, error = self.validator.validate_due_date(due_date)
        if not is_valid:
            raise InvalidDataError(error, chore_id)
        self.check_due_date_change(chore, due_date, action)

        self.repository.update(chore_id, {'due_date': due_date, 'updated_at': self.clock()})
        logger.info(f"Chore {chore_id} {action}d from {chore.due_date} to {due_date}")

        return self.repository.get(chore_id)

    def check_due_date_change(self, chore: Chore, due_date: datetime, action: str = 'reschedule') -> None:
        """
        Raise unless ``chore`` may be moved to ``due_date``.

        Only pending one-time chores and pending instances can move. An
        instance must stay on an unused occurrence of its parent's pattern.
        """
        if chore.is_parent:
            raise InvalidDataError(
                f"Chore {chore.id} is a recurring template; update its pattern instead", chore.id
            )
        if chore.status != ChoreStatus.PENDING:
            raise InvalidStateTransitionError(chore.id, chore.status, action)

        if chore.is_child:
            self.check_child_due_date(chore, due_date)

    def check_child_due_date(self, chore: Chore, due_date: datetime) -> None:
        parent = self.repository.get(chore.parent_chore_id)
        pattern = parent.pattern if parent else None
        if pattern is not None and not matches_pattern(pattern, due_date):
            raise InvalidDataError(
                f"{due_date} is not an occurrence of chore {parent.id}'s schedule", chore.id
            )

        siblings = self.repository.get_child_chores(chore.parent_chore_id, include_deleted=True)
        if any(sibling.id != chore.id and sibling.due_date == due_date for sibling in siblings):
            raise InvalidDataError(
                f"Chore {chore.parent_chore_id} already has an instance due at {due_date}", chore.id
            )

    # Calendar helpers

    def get_last_day_of_month(self, month: int, year: int) -> datetime:
        return dates.last_day_of_month(month, year)

    def get_next_occurrence_of_day(self, weekday: int, from_date: Optional[datetime] = None) -> datetime:
        return dates.next_occurrence_of_weekday(weekday, from_date or self.clock())

    def get_next_occurrence_of_day_of_month(self, day: int, from_date: Optional[datetime] = None) -> datetime:
        return dates.next_occurrence_of_day_of_month(day, from_date or self.clock())

    def get_next_occurrence_of_last_day_of_month(self, from_date: Optional[datetime] = None) -> datetime:
        return dates.next_occurrence_of_last_day_of_month(from_date or self.clock())

    def get_overdue_chores(self, user_id: Optional[int] = None,
                           family_id: Optional[int] = None) -> List[Chore]:
        return self.repository.get_overdue_chores(self.clock(), user_id=user_id, family_id=family_id)

"""
Chore validation and permission checks.

Every check returns ``(is_valid, error_message)`` so callers decide which
error to raise.
"""

from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Tuple

from chorekeeper.entities import Chore, ChoreStatus, Frequency
from chorekeeper.services.interfaces import FamilyPolicy, RoleDirectory
from chorekeeper.utils.dates import parse_time_string
from chorekeeper.utils.recurrence import parse
from chorekeeper.utils.timezone import local_naive_now

Result = Tuple[bool, Optional[str]]

OK: Result = (True, None)


class ChoreValidator:
    """Validates chore fields and checks who may act on a chore."""

    def __init__(self, role_directory: RoleDirectory, family_policy: FamilyPolicy,
                 clock: Callable[[], datetime] = local_naive_now,
                 points_min: int = 1, points_max: int = 1000,
                 title_max_length: int = 100, max_due_date_days: int = 365):
        self.role_directory = role_directory
        self.family_policy = family_policy
        self.clock = clock
        self.points_min = points_min
        self.points_max = points_max
        self.title_max_length = title_max_length
        self.max_due_date_days = max_due_date_days

    # Field checks

    def validate_title(self, title) -> Result:
        if not isinstance(title, str) or not title.strip():
            return False, "Title cannot be empty"
        if len(title) > self.title_max_length:
            return False, f"Title cannot be longer than {self.title_max_length} characters"
        return OK

    def validate_points(self, points) -> Result:
        if isinstance(points, bool) or not isinstance(points, int):
            return False, "Points must be a whole number"
        if points < self.points_min:
            return False, f"Points must be at least {self.points_min}"
        if points > self.points_max:
            return False, f"Points cannot be more than {self.points_max}"
        return OK

    def validate_due_date(self, due_date) -> Result:
        """Due dates may be in the past but not too far in the future."""
        if not isinstance(due_date, datetime):
            return False, "Due date must be a datetime"
        latest = self.clock() + timedelta(days=self.max_due_date_days)
        if due_date > latest:
            return False, f"Due date cannot be more than {self.max_due_date_days} days in the future"
        return OK

    def validate_recurring_pattern(self, text) -> Result:
        if not text:
            return False, "Recurring chores need a recurring pattern"
        pattern = parse(text)
        if pattern is None:
            return False, f'Invalid recurring pattern "{text}"'
        if pattern.frequency == Frequency.ONE_TIME:
            return False, "Recurring chores cannot use a one-time pattern"
        return OK

    def validate_day_of_month(self, day) -> Result:
        if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= 31:
            return False, "Day of month must be between 1 and 31"
        return OK

    def validate_days_of_week(self, days: Optional[Iterable[int]]) -> Result:
        days = list(days or [])
        if not days:
            return False, "Weekly chores need at least one day of the week"
        if len(set(days)) != len(days):
            return False, "Days of week must be unique"
        if not all(isinstance(d, int) and not isinstance(d, bool) and 1 <= d <= 7 for d in days):
            return False, "Days of week must be between 1 (Sunday) and 7 (Saturday)"
        return OK

    def validate_due_time(self, due_time) -> Result:
        if parse_time_string(due_time) is None:
            return False, f'Invalid due time "{due_time}", expected HH:MM'
        return OK

    def validate_pattern_choices(self, frequency, days_of_week=None, day_of_month=None,
                                 use_last_day_of_month: bool = False,
                                 due_time: str = '22:00') -> Result:
        """Check the choices used to build a new recurring pattern."""
        try:
            frequency = Frequency(frequency)
        except ValueError:
            return False, f'Unknown frequency "{frequency}"'

        if frequency == Frequency.ONE_TIME:
            return False, "Recurring chores cannot use a one-time pattern"
        if frequency == Frequency.WEEKLY:
            is_valid, error = self.validate_days_of_week(days_of_week)
            if not is_valid:
                return is_valid, error
        if frequency == Frequency.MONTHLY and not use_last_day_of_month:
            if day_of_month is None:
                return False, "Monthly chores need a day of the month or the last day of the month"
            is_valid, error = self.validate_day_of_month(day_of_month)
            if not is_valid:
                return is_valid, error
        return self.validate_due_time(due_time)

    # Permission checks

    def _is_family_parent(self, user_id: int, family_id: Optional[int]) -> bool:
        if user_id is None or family_id is None:
            return False
        return self.role_directory.is_parent(user_id, family_id)

    def can_complete(self, chore: Chore, user_id: int) -> Result:
        """Assigned user or a parent of the family. Unassigned chores: any family member."""
        if chore.assigned_to_user_id is not None:
            if user_id == chore.assigned_to_user_id or self._is_family_parent(user_id, chore.family_id):
                return OK
            return False, "You are not assigned to this chore"

        if chore.family_id is None or self.role_directory.is_member(user_id, chore.family_id):
            return OK
        return False, "You are not a member of this chore's family"

    def _can_review(self, chore: Chore, user_id: int, action: str) -> Result:
        if chore.status != ChoreStatus.PENDING_VERIFICATION:
            return False, f'Cannot {action} a chore with status "{chore.status.value}"'
        if user_id is not None and user_id == chore.created_by_user_id:
            return OK
        if self._is_family_parent(user_id, chore.family_id):
            return OK
        return False, f"Only the chore's creator or a parent can {action} this chore"

    def can_verify(self, chore: Chore, user_id: int) -> Result:
        return self._can_review(chore, user_id, 'verify')

    def can_reject(self, chore: Chore, user_id: int) -> Result:
        return self._can_review(chore, user_id, 'reject')

    def _can_manage(self, chore: Chore, user_id: int, action: str) -> Result:
        if user_id is not None and user_id == chore.created_by_user_id:
            return OK
        if self._is_family_parent(user_id, chore.family_id):
            return OK
        return False, f"Only the chore's creator or a parent can {action} this chore"

    def can_update(self, chore: Chore, user_id: int) -> Result:
        return self._can_manage(chore, user_id, 'update')

    def can_delete(self, chore: Chore, user_id: int) -> Result:
        return self._can_manage(chore, user_id, 'delete')

    def is_verification_required(self, user_id: int, family_id: Optional[int]) -> bool:
        return self.family_policy.is_verification_required(user_id, family_id)

"""
Typed records used by the chore engine.

The engine only works with these records. Storage backends map their own
rows to and from ``Chore`` (see ``chorekeeper.repositories``).
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional


class ChoreStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    PENDING_VERIFICATION = 'pending_verification'
    VERIFIED = 'verified'
    REJECTED = 'rejected'
    MISSED = 'missed'


class Frequency(str, Enum):
    ONE_TIME = 'one_time'
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'


class Weekday(IntEnum):
    """Day of week, numbered Sunday=1 through Saturday=7."""

    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7

    @classmethod
    def from_python(cls, weekday: int) -> 'Weekday':
        """Convert a ``datetime.weekday()`` value (Monday=0)."""
        return cls((weekday + 1) % 7 + 1)

    def to_python(self) -> int:
        """Convert to a ``datetime.weekday()`` value (Monday=0)."""
        return (self.value - 2) % 7


@dataclass
class Chore:
    """A chore template (recurring parent) or a concrete chore instance."""

    title: str
    points: int
    due_date: datetime
    id: Optional[int] = None
    description: Optional[str] = None
    is_recurring: bool = False
    recurring_pattern: Optional[str] = None
    status: ChoreStatus = ChoreStatus.PENDING
    parent_chore_id: Optional[int] = None
    assigned_to_user_id: Optional[int] = None
    created_by_user_id: Optional[int] = None
    family_id: Optional[int] = None
    icon_id: str = 'custom'

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    # Who did what when
    completed_at: Optional[datetime] = None
    completed_by_user_id: Optional[int] = None
    verified_at: Optional[datetime] = None
    verified_by_user_id: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejected_by_user_id: Optional[int] = None
    rejection_reason: Optional[str] = None
    missed_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = ChoreStatus(self.status)

    @property
    def is_parent(self) -> bool:
        return self.is_recurring

    @property
    def is_child(self) -> bool:
        return self.parent_chore_id is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def pattern(self):
        """The parsed recurrence pattern, or None if absent or unparseable."""
        from chorekeeper.utils.recurrence import parse

        if not self.recurring_pattern:
            return None
        return parse(self.recurring_pattern)

    @property
    def frequency(self) -> Frequency:
        pattern = self.pattern
        return pattern.frequency if pattern else Frequency.ONE_TIME

    def is_overdue(self, now: datetime) -> bool:
        """Check if this chore is still pending after its due date."""
        return (self.status == ChoreStatus.PENDING
                and not self.is_parent
                and not self.is_deleted
                and self.due_date <= now)

    def to_dict(self) -> dict:
        """Serialize Chore to a dictionary for JSON responses and logs."""
        result = asdict(self)
        result['status'] = self.status.value
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
        return result

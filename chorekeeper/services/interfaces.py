"""
Collaborator interfaces consumed by the chore engine.

Each interface has a Flask-SQLAlchemy implementation in
``chorekeeper.repositories.sql`` and an in-memory double in
``chorekeeper.repositories.memory``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from chorekeeper.entities import Chore, ChoreStatus


class ChoreRepository(ABC):
    """Abstract interface for chore persistence."""

    @abstractmethod
    def get(self, chore_id: int) -> Optional[Chore]:
        """Get a chore by ID, including soft-deleted chores."""
        pass

    @abstractmethod
    def list(
        self,
        user_id: Optional[int] = None,
        family_id: Optional[int] = None,
        status: Optional[ChoreStatus] = None,
        parent_chore_id: Optional[int] = None,
        is_recurring: Optional[bool] = None,
        due_after: Optional[datetime] = None,
        due_before: Optional[datetime] = None,
        include_deleted: bool = False,
    ) -> List[Chore]:
        """List chores matching every given filter, ordered by due date.

        ``due_after`` and ``due_before`` are inclusive bounds.
        """
        pass

    @abstractmethod
    def create(self, chore: Chore) -> int:
        """Persist a new chore and return its ID.

        Raises:
            InvalidDataError: The chore would duplicate a (parent, due date) pair
        """
        pass

    @abstractmethod
    def update(self, chore_id: int, changes: Dict[str, Any]) -> bool:
        """Apply field changes to a chore. Returns False if it does not exist."""
        pass

    @abstractmethod
    def soft_delete(self, chore_id: int, when: datetime) -> bool:
        """Tombstone a chore. Returns False if missing or already deleted."""
        pass

    def get_parent_chores(self, family_id: Optional[int] = None) -> List[Chore]:
        return self.list(family_id=family_id, is_recurring=True)

    def get_child_chores(self, parent_id: int, include_deleted: bool = False) -> List[Chore]:
        return self.list(parent_chore_id=parent_id, include_deleted=include_deleted)

    def get_overdue_chores(self, now: datetime, user_id: Optional[int] = None,
                           family_id: Optional[int] = None) -> List[Chore]:
        """Pending, non-template chores whose due date is at or before ``now``."""
        return self.list(user_id=user_id, family_id=family_id, status=ChoreStatus.PENDING,
                         is_recurring=False, due_before=now)

    def get_chores_due_between(self, start: datetime, end: datetime,
                               user_id: Optional[int] = None,
                               family_id: Optional[int] = None) -> List[Chore]:
        return self.list(user_id=user_id, family_id=family_id, is_recurring=False,
                         due_after=start, due_before=end)

    def latest_child_due_date(self, parent_id: int) -> Optional[datetime]:
        """Latest due date generated for a parent, tombstoned children included."""
        children = self.get_child_chores(parent_id, include_deleted=True)
        if not children:
            return None
        return max(child.due_date for child in children)


class PointLedger(ABC):
    """Records point changes. Implementations raise PointLedgerError on failure."""

    @abstractmethod
    def allocate(self, points: int, user_id: int, chore_id: int, when: datetime) -> None:
        pass

    @abstractmethod
    def deduct(self, points: int, user_id: int, chore_id: int, when: datetime) -> None:
        pass


class RoleDirectory(ABC):
    """Resolves family membership and roles."""

    @abstractmethod
    def is_parent(self, user_id: int, family_id: int) -> bool:
        """True if the user is a parent-role member of the family."""
        pass

    @abstractmethod
    def is_member(self, user_id: int, family_id: int) -> bool:
        """True if the user belongs to the family in any role."""
        pass


class FamilyPolicy(ABC):
    """Family-level settings consulted by the validator."""

    @abstractmethod
    def is_verification_required(self, user_id: int, family_id: Optional[int]) -> bool:
        pass

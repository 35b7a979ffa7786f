"""In-memory collaborators for tests and embedding without a database."""

from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from chorekeeper.entities import Chore, ChoreStatus
from chorekeeper.errors import InvalidDataError, PointLedgerError
from chorekeeper.services.interfaces import ChoreRepository, FamilyPolicy, PointLedger, RoleDirectory

CHORE_FIELDS = frozenset(f.name for f in fields(Chore))


class InMemoryChoreRepository(ChoreRepository):
    """Stores copies of chores in a dict keyed by ID."""

    def __init__(self):
        self._chores: Dict[int, Chore] = {}
        self._next_id = 1

    def get(self, chore_id: int) -> Optional[Chore]:
        chore = self._chores.get(chore_id)
        return replace(chore) if chore else None

    def list(self, user_id=None, family_id=None, status=None, parent_chore_id=None,
             is_recurring=None, due_after=None, due_before=None,
             include_deleted=False) -> List[Chore]:
        results = []
        for chore in self._chores.values():
            if not include_deleted and chore.is_deleted:
                continue
            if user_id is not None and chore.assigned_to_user_id != user_id:
                continue
            if family_id is not None and chore.family_id != family_id:
                continue
            if status is not None and chore.status != ChoreStatus(status):
                continue
            if parent_chore_id is not None and chore.parent_chore_id != parent_chore_id:
                continue
            if is_recurring is not None and chore.is_recurring != is_recurring:
                continue
            if due_after is not None and chore.due_date < due_after:
                continue
            if due_before is not None and chore.due_date > due_before:
                continue
            results.append(replace(chore))
        return sorted(results, key=lambda c: (c.due_date, c.id))

    def _check_unique(self, chore_id: Optional[int], parent_chore_id: Optional[int],
                      due_date: datetime) -> None:
        if parent_chore_id is None:
            return
        for other in self._chores.values():
            if (other.id != chore_id and other.parent_chore_id == parent_chore_id
                    and other.due_date == due_date):
                raise InvalidDataError(
                    f"Chore {parent_chore_id} already has an instance due at {due_date}", chore_id
                )

    def create(self, chore: Chore) -> int:
        self._check_unique(None, chore.parent_chore_id, chore.due_date)
        chore_id = self._next_id
        self._next_id += 1
        self._chores[chore_id] = replace(chore, id=chore_id)
        return chore_id

    def update(self, chore_id: int, changes: Dict[str, Any]) -> bool:
        chore = self._chores.get(chore_id)
        if chore is None:
            return False
        unknown = set(changes) - CHORE_FIELDS
        if unknown:
            raise InvalidDataError(f"Unknown chore fields: {', '.join(sorted(unknown))}", chore_id)
        updated = replace(chore, **changes)
        self._check_unique(chore_id, updated.parent_chore_id, updated.due_date)
        self._chores[chore_id] = updated
        return True

    def soft_delete(self, chore_id: int, when: datetime) -> bool:
        chore = self._chores.get(chore_id)
        if chore is None or chore.is_deleted:
            return False
        self._chores[chore_id] = replace(chore, deleted_at=when, updated_at=when)
        return True


@dataclass
class LedgerEntry:
    points: int
    user_id: int
    chore_id: int
    when: datetime


class RecordingPointLedger(PointLedger):
    """Records allocations and deductions. Set ``fail_with`` to simulate failures."""

    def __init__(self):
        self.allocations: List[LedgerEntry] = []
        self.deductions: List[LedgerEntry] = []
        self.fail_with: Optional[str] = None

    def allocate(self, points, user_id, chore_id, when):
        if self.fail_with:
            raise PointLedgerError(self.fail_with)
        self.allocations.append(LedgerEntry(points, user_id, chore_id, when))

    def deduct(self, points, user_id, chore_id, when):
        if self.fail_with:
            raise PointLedgerError(self.fail_with)
        self.deductions.append(LedgerEntry(points, user_id, chore_id, when))

    def balance(self, user_id: int) -> int:
        earned = sum(e.points for e in self.allocations if e.user_id == user_id)
        lost = sum(e.points for e in self.deductions if e.user_id == user_id)
        return earned - lost


class StaticRoleDirectory(RoleDirectory):
    """Roles from a fixed ``{family_id: {user_id: role}}`` mapping."""

    def __init__(self, families: Optional[Dict[int, Dict[int, str]]] = None):
        self.families = families or {}

    def is_parent(self, user_id, family_id):
        return self.families.get(family_id, {}).get(user_id) == 'parent'

    def is_member(self, user_id, family_id):
        return user_id in self.families.get(family_id, {})


class StaticFamilyPolicy(FamilyPolicy):
    """Verification setting per family, with a default for unknown families."""

    def __init__(self, requires_verification: bool = False,
                 families: Optional[Dict[int, bool]] = None):
        self.requires_verification = requires_verification
        self.families = families or {}

    def is_verification_required(self, user_id, family_id):
        return self.families.get(family_id, self.requires_verification)

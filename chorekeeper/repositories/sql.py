"""
Flask-SQLAlchemy implementations of the engine's collaborators.

These run inside a Flask application context and commit per operation.
Rows are mapped to ``chorekeeper.entities.Chore`` records here so the
engine never sees ORM objects.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chorekeeper import models
from chorekeeper.entities import Chore, ChoreStatus
from chorekeeper.errors import InvalidDataError, PointLedgerError
from chorekeeper.models import db, Family, User
from chorekeeper.services.interfaces import ChoreRepository, FamilyPolicy, PointLedger, RoleDirectory

logger = logging.getLogger(__name__)

# Columns shared one-to-one between the chores table and the Chore record
CHORE_COLUMNS = (
    'id', 'title', 'description', 'points', 'due_date', 'is_recurring', 'recurring_pattern',
    'status', 'parent_chore_id', 'assigned_to_user_id', 'created_by_user_id', 'family_id',
    'icon_id', 'created_at', 'updated_at', 'deleted_at', 'completed_at', 'completed_by_user_id',
    'verified_at', 'verified_by_user_id', 'rejected_at', 'rejected_by_user_id',
    'rejection_reason', 'missed_at',
)


def to_entity(row: models.Chore) -> Chore:
    """Map a chores row to a Chore record."""
    values = {column: getattr(row, column) for column in CHORE_COLUMNS}
    values['status'] = ChoreStatus(row.status)
    return Chore(**values)


def _column_value(value):
    if isinstance(value, ChoreStatus):
        return value.value
    return value


class SqlChoreRepository(ChoreRepository):
    """Chore persistence backed by the ``chores`` table."""

    def get(self, chore_id: int) -> Optional[Chore]:
        row = db.session.get(models.Chore, chore_id)
        return to_entity(row) if row else None

    def list(self, user_id=None, family_id=None, status=None, parent_chore_id=None,
             is_recurring=None, due_after=None, due_before=None,
             include_deleted=False) -> List[Chore]:
        query = models.Chore.query

        if not include_deleted:
            query = query.filter(models.Chore.deleted_at.is_(None))
        if user_id is not None:
            query = query.filter(models.Chore.assigned_to_user_id == user_id)
        if family_id is not None:
            query = query.filter(models.Chore.family_id == family_id)
        if status is not None:
            query = query.filter(models.Chore.status == ChoreStatus(status).value)
        if parent_chore_id is not None:
            query = query.filter(models.Chore.parent_chore_id == parent_chore_id)
        if is_recurring is not None:
            query = query.filter(models.Chore.is_recurring == is_recurring)
        if due_after is not None:
            query = query.filter(models.Chore.due_date >= due_after)
        if due_before is not None:
            query = query.filter(models.Chore.due_date <= due_before)

        rows = query.order_by(models.Chore.due_date, models.Chore.id).all()
        return [to_entity(row) for row in rows]

    def create(self, chore: Chore) -> int:
        values = {column: _column_value(getattr(chore, column))
                  for column in CHORE_COLUMNS if column != 'id'}
        row = models.Chore(**{k: v for k, v in values.items() if v is not None})
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise InvalidDataError(f"Could not store chore '{chore.title}': {e.orig}") from e
        return row.id

    def update(self, chore_id: int, changes: Dict[str, Any]) -> bool:
        row = db.session.get(models.Chore, chore_id)
        if row is None:
            return False

        unknown = set(changes) - set(CHORE_COLUMNS)
        if unknown:
            raise InvalidDataError(f"Unknown chore fields: {', '.join(sorted(unknown))}", chore_id)

        for column, value in changes.items():
            setattr(row, column, _column_value(value))
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise InvalidDataError(f"Could not update chore {chore_id}: {e.orig}", chore_id) from e
        return True

    def soft_delete(self, chore_id: int, when: datetime) -> bool:
        row = db.session.get(models.Chore, chore_id)
        if row is None or row.deleted_at is not None:
            return False
        row.deleted_at = when
        row.updated_at = when
        db.session.commit()
        return True


class SqlPointLedger(PointLedger):
    """Adjusts ``users.points`` and writes ``points_history`` entries."""

    def _adjust(self, delta: int, user_id: int, chore_id: int, reason: str, when: datetime) -> None:
        user = db.session.get(User, user_id)
        if user is None:
            raise PointLedgerError(f"User {user_id} not found")
        try:
            user.adjust_points(delta, reason, chore_id=chore_id, when=when)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PointLedgerError(str(e)) from e
        logger.info(f"Adjusted points for user {user_id} by {delta} (chore {chore_id})")

    def allocate(self, points, user_id, chore_id, when):
        self._adjust(points, user_id, chore_id, f"Completed chore {chore_id}", when)

    def deduct(self, points, user_id, chore_id, when):
        self._adjust(-points, user_id, chore_id, f"Missed chore {chore_id}", when)


class SqlRoleDirectory(RoleDirectory):
    """Roles from the ``users`` table."""

    def _user(self, user_id: int, family_id: int) -> Optional[User]:
        if user_id is None or family_id is None:
            return None
        return User.query.filter_by(id=user_id, family_id=family_id).first()

    def is_parent(self, user_id, family_id):
        user = self._user(user_id, family_id)
        return user is not None and user.role == 'parent'

    def is_member(self, user_id, family_id):
        return self._user(user_id, family_id) is not None


class SqlFamilyPolicy(FamilyPolicy):
    """Verification setting from the ``families`` table."""

    def __init__(self, default: bool = True):
        self.default = default

    def is_verification_required(self, user_id, family_id):
        if family_id is None:
            return self.default
        family = db.session.get(Family, family_id)
        if family is None:
            return self.default
        return family.requires_verification

"""
Flask-SQLAlchemy tables for ChoreKeeper.

The engine never touches these classes directly. ``chorekeeper.repositories.sql``
maps ``chores`` rows to ``chorekeeper.entities.Chore`` records and implements
the point ledger, role directory and family policy on top of
``users``, ``families`` and ``points_history``.
"""

import logging
from datetime import datetime
from typing import Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import CheckConstraint, Index, UniqueConstraint, func
from sqlalchemy.orm import relationship

from chorekeeper.utils.timezone import local_naive_now

logger = logging.getLogger(__name__)

db = SQLAlchemy()


class Family(db.Model):
    """A household whose members share chores."""

    __tablename__ = 'families'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    requires_verification = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=local_naive_now, nullable=False)

    members = relationship('User', back_populates='family')

    def __repr__(self):
        return f'<Family {self.id} {self.name!r}>'


class User(db.Model):
    """A family member. Parents manage chores, kids earn and lose points."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    username = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    family_id = db.Column(db.Integer, db.ForeignKey('families.id'), nullable=True)
    points = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=local_naive_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=local_naive_now, onupdate=local_naive_now, nullable=False)

    family = relationship('Family', back_populates='members')
    points_history = relationship('PointsHistory', back_populates='user', cascade='all, delete-orphan')

    __table_args__ = (
        CheckConstraint("role IN ('parent', 'kid')", name='check_user_role'),
    )

    def __repr__(self):
        return f'<User {self.id} {self.username!r} ({self.role})>'

    def history_total(self) -> int:
        """Sum of this user's points_history deltas."""
        total = db.session.query(func.sum(PointsHistory.points_delta)).filter(
            PointsHistory.user_id == self.id
        ).scalar()
        return total or 0

    def adjust_points(self, delta: int, reason: str, chore_id: Optional[int] = None,
                      when: Optional[datetime] = None) -> 'PointsHistory':
        """
        Change the balance by ``delta`` and record why.

        The caller commits. A balance that no longer agrees with the
        history total is logged, not corrected.

        Returns:
            The new PointsHistory entry
        """
        self.points += delta
        entry = PointsHistory(
            user_id=self.id,
            points_delta=delta,
            reason=reason,
            chore_id=chore_id,
            created_at=when or local_naive_now(),
        )
        db.session.add(entry)
        db.session.flush()

        total = self.history_total()
        if total != self.points:
            logger.warning(f"User {self.id} balance {self.points} differs from history total {total}")

        return entry


class Chore(db.Model):
    """A recurring chore template or a concrete chore instance."""

    __tablename__ = 'chores'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    points = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.DateTime, nullable=False)

    # Recurrence
    is_recurring = db.Column(db.Boolean, default=False, nullable=False)
    recurring_pattern = db.Column(db.String(64))
    parent_chore_id = db.Column(db.Integer, db.ForeignKey('chores.id'), nullable=True)

    status = db.Column(db.String(30), default='pending', nullable=False)
    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    family_id = db.Column(db.Integer, db.ForeignKey('families.id'), nullable=True)
    icon_id = db.Column(db.String(64), default='custom', nullable=False)

    # Who did what when
    completed_at = db.Column(db.DateTime)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    verified_at = db.Column(db.DateTime)
    verified_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    rejected_at = db.Column(db.DateTime)
    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    rejection_reason = db.Column(db.Text)
    missed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=local_naive_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=local_naive_now, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    parent = relationship('Chore', remote_side=[id], back_populates='children')
    children = relationship('Chore', back_populates='parent')

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'pending_verification', 'verified', 'rejected', 'missed')",
            name='check_chore_status'
        ),
        CheckConstraint('points > 0', name='check_chore_points'),
        UniqueConstraint('parent_chore_id', 'due_date', name='unique_parent_due_date'),
        Index('idx_chores_status', 'status'),
        Index('idx_chores_due_date', 'due_date'),
        Index('idx_chores_assigned_to', 'assigned_to_user_id'),
        Index('idx_chores_family', 'family_id'),
    )

    def __repr__(self):
        return f'<Chore {self.id} {self.title!r} due={self.due_date} status={self.status}>'


class PointsHistory(db.Model):
    """One point change: positive for earned chores, negative for missed ones."""

    __tablename__ = 'points_history'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    points_delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    chore_id = db.Column(db.Integer, db.ForeignKey('chores.id'))
    created_at = db.Column(db.DateTime, default=local_naive_now, nullable=False)

    user = relationship('User', back_populates='points_history')

    __table_args__ = (
        Index('idx_points_history_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f'<PointsHistory user={self.user_id} {self.points_delta:+d} chore={self.chore_id}>'

"""Chore lifecycle service.

This module contains the business logic for chore operations:
- Creating one-time and recurring chores
- Completing, verifying and rejecting chores (with points awarding)
- Marking overdue chores as missed (with points deduction)
- Updating and deleting chores and the future instances of recurring chores

Callers should delegate to this service and handle the typed errors from
``chorekeeper.errors``.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from chorekeeper.entities import Chore, ChoreStatus
from chorekeeper.errors import (
    InvalidDataError,
    InvalidRecurringPatternError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    PointAllocationFailedError,
    PointDeductionFailedError,
    PointLedgerError,
)
from chorekeeper.services.chore_scheduler import ChoreScheduler
from chorekeeper.services.generator import ChoreGenerator, GenerationReport
from chorekeeper.services.interfaces import ChoreRepository, PointLedger
from chorekeeper.services.state_machine import ChoreAction, check_transition
from chorekeeper.services.validator import ChoreValidator
from chorekeeper.utils.dates import end_of_day, start_of_day
from chorekeeper.utils.recurrence import build_pattern, to_string
from chorekeeper.utils.timezone import local_naive_now

logger = logging.getLogger(__name__)

# Fields callers may change through update_chore
UPDATABLE_FIELDS = frozenset({
    'title', 'description', 'points', 'due_date', 'assigned_to_user_id', 'icon_id',
    'recurring_pattern',
})

# Fields update_future_chores copies onto each future instance
FUTURE_UPDATABLE_FIELDS = frozenset({
    'title', 'description', 'points', 'assigned_to_user_id', 'icon_id',
})


class ChoreService:
    """Service for managing chores and their lifecycle."""

    def __init__(self, repository: ChoreRepository, ledger: PointLedger,
                 validator: ChoreValidator, generator: ChoreGenerator,
                 scheduler: ChoreScheduler,
                 clock: Callable[[], datetime] = local_naive_now):
        self.repository = repository
        self.ledger = ledger
        self.validator = validator
        self.generator = generator
        self.scheduler = scheduler
        self.clock = clock

    # Helpers

    @staticmethod
    def _require(result: Tuple[bool, Optional[str]], chore_id: Optional[int] = None,
                 error=InvalidDataError) -> None:
        is_valid, message = result
        if not is_valid:
            raise error(message, chore_id)

    def _save(self, chore_id: int, changes: Dict[str, Any]) -> Chore:
        if not self.repository.update(chore_id, changes):
            raise NotFoundError(chore_id)
        return self.repository.get(chore_id)

    def _validate_fields(self, fields: Dict[str, Any], chore_id: Optional[int] = None) -> None:
        if 'title' in fields:
            self._require(self.validator.validate_title(fields['title']), chore_id)
        if 'points' in fields:
            self._require(self.validator.validate_points(fields['points']), chore_id)
        if 'due_date' in fields:
            self._require(self.validator.validate_due_date(fields['due_date']), chore_id)
        if 'recurring_pattern' in fields:
            self._require(self.validator.validate_recurring_pattern(fields['recurring_pattern']), chore_id)

    def _future_children(self, parent_id: int, now: datetime) -> List[Chore]:
        """Pending instances due from ``now`` on. Resolved ones are history."""
        return [child for child in self.repository.get_child_chores(parent_id)
                if child.due_date >= now and child.status == ChoreStatus.PENDING]

    def _get_recurring_parent(self, parent_id: int) -> Chore:
        parent = self.get_chore(parent_id)
        if not parent.is_recurring:
            raise InvalidDataError(f"Chore {parent_id} is not a recurring chore", parent_id)
        return parent

    # Queries

    def get_chore(self, chore_id: int) -> Chore:
        """Get a chore by ID or raise NotFoundError."""
        chore = self.repository.get(chore_id)
        if chore is None or chore.is_deleted:
            raise NotFoundError(chore_id)
        return chore

    def get_chores_for_user(self, user_id: int, status: Optional[ChoreStatus] = None) -> List[Chore]:
        return self.repository.list(user_id=user_id, status=status)

    def get_chores_for_family(self, family_id: int, status: Optional[ChoreStatus] = None) -> List[Chore]:
        return self.repository.list(family_id=family_id, status=status)

    def get_chores_by_status(self, status: ChoreStatus, family_id: Optional[int] = None) -> List[Chore]:
        return self.repository.list(status=status, family_id=family_id)

    def get_chores_due_on(self, day: datetime, user_id: Optional[int] = None,
                          family_id: Optional[int] = None) -> List[Chore]:
        return self.repository.get_chores_due_between(start_of_day(day), end_of_day(day),
                                                      user_id=user_id, family_id=family_id)

    def get_chores_due_between(self, start: datetime, end: datetime, user_id: Optional[int] = None,
                               family_id: Optional[int] = None) -> List[Chore]:
        return self.repository.get_chores_due_between(start, end, user_id=user_id, family_id=family_id)

    def get_child_chores(self, parent_id: int) -> List[Chore]:
        return self.repository.get_child_chores(parent_id)

    # Creation

    def create_chore(self, title: str, points: int, due_date: datetime,
                     description: Optional[str] = None,
                     assigned_to_user_id: Optional[int] = None,
                     created_by_user_id: Optional[int] = None,
                     family_id: Optional[int] = None,
                     icon_id: str = 'custom',
                     is_recurring: bool = False,
                     recurring_pattern: Optional[str] = None) -> Chore:
        """
        Validate and store a chore.

        Recurring chores also get their first batch of instances, up to the
        scheduler's end date.

        Raises:
            InvalidDataError: A field failed validation
        """
        fields = {'title': title, 'points': points, 'due_date': due_date}
        if is_recurring:
            fields['recurring_pattern'] = recurring_pattern
        elif recurring_pattern:
            raise InvalidDataError("Only recurring chores can have a recurring pattern")
        self._validate_fields(fields)

        now = self.clock()
        chore = Chore(
            title=title,
            description=description,
            points=points,
            due_date=due_date,
            is_recurring=is_recurring,
            recurring_pattern=recurring_pattern if is_recurring else None,
            status=ChoreStatus.PENDING,
            assigned_to_user_id=assigned_to_user_id,
            created_by_user_id=created_by_user_id,
            family_id=family_id,
            icon_id=icon_id,
            created_at=now,
            updated_at=now,
        )
        chore.id = self.repository.create(chore)
        logger.info(f"Created chore {chore.id} '{title}' (recurring={is_recurring})")

        if is_recurring:
            self.generator.generate_chore_instances(
                chore, max(now, due_date), self.scheduler.get_recurring_chore_end_date()
            )

        return chore

    def create_one_time_chore(self, title: str, points: int, due_date: datetime, **kwargs) -> Chore:
        return self.create_chore(title, points, due_date, is_recurring=False, **kwargs)

    def create_recurring_chore(self, title: str, points: int, frequency,
                               days_of_week: Optional[Iterable[int]] = None,
                               day_of_month: Optional[int] = None,
                               use_last_day_of_month: bool = False,
                               due_time: str = '22:00',
                               start_date: Optional[datetime] = None,
                               description: Optional[str] = None,
                               assigned_to_user_id: Optional[int] = None,
                               created_by_user_id: Optional[int] = None,
                               family_id: Optional[int] = None,
                               icon_id: str = 'custom') -> Tuple[Chore, List[Chore]]:
        """
        Create a recurring chore and its first batch of instances.

        Args:
            frequency: Daily, weekly or monthly
            days_of_week: Weekdays for weekly chores (Sunday=1 ... Saturday=7)
            day_of_month: Day for monthly chores, unless use_last_day_of_month
            due_time: Time of day as HH:MM
            start_date: First moment instances may fall on (default: now)

        Returns:
            (parent, children)

        Raises:
            InvalidRecurringPatternError: The pattern choices are invalid
            InvalidDataError: Title or points are invalid
        """
        days_of_week = list(days_of_week) if days_of_week is not None else None
        self._require(
            self.validator.validate_pattern_choices(frequency, days_of_week, day_of_month,
                                                    use_last_day_of_month, due_time),
            error=InvalidRecurringPatternError,
        )
        pattern = build_pattern(frequency, days_of_week, day_of_month, use_last_day_of_month, due_time)

        self._validate_fields({'title': title, 'points': points})

        now = self.clock()
        start_date = start_date or now
        first_due = self.generator.first_due_date(pattern, start_date)

        parent = Chore(
            title=title,
            description=description,
            points=points,
            due_date=first_due,
            is_recurring=True,
            recurring_pattern=to_string(pattern),
            status=ChoreStatus.PENDING,
            assigned_to_user_id=assigned_to_user_id,
            created_by_user_id=created_by_user_id,
            family_id=family_id,
            icon_id=icon_id,
            created_at=now,
            updated_at=now,
        )
        self._validate_fields({'due_date': first_due, 'recurring_pattern': parent.recurring_pattern})
        parent.id = self.repository.create(parent)
        logger.info(f"Created recurring chore {parent.id} '{title}' ({parent.recurring_pattern})")

        children = self.generator.generate_chore_instances(
            parent, start_date, self.scheduler.get_recurring_chore_end_date()
        )

        return parent, children

    # Lifecycle

    def complete_chore(self, chore_id: int, completed_by_user_id: int,
                       require_verification: Optional[bool] = None) -> Chore:
        """Mark a chore as completed.

        Args:
            chore_id: ID of the chore to complete
            completed_by_user_id: ID of the user completing the chore
            require_verification: Send the chore for verification instead of
                completing it. None asks the family policy.

        Returns:
            The updated Chore

        Raises:
            NotFoundError: Chore not found
            InvalidStateTransitionError: Chore is not pending
            PermissionDeniedError: User may not complete this chore
            PointAllocationFailedError: Completed, but points could not be allocated
        """
        chore = self.get_chore(chore_id)

        logger.info(f"Complete request: chore={chore_id}, user={completed_by_user_id}, status={chore.status.value}")

        check_transition(chore, ChoreAction.COMPLETE)
        self._require(self.validator.can_complete(chore, completed_by_user_id), chore_id,
                      error=PermissionDeniedError)

        if require_verification is None:
            require_verification = self.validator.is_verification_required(
                completed_by_user_id, chore.family_id
            )
        new_status = ChoreStatus.PENDING_VERIFICATION if require_verification else ChoreStatus.COMPLETED

        now = self.clock()
        chore = self._save(chore_id, {
            'status': new_status,
            'completed_at': now,
            'completed_by_user_id': completed_by_user_id,
            'updated_at': now,
        })
        logger.info(f"Chore {chore_id} marked {new_status.value} by user {completed_by_user_id}")

        if new_status == ChoreStatus.COMPLETED:
            recipient = chore.assigned_to_user_id
            if recipient is None:
                recipient = completed_by_user_id
            self._allocate_points(chore, recipient, now)

        return chore

    def verify_chore(self, chore_id: int, verified_by_user_id: int) -> Chore:
        """Verify a chore and award its points.

        Raises:
            NotFoundError: Chore not found
            InvalidStateTransitionError: Chore is not awaiting verification
            PermissionDeniedError: User may not verify this chore
            PointAllocationFailedError: Verified, but points could not be allocated
        """
        chore = self.get_chore(chore_id)
        check_transition(chore, ChoreAction.VERIFY)
        self._require(self.validator.can_verify(chore, verified_by_user_id), chore_id,
                      error=PermissionDeniedError)

        now = self.clock()
        chore = self._save(chore_id, {
            'status': ChoreStatus.VERIFIED,
            'verified_at': now,
            'verified_by_user_id': verified_by_user_id,
            'updated_at': now,
        })
        logger.info(f"Chore {chore_id} verified by user {verified_by_user_id}")

        recipient = chore.assigned_to_user_id
        if recipient is None:
            recipient = chore.completed_by_user_id
        self._allocate_points(chore, recipient, now)

        return chore

    def reject_chore(self, chore_id: int, rejected_by_user_id: int, reason: Optional[str] = None) -> Chore:
        """Reject a chore awaiting verification. No points are awarded.

        Raises:
            NotFoundError: Chore not found
            InvalidStateTransitionError: Chore is not awaiting verification
            PermissionDeniedError: User may not reject this chore
        """
        chore = self.get_chore(chore_id)
        check_transition(chore, ChoreAction.REJECT)
        self._require(self.validator.can_reject(chore, rejected_by_user_id), chore_id,
                      error=PermissionDeniedError)

        now = self.clock()
        chore = self._save(chore_id, {
            'status': ChoreStatus.REJECTED,
            'rejected_at': now,
            'rejected_by_user_id': rejected_by_user_id,
            'rejection_reason': reason,
            'updated_at': now,
        })
        logger.info(f"Chore {chore_id} rejected by user {rejected_by_user_id}: {reason or 'no reason given'}")

        return chore

    def mark_chore_missed(self, chore_id: int) -> Chore:
        """Mark an overdue pending chore as missed and deduct its points.

        Raises:
            NotFoundError: Chore not found
            InvalidStateTransitionError: Chore is not pending or not yet due
            PointDeductionFailedError: Marked missed, but points could not be deducted
        """
        chore = self.get_chore(chore_id)
        check_transition(chore, ChoreAction.MISS)

        now = self.clock()
        if chore.due_date > now:
            raise InvalidStateTransitionError(chore_id, chore.status, ChoreAction.MISS,
                                              f'not due until {chore.due_date}')

        chore = self._save(chore_id, {
            'status': ChoreStatus.MISSED,
            'missed_at': now,
            'updated_at': now,
        })
        logger.debug(f"Marked chore {chore_id} as missed")

        if chore.assigned_to_user_id is None:
            return chore

        try:
            self.ledger.deduct(chore.points, chore.assigned_to_user_id, chore.id, now)
        except PointLedgerError as e:
            logger.error(f"Failed to deduct points for missed chore {chore_id}: {e}")
            raise PointDeductionFailedError(
                f"Chore {chore_id} was marked missed but points could not be deducted: {e}",
                chore_id, chore=chore
            ) from e

        return chore

    def check_overdue_chores(self, user_id: Optional[int] = None,
                             family_id: Optional[int] = None) -> int:
        """
        Mark every overdue pending chore as missed.

        Deduction failures don't stop the scan; they are raised together once
        every overdue chore has been marked.

        Returns:
            Number of chores marked missed

        Raises:
            PointDeductionFailedError: Points could not be deducted for some chores
        """
        marked_count = 0
        failed_ids = []

        for chore in self.scheduler.get_overdue_chores(user_id=user_id, family_id=family_id):
            try:
                self.mark_chore_missed(chore.id)
            except PointDeductionFailedError:
                failed_ids.append(chore.id)
            marked_count += 1

        if marked_count > 0:
            logger.info(f"Marked {marked_count} chores as missed")

        if failed_ids:
            raise PointDeductionFailedError(
                f"Marked {marked_count} chores as missed but could not deduct points for "
                f"{len(failed_ids)}: {failed_ids}",
                marked=marked_count, chore_ids=failed_ids
            )

        return marked_count

    def _allocate_points(self, chore: Chore, user_id: Optional[int], when: datetime) -> None:
        if user_id is None:
            logger.warning(f"No user to award points to for chore {chore.id}")
            return
        try:
            self.ledger.allocate(chore.points, user_id, chore.id, when)
        except PointLedgerError as e:
            logger.error(f"Failed to allocate points for chore {chore.id}: {e}")
            raise PointAllocationFailedError(
                f"Chore {chore.id} is {chore.status.value} but points could not be allocated: {e}",
                chore.id, chore=chore
            ) from e

    # Updates and deletes

    def update_chore(self, chore_id: int, updated_by_user_id: Optional[int] = None, **changes) -> Chore:
        """
        Update a chore's fields.

        Status and identity fields can't be changed here; use the lifecycle
        operations instead.

        Raises:
            NotFoundError: Chore not found
            InvalidDataError: Unknown field or a value failed validation
            InvalidStateTransitionError: Due date changed on a chore that is no longer pending
            PermissionDeniedError: User may not update this chore
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidDataError(f"Cannot update fields: {', '.join(sorted(unknown))}", chore_id)

        chore = self.get_chore(chore_id)
        if updated_by_user_id is not None:
            self._require(self.validator.can_update(chore, updated_by_user_id), chore_id,
                          error=PermissionDeniedError)

        if 'recurring_pattern' in changes and not chore.is_recurring:
            raise InvalidDataError(f"Chore {chore_id} is not a recurring chore", chore_id)
        self._validate_fields(changes, chore_id)
        if 'due_date' in changes:
            self.scheduler.check_due_date_change(chore, changes['due_date'])

        if not changes:
            return chore

        chore = self._save(chore_id, dict(changes, updated_at=self.clock()))
        logger.info(f"Updated chore {chore_id}: {', '.join(sorted(changes))}")

        return chore

    def update_future_chores(self, parent_id: int, updated_by_user_id: Optional[int] = None,
                             **changes) -> List[Chore]:
        """
        Apply changes to the instances of a recurring chore due from now on.

        Instances due in the past, and any already resolved, are left untouched.

        Returns:
            The updated instances
        """
        unknown = set(changes) - FUTURE_UPDATABLE_FIELDS
        if unknown:
            raise InvalidDataError(f"Cannot update fields: {', '.join(sorted(unknown))}", parent_id)

        parent = self._get_recurring_parent(parent_id)
        if updated_by_user_id is not None:
            self._require(self.validator.can_update(parent, updated_by_user_id), parent_id,
                          error=PermissionDeniedError)
        self._validate_fields(changes, parent_id)

        now = self.clock()
        updated = [
            self._save(child.id, dict(changes, updated_at=now))
            for child in self._future_children(parent_id, now)
        ]
        logger.info(f"Updated {len(updated)} future instances of chore {parent_id}")

        return updated

    def delete_chore(self, chore_id: int, deleted_by_user_id: Optional[int] = None) -> None:
        """Soft delete a chore. Deleting a recurring chore also deletes its future instances.

        Raises:
            NotFoundError: Chore not found
            PermissionDeniedError: User may not delete this chore
        """
        chore = self.get_chore(chore_id)
        if deleted_by_user_id is not None:
            self._require(self.validator.can_delete(chore, deleted_by_user_id), chore_id,
                          error=PermissionDeniedError)

        now = self.clock()
        if chore.is_recurring:
            for child in self._future_children(chore_id, now):
                self.repository.soft_delete(child.id, now)

        if not self.repository.soft_delete(chore_id, now):
            raise NotFoundError(chore_id)
        logger.info(f"Deleted chore {chore_id}")

    def delete_future_chores(self, parent_id: int, deleted_by_user_id: Optional[int] = None) -> int:
        """
        Soft delete the instances of a recurring chore due from now on.

        Returns:
            Number of instances deleted
        """
        parent = self._get_recurring_parent(parent_id)
        if deleted_by_user_id is not None:
            self._require(self.validator.can_delete(parent, deleted_by_user_id), parent_id,
                          error=PermissionDeniedError)

        now = self.clock()
        deleted = sum(
            1 for child in self._future_children(parent_id, now)
            if self.repository.soft_delete(child.id, now)
        )
        logger.info(f"Deleted {deleted} future instances for chore {parent_id}")

        return deleted

    # Recurring generation

    def generate_recurring_chores(self, force: bool = False,
                                  family_id: Optional[int] = None) -> GenerationReport:
        """Generate next month's instances when the scheduler says it is time."""
        if not force and not self.scheduler.should_generate_next_month_chores():
            logger.debug("Not yet time to generate next month's chores")
            return GenerationReport()
        return self.generator.generate_next_month_chores(family_id)

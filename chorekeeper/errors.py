"""Typed errors raised by the chore engine.

Every error carries the id of the chore it concerns, when there is one, so
callers can render a message without re-querying.
"""

from typing import Optional, Sequence


class ChoreError(Exception):
    """Base exception for chore engine errors."""

    def __init__(self, message: str, chore_id: Optional[int] = None):
        self.message = message
        self.chore_id = chore_id
        super().__init__(self.message)


class NotFoundError(ChoreError):
    def __init__(self, chore_id: Optional[int], message: Optional[str] = None):
        super().__init__(message or f'Chore {chore_id} not found', chore_id)


class InvalidDataError(ChoreError):
    """Chore data failed validation."""


class InvalidRecurringPatternError(InvalidDataError):
    """A recurrence pattern could not be parsed or built."""


class PermissionDeniedError(ChoreError):
    """The acting user may not perform the requested operation."""


class InvalidStateTransitionError(ChoreError):
    """The chore's current status does not allow the requested action."""

    def __init__(self, chore_id: Optional[int], status, action, detail: Optional[str] = None):
        self.status = getattr(status, 'value', status)
        self.action = getattr(action, 'value', action)
        message = f'Cannot {self.action} chore {chore_id}: chore is in "{self.status}" state'
        if detail:
            message = f'{message} ({detail})'
        super().__init__(message, chore_id)


class PointLedgerError(Exception):
    """Raised by point ledger implementations when an entry cannot be written."""


class PointAllocationFailedError(ChoreError):
    """Points could not be allocated after a status change was saved.

    The status change is kept; ``chore`` holds the updated record.
    """

    def __init__(self, message: str, chore_id: Optional[int] = None, chore=None):
        super().__init__(message, chore_id)
        self.chore = chore


class PointDeductionFailedError(ChoreError):
    """Points could not be deducted for one or more missed chores.

    When raised by an overdue scan, ``marked`` is the number of chores that
    were marked missed and ``chore_ids`` lists the chores whose deduction
    failed.
    """

    def __init__(self, message: str, chore_id: Optional[int] = None, chore=None,
                 marked: int = 0, chore_ids: Sequence[int] = ()):
        super().__init__(message, chore_id)
        self.chore = chore
        self.marked = marked
        self.chore_ids = list(chore_ids)


class GenerationFailedError(ChoreError):
    """Instances could not be generated for a recurring chore."""

    def __init__(self, parent_id: Optional[int], reason: str):
        self.reason = reason
        super().__init__(f'Failed to generate instances for chore {parent_id}: {reason}', parent_id)

"""Chore status transitions.

    pending --complete--> completed | pending_verification
    pending_verification --verify--> verified
    pending_verification --reject--> rejected
    pending --miss--> missed

Completed, verified, rejected and missed are terminal. Recurring templates
never transition.
"""

from enum import Enum
from typing import FrozenSet, Optional

from chorekeeper.entities import Chore, ChoreStatus
from chorekeeper.errors import InvalidStateTransitionError


class ChoreAction(str, Enum):
    COMPLETE = 'complete'
    VERIFY = 'verify'
    REJECT = 'reject'
    MISS = 'miss'


TRANSITIONS = {
    (ChoreStatus.PENDING, ChoreAction.COMPLETE): frozenset({
        ChoreStatus.COMPLETED, ChoreStatus.PENDING_VERIFICATION,
    }),
    (ChoreStatus.PENDING_VERIFICATION, ChoreAction.VERIFY): frozenset({ChoreStatus.VERIFIED}),
    (ChoreStatus.PENDING_VERIFICATION, ChoreAction.REJECT): frozenset({ChoreStatus.REJECTED}),
    (ChoreStatus.PENDING, ChoreAction.MISS): frozenset({ChoreStatus.MISSED}),
}

TERMINAL_STATUSES = frozenset({
    ChoreStatus.COMPLETED,
    ChoreStatus.VERIFIED,
    ChoreStatus.REJECTED,
    ChoreStatus.MISSED,
})


def allowed_targets(status: ChoreStatus, action: ChoreAction) -> FrozenSet[ChoreStatus]:
    return TRANSITIONS.get((ChoreStatus(status), ChoreAction(action)), frozenset())


def can_transition(chore: Chore, action: ChoreAction,
                   target: Optional[ChoreStatus] = None) -> bool:
    if chore.is_parent:
        return False
    targets = allowed_targets(chore.status, action)
    if target is None:
        return bool(targets)
    return target in targets


def check_transition(chore: Chore, action: ChoreAction,
                     target: Optional[ChoreStatus] = None) -> None:
    """Raise InvalidStateTransitionError unless ``action`` is allowed on ``chore``."""
    if chore.is_parent:
        raise InvalidStateTransitionError(chore.id, chore.status, action,
                                          'recurring templates cannot change status')
    if not can_transition(chore, action, target):
        raise InvalidStateTransitionError(chore.id, chore.status, action)

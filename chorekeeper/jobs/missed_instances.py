"""
Missed chore marker job.
"""

import logging

from chorekeeper.errors import PointDeductionFailedError

logger = logging.getLogger(__name__)


def mark_missed_chores():
    """
    Mark overdue pending chores as missed.

    Runs hourly. A chore is overdue once its due date has passed while it is
    still pending. Points are deducted from the assigned user.

    Returns:
        Number of chores marked missed
    """
    logger.debug("Checking for missed chores")

    # Import inside function to avoid circular imports and to get app context
    from chorekeeper.app import get_engine
    from chorekeeper.models import db

    try:
        marked_count = get_engine().service.check_overdue_chores()

    except PointDeductionFailedError as e:
        # Chores stay missed; only the point deductions failed
        logger.error(f"Marked {e.marked} chores as missed, point deduction failed for {e.chore_ids}")
        return e.marked

    except Exception as e:
        logger.error(f"Error marking missed chores: {e}")
        db.session.rollback()
        raise

    if marked_count > 0:
        logger.info(f"Marked {marked_count} chores as missed")

    return marked_count

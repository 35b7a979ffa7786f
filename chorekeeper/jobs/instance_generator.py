"""
Recurring instance generation job.
"""

import logging

logger = logging.getLogger(__name__)


def generate_recurring_instances():
    """
    Generate next month's instances for all recurring chores.

    Runs daily. Only generates once the scheduler's trigger window for the
    month has been reached; failing chores are logged and skipped.

    Returns:
        GenerationReport for the run
    """
    logger.info("Starting recurring instance generation")

    # Import inside function to avoid circular imports and to get app context
    from chorekeeper.app import get_engine
    from chorekeeper.models import db

    try:
        report = get_engine().service.generate_recurring_chores()

        for failure in report.failures:
            logger.error(f"Skipped recurring chore {failure.parent_id}: {failure.reason}")

        logger.info(f"Recurring instance generation complete: {report.created} instances created")
        return report

    except Exception as e:
        logger.error(f"Error in recurring instance generation: {e}")
        db.session.rollback()
        raise

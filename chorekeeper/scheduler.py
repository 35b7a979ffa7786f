"""
Background scheduling for ChoreKeeper.

Each application gets its own APScheduler ``BackgroundScheduler``, stored on
``app.extensions`` next to the chore engine. Jobs run inside the owning
app's context so they can reach the engine and the database session.

Jobs:
- recurring_instance_generation: daily, tops up recurring chore instances
- mark_missed_chores: hourly, marks overdue chores as missed
"""

import atexit
import functools
import logging
from typing import Callable, List, NamedTuple, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import current_app

from chorekeeper.utils.timezone import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'chorekeeper.scheduler'


class ScheduledJob(NamedTuple):
    id: str
    name: str
    func: Callable
    trigger: CronTrigger


def _scheduled_jobs(app) -> List[ScheduledJob]:
    from chorekeeper.jobs import generate_recurring_instances, mark_missed_chores

    timezone = app.config.get('SCHEDULER_TIMEZONE', DEFAULT_TIMEZONE)
    return [
        ScheduledJob(
            'recurring_instance_generation',
            'Generate recurring chore instances',
            generate_recurring_instances,
            CronTrigger(hour=app.config.get('GENERATION_JOB_HOUR', 0), minute=5, timezone=timezone),
        ),
        ScheduledJob(
            'mark_missed_chores',
            'Mark missed chores',
            mark_missed_chores,
            CronTrigger(minute=30, timezone=timezone),
        ),
    ]


def in_app_context(app, func: Callable) -> Callable:
    """Wrap ``func`` so it runs inside ``app``'s application context."""

    @functools.wraps(func)
    def wrapper():
        with app.app_context():
            return func()

    return wrapper


def init_scheduler(app) -> Optional[BackgroundScheduler]:
    """
    Register the background jobs for ``app`` and start its scheduler.

    Nothing is started when ``SCHEDULER_ENABLED`` is false or the app is
    in testing mode.

    Returns:
        The running scheduler, or None when scheduling is disabled
    """
    if not app.config.get('SCHEDULER_ENABLED', True):
        logger.info("Background scheduler disabled via configuration")
        return None
    if app.config.get('TESTING', False):
        logger.info("Background scheduler disabled in testing mode")
        return None

    scheduler = BackgroundScheduler()
    for job in _scheduled_jobs(app):
        scheduler.add_job(
            in_app_context(app, job.func),
            trigger=job.trigger,
            id=job.id,
            name=job.name,
            replace_existing=True,
        )

    scheduler.start()
    app.extensions[EXTENSION_KEY] = scheduler
    atexit.register(shutdown_scheduler, app)
    logger.info(f"Background scheduler started with {len(scheduler.get_jobs())} jobs")

    return scheduler


def get_scheduler(app=None) -> Optional[BackgroundScheduler]:
    """The scheduler of ``app`` (default: the current app), if one was started."""
    app = app or current_app
    return app.extensions.get(EXTENSION_KEY)


def shutdown_scheduler(app=None) -> None:
    scheduler = get_scheduler(app)
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")


def run_job_now(job_id: str, app=None) -> bool:
    """
    Run a scheduled job immediately.

    Returns:
        True if the job exists and was run, False otherwise
    """
    scheduler = get_scheduler(app)
    job = scheduler.get_job(job_id) if scheduler else None
    if job is None:
        logger.warning(f"No scheduled job '{job_id}'")
        return False

    logger.info(f"Running job '{job_id}' on demand")
    job.func()
    return True


def get_job_status(app=None) -> List[dict]:
    """Describe every scheduled job: id, name, next run time and trigger."""
    scheduler = get_scheduler(app)
    if scheduler is None:
        return []

    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]

"""
Background jobs for ChoreKeeper.

This package contains scheduled jobs that run in the background:
- instance_generator: Top up instances of recurring chores
- missed_instances: Mark overdue chores as missed
"""

from chorekeeper.jobs.instance_generator import generate_recurring_instances
from chorekeeper.jobs.missed_instances import mark_missed_chores

__all__ = [
    'generate_recurring_instances',
    'mark_missed_chores'
]

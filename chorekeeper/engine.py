"""
Construction of the chore engine.

Components are built explicitly and handed their collaborators, so an
application can run several engines (for example one per test) side by side.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Optional

from chorekeeper.config import Config, settings_from
from chorekeeper.services.chore_scheduler import ChoreScheduler
from chorekeeper.services.chore_service import ChoreService
from chorekeeper.services.generator import ChoreGenerator
from chorekeeper.services.interfaces import ChoreRepository, FamilyPolicy, PointLedger, RoleDirectory
from chorekeeper.services.validator import ChoreValidator
from chorekeeper.utils.timezone import local_naive_now


@dataclass
class ChoreEngine:
    repository: ChoreRepository
    ledger: PointLedger
    validator: ChoreValidator
    generator: ChoreGenerator
    scheduler: ChoreScheduler
    service: ChoreService


def build_engine(repository: ChoreRepository, ledger: PointLedger,
                 role_directory: RoleDirectory, family_policy: FamilyPolicy,
                 settings: Optional[Mapping] = None,
                 clock: Callable[[], datetime] = local_naive_now) -> ChoreEngine:
    """
    Wire the engine components together.

    Args:
        repository: Chore persistence
        ledger: Point allocation and deduction
        role_directory: Family membership and roles
        family_policy: Family verification settings
        settings: Flask config or any mapping with the Config keys (default: Config)
        clock: Callable returning the current local time

    Returns:
        ChoreEngine holding every component
    """
    if settings is None:
        settings = settings_from(Config)

    validator = ChoreValidator(
        role_directory,
        family_policy,
        clock=clock,
        points_min=settings['POINTS_MIN'],
        points_max=settings['POINTS_MAX'],
        title_max_length=settings['TITLE_MAX_LENGTH'],
        max_due_date_days=settings['MAX_DUE_DATE_DAYS'],
    )
    generator = ChoreGenerator(repository, clock=clock,
                               horizon_months=settings['GENERATION_HORIZON_MONTHS'])
    scheduler = ChoreScheduler(repository, validator, clock=clock,
                               horizon_months=settings['GENERATION_HORIZON_MONTHS'],
                               trigger_days=settings['GENERATION_TRIGGER_DAYS'])
    service = ChoreService(repository, ledger, validator, generator, scheduler, clock=clock)

    return ChoreEngine(repository, ledger, validator, generator, scheduler, service)

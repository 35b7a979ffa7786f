"""
Local clock for ChoreKeeper.

Due dates are naive wall-clock times in the household's timezone, taken from
the TZ environment variable. ``local_naive_now`` is the default clock handed
to every engine component.
"""

import logging
import os
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'America/Denver'


def get_timezone(name=None) -> ZoneInfo:
    """Resolve ``name`` (default: $TZ) to a ZoneInfo, falling back to DEFAULT_TIMEZONE."""
    name = name or os.environ.get('TZ', DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_now() -> datetime:
    """Timezone-aware current time in the configured timezone."""
    return datetime.now(get_timezone())


def local_naive_now() -> datetime:
    """Current local wall-clock time without tzinfo."""
    return local_now().replace(tzinfo=None)

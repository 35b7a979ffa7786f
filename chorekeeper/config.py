"""Flask configuration for ChoreKeeper.

Every setting can be overridden from the environment. ``build_engine`` reads
the chore limits and generation window from the same keys, so a plain dict
built with ``settings_from`` works outside Flask too.
"""

import os
from pathlib import Path

from chorekeeper.utils.timezone import DEFAULT_TIMEZONE


def _env_flag(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() == 'true'


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _sqlite_uri(data_dir: Path) -> str:
    return f"sqlite:///{data_dir / 'chorekeeper.db'}"


class Config:
    """Base configuration."""

    DEBUG = _env_flag('DEBUG', False)
    TESTING = False

    # Storage
    DATA_DIR = Path(os.environ.get('DATA_DIR', '/data'))
    SQLALCHEMY_DATABASE_URI = _sqlite_uri(DATA_DIR)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Background jobs
    SCHEDULER_ENABLED = _env_flag('SCHEDULER_ENABLED', True)
    SCHEDULER_TIMEZONE = os.environ.get('TZ', DEFAULT_TIMEZONE)
    GENERATION_JOB_HOUR = _env_int('GENERATION_JOB_HOUR', 0)

    # Chore limits
    POINTS_MIN = 1
    POINTS_MAX = _env_int('POINTS_MAX', 1000)
    TITLE_MAX_LENGTH = 100
    MAX_DUE_DATE_DAYS = 365

    # Recurring instances are kept this many months ahead, topped up during
    # the last GENERATION_TRIGGER_DAYS days of each month
    GENERATION_HORIZON_MONTHS = _env_int('GENERATION_HORIZON_MONTHS', 1)
    GENERATION_TRIGGER_DAYS = _env_int('GENERATION_TRIGGER_DAYS', 3)

    # For families without a stored verification setting
    REQUIRE_VERIFICATION_DEFAULT = _env_flag('REQUIRE_VERIFICATION', True)


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    DATA_DIR = Path(__file__).parent / 'data'
    SQLALCHEMY_DATABASE_URI = _sqlite_uri(DATA_DIR)


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SCHEDULER_ENABLED = False
    REQUIRE_VERIFICATION_DEFAULT = False


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def settings_from(config_object) -> dict:
    """Collect the upper-case settings of a config class into a dict."""
    return {key: getattr(config_object, key) for key in dir(config_object) if key.isupper()}

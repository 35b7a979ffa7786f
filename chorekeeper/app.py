"""ChoreKeeper Flask application - Main entry point."""

import logging
import os
import sys
from pathlib import Path

from flask import Flask, current_app

# Configure logging for the entire application
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)

from chorekeeper.config import config
from chorekeeper.engine import ChoreEngine, build_engine
from chorekeeper.models import db
from chorekeeper.repositories.sql import (
    SqlChoreRepository,
    SqlFamilyPolicy,
    SqlPointLedger,
    SqlRoleDirectory,
)

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'chorekeeper'


def create_app(config_name=None):
    """Application factory pattern for Flask app creation."""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')
    app.config.from_object(config[config_name])

    # Ensure data directory exists (skip for in-memory database)
    if app.config['SQLALCHEMY_DATABASE_URI'] != "sqlite:///:memory:":
        data_dir = Path(app.config['DATA_DIR'])
        data_dir.mkdir(parents=True, exist_ok=True)

    # Initialize extensions with app
    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.extensions[EXTENSION_KEY] = build_engine(
        SqlChoreRepository(),
        SqlPointLedger(),
        SqlRoleDirectory(),
        SqlFamilyPolicy(default=app.config['REQUIRE_VERIFICATION_DEFAULT']),
        settings=app.config,
    )

    # Initialize background scheduler
    from chorekeeper.scheduler import init_scheduler
    init_scheduler(app)

    logger.info(f"ChoreKeeper started with '{config_name}' configuration")

    return app


def get_engine(app=None) -> ChoreEngine:
    """Get the chore engine of ``app``, or of the current app."""
    app = app or current_app
    return app.extensions[EXTENSION_KEY]

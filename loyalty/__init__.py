"""
Restaurant Loyalty Points Engine
Flask application factory
"""
import os
import logging
from flask import Flask

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    config = get_config(config_name)

    # Setup logging before anything else
    setup_logging(config.LOG_LEVEL)

    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Models must be imported for metadata and migrations
    from . import models  # noqa: F401

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    logger.info(f'Loyalty engine initialised ({config_name})')
    return app

"""
matterdesk Flask Application

Lead intake and matter lifecycle service for legal practices.
"""

from flask import Flask, current_app

from matterdesk.config.settings import Config
from matterdesk.services.database import create_database_connection
from matterdesk.utils.logging_config import get_logger, setup_flask_logging

EXTENSION_KEY = "matterdesk"


def create_app(config_class=Config, services=None):
    """
    Application factory pattern for creating Flask app instances.

    Args:
        config_class: Configuration class
        services: Prebuilt ServiceContainer; when omitted the PostgreSQL-backed services
            are built from the configuration
    """
    app = Flask(__name__)

    # Load configuration
    try:
        config_class.validate_config()
        app.config.from_object(config_class)
        app.secret_key = config_class.SECRET_KEY
    except ValueError as e:
        # Set up basic logging first for error reporting
        setup_flask_logging(app)
        logger = get_logger("app.config")
        logger.error("Configuration validation failed", extra={"error": str(e), "config_class": config_class.__name__})
        raise

    # Set up structured logging
    setup_flask_logging(app)
    logger = get_logger("app.init")

    if services is None:
        from matterdesk.services.container import build_services

        try:
            db_config = config_class.get_database_config()
            db_connection = create_database_connection(config_class)
            services = build_services(db_connection, config_class)
            logger.info(
                "Database connection established successfully",
                extra={
                    "event": "database_init_success",
                    "host": db_config.get("host"),
                    "database": db_config.get("database"),
                    "port": db_config.get("port"),
                },
            )
        except Exception as e:
            logger.error(
                "Failed to connect to database",
                extra={
                    "event": "database_init_failed",
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "db_config": {k: v for k, v in config_class.get_database_config().items() if k != "password"},
                },
                exc_info=True,
            )
            raise

    app.extensions[EXTENSION_KEY] = services

    # Register blueprints
    from matterdesk.views.api import api_bp
    from matterdesk.views.health import health_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(api_bp, url_prefix="/api")

    # Register error handlers
    from matterdesk.views.errors import register_error_handlers

    register_error_handlers(app)

    return app


def get_services():
    """Get the service container of the current application"""
    return current_app.extensions[EXTENSION_KEY]

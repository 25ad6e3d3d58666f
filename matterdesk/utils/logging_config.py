"""
Structured logging configuration for matterdesk.

JSON records (python-json-logger) in production and plain text in development, both
carrying the request correlation id set by the Flask hooks below.
"""

import logging
import logging.handlers
import os
import sys
import uuid
from datetime import datetime, timezone
from logging import Logger
from typing import Any, Dict, Optional

import structlog
from flask import Flask, g, has_request_context, request
from pythonjsonlogger.json import JsonFormatter

SERVICE_NAME = "matterdesk"
SERVICE_VERSION = "1.0.0"


class RequestContextFilter(logging.Filter):
    """Add request context information to log records."""

    def filter(self, record):
        if has_request_context():
            record.correlation_id = getattr(g, "correlation_id", "no-request")
            record.request_method = getattr(request, "method", "UNKNOWN")
            record.request_path = getattr(request, "path", "unknown")
        else:
            # Side-effect worker threads and scripts land here
            record.correlation_id = "no-request"
            record.request_method = "SYSTEM"
            record.request_path = "system"

        return True


class CustomJSONFormatter(JsonFormatter):
    """JSON formatter adding service metadata and normalised level/timestamp fields."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        log_record["level"] = record.levelname.upper()
        log_record["name"] = record.name
        log_record.setdefault("service", SERVICE_NAME)
        log_record.setdefault("version", SERVICE_VERSION)


class StructuredLogger:
    """Main structured logger class."""

    def __init__(self, name: str = SERVICE_NAME):
        self.name = name
        self.logger: Optional[Logger] = None
        self._configured = False

    def configure(self, app: Optional[Flask] = None, **kwargs):
        """Configure the structured logger."""
        if self._configured:
            return self.logger

        # Get configuration from Flask app or kwargs
        if app:
            log_level = app.config.get("LOG_LEVEL", "INFO")
            log_format = app.config.get("LOG_FORMAT", "development")
            log_file = app.config.get("LOG_FILE", "logs/app.log")
            max_bytes = app.config.get("LOG_MAX_BYTES", 10 * 1024 * 1024)
            backup_count = app.config.get("LOG_BACKUP_COUNT", 5)
            enable_console = app.config.get("LOG_ENABLE_CONSOLE", True)
        else:
            log_level = kwargs.get("log_level", os.getenv("LOG_LEVEL", "INFO"))
            log_format = kwargs.get("log_format", os.getenv("LOG_FORMAT", "development"))
            log_file = kwargs.get("log_file", os.getenv("LOG_FILE", "logs/app.log"))
            max_bytes = kwargs.get("max_bytes", int(os.getenv("LOG_MAX_BYTES", "10485760")))
            backup_count = kwargs.get("backup_count", int(os.getenv("LOG_BACKUP_COUNT", "5")))
            enable_console = kwargs.get("enable_console", os.getenv("LOG_ENABLE_CONSOLE", "true").lower() == "true")

        self.logger = logging.getLogger(self.name)
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.logger.handlers.clear()

        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

        context_filter = RequestContextFilter()

        if log_format.lower() == "json":
            self._configure_json_logging(log_file, max_bytes, backup_count, enable_console, context_filter)
        else:
            self._configure_development_logging(log_file, max_bytes, backup_count, enable_console, context_filter)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer()
                if log_format.lower() == "json"
                else structlog.dev.ConsoleRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        self._configured = True

        self.logger.info(
            "Structured logging configured successfully",
            extra={
                "log_level": log_level,
                "log_format": log_format,
                "log_file": log_file,
                "enable_console": enable_console,
            },
        )

        return self.logger

    def _configure_json_logging(
        self,
        log_file: str,
        max_bytes: int,
        backup_count: int,
        enable_console: bool,
        context_filter: RequestContextFilter,
    ):
        """Configure JSON logging for production."""
        json_formatter = CustomJSONFormatter("%(message)s")
        assert self.logger is not None

        if log_file:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count
            )
            file_handler.setFormatter(json_formatter)
            file_handler.addFilter(context_filter)
            self.logger.addHandler(file_handler)

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(json_formatter)
            console_handler.addFilter(context_filter)
            self.logger.addHandler(console_handler)

    def _configure_development_logging(
        self,
        log_file: str,
        max_bytes: int,
        backup_count: int,
        enable_console: bool,
        context_filter: RequestContextFilter,
    ):
        dev_formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d "
            "[%(correlation_id)s] %(request_method)s %(request_path)s - %(message)s"
        )
        assert self.logger is not None

        if log_file:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count
            )
            file_handler.setFormatter(dev_formatter)
            file_handler.addFilter(context_filter)
            self.logger.addHandler(file_handler)

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(dev_formatter)
            console_handler.addFilter(context_filter)
            self.logger.addHandler(console_handler)

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """Get a logger instance."""
        if not self._configured:
            raise RuntimeError("Logger not configured. Call configure() first.")

        if name:
            return logging.getLogger(f"{self.name}.{name}")

        if self.logger is None:
            raise RuntimeError("Logger not properly initialized.")
        return self.logger


# Global logger instance
structured_logger = StructuredLogger()


def setup_flask_logging(app: Flask):
    """Set up Flask application logging with request correlation."""

    logger = structured_logger.configure(app)

    app.logger.handlers.clear()
    app.logger.addHandler(logger.handlers[0] if logger.handlers else logging.NullHandler())
    app.logger.setLevel(logger.level)

    @app.before_request
    def before_request():
        """Generate correlation ID for each request."""
        g.correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())[:8]
        g.request_start_time = datetime.now(timezone.utc)

        logger.info(
            "Request started",
            extra={
                "event": "request_start",
                "method": request.method,
                "path": request.path,
                "content_length": request.content_length,
            },
        )

    @app.after_request
    def after_request(response):
        """Log request completion."""
        started = getattr(g, "request_start_time", None)
        duration = (datetime.now(timezone.utc) - started).total_seconds() * 1000 if started else 0.0

        logger.info(
            "Request completed",
            extra={
                "event": "request_end",
                "status_code": response.status_code,
                "duration_ms": round(duration, 2),
            },
        )

        response.headers["X-Correlation-ID"] = getattr(g, "correlation_id", "no-request")
        return response


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance."""
    # Auto-configure with defaults if not already configured
    if not structured_logger._configured:
        structured_logger.configure()
    return structured_logger.get_logger(name)


def log_database_operation(operation: str, table: Optional[str] = None, **kwargs):
    """Helper function to log database operations."""
    logger = get_logger("database")
    logger.debug(
        f"Database operation: {operation}",
        extra={"event": "database_operation", "operation": operation, "table": table, **kwargs},
    )


def log_security_event(event_type: str, details: Dict[str, Any]):
    """Helper function to log security events."""
    logger = get_logger("security")
    logger.warning(f"Security event: {event_type}", extra={"event": "security_event", "event_type": event_type, **details})


def log_performance_metric(metric_name: str, value: float, unit: str = "ms", **kwargs):
    """Helper function to log performance metrics."""
    logger = get_logger("performance")
    logger.info(
        f"Performance metric: {metric_name}",
        extra={"event": "performance_metric", "metric_name": metric_name, "value": value, "unit": unit, **kwargs},
    )


def log_business_event(event_type: str, entity_type: Optional[str] = None, entity_id: Optional[str] = None, **kwargs):
    """Helper function to log business events."""
    logger = get_logger("business")
    logger.info(
        f"Business event: {event_type}",
        extra={
            "event": "business_event",
            "event_type": event_type,
            "entity_type": entity_type,
            "entity_id": entity_id,
            **kwargs,
        },
    )

"""
Error handlers for matterdesk.

Domain errors become JSON bodies with their mapped status code; anything unexpected is
logged with its traceback and answered with a generic 500.
"""

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from matterdesk.utils.errors import DomainError
from matterdesk.utils.logging_config import get_logger, log_security_event


def register_error_handlers(app):
    """Register error handlers with the Flask app"""
    logger = get_logger("app.errors")

    @app.errorhandler(DomainError)
    def handle_domain_error(error: DomainError):
        extra = {
            "event": "domain_error",
            "error": error.message,
            "error_type": type(error).__name__,
            "error_code": error.code,
            "status_code": error.status_code,
            "path": request.path,
        }
        if error.status_code >= 500:
            logger.error("Request failed on infrastructure", extra=extra, exc_info=True)
        elif error.status_code == 403:
            log_security_event("tenant_mismatch", {"path": request.path, "error": error.message})
        else:
            logger.info("Request rejected", extra=extra)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return (
            jsonify({"success": False, "error": error.description, "code": error.name.upper().replace(" ", "_")}),
            error.code,
        )

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        logger.error(
            "Unhandled exception",
            extra={"event": "unhandled_exception", "error": str(e), "error_type": type(e).__name__, "path": request.path},
            exc_info=True,
        )
        return jsonify({"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"}), 500

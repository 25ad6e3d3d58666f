"""
Domain error taxonomy for matterdesk.

Every error raised by the services derives from DomainError so the HTTP layer can map it to
a status code without knowing the individual kinds.
"""

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for errors surfaced to callers of the lifecycle services"""

    status_code = 400
    default_code = "DOMAIN_ERROR"
    retryable = False

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON error responses"""
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(DomainError):
    """Malformed or missing request input"""

    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, code: Optional[str] = None):
        self.field = field
        super().__init__(message, code, {"field": field} if field else None)


class NotFoundError(DomainError):
    status_code = 404
    default_code = "NOT_FOUND"


class ForbiddenError(DomainError):
    """The record exists but belongs to another organization"""

    status_code = 403
    default_code = "FORBIDDEN"


class InvalidTransitionError(DomainError):
    status_code = 409
    default_code = "INVALID_TRANSITION"


class InvalidPreconditionError(DomainError):
    status_code = 409
    default_code = "INVALID_PRECONDITION"


class PaymentRequiredError(DomainError):
    """Intake confirmation is blocked until the practice's payment requirement is met"""

    status_code = 402
    default_code = "PAYMENT_REQUIRED"


class InvalidStatusValueError(DomainError):
    status_code = 422
    default_code = "INVALID_STATUS_VALUE"


class InfrastructureError(DomainError):
    """The backing store is unavailable; safe for the caller to retry"""

    status_code = 503
    default_code = "INFRASTRUCTURE_ERROR"
    retryable = True

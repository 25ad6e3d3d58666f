"""
Input validation and sanitization utilities for matterdesk.

This module validates contact-form, intake and status-change payloads before they reach
the lifecycle services.
"""

import html
import re
from functools import wraps
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from flask import jsonify, request

from matterdesk.models.entities import LEAD_SOURCES, MatterStatus
from matterdesk.utils.errors import ValidationError
from matterdesk.utils.logging_config import log_security_event


class InputValidator:
    """Input validation and sanitization"""

    # Valid characters for different input types
    IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z0-9\-_\.:]+$")
    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
    # Phone numbers are free-form; only presence and length are checked
    PHONE_MAX_LENGTH = 40

    def sanitize_string(
        self,
        value: Optional[str],
        max_length: Optional[int] = None,
        allow_html: bool = False,
        strip_whitespace: bool = True,
    ) -> str:
        """
        Sanitize string input with various options

        Args:
            value: Input string to sanitize
            max_length: Maximum allowed length
            allow_html: Whether to allow HTML (default: False, will escape HTML)
            strip_whitespace: Whether to strip leading/trailing whitespace

        Returns:
            Sanitized string
        """
        if value is None:
            return ""

        if not isinstance(value, str):
            value = str(value)

        if "%" in value:
            value = unquote(value)

        if strip_whitespace:
            value = value.strip()

        if not allow_html:
            value = html.escape(value, quote=True)

        if max_length and len(value) > max_length:
            value = value[:max_length]

        return value

    def validate_identifier(self, value: Any, field_name: str = "id", required: bool = True) -> Optional[str]:
        """
        Validate an opaque identifier (organization, matter, conversation, user)

        Raises:
            ValidationError: If the identifier is missing or malformed
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                raise ValidationError(f"{field_name} is required", field_name, "REQUIRED")
            return None

        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string", field_name, "INVALID_TYPE")

        trimmed = value.strip()
        if len(trimmed) > 128 or not self.IDENTIFIER_PATTERN.match(trimmed):
            raise ValidationError(f"Invalid {field_name} format", field_name, "INVALID_FORMAT")

        return trimmed

    def validate_email(self, email: str, field_name: str = "email", required: bool = True) -> Optional[str]:
        """
        Validate email address

        Args:
            email: Email to validate
            field_name: Name of the field
            required: Whether email is required

        Returns:
            Validated, lowercased email or None

        Raises:
            ValidationError: If email is invalid
        """
        if not email:
            if required:
                raise ValidationError(f"{field_name} is required", field_name, "REQUIRED")
            return None

        if not isinstance(email, str):
            raise ValidationError("Email must be a string", field_name, "INVALID_TYPE")

        sanitized = self.sanitize_string(email, max_length=254).lower()

        if not self.EMAIL_PATTERN.match(sanitized):
            raise ValidationError("Invalid email format", field_name, "INVALID_FORMAT")

        return sanitized

    def validate_phone(self, phone: str, field_name: str = "phone", required: bool = False) -> Optional[str]:
        """
        Validate phone number

        Raises:
            ValidationError: If phone number is invalid
        """
        if not phone:
            if required:
                raise ValidationError(f"{field_name} is required", field_name, "REQUIRED")
            return None

        if not isinstance(phone, str):
            raise ValidationError("Phone number must be a string", field_name, "INVALID_TYPE")

        sanitized = self.sanitize_string(phone)
        if not sanitized:
            if required:
                raise ValidationError(f"{field_name} is required", field_name, "REQUIRED")
            return None

        if len(sanitized) > self.PHONE_MAX_LENGTH:
            raise ValidationError(
                f"{field_name} too long (max {self.PHONE_MAX_LENGTH} characters)", field_name, "TOO_LONG"
            )

        return sanitized

    def validate_status(self, value: Any, field_name: str = "status") -> MatterStatus:
        """
        Parse a requested matter status.

        Raises:
            ValidationError: If the status is missing
            InvalidStatusValueError: If the value is not a known status
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field_name} is required", field_name, "REQUIRED")
        return MatterStatus.parse(value)

    def _validate_string_field(self, value: Any, field: str, max_length: Optional[int] = None) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"{field} must be a string", field, "INVALID_TYPE")
        return self.sanitize_string(value, max_length=max_length)

    def _validate_text_field(self, value: Any, field: str, max_length: Optional[int] = None) -> str:
        """Free text is kept verbatim apart from trimming."""
        if not isinstance(value, str):
            raise ValidationError(f"{field} must be a string", field, "INVALID_TYPE")
        text = value.strip()
        if max_length and len(text) > max_length:
            raise ValidationError(f"{field} too long (max {max_length} characters)", field, "TOO_LONG")
        return text

    def _validate_field_by_type(self, value: Any, field: str, field_type: str, max_length: Optional[int] = None) -> Any:
        """Validate a field based on its type."""
        if field_type == "string":
            return self._validate_string_field(value, field, max_length)
        elif field_type == "text":
            return self._validate_text_field(value, field, max_length)
        elif field_type == "email":
            return self.validate_email(value, field, True)
        elif field_type == "phone":
            return self.validate_phone(value, field, True)
        elif field_type == "identifier":
            return self.validate_identifier(value, field, True)
        elif field_type == "status":
            return self.validate_status(value, field)
        else:
            return self.sanitize_string(str(value), max_length=max_length)

    def _check_required_field(self, value: Any, field: str, required: bool) -> bool:
        """Check if a required field is present; returns True when the value is empty."""
        empty = value is None or (isinstance(value, str) and not value.strip())
        if required and empty:
            raise ValidationError(f"{field} is required", field, "REQUIRED")
        return empty

    def _check_allowed_values(self, value: Any, field: str, allowed_values: Optional[List[str]]) -> None:
        if allowed_values and value not in allowed_values:
            raise ValidationError(
                f"Invalid {field} value. Allowed values: {', '.join(map(str, allowed_values))}",
                field,
                "INVALID_VALUE",
            )

    def validate_request_data(self, data: Dict[str, Any], schema: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Validate request data against a schema

        Args:
            data: Request data to validate
            schema: Validation schema, field -> {type, required, max_length, allowed_values}

        Returns:
            Validated data; optional fields that are absent map to None

        Raises:
            ValidationError: If data is invalid
        """
        validated: Dict[str, Any] = {}

        for field, rules in schema.items():
            value = data.get(field)
            field_type = rules.get("type", "string")
            required = rules.get("required", False)
            max_length = rules.get("max_length")
            allowed_values = rules.get("allowed_values")

            if self._check_required_field(value, field, required):
                validated[field] = None
                continue

            validated[field] = self._validate_field_by_type(value, field, field_type, max_length)
            self._check_allowed_values(validated[field], field, allowed_values)

        return validated


# Global validator instance
validator = InputValidator()


def validate_api_request(validation_rules: Optional[Dict[str, Dict[str, Any]]] = None):
    """
    Decorator for validating API requests

    Validated values are passed to the view as keyword arguments. ValidationError is
    answered with 400 here; other domain errors propagate to the error handlers.

    Args:
        validation_rules: Dictionary of validation rules for request parameters
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                if request.method == "GET":
                    params = dict(request.args)
                elif request.method in ["POST", "PUT", "PATCH"]:
                    body = request.get_json(silent=True)
                    params = dict(body) if isinstance(body, dict) else {}
                    for key, value in request.args.items():
                        params.setdefault(key, value)
                else:
                    params = {}

                params.update(kwargs)

                if validation_rules:
                    kwargs.update(validator.validate_request_data(params, validation_rules))

            except ValidationError as e:
                log_security_event(
                    "validation_error",
                    {"endpoint": request.path, "error": e.message, "field": e.field, "code": e.code},
                )
                return jsonify(e.to_dict()), e.status_code

            return func(*args, **kwargs)

        return wrapper

    return decorator


CONTACT_FORM_RULES: Dict[str, Dict[str, Any]] = {
    "organizationId": {"type": "identifier"},
    "practiceId": {"type": "identifier"},
    "sessionId": {"type": "identifier"},
    "name": {"type": "text", "max_length": 200},
    "email": {"type": "email", "required": True},
    "phoneNumber": {"type": "phone", "required": True},
    "matterDetails": {"type": "text", "required": True, "max_length": 10000},
    "leadSource": {"type": "string", "max_length": 50, "allowed_values": LEAD_SOURCES},
}

INTAKE_CONFIRM_RULES: Dict[str, Dict[str, Any]] = {
    "organizationId": {"type": "identifier"},
    "practiceId": {"type": "identifier"},
    "intakeUuid": {"type": "identifier", "required": True},
    "conversationId": {"type": "identifier", "required": True},
}

STATUS_CHANGE_RULES: Dict[str, Dict[str, Any]] = {
    "status": {"type": "status", "required": True},
    "reason": {"type": "text", "max_length": 2000},
}

REJECT_RULES: Dict[str, Dict[str, Any]] = {
    "reason": {"type": "text", "max_length": 2000},
}

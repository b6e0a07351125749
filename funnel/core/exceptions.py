# funnel/core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, Optional


class BaseAPIException(Exception):
    """Base exception for all API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(BaseAPIException):
    """Resource not found."""
    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, status_code=404, **kwargs)


class ValidationError(BaseAPIException):
    """Validation error."""
    def __init__(self, message: str = "Validation error", **kwargs):
        super().__init__(message, status_code=422, **kwargs)


class ExternalServiceError(BaseAPIException):
    """External service error."""
    def __init__(self, message: str = "External service error", **kwargs):
        super().__init__(message, status_code=502, **kwargs)


class ServiceUnavailableError(BaseAPIException):
    """Service unavailable."""
    def __init__(self, message: str = "Service unavailable", **kwargs):
        super().__init__(message, status_code=503, **kwargs)


class FieldValidationError(ValidationError):
    """One or more form fields failed validation.

    ``errors`` maps the wire field name to a message shown next to the field.
    """

    def __init__(self, errors: Dict[str, str], message: str = "Please correct the highlighted fields", **kwargs):
        super().__init__(message, code="field_validation_failed", details={"errors": errors}, **kwargs)
        self.errors = errors


class DestinationError(ExternalServiceError):
    """The spreadsheet destination could not be opened or appended to."""
    def __init__(self, message: str = "Destination unavailable", **kwargs):
        super().__init__(message, code="destination_error", **kwargs)

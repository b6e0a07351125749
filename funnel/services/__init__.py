"""
Business logic services organized by domain functionality.
"""

from funnel.services.anti_abuse import (
    AntiAbusePolicy,
    check_duplicate_submission,
    check_rate_limit,
    is_duplicate,
    issue_form_token,
    rate_limit_allows,
    validate_form_token,
)
from funnel.services.form_controller import FormController, SubmitOutcome
from funnel.services.ingestion import ingest_submission
from funnel.services.validation import sanitize, strip_markup, validate_email, validate_phone, validate_url

__all__ = [
    # Anti-abuse
    "AntiAbusePolicy",
    "check_duplicate_submission",
    "check_rate_limit",
    "is_duplicate",
    "issue_form_token",
    "rate_limit_allows",
    "validate_form_token",
    # Form controller
    "FormController",
    "SubmitOutcome",
    # Ingestion
    "ingest_submission",
    # Validation
    "sanitize",
    "strip_markup",
    "validate_email",
    "validate_phone",
    "validate_url",
]

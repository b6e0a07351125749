"""Field validation and sanitization shared by the form controller and the ingestion endpoint."""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlparse

EMAIL_MAX_LENGTH = 254
PHONE_MAX_LENGTH = 20
URL_MAX_LENGTH = 500
BRAND_MAX_LENGTH = 100
DEFAULT_MAX_LENGTH = 500

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_PATTERN = re.compile(r"^\+?[\d\s().-]+$")
_TAG_PATTERN = re.compile(r"<[^>]*>")
_MIN_PHONE_DIGITS = 7


def validate_email(email: Optional[str]) -> bool:
    """Validate email format."""
    if not email:
        return False
    email = email.strip()
    if len(email) > EMAIL_MAX_LENGTH:
        return False
    return bool(_EMAIL_PATTERN.match(email))


def validate_phone(phone: Optional[str]) -> bool:
    """Validate an optional phone number; empty passes."""
    if not phone or not phone.strip():
        return True
    phone = phone.strip()
    if len(phone) > PHONE_MAX_LENGTH:
        return False
    if not _PHONE_PATTERN.match(phone):
        return False
    return sum(ch.isdigit() for ch in phone) >= _MIN_PHONE_DIGITS


def validate_url(url: Optional[str]) -> bool:
    """Validate an optional absolute http(s) URL; empty passes."""
    if not url or not url.strip():
        return True
    url = url.strip()
    if len(url) > URL_MAX_LENGTH:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def strip_markup(value: Optional[object]) -> str:
    """Remove tags and surrounding whitespace without truncating."""
    if value is None:
        return ""
    return _TAG_PATTERN.sub("", str(value)).strip()


def sanitize(value: Optional[object], max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Strip markup, trim, and cap the length of a free-text value."""
    return strip_markup(value)[:max_length].strip()

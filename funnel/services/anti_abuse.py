# funnel/services/anti_abuse.py
from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from typing import Optional

from funnel.core.logging import get_structlog_logger
from funnel.schemas.lead import LeadRecord
from funnel.services.session_state import SessionState

logger = get_structlog_logger(__name__)

# Fields that change on every submit and must not affect the fingerprint.
_VOLATILE_FIELDS = {"submittedAt"}


@dataclass(frozen=True)
class AntiAbusePolicy:
    window_seconds: int = 60
    max_submissions: int = 3
    token_min_age_seconds: float = 3
    token_max_age_seconds: float = 3600


def rate_limit_allows(
    state: SessionState,
    now: float,
    window_seconds: int = 60,
    max_submissions: int = 3,
) -> bool:
    """Evict timestamps outside the window and report whether one more fits. Records nothing."""
    state.prune_submissions(now - window_seconds)

    if len(state.submission_times) >= max_submissions:
        logger.warning(
            "rate_limit.exceeded",
            current_count=len(state.submission_times),
            limit=max_submissions,
            window_seconds=window_seconds,
        )
        return False
    return True


def check_rate_limit(
    state: SessionState,
    now: float,
    window_seconds: int = 60,
    max_submissions: int = 3,
) -> bool:
    """
    Sliding-window limiter over accepted submissions.
    Evicts entries older than the window, then records ``now`` if allowed.
    """
    if not rate_limit_allows(state, now, window_seconds, max_submissions):
        return False
    state.record_submission(now)
    return True


def issue_form_token(state: SessionState, form_id: str, now: float) -> str:
    """Issue a fresh token for ``form_id``, replacing any earlier one."""
    token = secrets.token_urlsafe(24)
    state.put_token(form_id, token, now)
    return token


def validate_form_token(
    state: SessionState,
    form_id: str,
    now: float,
    token: Optional[str] = None,
    min_age_seconds: float = 3,
    max_age_seconds: float = 3600,
) -> bool:
    """
    Validate and consume the token for ``form_id``.

    Fails when none was issued, when ``token`` is given and does not match,
    when the token is stale (discarded) or too fresh (kept). Success
    discards the token.
    """
    issued = state.get_token(form_id)
    if issued is None:
        logger.info("form_token.missing", form_id=form_id)
        return False

    if token is not None and not hmac.compare_digest(issued.token, token):
        logger.info("form_token.mismatch", form_id=form_id)
        return False

    elapsed = now - issued.issued_at
    if elapsed > max_age_seconds:
        state.discard_token(form_id)
        logger.info("form_token.stale", form_id=form_id, elapsed=round(elapsed, 3))
        return False

    if elapsed < min_age_seconds:
        logger.info("form_token.too_fast", form_id=form_id, elapsed=round(elapsed, 3))
        return False

    state.discard_token(form_id)
    return True


def fingerprint(record: LeadRecord) -> str:
    """SHA-256 over the canonical wire fields, ignoring the submit timestamp."""
    fields = {
        k: v for k, v in record.to_form_fields().items() if k not in _VOLATILE_FIELDS
    }
    canonical = json.dumps(fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def is_duplicate(state: SessionState, record: LeadRecord) -> bool:
    """True when ``record`` matches the previous accepted one in this session."""
    digest = fingerprint(record)
    if state.last_fingerprint == digest:
        logger.info("duplicate.rejected", fingerprint=digest[:12])
        return True
    return False


def check_duplicate_submission(state: SessionState, record: LeadRecord) -> bool:
    """Reject a repeat of the previous record; otherwise remember this one."""
    if is_duplicate(state, record):
        return False
    state.remember_fingerprint(fingerprint(record))
    return True

# funnel/services/session_state.py
"""
Per-browser session state for the funnel.

Everything the form controller remembers between requests lives on a
``SessionState``: accepted submission timestamps, single-use form tokens, the
fingerprint of the previous submission, the UTM bundle, the last submitted
lead and the exit-intent flag. Stores only load and save whole states.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

import redis.asyncio as redis

from funnel.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)


@dataclass
class FormToken:
    token: str
    issued_at: float


@dataclass
class SessionState:
    submission_times: List[float] = field(default_factory=list)
    form_tokens: Dict[str, FormToken] = field(default_factory=dict)
    last_fingerprint: Optional[str] = None
    utm: Dict[str, str] = field(default_factory=dict)
    last_lead: Optional[Dict[str, str]] = None
    exit_intent_shown: bool = False

    # Rate-limit window
    def record_submission(self, at: float) -> None:
        self.submission_times.append(at)

    def prune_submissions(self, cutoff: float) -> None:
        """Drop submission timestamps at or before ``cutoff``."""
        self.submission_times = [t for t in self.submission_times if t > cutoff]

    # Form tokens
    def put_token(self, form_id: str, token: str, issued_at: float) -> None:
        self.form_tokens[form_id] = FormToken(token=token, issued_at=issued_at)

    def get_token(self, form_id: str) -> Optional[FormToken]:
        return self.form_tokens.get(form_id)

    def discard_token(self, form_id: str) -> None:
        self.form_tokens.pop(form_id, None)

    # Duplicate detection
    def remember_fingerprint(self, fingerprint: str) -> None:
        self.last_fingerprint = fingerprint

    # Attribution
    def capture_utm(self, params: Mapping[str, str]) -> bool:
        """Cache the attribution bundle once; later captures are ignored."""
        if self.utm:
            return False
        bundle = {k: v for k, v in params.items() if v}
        if not bundle:
            return False
        self.utm = dict(params)
        return True

    # Confirmation page
    def remember_lead(self, lead: Mapping[str, str]) -> None:
        self.last_lead = dict(lead)

    def mark_exit_intent_shown(self) -> bool:
        """Return True the first time only."""
        if self.exit_intent_shown:
            return False
        self.exit_intent_shown = True
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_times": list(self.submission_times),
            "form_tokens": {
                form_id: {"token": t.token, "issued_at": t.issued_at}
                for form_id, t in self.form_tokens.items()
            },
            "last_fingerprint": self.last_fingerprint,
            "utm": dict(self.utm),
            "last_lead": self.last_lead,
            "exit_intent_shown": self.exit_intent_shown,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionState":
        tokens = {
            form_id: FormToken(token=str(t["token"]), issued_at=float(t["issued_at"]))
            for form_id, t in (data.get("form_tokens") or {}).items()
        }
        return cls(
            submission_times=[float(t) for t in data.get("submission_times") or []],
            form_tokens=tokens,
            last_fingerprint=data.get("last_fingerprint"),
            utm=dict(data.get("utm") or {}),
            last_lead=data.get("last_lead"),
            exit_intent_shown=bool(data.get("exit_intent_shown", False)),
        )


class SessionStore(Protocol):
    async def load(self, session_id: str) -> SessionState: ...

    async def save(self, session_id: str, state: SessionState) -> None: ...


class MemorySessionStore:
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._states: Dict[str, Dict[str, Any]] = {}

    async def load(self, session_id: str) -> SessionState:
        data = self._states.get(session_id)
        return SessionState.from_dict(data) if data else SessionState()

    async def save(self, session_id: str, state: SessionState) -> None:
        self._states[session_id] = state.to_dict()


class RedisSessionStore:
    """JSON blob per session, expiring after ``ttl_seconds`` of inactivity."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int, prefix: str = "funnel:session"):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _make_key(self, session_id: str) -> str:
        return f"{self.prefix}:{session_id}"

    async def load(self, session_id: str) -> SessionState:
        raw = await self.redis.get(self._make_key(session_id))
        if raw is None:
            return SessionState()
        try:
            return SessionState.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("session.corrupt", session_id=session_id[:8], error=str(e))
            return SessionState()

    async def save(self, session_id: str, state: SessionState) -> None:
        await self.redis.set(
            self._make_key(session_id),
            json.dumps(state.to_dict(), separators=(",", ":")),
            ex=self.ttl_seconds,
        )

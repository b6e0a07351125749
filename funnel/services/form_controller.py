# funnel/services/form_controller.py
"""
Server-side form controller for the funnel's lead forms.

A controller is built per request from a form definition, the caller's
session state and an anti-abuse policy. ``submit`` runs the gates in order
(honeypot, fields, token, rate limit, duplicate) and hands an accepted record
to ``dispatch`` without waiting on it. The redirect to the confirmation page
is scheduled whatever happens to the transmission.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Literal, Mapping, Optional, Tuple

from funnel.core.exceptions import FieldValidationError
from funnel.core.logging import get_structlog_logger
from funnel.schemas.lead import UTM_FIELDS, LeadRecord
from funnel.services.anti_abuse import (
    AntiAbusePolicy,
    fingerprint,
    is_duplicate,
    issue_form_token,
    rate_limit_allows,
    validate_form_token,
)
from funnel.services.session_state import SessionState
from funnel.services.validation import (
    BRAND_MAX_LENGTH,
    sanitize,
    strip_markup,
    validate_email,
    validate_phone,
    validate_url,
)

logger = get_structlog_logger(__name__)

OutcomeStatus = Literal["accepted", "honeypot", "invalid", "rejected"]

RATE_LIMIT_MESSAGE = "Too many submissions. Please wait a minute and try again."
TOKEN_MESSAGE = "This form has expired or was submitted too quickly. Please try again."
DUPLICATE_MESSAGE = "You've already submitted this information."


@dataclass(frozen=True)
class ChipGroup:
    name: str
    choices: Tuple[str, ...]


class ChipSelection:
    """Single-select state across a form's chip groups."""

    def __init__(self, groups: Iterable[ChipGroup]):
        self._groups = {g.name: g for g in groups}
        self._selected: Dict[str, str] = {}

    def select(self, group: str, value: str) -> None:
        chip_group = self._groups[group]
        if value not in chip_group.choices:
            raise ValueError(f"{value!r} is not a choice of {group!r}")
        self._selected[group] = value

    def selected(self, group: str) -> str:
        if group not in self._groups:
            raise KeyError(group)
        return self._selected.get(group, "")

    def as_dict(self) -> Dict[str, str]:
        return {name: self._selected.get(name, "") for name in self._groups}


@dataclass(frozen=True)
class FormDefinition:
    form_id: str
    honeypot_field: str
    chip_groups: Tuple[ChipGroup, ...]
    has_site_url: bool = False
    sheet_name: Optional[str] = None

    def new_selection(self) -> ChipSelection:
        return ChipSelection(self.chip_groups)


AD_SPEND = ChipGroup("adSpend", ("<5k", "5k-20k", "20k-50k", "50k-100k", "100k+"))
BUSINESS_TYPE = ChipGroup("businessType", ("ecommerce", "dtc-brand", "subscription", "marketplace", "other"))
PLATFORM = ChipGroup("platform", ("shopify", "woocommerce", "bigcommerce", "magento", "custom"))

MAIN_FORM = FormDefinition(
    form_id="leadForm",
    honeypot_field="websiteUrl",
    chip_groups=(AD_SPEND, BUSINESS_TYPE),
)

AUDIT_FORM = FormDefinition(
    form_id="auditLeadForm",
    honeypot_field="auditWebsiteUrl",
    chip_groups=(PLATFORM, AD_SPEND, BUSINESS_TYPE),
    has_site_url=True,
    sheet_name="audit",
)

FORMS: Dict[str, FormDefinition] = {f.form_id: f for f in (MAIN_FORM, AUDIT_FORM)}


@dataclass
class SubmitOutcome:
    status: OutcomeStatus
    reason: Optional[str] = None
    record: Optional[LeadRecord] = None
    message: Optional[str] = None
    field_errors: Dict[str, str] = field(default_factory=dict)
    redirect_to: Optional[str] = None
    redirect_delay_ms: int = 0

    @property
    def redirects(self) -> bool:
        return self.redirect_to is not None


class FormController:
    def __init__(
        self,
        definition: FormDefinition,
        state: SessionState,
        *,
        policy: AntiAbusePolicy = AntiAbusePolicy(),
        clock: Callable[[], float] = time.time,
        dispatch: Optional[Callable[[LeadRecord], None]] = None,
        confirmation_url: str = "/thank-you",
        redirect_delay_ms: int = 1000,
        redirect_delay_no_endpoint_ms: int = 400,
    ):
        self.definition = definition
        self.state = state
        self.policy = policy
        self.clock = clock
        self.dispatch = dispatch
        self.confirmation_url = confirmation_url
        self.redirect_delay_ms = redirect_delay_ms
        self.redirect_delay_no_endpoint_ms = redirect_delay_no_endpoint_ms

    def issue_form_token(self) -> str:
        return issue_form_token(self.state, self.definition.form_id, self.clock())

    def validate_form_token(self, token: Optional[str] = None) -> bool:
        return validate_form_token(
            self.state,
            self.definition.form_id,
            self.clock(),
            token=token,
            min_age_seconds=self.policy.token_min_age_seconds,
            max_age_seconds=self.policy.token_max_age_seconds,
        )

    def render_token(self) -> str:
        """The live token for this form if one is still usable, else a fresh one."""
        current = self.state.get_token(self.definition.form_id)
        if current is not None and self.clock() - current.issued_at <= self.policy.token_max_age_seconds:
            return current.token
        return self.issue_form_token()

    def rate_limit_allows(self) -> bool:
        return rate_limit_allows(
            self.state,
            self.clock(),
            window_seconds=self.policy.window_seconds,
            max_submissions=self.policy.max_submissions,
        )

    def is_duplicate(self, record: LeadRecord) -> bool:
        return is_duplicate(self.state, record)

    def record_accepted(self, record: LeadRecord) -> None:
        """Count ``record`` against the window and remember it for duplicate checks."""
        self.state.record_submission(self.clock())
        self.state.remember_fingerprint(fingerprint(record))
        self.state.remember_lead(record.to_form_fields())

    def build_record(self, values: Mapping[str, str], chips: ChipSelection) -> LeadRecord:
        """Validate the cleaned fields and build a ``LeadRecord`` from them."""
        errors: Dict[str, str] = {}

        email = strip_markup(values.get("email"))
        brand = sanitize(values.get("brand"), BRAND_MAX_LENGTH)
        phone = strip_markup(values.get("phone"))
        site_url = strip_markup(values.get("siteUrl")) if self.definition.has_site_url else ""

        if not validate_email(email):
            errors["email"] = "Please enter a valid email address."
        if not brand:
            errors["brand"] = "Please enter your brand name."
        if not validate_phone(phone):
            errors["phone"] = "Please enter a valid phone number."
        if not validate_url(site_url):
            errors["siteUrl"] = "Please enter a full website address starting with http:// or https://."

        if errors:
            raise FieldValidationError(errors)

        utm = {name: sanitize(self.state.utm.get(name)) for name in UTM_FIELDS}
        selected = chips.as_dict()

        # Validators enforce the length caps, so these values go through as is.
        return LeadRecord(
            email=email,
            phone=phone,
            brand=brand,
            site_url=site_url,
            platform=selected.get("platform", ""),
            ad_spend=selected.get("adSpend", ""),
            business_type=selected.get("businessType", ""),
            submitted_at=datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat(),
            sheet_name=self.definition.sheet_name,
            **utm,
        )

    def submit(
        self,
        values: Mapping[str, str],
        chips: ChipSelection,
        token: Optional[str] = None,
    ) -> SubmitOutcome:
        form_id = self.definition.form_id
        log = logger.bind(form_id=form_id)

        # A filled honeypot gets the success path without anything being sent.
        if (values.get(self.definition.honeypot_field) or "").strip():
            log.info("lead.honeypot_tripped")
            return SubmitOutcome(status="honeypot", redirect_to=self.confirmation_url)

        try:
            record = self.build_record(values, chips)
        except FieldValidationError as e:
            log.info("lead.invalid", fields=sorted(e.errors))
            return SubmitOutcome(status="invalid", message=e.message, field_errors=e.errors)

        if not self.validate_form_token(token):
            return SubmitOutcome(status="rejected", reason="form_token", message=TOKEN_MESSAGE)

        if not self.rate_limit_allows():
            return SubmitOutcome(status="rejected", reason="rate_limited", message=RATE_LIMIT_MESSAGE)

        if self.is_duplicate(record):
            return SubmitOutcome(status="rejected", reason="duplicate", message=DUPLICATE_MESSAGE)

        # Only accepted submissions touch the window and the fingerprint.
        self.record_accepted(record)

        if self.dispatch is not None:
            self.dispatch(record)
            delay = self.redirect_delay_ms
        else:
            delay = self.redirect_delay_no_endpoint_ms

        log.info("lead.accepted", sheet_name=record.sheet_name, dispatched=self.dispatch is not None)
        return SubmitOutcome(
            status="accepted",
            record=record,
            redirect_to=self.confirmation_url,
            redirect_delay_ms=delay,
        )

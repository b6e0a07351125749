# funnel/routes/funnel.py
from __future__ import annotations

import secrets
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from funnel.core.config import settings
from funnel.core.exceptions import NotFoundError
from funnel.core.logging import get_structlog_logger
from funnel.deps import get_lead_transmitter, get_session_store
from funnel.schemas.lead import UTM_FIELDS, LeadRecord
from funnel.services.anti_abuse import AntiAbusePolicy
from funnel.services.form_controller import (
    AUDIT_FORM,
    FORMS,
    MAIN_FORM,
    ChipSelection,
    FormController,
    FormDefinition,
    SubmitOutcome,
)
from funnel.services.session_state import SessionState, SessionStore
from funnel.services.transport import LeadTransmitter
from funnel.services.validation import sanitize

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["funnel"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

_PAGES = {
    MAIN_FORM.form_id: "index.html",
    AUDIT_FORM.form_id: "audit.html",
}


def get_clock() -> Callable[[], float]:
    return time.time


def get_policy() -> AntiAbusePolicy:
    return AntiAbusePolicy(
        window_seconds=settings.rate_limit_window_seconds,
        max_submissions=settings.rate_limit_submissions,
        token_min_age_seconds=settings.form_token_min_age_seconds,
        token_max_age_seconds=settings.form_token_max_age_seconds,
    )


def _session_id(request: Request) -> Tuple[str, bool]:
    sid = request.cookies.get(settings.session_cookie_name)
    if sid:
        return sid, False
    return secrets.token_urlsafe(24), True


def _set_session_cookie(response: Response, sid: str) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        sid,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def _attribution(request: Request) -> Dict[str, str]:
    """UTM parameters from the query string plus an off-site referrer."""
    params = {name: sanitize(request.query_params.get(name), 200) for name in UTM_FIELDS if name != "referrer"}
    referrer = request.headers.get("referer", "")
    if referrer and urlparse(referrer).hostname == request.url.hostname:
        referrer = ""
    params["referrer"] = sanitize(referrer, 500)
    return params


def _controller(
    definition: FormDefinition,
    state: SessionState,
    clock: Callable[[], float],
    policy: AntiAbusePolicy,
    dispatch: Optional[Callable[[LeadRecord], None]] = None,
) -> FormController:
    return FormController(
        definition,
        state,
        policy=policy,
        clock=clock,
        dispatch=dispatch,
        confirmation_url=settings.confirmation_url,
        redirect_delay_ms=settings.redirect_delay_ms,
        redirect_delay_no_endpoint_ms=settings.redirect_delay_no_endpoint_ms,
    )


def _render_form(
    request: Request,
    controller: FormController,
    *,
    status_code: int = status.HTTP_200_OK,
    values: Optional[Dict[str, str]] = None,
    chips: Optional[ChipSelection] = None,
    outcome: Optional[SubmitOutcome] = None,
) -> Response:
    definition = controller.definition
    return templates.TemplateResponse(
        request,
        _PAGES[definition.form_id],
        {
            "form": definition,
            # A rejected post keeps its live token so the minimum wait does not restart.
            "token": controller.render_token() if outcome else controller.issue_form_token(),
            "values": values or {},
            "selected": (chips or definition.new_selection()).as_dict(),
            "errors": outcome.field_errors if outcome else {},
            "alert": outcome.message if outcome and outcome.status == "rejected" else None,
        },
        status_code=status_code,
    )


async def _landing(
    request: Request,
    definition: FormDefinition,
    store: SessionStore,
    clock: Callable[[], float],
    policy: AntiAbusePolicy,
) -> Response:
    sid, is_new = _session_id(request)
    state = await store.load(sid)

    if state.capture_utm(_attribution(request)):
        logger.info("utm.captured", source=state.utm.get("utm_source") or None)

    response = _render_form(request, _controller(definition, state, clock, policy))
    await store.save(sid, state)
    if is_new:
        _set_session_cookie(response, sid)
    return response


@router.get("/", response_class=HTMLResponse)
async def landing_page(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    clock: Callable[[], float] = Depends(get_clock),
    policy: AntiAbusePolicy = Depends(get_policy),
):
    return await _landing(request, MAIN_FORM, store, clock, policy)


@router.get("/audit", response_class=HTMLResponse)
async def audit_page(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    clock: Callable[[], float] = Depends(get_clock),
    policy: AntiAbusePolicy = Depends(get_policy),
):
    return await _landing(request, AUDIT_FORM, store, clock, policy)


@router.post("/submit/{form_id}")
async def submit_form(
    form_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    store: SessionStore = Depends(get_session_store),
    transmitter: Optional[LeadTransmitter] = Depends(get_lead_transmitter),
    clock: Callable[[], float] = Depends(get_clock),
    policy: AntiAbusePolicy = Depends(get_policy),
):
    definition = FORMS.get(form_id)
    if definition is None:
        raise NotFoundError(message="Unknown form", details={"form_id": form_id})

    sid, is_new = _session_id(request)
    state = await store.load(sid)

    form = await request.form()
    values = {k: v for k, v in form.items() if isinstance(v, str)}
    chips = definition.new_selection()
    for group in definition.chip_groups:
        for value in form.getlist(group.name):
            try:
                chips.select(group.name, value)
            except ValueError:
                logger.warning("chip.unknown_value", form_id=form_id, group=group.name)

    dispatch = None
    if transmitter is not None:
        dispatch = lambda record: background_tasks.add_task(transmitter.send, record)  # noqa: E731

    controller = _controller(definition, state, clock, policy, dispatch)
    outcome = controller.submit(values, chips, token=values.get("formToken"))

    if outcome.status == "honeypot":
        response: Response = RedirectResponse(outcome.redirect_to, status_code=status.HTTP_303_SEE_OTHER)
    elif outcome.status == "accepted":
        response = templates.TemplateResponse(
            request,
            "submitting.html",
            {
                "redirect_to": outcome.redirect_to,
                "delay_ms": outcome.redirect_delay_ms,
                "delay_seconds": max(outcome.redirect_delay_ms / 1000, 0),
            },
        )
    else:
        if outcome.status == "invalid":
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
        elif outcome.reason == "rate_limited":
            status_code = status.HTTP_429_TOO_MANY_REQUESTS
        else:
            status_code = status.HTTP_400_BAD_REQUEST
        response = _render_form(
            request,
            controller,
            status_code=status_code,
            values=values,
            chips=chips,
            outcome=outcome,
        )

    await store.save(sid, state)
    if is_new:
        _set_session_cookie(response, sid)
    return response


@router.get("/thank-you", response_class=HTMLResponse)
async def thank_you(
    request: Request,
    store: SessionStore = Depends(get_session_store),
):
    sid, _ = _session_id(request)
    state = await store.load(sid)
    return templates.TemplateResponse(request, "thank_you.html", {"lead": state.last_lead or {}})


@router.post("/exit-intent")
async def exit_intent(
    request: Request,
    store: SessionStore = Depends(get_session_store),
):
    sid, is_new = _session_id(request)
    state = await store.load(sid)
    show = state.mark_exit_intent_shown()
    await store.save(sid, state)

    response = JSONResponse({"show": show})
    if is_new:
        _set_session_cookie(response, sid)
    return response

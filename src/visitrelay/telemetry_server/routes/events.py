"""Event routes - page views, page leaves and custom events."""

from fastapi import APIRouter, Request, Response

from visitrelay.telemetry.compose import compose_event, resolve_client_ip
from visitrelay.telemetry.identity import classify_session, resolve_identity
from visitrelay.telemetry.schema import EventFields
from visitrelay.telemetry.visit import extract_visit_context
from visitrelay.telemetry_server.cookies import apply_cookies
from visitrelay.telemetry_server.models import EventRequest, PageLeaveRequest, PageRequest
from visitrelay.telemetry_server.sink import Sink, dispatch

router = APIRouter(tags=["events"])


def _client_ip(request: Request) -> str | None:
    remote_addr = request.client.host if request.client else None
    return resolve_client_ip(request.headers.get("x-forwarded-for"), remote_addr)


@router.post("/event")
async def track_event(
    data: EventRequest,
    request: Request,
    response: Response,
    sink: Sink,
) -> dict:
    """Track a custom event."""
    identity = resolve_identity(request.cookies)
    state = classify_session(request.cookies)
    context = extract_visit_context(data.ga.to_visit(data.page_referrer), state)

    composed = compose_event(
        "custom_event",
        identity,
        state,
        EventFields(
            event_name=data.action,
            current_url=data.current_url,
            pathname=data.page_location,
            title=data.page_title,
            properties={"category": data.category, "label": data.label, "value": data.value},
            ip=_client_ip(request),
        ),
        context,
    )
    dispatch(sink, composed.event)
    apply_cookies(response, composed.cookies)
    return {"status": "ok"}


@router.post("/page")
async def track_page(
    data: PageRequest,
    request: Request,
    response: Response,
    sink: Sink,
) -> dict:
    """Track a page view, capturing entry attribution when a session starts."""
    identity = resolve_identity(request.cookies)
    state = classify_session(request.cookies)
    context = extract_visit_context(data.ga.to_visit(data.referrer), state)

    composed = compose_event(
        "pageview",
        identity,
        state,
        EventFields(
            current_url=data.current_url,
            pathname=data.route,
            ip=_client_ip(request),
            request_host=request.headers.get("host"),
        ),
        context,
    )
    dispatch(sink, composed.event)
    apply_cookies(response, composed.cookies)
    return {"status": "ok", "session_state": state}


@router.post("/pageleave")
async def track_pageleave(
    data: PageLeaveRequest,
    request: Request,
    response: Response,
    sink: Sink,
) -> dict:
    """Track a page leave."""
    identity = resolve_identity(request.cookies)
    state = classify_session(request.cookies)

    composed = compose_event(
        "pageleave",
        identity,
        state,
        EventFields(
            current_url=data.current_url,
            pathname=data.route,
            ip=_client_ip(request),
        ),
    )
    dispatch(sink, composed.event)
    apply_cookies(response, composed.cookies)
    return {"status": "ok"}

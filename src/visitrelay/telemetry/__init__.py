"""
visitrelay Telemetry - cookie-based identity and visit enrichment.

Turns raw page views and events into enriched analytics events. The
browser's cookies are the only state: identity, session boundary and
entry attribution are re-derived on every request.

Example:
    >>> from visitrelay.telemetry import (
    ...     EventFields, VisitInput, classify_session, compose_event,
    ...     extract_visit_context, resolve_identity,
    ... )
    >>> identity = resolve_identity(request_cookies)
    >>> state = classify_session(request_cookies)
    >>> context = extract_visit_context(VisitInput(user_agent=ua, search=qs), state)
    >>> composed = compose_event(
    ...     "pageview", identity, state,
    ...     EventFields(current_url="https://example.com/pricing", pathname="/pricing"),
    ...     context,
    ... )
"""

from visitrelay.telemetry.client import Client, Sink
from visitrelay.telemetry.compose import (
    build_groups,
    compose_event,
    identify_groups,
    reset_cookies,
    reset_group_cookies,
    resolve_client_ip,
)
from visitrelay.telemetry.errors import MalformedInputError
from visitrelay.telemetry.identity import classify_session, resolve_identity
from visitrelay.telemetry.schema import (
    ComposedEvent,
    CookieDirective,
    EventFields,
    EventKind,
    IdentitySet,
    OutboundEvent,
    SessionState,
    VisitContext,
    VisitInput,
)
from visitrelay.telemetry.visit import extract_visit_context

__all__ = [
    # Client
    "Client",
    "Sink",
    # Core
    "resolve_identity",
    "classify_session",
    "extract_visit_context",
    "compose_event",
    "build_groups",
    "identify_groups",
    "reset_cookies",
    "reset_group_cookies",
    "resolve_client_ip",
    # Errors
    "MalformedInputError",
    # Type aliases
    "EventKind",
    "SessionState",
    # Models
    "IdentitySet",
    "VisitInput",
    "VisitContext",
    "EventFields",
    "OutboundEvent",
    "CookieDirective",
    "ComposedEvent",
]

__version__ = "0.1.0"

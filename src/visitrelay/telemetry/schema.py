"""
visitrelay Telemetry Schema

This module defines the data types that flow through the relay core.
Every request is resolved from scratch: the browser's cookie set is the
only state carried between requests, so these models describe per-request
snapshots rather than stored records.

The schema covers:
- Identity resolved from cookies (person, anonymous visitor, session, groups)
- Session boundary classification
- Visit context derived from user agent, referrer and campaign parameters
- Outbound analytics events and the cookie directives sent back to the browser
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

# =============================================================================
# TYPE DEFINITIONS
# =============================================================================

SessionState = Literal["new_visitor", "new_session", "active_session"]
"""
Session boundary derived from raw cookie presence.

- new_visitor: no session, anonymous or user cookie; first ever visit
- new_session: no session cookie, but the browser has been seen before
- active_session: a session cookie is present
"""

EventKind = Literal["identify", "custom_event", "pageview", "pageleave"]
"""
Kinds of composition the relay performs.

- identify: a user logged in; person and group identity is confirmed
- custom_event: an application-defined action
- pageview: a page was loaded; may carry entry attribution
- pageleave: a page was left; carries exit properties
"""

DeviceType = Literal["Mobile", "Tablet", "Desktop"]

SameSite = Literal["lax", "strict", "none"]


# =============================================================================
# CONSTANTS
# =============================================================================

ORGANIZATION_COOKIE = "organizationId"
PROJECT_COOKIE = "projectId"
USER_COOKIE = "userId"
ANONYMOUS_COOKIE = "anonymousId"
SESSION_COOKIE = "sessionId"

IDENTITY_COOKIES = (
    USER_COOKIE,
    ORGANIZATION_COOKIE,
    PROJECT_COOKIE,
    ANONYMOUS_COOKIE,
    SESSION_COOKIE,
)

SESSION_TTL = 30 * 60  # seconds; inactivity window of one session
LONG_TTL = 365 * 24 * 60 * 60  # seconds; person identity

ORGANIC = "organic"


# =============================================================================
# CORE MODELS
# =============================================================================

class IdentitySet(BaseModel):
    """
    Identity resolved from a request's cookies.

    Attributes:
        organization_id: Organization the user acts for, if known.
        project_id: Project within the organization, if known.
        user_id: Identified user, set after login.
        anonymous_id: Per-browser visitor id; generated on first visit.
        session_id: Current session id; regenerated once the session
            cookie expires.
    """

    organization_id: str | None = None
    project_id: str | None = None
    user_id: str | None = None
    anonymous_id: str
    session_id: str

    @property
    def distinct_id(self) -> str:
        """The id events are attributed to: the user if known, else the visitor."""
        return self.user_id or self.anonymous_id


class VisitInput(BaseModel):
    """Raw browser-side attributes of a visit."""

    user_agent: str = ""
    search: str = ""
    referrer: str | None = None
    language: str | None = None
    screen_resolution: str | None = None


class VisitContext(BaseModel):
    """
    Attributes derived from a visit.

    ``properties`` holds the current-visit attributes keyed by their
    analytics property names (``$browser``, ``utm_source``...). ``entry``
    holds the entry attribution captured at the start of a session and is
    empty for requests within an active session. Neither mapping ever
    contains a None value.

    Example:
        >>> ctx = VisitContext(
        ...     properties={"$browser": "Chrome", "$device_type": "Desktop"},
        ...     entry={"$entry_utm_source": "organic"},
        ... )
    """

    properties: dict[str, Any] = Field(default_factory=dict)
    entry: dict[str, Any] = Field(default_factory=dict)


class EventFields(BaseModel):
    """
    Kind-specific raw fields supplied by the caller.

    Attributes:
        event_name: Event name for custom events.
        current_url: Absolute URL of the current page.
        pathname: Application route or path of the page.
        title: Page title.
        properties: Caller-supplied custom properties.
        ip: Client IP as resolved from the request.
        request_host: Host header of the request; used by the local
            development privacy guard on page views.
    """

    event_name: str | None = None
    current_url: str | None = None
    pathname: str | None = None
    title: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    ip: str | None = None
    request_host: str | None = None


class OutboundEvent(BaseModel):
    """Event handed to the analytics sink."""

    distinct_id: str
    event_name: str
    properties: dict[str, Any] = Field(default_factory=dict)
    groups: dict[str, str] | None = None


class CookieDirective(BaseModel):
    """
    A cookie the caller must set on the response.

    A directive with an empty value and ``max_age == 0`` clears the cookie.
    """

    name: str
    value: str
    http_only: bool = True
    same_site: SameSite = "lax"
    max_age: int


class ComposedEvent(BaseModel):
    """Result of composition: the outbound event and the cookies to set."""

    event: OutboundEvent
    cookies: list[CookieDirective] = Field(default_factory=list)

"""Event composition and cookie directive policy.

Session identity rotates quickly while person identity persists: on event
requests the session cookie and the echoed user/group cookies get the
short TTL, the anonymous visitor cookie the long one. Identify requests
confirm person and group identity and set long-lived cookies.
"""

import ipaddress
from typing import Any

from visitrelay.telemetry._transforms import parse_hostname, strip_none
from visitrelay.telemetry.schema import (
    ANONYMOUS_COOKIE,
    IDENTITY_COOKIES,
    LONG_TTL,
    ORGANIZATION_COOKIE,
    PROJECT_COOKIE,
    SESSION_COOKIE,
    SESSION_TTL,
    USER_COOKIE,
    ComposedEvent,
    CookieDirective,
    EventFields,
    EventKind,
    IdentitySet,
    OutboundEvent,
    SessionState,
    VisitContext,
)

_LOCAL_HOSTNAMES = {"localhost"}


def build_groups(identity: IdentitySet) -> dict[str, str] | None:
    """Groups an event is attributed to.

    A project is only attached when the organization is known as well.
    """
    if not identity.organization_id:
        return None
    groups = {"organization": identity.organization_id}
    if identity.project_id:
        groups["project"] = identity.project_id
    return groups


def resolve_client_ip(forwarded_for: str | None, remote_addr: str | None) -> str | None:
    """Client IP: the first X-Forwarded-For hop, else the transport address."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return remote_addr


def is_loopback_host(host: str | None) -> bool:
    """Whether a Host header points at the local machine."""
    if not host:
        return False
    hostname = host.strip().lower()
    if hostname.startswith("["):
        hostname = hostname[1:].split("]", 1)[0]
    elif hostname.count(":") == 1:
        hostname = hostname.split(":", 1)[0]
    if hostname in _LOCAL_HOSTNAMES:
        return True
    try:
        return ipaddress.ip_address(hostname).is_loopback
    except ValueError:
        return False


def _cookie(name: str, value: str, max_age: int) -> CookieDirective:
    return CookieDirective(name=name, value=value, max_age=max_age)


def event_cookies(identity: IdentitySet) -> list[CookieDirective]:
    """Cookies refreshed on every tracked event."""
    cookies = [
        _cookie(SESSION_COOKIE, identity.session_id, SESSION_TTL),
        _cookie(ANONYMOUS_COOKIE, identity.anonymous_id, LONG_TTL),
    ]
    if identity.user_id:
        cookies.append(_cookie(USER_COOKIE, identity.user_id, SESSION_TTL))
    if identity.organization_id:
        cookies.append(_cookie(ORGANIZATION_COOKIE, identity.organization_id, SESSION_TTL))
    if identity.project_id:
        cookies.append(_cookie(PROJECT_COOKIE, identity.project_id, SESSION_TTL))
    return cookies


def identify_cookies(identity: IdentitySet) -> list[CookieDirective]:
    """Long-lived cookies for each identity field confirmed by an identify call."""
    confirmed = [
        (USER_COOKIE, identity.user_id),
        (ORGANIZATION_COOKIE, identity.organization_id),
        (PROJECT_COOKIE, identity.project_id),
    ]
    return [_cookie(name, value, LONG_TTL) for name, value in confirmed if value]


def identify_groups(
    organization_id: str | None,
    project_id: str | None,
) -> tuple[list[tuple[str, str]], list[CookieDirective]]:
    """Groups to register for an identified user and the cookies persisting them.

    Returns:
        ``([(group_type, group_key), ...], cookies)``. Organization and
        project are handled independently here, as the caller names them
        explicitly.
    """
    groups: list[tuple[str, str]] = []
    cookies: list[CookieDirective] = []
    if organization_id:
        groups.append(("organization", organization_id))
        cookies.append(_cookie(ORGANIZATION_COOKIE, organization_id, LONG_TTL))
    if project_id:
        groups.append(("project", project_id))
        cookies.append(_cookie(PROJECT_COOKIE, project_id, LONG_TTL))
    return groups, cookies


def _clear(name: str) -> CookieDirective:
    return _cookie(name, "", 0)


def reset_cookies() -> list[CookieDirective]:
    """Clear every identity cookie; no event is emitted."""
    return [_clear(name) for name in IDENTITY_COOKIES]


def reset_group_cookies(reset_organization: bool, reset_project: bool) -> list[CookieDirective]:
    """Clear the organization and/or project cookies; no event is emitted."""
    cookies = []
    if reset_organization:
        cookies.append(_clear(ORGANIZATION_COOKIE))
    if reset_project:
        cookies.append(_clear(PROJECT_COOKIE))
    return cookies


def _page_properties(identity: IdentitySet, fields: EventFields) -> dict[str, Any]:
    return {
        "$current_url": fields.current_url,
        "$host": parse_hostname(fields.current_url or "", field="current_url"),
        "$pathname": fields.pathname,
        "$process_person_profile": bool(identity.user_id),
        "$session_id": identity.session_id,
        "$ip": fields.ip,
    }


def compose_event(
    kind: EventKind,
    identity: IdentitySet,
    state: SessionState,
    fields: EventFields,
    context: VisitContext | None = None,
) -> ComposedEvent:
    """Compose the outbound event and cookie directives for a request.

    Args:
        kind: What is being composed.
        identity: Identity resolved from the request cookies (for identify,
            with the newly confirmed user and group ids filled in).
        state: Session boundary of the request.
        fields: Kind-specific raw fields.
        context: Visit context; pageleave and identify compose without one.
            A pageview starting a session without a context carries only
            ``$entry_current_url`` and ``$entry_pathname``, since the entry
            referrer and UTM block comes from the context.

    Returns:
        The event for the analytics sink plus the cookies to set.

    Raises:
        MalformedInputError: If the current URL is missing or cannot be parsed.
        ValueError: If a field required by ``kind`` is missing.
    """
    visit: dict[str, Any] = {}
    if context is not None:
        # Person-level first-touch properties only ride along with page views.
        visit = {
            key: value
            for key, value in context.properties.items()
            if kind == "pageview" or not key.startswith("$initial_")
        }

    if kind == "identify":
        if not identity.user_id:
            raise ValueError("identify requires a user_id")
        event_name = "$identify"
        properties: dict[str, Any] = dict(fields.properties)
        cookies = identify_cookies(identity)

    elif kind == "custom_event":
        if not fields.event_name:
            raise ValueError("custom_event requires an event_name")
        event_name = fields.event_name
        properties = {
            **fields.properties,
            **_page_properties(identity, fields),
            "page_title": fields.title,
            **visit,
        }
        cookies = event_cookies(identity)

    elif kind == "pageview":
        event_name = "$pageview"
        properties = {**visit, **_page_properties(identity, fields)}
        if is_loopback_host(fields.request_host):
            properties["$ip"] = None
        if state != "active_session":
            properties["$entry_current_url"] = fields.current_url
            properties["$entry_pathname"] = fields.pathname
            if context is not None:
                properties.update(context.entry)
        cookies = event_cookies(identity)

    elif kind == "pageleave":
        event_name = "$pageleave"
        properties = {
            **_page_properties(identity, fields),
            "$exit_current_url": fields.current_url,
            "$exit_pathname": fields.pathname,
        }
        cookies = event_cookies(identity)

    else:
        raise ValueError(f"Unknown event kind: {kind}")

    event = OutboundEvent(
        distinct_id=identity.distinct_id,
        event_name=event_name,
        properties=strip_none(properties),
        groups=build_groups(identity),
    )
    return ComposedEvent(event=event, cookies=cookies)

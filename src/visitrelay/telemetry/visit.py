"""Visit context extraction: user agent, referrer and campaign attribution.

Browser and OS detection are ordered decision tables: each row is a
predicate on the raw user agent and the pattern extracting the version.
Rows are tried top to bottom and the first matching predicate wins, even
when its version pattern finds nothing.
"""

import re
from collections.abc import Callable
from urllib.parse import parse_qsl

from visitrelay.telemetry._transforms import parse_hostname, strip_none
from visitrelay.telemetry.schema import (
    ORGANIC,
    DeviceType,
    SessionState,
    VisitContext,
    VisitInput,
)

UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

# Only these entry fields fall back to "organic"; term and content stay unset.
_ENTRY_DEFAULTED_FIELDS = ("utm_source", "utm_medium", "utm_campaign")

Predicate = Callable[[str], bool]


def _contains(*markers: str) -> Predicate:
    return lambda ua: any(marker in ua for marker in markers)


_BROWSERS: list[tuple[Predicate, str, re.Pattern[str] | None]] = [
    (_contains("Chrome"), "Chrome", re.compile(r"Chrome/(\d+)")),
    (_contains("Firefox"), "Firefox", re.compile(r"Firefox/(\d+)")),
    (
        lambda ua: "Safari" in ua and "Chrome" not in ua,
        "Safari",
        re.compile(r"Version/(\d+)"),
    ),
    (_contains("Edge"), "Edge", re.compile(r"Edge/(\d+)")),
    (_contains("MSIE", "Trident"), "Internet Explorer", re.compile(r"(?:MSIE |rv:)(\d+)")),
]

_OPERATING_SYSTEMS: list[tuple[Predicate, str, re.Pattern[str] | None]] = [
    (_contains("Windows"), "Windows", re.compile(r"Windows NT (\d+\.\d+)")),
    (_contains("Mac"), "MacOS", re.compile(r"Mac OS X (\d+_\d+)")),
    (_contains("Linux"), "Linux", None),
    (_contains("Android"), "Android", re.compile(r"Android (\d+\.\d+)")),
    (_contains("iOS", "iPhone", "iPad"), "iOS", re.compile(r"OS (\d+_\d+)")),
]


def _match_table(
    user_agent: str,
    table: list[tuple[Predicate, str, re.Pattern[str] | None]],
) -> tuple[str | None, str | None]:
    for predicate, name, pattern in table:
        if not predicate(user_agent):
            continue
        match = pattern.search(user_agent) if pattern is not None else None
        return name, match.group(1) if match else None
    return None, None


def parse_browser(user_agent: str) -> tuple[str | None, str | None]:
    """Return ``(browser, major_version)``; both None when nothing matches."""
    return _match_table(user_agent, _BROWSERS)


def parse_os(user_agent: str) -> tuple[str | None, str | None]:
    """Return ``(os, os_version)``; both None when nothing matches."""
    return _match_table(user_agent, _OPERATING_SYSTEMS)


def parse_device_type(user_agent: str) -> DeviceType:
    """Classify the device; anything not mobile or tablet is a desktop."""
    lowered = user_agent.lower()
    if "mobile" in lowered:
        return "Mobile"
    if "tablet" in lowered:
        return "Tablet"
    return "Desktop"


def parse_referrer(referrer: str | None) -> tuple[str | None, str | None]:
    """Return ``(referrer, referring_domain)`` for a non-empty referrer.

    Raises:
        MalformedInputError: If the referrer is not an absolute URL.
    """
    if not referrer:
        return None, None
    return referrer, parse_hostname(referrer, field="referrer")


def parse_utm(search: str) -> dict[str, str | None]:
    """Read the UTM parameters from a query string.

    The first occurrence of each parameter wins and blank values are kept
    as given. Absent parameters map to None.
    """
    params: dict[str, str] = {}
    for key, value in parse_qsl(search.lstrip("?"), keep_blank_values=True):
        params.setdefault(key, value)
    return {field: params.get(field) for field in UTM_FIELDS}


def _entry_block(
    utm: dict[str, str | None],
    referrer: str | None,
    referring_domain: str | None,
) -> dict[str, str | None]:
    entry: dict[str, str | None] = {}
    for field in UTM_FIELDS:
        value = utm[field]
        if value is None and field in _ENTRY_DEFAULTED_FIELDS:
            value = ORGANIC
        entry[f"$entry_{field}"] = value
    entry["$entry_referrer"] = referrer
    entry["$entry_referring_domain"] = referring_domain
    return entry


def extract_visit_context(visit: VisitInput, state: SessionState) -> VisitContext:
    """Derive the visit context of a request.

    Args:
        visit: Raw user agent, query string, referrer and locale data.
        state: Session boundary of the request. Entry attribution is only
            captured when a session starts; a brand-new visitor also gets
            the person-level ``$initial_utm_*`` block.

    Returns:
        The visit context with every unresolved attribute omitted.

    Raises:
        MalformedInputError: If the referrer is not an absolute URL.
    """
    browser, browser_version = parse_browser(visit.user_agent)
    os_name, os_version = parse_os(visit.user_agent)
    referrer, referring_domain = parse_referrer(visit.referrer)
    utm = parse_utm(visit.search)

    properties: dict = {
        "$raw_user_agent": visit.user_agent or None,
        "$browser": browser,
        "$browser_version": browser_version,
        "$device_type": parse_device_type(visit.user_agent),
        "$os": os_name,
        "$os_version": os_version,
        "$referrer": referrer,
        "$referring_domain": referring_domain,
        "$locale": visit.language,
        "screen_resolution": visit.screen_resolution,
        **utm,
    }
    if state == "new_visitor":
        for field in UTM_FIELDS:
            properties[f"$initial_{field}"] = utm[field] if utm[field] is not None else ORGANIC

    entry = {}
    if state != "active_session":
        entry = _entry_block(utm, referrer, referring_domain)

    return VisitContext(properties=strip_none(properties), entry=strip_none(entry))

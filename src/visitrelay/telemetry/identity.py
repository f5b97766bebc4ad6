"""Identity resolution and session boundary classification from cookies."""

from collections.abc import Mapping

from uuid6 import uuid7

from visitrelay.telemetry.schema import (
    ANONYMOUS_COOKIE,
    ORGANIZATION_COOKIE,
    PROJECT_COOKIE,
    SESSION_COOKIE,
    USER_COOKIE,
    IdentitySet,
    SessionState,
)


def resolve_identity(cookies: Mapping[str, str]) -> IdentitySet:
    """Project a cookie mapping onto an IdentitySet.

    Organization, project and user ids pass through unchanged. The
    anonymous and session ids are taken from their cookies when present
    and non-empty, otherwise each gets a freshly generated id.
    """
    return IdentitySet(
        organization_id=cookies.get(ORGANIZATION_COOKIE),
        project_id=cookies.get(PROJECT_COOKIE),
        user_id=cookies.get(USER_COOKIE),
        anonymous_id=cookies.get(ANONYMOUS_COOKIE) or str(uuid7()),
        session_id=cookies.get(SESSION_COOKIE) or str(uuid7()),
    )


def classify_session(cookies: Mapping[str, str]) -> SessionState:
    """Classify the session boundary from raw cookie presence.

    Works on the cookies rather than on a resolved IdentitySet, since
    resolution always synthesizes the anonymous and session ids.
    """
    if cookies.get(SESSION_COOKIE):
        return "active_session"
    if cookies.get(ANONYMOUS_COOKIE) or cookies.get(USER_COOKIE):
        return "new_session"
    return "new_visitor"

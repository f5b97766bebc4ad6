"""Identity routes - login, logout and group membership."""

import logging

from fastapi import APIRouter, HTTPException, Request, Response

from visitrelay.telemetry.compose import (
    compose_event,
    identify_groups,
    reset_cookies,
    reset_group_cookies,
)
from visitrelay.telemetry.identity import classify_session, resolve_identity
from visitrelay.telemetry.schema import ANONYMOUS_COOKIE, USER_COOKIE, EventFields, IdentitySet
from visitrelay.telemetry_server.cookies import apply_cookies
from visitrelay.telemetry_server.models import (
    GroupsIdentifyRequest,
    GroupsResetRequest,
    IdentifyRequest,
)
from visitrelay.telemetry_server.sink import Sink, alias, dispatch, group_identify

logger = logging.getLogger(__name__)

router = APIRouter(tags=["identity"])


@router.post("/identify")
async def identify(
    data: IdentifyRequest,
    request: Request,
    response: Response,
    sink: Sink,
) -> dict:
    """Identify the logged-in user and their first organization and project.

    The anonymous visitor id, when the browser has one, is aliased to the
    user so that pre-login activity joins the person.
    """
    user = data.user
    organization = user.organizations[0] if user.organizations else None
    project = organization.projects[0] if organization and organization.projects else None

    resolved = resolve_identity(request.cookies)
    identity = IdentitySet(
        user_id=user.id,
        organization_id=organization.id if organization else None,
        project_id=project.id if project else None,
        anonymous_id=resolved.anonymous_id,
        session_id=resolved.session_id,
    )
    composed = compose_event(
        "identify",
        identity,
        classify_session(request.cookies),
        EventFields(properties=user.properties),
    )
    dispatch(sink, composed.event)

    anonymous_id = request.cookies.get(ANONYMOUS_COOKIE)
    if anonymous_id and anonymous_id != user.id:
        alias(sink, user.id, anonymous_id)

    groups, _ = identify_groups(identity.organization_id, identity.project_id)
    group_identify(sink, user.id, groups)

    apply_cookies(response, composed.cookies)
    logger.debug("Identified %s with %d group(s)", user.id, len(groups))
    return {"status": "ok"}


@router.post("/reset")
async def reset(response: Response) -> dict:
    """Forget the browser's identity (logout)."""
    apply_cookies(response, reset_cookies())
    return {"status": "ok"}


@router.post("/groups/identify")
async def groups_identify(
    data: GroupsIdentifyRequest,
    request: Request,
    response: Response,
    sink: Sink,
) -> dict:
    """Attach the identified user to an organization and/or project."""
    user_id = request.cookies.get(USER_COOKIE)
    if not user_id:
        raise HTTPException(400, "No identified user")

    groups, cookies = identify_groups(data.organization_id, data.project_id)
    group_identify(sink, user_id, groups)

    apply_cookies(response, cookies)
    return {"status": "ok", "groups_identified": len(groups)}


@router.post("/groups/reset")
async def reset_groups(data: GroupsResetRequest, response: Response) -> dict:
    """Clear the organization and/or project cookies."""
    apply_cookies(response, reset_group_cookies(data.reset_organization, data.reset_project))
    return {"status": "ok"}

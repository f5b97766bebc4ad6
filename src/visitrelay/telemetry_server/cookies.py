"""Applying cookie directives to responses."""

from fastapi import Response

from visitrelay.telemetry.schema import CookieDirective


def apply_cookies(response: Response, directives: list[CookieDirective]) -> None:
    """Set (or clear, for ``max_age == 0``) each directed cookie."""
    for directive in directives:
        response.set_cookie(
            key=directive.name,
            value=directive.value,
            max_age=directive.max_age,
            httponly=directive.http_only,
            samesite=directive.same_site,
        )

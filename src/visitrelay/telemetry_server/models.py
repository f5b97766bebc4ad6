"""Request bodies accepted by the relay routes.

Field names follow what the browser tracker sends, so a few of them are
camelCase on the wire.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from visitrelay.telemetry.schema import CookieDirective, VisitInput

__all__ = [
    "CookieDirective",
    "Project",
    "Organization",
    "User",
    "IdentifyRequest",
    "GroupsIdentifyRequest",
    "GroupsResetRequest",
    "BrowserInfo",
    "EventRequest",
    "PageRequest",
    "PageLeaveRequest",
]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Identity
# =============================================================================


class Project(_WireModel):
    id: str


class Organization(_WireModel):
    id: str
    projects: list[Project] = Field(default_factory=list)


class User(_WireModel):
    id: str
    organizations: list[Organization] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)


class IdentifyRequest(_WireModel):
    """Input for POST /telemetry/identify."""

    user: User


class GroupsIdentifyRequest(_WireModel):
    """Input for POST /telemetry/groups/identify."""

    organization_id: str | None = Field(default=None, alias="organizationId")
    project_id: str | None = Field(default=None, alias="projectId")


class GroupsResetRequest(_WireModel):
    """Input for POST /telemetry/groups/reset."""

    reset_organization: bool = Field(default=False, alias="resetOrganization")
    reset_project: bool = Field(default=False, alias="resetProject")


# =============================================================================
# Events
# =============================================================================


class BrowserInfo(_WireModel):
    """Browser-side attributes collected by the tracker (``ga`` on the wire)."""

    user_agent: str = Field(default="", alias="userAgent")
    search: str = ""
    language: str | None = None
    screen_resolution: str | None = None

    def to_visit(self, referrer: str | None) -> VisitInput:
        return VisitInput(
            user_agent=self.user_agent,
            search=self.search,
            referrer=referrer,
            language=self.language,
            screen_resolution=self.screen_resolution,
        )


class EventRequest(_WireModel):
    """Input for POST /telemetry/event."""

    action: str
    category: str | None = None
    label: str | None = None
    value: Any = None
    ga: BrowserInfo = Field(default_factory=BrowserInfo)
    current_url: str
    page_location: str | None = None
    page_title: str | None = None
    page_referrer: str | None = None


class PageRequest(_WireModel):
    """Input for POST /telemetry/page."""

    ga: BrowserInfo = Field(default_factory=BrowserInfo)
    referrer: str | None = None
    current_url: str
    route: str | None = None


class PageLeaveRequest(_WireModel):
    """Input for POST /telemetry/pageleave."""

    current_url: str
    route: str | None = None

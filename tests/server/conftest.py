"""Pytest fixtures for visitrelay Telemetry Server tests."""

from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient, Response

from visitrelay.telemetry_server.main import app

CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class FakeSink:
    """Records every call the relay makes to the analytics sink."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.shut_down = False

    def capture(self, distinct_id, event_name, properties=None, groups=None) -> None:
        self.calls.append(("capture", (distinct_id, event_name, properties, groups)))

    def identify(self, distinct_id, properties=None) -> None:
        self.calls.append(("identify", (distinct_id, properties)))

    def alias(self, distinct_id, alias) -> None:
        self.calls.append(("alias", (distinct_id, alias)))

    def group_identify(self, distinct_id, group_type, group_key, properties=None) -> None:
        self.calls.append(("group_identify", (distinct_id, group_type, group_key)))

    async def shutdown(self, timeout=None) -> None:
        self.shut_down = True

    def of(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]


def cookie_header(cookies: dict[str, str]) -> dict[str, str]:
    """Request headers carrying ``cookies``."""
    return {"cookie": "; ".join(f"{name}={value}" for name, value in cookies.items())}


def set_cookies(response: Response) -> dict[str, dict[str, str]]:
    """Parse Set-Cookie headers into ``{name: {"value": ..., "max-age": ..., ...}}``."""
    parsed = {}
    for header in response.headers.get_list("set-cookie"):
        first, *attributes = [part.strip() for part in header.split(";")]
        name, _, value = first.partition("=")
        entry = {"value": value.strip('"')}
        for attribute in attributes:
            key, _, attr_value = attribute.partition("=")
            entry[key.lower()] = attr_value or "true"
        parsed[name] = entry
    return parsed


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio backend for anyio."""
    return "asyncio"


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest_asyncio.fixture
async def client(sink: FakeSink) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for testing."""
    app.state.sink = sink

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://relay.test",
    ) as client:
        yield client


@pytest.fixture
def sample_page_data() -> dict:
    """Sample page view body as sent by the browser tracker."""
    return {
        "ga": {
            "userAgent": CHROME,
            "search": "?utm_source=google&utm_medium=cpc",
            "language": "en-US",
            "screen_resolution": "1920x1080",
        },
        "referrer": "https://google.com/search",
        "current_url": "https://app.example.com/pricing?utm_source=google",
        "route": "/pricing",
    }


@pytest.fixture
def sample_event_data() -> dict:
    """Sample custom event body."""
    return {
        "action": "signup_clicked",
        "category": "cta",
        "label": "hero",
        "value": 1,
        "ga": {"userAgent": CHROME, "search": ""},
        "current_url": "https://app.example.com/pricing",
        "page_location": "/pricing",
        "page_title": "Pricing",
        "page_referrer": "",
    }

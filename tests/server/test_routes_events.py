"""Tests for page view, page leave and custom event routes."""

import pytest
from httpx import AsyncClient

from conftest import FakeSink, cookie_header, set_cookies
from visitrelay.telemetry.schema import LONG_TTL, SESSION_TTL

RETURNING = {"anonymousId": "anon_1"}
MID_SESSION = {
    "anonymousId": "anon_1",
    "sessionId": "sess_1",
    "userId": "user_1",
    "organizationId": "org_1",
}


class TestPageRoute:
    """Tests for POST /telemetry/page."""

    async def test_first_visit(self, client: AsyncClient, sink: FakeSink, sample_page_data: dict):
        """GIVEN a first-ever visit WHEN tracking a page view
        SHOULD capture entry attribution and issue visitor and session cookies."""
        response = await client.post("/telemetry/page", json=sample_page_data)

        assert response.status_code == 200
        assert response.json()["session_state"] == "new_visitor"

        [(distinct_id, event_name, props, groups)] = sink.of("capture")
        cookies = set_cookies(response)
        assert event_name == "$pageview"
        assert distinct_id == cookies["anonymousId"]["value"]
        assert props["$session_id"] == cookies["sessionId"]["value"]
        assert props["$browser"] == "Chrome"
        assert props["$browser_version"] == "120"
        assert props["$referring_domain"] == "google.com"
        assert props["$host"] == "app.example.com"
        assert props["$pathname"] == "/pricing"
        assert props["$locale"] == "en-US"
        assert props["$entry_pathname"] == "/pricing"
        assert props["$entry_utm_source"] == "google"
        assert props["$entry_utm_campaign"] == "organic"
        assert "$entry_utm_term" not in props
        assert props["$initial_utm_medium"] == "cpc"
        assert props["$process_person_profile"] is False
        assert groups is None

        assert int(cookies["sessionId"]["max-age"]) == SESSION_TTL
        assert int(cookies["anonymousId"]["max-age"]) == LONG_TTL
        assert cookies["anonymousId"]["httponly"] == "true"
        assert cookies["anonymousId"]["samesite"].lower() == "lax"

    async def test_returning_visitor_new_session(
        self, client: AsyncClient, sink: FakeSink, sample_page_data: dict
    ):
        response = await client.post(
            "/telemetry/page", json=sample_page_data, headers=cookie_header(RETURNING)
        )

        assert response.json()["session_state"] == "new_session"
        [(distinct_id, _, props, _)] = sink.of("capture")
        assert distinct_id == "anon_1"
        assert "$entry_current_url" in props
        assert not any(key.startswith("$initial_") for key in props)

    async def test_active_session(self, client: AsyncClient, sink: FakeSink, sample_page_data: dict):
        """GIVEN an active session SHOULD skip entry attribution and echo identity cookies."""
        response = await client.post(
            "/telemetry/page", json=sample_page_data, headers=cookie_header(MID_SESSION)
        )

        assert response.json()["session_state"] == "active_session"
        [(distinct_id, _, props, groups)] = sink.of("capture")
        assert distinct_id == "user_1"
        assert props["$session_id"] == "sess_1"
        assert props["$process_person_profile"] is True
        assert not any(key.startswith("$entry_") for key in props)
        assert groups == {"organization": "org_1"}

        cookies = set_cookies(response)
        assert int(cookies["userId"]["max-age"]) == SESSION_TTL
        assert int(cookies["organizationId"]["max-age"]) == SESSION_TTL
        assert "projectId" not in cookies

    async def test_ip_from_forwarded_for(
        self, client: AsyncClient, sink: FakeSink, sample_page_data: dict
    ):
        await client.post(
            "/telemetry/page",
            json=sample_page_data,
            headers={"x-forwarded-for": "198.51.100.4, 10.0.0.1"},
        )

        [(_, _, props, _)] = sink.of("capture")
        assert props["$ip"] == "198.51.100.4"

    async def test_localhost_omits_ip(
        self, client: AsyncClient, sink: FakeSink, sample_page_data: dict
    ):
        await client.post(
            "/telemetry/page",
            json=sample_page_data,
            headers={"host": "localhost:3231", "x-forwarded-for": "198.51.100.4"},
        )

        [(_, _, props, _)] = sink.of("capture")
        assert "$ip" not in props

    async def test_malformed_referrer_is_client_error(
        self, client: AsyncClient, sink: FakeSink, sample_page_data: dict
    ):
        sample_page_data["referrer"] = "not a url"

        response = await client.post("/telemetry/page", json=sample_page_data)

        assert response.status_code == 400
        assert "referrer" in response.json()["detail"]
        assert sink.calls == []

    async def test_malformed_current_url_is_client_error(
        self, client: AsyncClient, sink: FakeSink, sample_page_data: dict
    ):
        sample_page_data["current_url"] = "/pricing"

        response = await client.post("/telemetry/page", json=sample_page_data)

        assert response.status_code == 400
        assert sink.calls == []

    @pytest.mark.parametrize("current_url", ["", "   "])
    async def test_empty_current_url_is_client_error(
        self, client: AsyncClient, sink: FakeSink, sample_page_data: dict, current_url: str
    ):
        sample_page_data["current_url"] = current_url

        response = await client.post("/telemetry/page", json=sample_page_data)

        assert response.status_code == 400
        assert "current_url" in response.json()["detail"]
        assert sink.calls == []

    async def test_missing_current_url_is_validation_error(self, client: AsyncClient):
        response = await client.post("/telemetry/page", json={"ga": {"userAgent": "x"}})
        assert response.status_code == 422


class TestEventRoute:
    """Tests for POST /telemetry/event."""

    async def test_custom_event(self, client: AsyncClient, sink: FakeSink, sample_event_data: dict):
        response = await client.post(
            "/telemetry/event",
            json=sample_event_data,
            headers=cookie_header({**RETURNING, "organizationId": "org_1", "projectId": "proj_1"}),
        )

        assert response.status_code == 200
        [(distinct_id, event_name, props, groups)] = sink.of("capture")
        assert distinct_id == "anon_1"
        assert event_name == "signup_clicked"
        assert props["category"] == "cta"
        assert props["label"] == "hero"
        assert props["value"] == 1
        assert props["page_title"] == "Pricing"
        assert props["$pathname"] == "/pricing"
        assert "$referrer" not in props
        assert not any(key.startswith(("$entry_", "$initial_")) for key in props)
        assert groups == {"organization": "org_1", "project": "proj_1"}

        cookies = set_cookies(response)
        assert int(cookies["projectId"]["max-age"]) == SESSION_TTL
        assert int(cookies["anonymousId"]["max-age"]) == LONG_TTL

    async def test_empty_current_url_is_client_error(
        self, client: AsyncClient, sink: FakeSink, sample_event_data: dict
    ):
        sample_event_data["current_url"] = ""

        response = await client.post("/telemetry/event", json=sample_event_data)

        assert response.status_code == 400
        assert sink.calls == []

    async def test_action_is_required(self, client: AsyncClient, sample_event_data: dict):
        del sample_event_data["action"]
        response = await client.post("/telemetry/event", json=sample_event_data)
        assert response.status_code == 422


class TestPageLeaveRoute:
    """Tests for POST /telemetry/pageleave."""

    async def test_pageleave(self, client: AsyncClient, sink: FakeSink):
        response = await client.post(
            "/telemetry/pageleave",
            json={"current_url": "https://app.example.com/pricing", "route": "/pricing"},
            headers=cookie_header(RETURNING),
        )

        assert response.status_code == 200
        [(_, event_name, props, _)] = sink.of("capture")
        assert event_name == "$pageleave"
        assert props["$exit_current_url"] == "https://app.example.com/pricing"
        assert props["$exit_pathname"] == "/pricing"
        assert not any(key.startswith("$entry_") for key in props)

    async def test_empty_current_url_is_client_error(self, client: AsyncClient, sink: FakeSink):
        response = await client.post("/telemetry/pageleave", json={"current_url": ""})

        assert response.status_code == 400
        assert sink.calls == []


class TestSinkFailure:
    """A failing sink never fails the request."""

    async def test_sink_error_is_logged(self, client: AsyncClient, sink: FakeSink, sample_page_data: dict):
        def explode(*args, **kwargs):
            raise RuntimeError("backend down")

        sink.capture = explode

        response = await client.post("/telemetry/page", json=sample_page_data)

        assert response.status_code == 200
        assert "sessionId" in set_cookies(response)


async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.json() == {"status": "ok"}

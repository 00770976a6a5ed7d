"""
Shared fixtures for Calendar Analytics Service tests.

Settings are injected by replacing the module-level singleton so that no
test depends on the developer's environment or .env file.
"""

from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

import services.calendar_analytics.settings as settings_module
from services.calendar_analytics.models import CalendarEvent
from services.calendar_analytics.settings import Settings

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
LOGIN_BASE_URL = "https://login.microsoftonline.com"


@pytest.fixture(autouse=True)
def test_settings():
    original = settings_module._settings
    settings_module._settings = Settings(
        _env_file=None,
        microsoft_client_id="test-client-id",
        microsoft_client_secret="test-client-secret",
        microsoft_tenant_id="test-tenant",
        oauth_redirect_uri="http://testserver/v1/auth/callback",
        frontend_url="http://frontend.test/dashboard",
        graph_base_url=GRAPH_BASE_URL,
        microsoft_login_base_url=LOGIN_BASE_URL,
        log_format="text",
    )
    yield settings_module._settings
    settings_module._settings = original


@pytest.fixture
def client():
    from services.calendar_analytics.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer test-access-token"}


def _recipient(address: Optional[str]) -> Dict[str, Any]:
    return {"emailAddress": {"address": address}}


def build_graph_event(
    start: Optional[str] = "2024-03-04T09:00:00.0000000",
    end: Optional[str] = "2024-03-04T10:00:00.0000000",
    importance: Optional[str] = "normal",
    categories: Optional[List[str]] = None,
    organizer: Optional[str] = None,
    attendees: Optional[List[Optional[str]]] = None,
    series_master_id: Optional[str] = None,
    event_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a raw Graph event payload."""
    payload: Dict[str, Any] = {
        "id": event_id,
        "subject": "Meeting",
        "importance": importance,
        "categories": categories or [],
        "attendees": [_recipient(address) for address in attendees or []],
        "seriesMasterId": series_master_id,
    }
    if start is not None:
        payload["start"] = {"dateTime": start, "timeZone": "UTC"}
    if end is not None:
        payload["end"] = {"dateTime": end, "timeZone": "UTC"}
    if organizer is not None:
        payload["organizer"] = _recipient(organizer)
    return payload


@pytest.fixture
def graph_event() -> Callable[..., Dict[str, Any]]:
    return build_graph_event


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    def _make(**kwargs: Any) -> CalendarEvent:
        return CalendarEvent.model_validate(build_graph_event(**kwargs))

    return _make

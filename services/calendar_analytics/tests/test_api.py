"""
Endpoint tests for the Calendar Analytics Service.

Graph calls are patched at the GraphAPIClient method level so these tests
cover routing, validation, authentication and response shaping.
"""

from unittest.mock import AsyncMock, patch

import pytest

from services.calendar_analytics.core.clients.graph import GraphAPIClient
from services.calendar_analytics.models import CalendarEvent, TokenResponse
from services.common.http_errors import ErrorCode, ProviderError

ANALYTICS_PARAMS = {
    "startDate": "2024-03-01",
    "endDate": "2024-03-31",
    "totalMeetingHoursThreshold": "10",
    "internalMeetingsThreshold": "5",
    "externalMeetingsThreshold": "3",
}


@pytest.fixture
def calendar_view():
    with patch.object(
        GraphAPIClient, "get_calendar_view", new_callable=AsyncMock
    ) as mock_view:
        mock_view.return_value = []
        yield mock_view


def _events(graph_event, *payloads):
    return [CalendarEvent.model_validate(graph_event(**payload)) for payload in payloads]


class TestMeetingAnalytics:
    """Tests for GET /v1/calendar/analytics."""

    def test_success(self, client, auth_headers, calendar_view, graph_event):
        calendar_view.return_value = _events(
            graph_event,
            {"event_id": "a", "start": "2024-03-03T09:00:00.0000000",
             "end": "2024-03-03T10:00:00.0000000", "importance": "high"},
            {"event_id": "b", "start": "2024-03-10T09:00:00.0000000",
             "end": "2024-03-10T11:00:00.0000000", "categories": ["External"],
             "series_master_id": "s1"},
            {"event_id": "c", "start": "2024-03-17T09:00:00.0000000",
             "end": "2024-03-17T11:00:00.0000000", "categories": ["External"],
             "series_master_id": "s1"},
        )

        response = client.get(
            "/v1/calendar/analytics", params=ANALYTICS_PARAMS, headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["totalMeetings"] == 2
        assert data["totalMeetingHours"] == 3.0
        assert [week["total"] for week in data["meetingCountData"]] == [1, 0, 1, 0, 0]
        assert data["meetingCountData"][2] == {
            "name": "Week 3",
            "internal": 0,
            "external": 1,
            "total": 1,
        }
        assert data["meetingDistributionData"] == [
            {"name": "High", "value": 1},
            {"name": "Medium", "value": 1},
            {"name": "Low", "value": 0},
        ]
        assert data["availableVsUsedHoursData"][0]["available"] == 39.0
        assert data["meetingsExceedingThreshold"] == 0
        assert data["currentMeetingHoursPercentage"] == 1
        assert isinstance(data["currentMeetingHoursPercentage"], int)

        start, end = calendar_view.call_args.args
        assert start.isoformat() == "2024-03-01T00:00:00+00:00"
        assert end.isoformat() == "2024-03-31T23:59:59+00:00"

    def test_infinite_percentage_is_null(self, client, auth_headers, calendar_view, graph_event):
        calendar_view.return_value = _events(
            graph_event,
            *(
                {"start": f"2024-03-{day:02d}T00:00:00.0000000",
                 "end": f"2024-03-{day + 1:02d}T16:00:00.0000000"}
                for day in (1, 8, 15, 22, 29)
            ),
        )

        response = client.get(
            "/v1/calendar/analytics", params=ANALYTICS_PARAMS, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["currentMeetingHoursPercentage"] is None

    @pytest.mark.parametrize(
        "field",
        [
            "totalMeetingHoursThreshold",
            "internalMeetingsThreshold",
            "externalMeetingsThreshold",
        ],
    )
    def test_missing_threshold(self, client, auth_headers, calendar_view, field):
        params = {k: v for k, v in ANALYTICS_PARAMS.items() if k != field}

        response = client.get("/v1/calendar/analytics", params=params, headers=auth_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["type"] == "validation_error"
        assert body["details"]["field"] == field
        calendar_view.assert_not_called()

    @pytest.mark.parametrize("value", ["0", "nan"])
    def test_zero_or_nan_threshold(self, client, auth_headers, calendar_view, value):
        params = {**ANALYTICS_PARAMS, "internalMeetingsThreshold": value}

        response = client.get("/v1/calendar/analytics", params=params, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["details"]["field"] == "internalMeetingsThreshold"
        calendar_view.assert_not_called()

    def test_negative_threshold_accepted(self, client, auth_headers, calendar_view):
        params = {**ANALYTICS_PARAMS, "externalMeetingsThreshold": "-1"}

        response = client.get("/v1/calendar/analytics", params=params, headers=auth_headers)

        assert response.status_code == 200
        # Every week has 0 external meetings, which is more than -1
        assert response.json()["meetingsExceedingThreshold"] == 100

    def test_missing_date(self, client, auth_headers, calendar_view):
        params = {k: v for k, v in ANALYTICS_PARAMS.items() if k != "startDate"}

        response = client.get("/v1/calendar/analytics", params=params, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["details"]["field"] == "startDate"
        calendar_view.assert_not_called()

    def test_invalid_date(self, client, auth_headers, calendar_view):
        params = {**ANALYTICS_PARAMS, "endDate": "March 31st"}

        response = client.get("/v1/calendar/analytics", params=params, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["details"]["field"] == "endDate"

    def test_end_before_start(self, client, auth_headers, calendar_view):
        params = {**ANALYTICS_PARAMS, "startDate": "2024-04-01"}

        response = client.get("/v1/calendar/analytics", params=params, headers=auth_headers)

        assert response.status_code == 422
        calendar_view.assert_not_called()

    def test_requires_token(self, client, calendar_view):
        response = client.get("/v1/calendar/analytics", params=ANALYTICS_PARAMS)

        assert response.status_code == 401
        assert response.json()["details"]["code"] == ErrorCode.TOKEN_MISSING.value
        calendar_view.assert_not_called()

    def test_token_from_cookie(self, client, calendar_view):
        client.cookies.set("access_token", "cookie-token")

        response = client.get("/v1/calendar/analytics", params=ANALYTICS_PARAMS)

        assert response.status_code == 200

    def test_provider_rate_limit_passed_through(self, client, auth_headers, calendar_view):
        calendar_view.side_effect = ProviderError(
            "Microsoft Graph rate limit exceeded. Please try again later.",
            provider="microsoft",
            code=ErrorCode.MICROSOFT_RATE_LIMITED,
            status_code=429,
            retry_after=12,
        )

        response = client.get(
            "/v1/calendar/analytics", params=ANALYTICS_PARAMS, headers=auth_headers
        )

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "12"
        body = response.json()
        assert body["type"] == "provider_error"
        assert body["details"]["code"] == "MICROSOFT_RATE_LIMITED"


class TestCalendarEvents:
    def test_list_events(self, client, auth_headers, calendar_view, graph_event):
        calendar_view.return_value = _events(graph_event, {"event_id": "e1"})

        response = client.get(
            "/v1/calendar/events",
            params={"startDate": "2024-03-01", "endDate": "2024-03-02"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["events"][0]["id"] == "e1"
        assert data["events"][0]["start"]["timeZone"] == "UTC"

    def test_create_event_with_attachments(self, client, auth_headers):
        with patch.object(
            GraphAPIClient, "create_event", new_callable=AsyncMock
        ) as mock_create, patch.object(
            GraphAPIClient, "add_attachment", new_callable=AsyncMock
        ) as mock_attach:
            mock_create.return_value = {"id": "evt-1", "subject": "Planning"}
            mock_attach.side_effect = [{"id": "att-1"}, {"id": "att-2"}]

            response = client.post(
                "/v1/calendar/events",
                json={
                    "event": {"subject": "Planning"},
                    "attachments": [
                        {"name": "a.txt", "contentType": "text/plain", "contentBytes": "YQ=="},
                        {"name": "b.txt", "contentBytes": "Yg=="},
                    ],
                },
                headers=auth_headers,
            )

        assert response.status_code == 201
        assert response.json() == {
            "event": {"id": "evt-1", "subject": "Planning"},
            "attachments": [{"id": "att-1"}, {"id": "att-2"}],
        }
        assert mock_attach.call_count == 2
        event_id, payload = mock_attach.call_args_list[1].args
        assert event_id == "evt-1"
        assert payload["contentType"] == "application/octet-stream"

    def test_attachment_failure_drops_all_attachments(self, client, auth_headers):
        with patch.object(
            GraphAPIClient, "create_event", new_callable=AsyncMock
        ) as mock_create, patch.object(
            GraphAPIClient, "add_attachment", new_callable=AsyncMock
        ) as mock_attach:
            mock_create.return_value = {"id": "evt-1"}
            mock_attach.side_effect = [
                {"id": "att-1"},
                ProviderError("upload failed", provider="microsoft"),
            ]

            response = client.post(
                "/v1/calendar/events",
                json={
                    "event": {"subject": "Planning"},
                    "attachments": [
                        {"name": "a.txt", "contentBytes": "YQ=="},
                        {"name": "b.txt", "contentBytes": "Yg=="},
                    ],
                },
                headers=auth_headers,
            )

        assert response.status_code == 201
        assert response.json()["attachments"] == []
        assert mock_attach.call_count == 2


class TestAuthEndpoints:
    def test_login_redirects_to_microsoft(self, client):
        response = client.get("/v1/auth/login", follow_redirects=False)

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith(
            "https://login.microsoftonline.com/test-tenant/oauth2/v2.0/authorize?"
        )
        assert "oauth_state" in response.cookies

    def test_callback_sets_cookie_and_redirects(self, client, test_settings):
        client.cookies.set("oauth_state", "state-1")
        with patch(
            "services.calendar_analytics.api.auth.exchange_code_for_token",
            new_callable=AsyncMock,
        ) as mock_exchange:
            mock_exchange.return_value = TokenResponse(
                access_token="graph-token", expires_in=3600
            )

            response = client.get(
                "/v1/auth/callback",
                params={"code": "auth-code", "state": "state-1"},
                follow_redirects=False,
            )

        assert response.status_code == 302
        assert response.headers["location"] == test_settings.frontend_url
        assert response.cookies["access_token"] == "graph-token"
        assert "httponly" in response.headers["set-cookie"].lower()
        assert mock_exchange.call_args.args[0] == "auth-code"

    def test_callback_state_mismatch(self, client):
        client.cookies.set("oauth_state", "state-1")

        response = client.get(
            "/v1/auth/callback",
            params={"code": "auth-code", "state": "forged"},
            follow_redirects=False,
        )

        assert response.status_code == 401

    def test_callback_without_state_cookie_rejected(self, client):
        with patch(
            "services.calendar_analytics.api.auth.exchange_code_for_token",
            new_callable=AsyncMock,
        ) as mock_exchange:
            mock_exchange.return_value = TokenResponse(access_token="other-token")

            response = client.get(
                "/v1/auth/callback",
                params={"code": "foreign-code", "state": "any"},
                follow_redirects=False,
            )

        assert response.status_code == 401
        assert response.json()["details"]["code"] == ErrorCode.TOKEN_INVALID.value
        assert "access_token" not in response.cookies
        mock_exchange.assert_not_called()

    def test_callback_without_state_param_rejected(self, client):
        client.cookies.set("oauth_state", "state-1")
        with patch(
            "services.calendar_analytics.api.auth.exchange_code_for_token",
            new_callable=AsyncMock,
        ) as mock_exchange:
            response = client.get(
                "/v1/auth/callback",
                params={"code": "auth-code"},
                follow_redirects=False,
            )

        assert response.status_code == 401
        mock_exchange.assert_not_called()

    def test_callback_provider_error(self, client):
        response = client.get(
            "/v1/auth/callback",
            params={"error": "access_denied", "error_description": "User cancelled"},
            follow_redirects=False,
        )

        assert response.status_code == 401
        assert response.json()["message"] == "User cancelled"

    def test_callback_requires_code(self, client):
        response = client.get("/v1/auth/callback", follow_redirects=False)
        assert response.status_code == 422

    def test_logout_clears_cookie(self, client):
        response = client.post("/v1/auth/logout")

        assert response.status_code == 200
        assert 'access_token=""' in response.headers["set-cookie"]

    def test_profile(self, client, auth_headers):
        with patch.object(GraphAPIClient, "get_me", new_callable=AsyncMock) as mock_me:
            mock_me.return_value = {"id": "u1", "displayName": "Ada Lovelace"}

            response = client.get("/v1/auth/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["displayName"] == "Ada Lovelace"


class TestDirectory:
    def test_search_users(self, client, auth_headers):
        with patch.object(
            GraphAPIClient, "search_users", new_callable=AsyncMock
        ) as mock_search:
            mock_search.return_value = [{"id": "u1", "mail": "ada@x.com"}]

            response = client.get(
                "/v1/directory/users", params={"search": "ada", "top": 5}, headers=auth_headers
            )

        assert response.status_code == 200
        assert response.json() == {"users": [{"id": "u1", "mail": "ada@x.com"}], "count": 1}
        mock_search.assert_awaited_once_with("ada", top=5)

    def test_search_required(self, client, auth_headers):
        response = client.get("/v1/directory/users", headers=auth_headers)
        assert response.status_code == 422


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200

    def test_health(self, client):
        response = client.get("/health")
        assert response.json() == {"status": "ok"}

    def test_ready(self, client):
        data = client.get("/ready").json()
        assert data["status"] == "ok"
        assert data["service"] == "calendar-analytics"

    def test_ready_degraded_without_client_id(self, client, test_settings):
        test_settings.microsoft_client_id = None
        assert client.get("/ready").json()["status"] == "degraded"

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-Id": "req-123"})
        assert response.headers["X-Request-Id"] == "req-123"

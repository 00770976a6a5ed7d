"""
Microsoft Graph API client.

Wraps an httpx.AsyncClient with bearer authentication, request ID
propagation, timing logs and translation of Graph error responses into
ProviderError with Microsoft-specific error codes.
"""

import json
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from services.calendar_analytics.models import CalendarEvent
from services.calendar_analytics.settings import get_settings
from services.common.http_errors import ErrorCode, ProviderError
from services.common.logging_config import get_logger, request_id_var

logger = get_logger(__name__)

PROVIDER = "microsoft"

# Fields the analytics and pass-through endpoints read from events
CALENDAR_VIEW_SELECT = (
    "id,subject,start,end,importance,categories,organizer,attendees,"
    "seriesMasterId,type,isAllDay,isCancelled,location,webLink"
)


def parse_graph_error(response_text: str, status_code: int) -> tuple[str, ErrorCode]:
    """
    Turn a Graph error body into a user-facing message and an ErrorCode.

    Args:
        response_text: Raw response body from Microsoft Graph
        status_code: HTTP status code

    Returns:
        Tuple of (message, error code)
    """
    try:
        error = json.loads(response_text).get("error", {})
        graph_code = error.get("code", "") or ""
        graph_message = error.get("message", "") or ""
    except (json.JSONDecodeError, AttributeError):
        graph_code = ""
        graph_message = ""

    if status_code == 401:
        lowered = graph_message.lower()
        if "expired" in lowered or "lifetime validation failed" in lowered:
            return (
                "Microsoft token has expired. Please sign in again.",
                ErrorCode.MICROSOFT_TOKEN_EXPIRED,
            )
        if "not well formed" in lowered or "CompactToken" in graph_code:
            return (
                "Microsoft token is malformed. Please sign in again.",
                ErrorCode.MICROSOFT_TOKEN_MALFORMED,
            )
        return (
            f"Microsoft authentication failed: {graph_message or 'unauthorized'}",
            ErrorCode.MICROSOFT_AUTH_FAILED,
        )
    if status_code == 403:
        if "InsufficientPermissions" in graph_code or "Authorization_RequestDenied" in graph_code:
            return (
                "Insufficient Microsoft permissions. Please grant the required scopes.",
                ErrorCode.MICROSOFT_INSUFFICIENT_PERMISSIONS,
            )
        return (
            f"Microsoft access denied: {graph_message or 'forbidden'}",
            ErrorCode.MICROSOFT_ACCESS_DENIED,
        )
    if status_code == 429:
        return (
            "Microsoft Graph rate limit exceeded. Please try again later.",
            ErrorCode.MICROSOFT_RATE_LIMITED,
        )
    if status_code >= 500:
        return (
            f"Microsoft service error: {graph_message or f'HTTP {status_code}'}",
            ErrorCode.MICROSOFT_SERVICE_ERROR,
        )
    if graph_code:
        return (
            f"Microsoft API error ({graph_code}): {graph_message}",
            ErrorCode.MICROSOFT_API_ERROR,
        )
    return f"Microsoft API error (HTTP {status_code})", ErrorCode.MICROSOFT_API_ERROR


def _response_status(status_code: int) -> int:
    # Auth and throttling statuses are meaningful to the caller; the rest is a gateway failure.
    if status_code in (401, 403, 404, 429):
        return status_code
    return 502


class GraphAPIClient:
    """
    Microsoft Graph client for calendar and directory calls.

    Use as an async context manager:

        async with GraphAPIClient(access_token) as client:
            events = await client.get_calendar_view(start, end)
    """

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.access_token = access_token
        self.base_url = (base_url or settings.graph_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds
        self.page_size = settings.calendar_page_size
        self.http_client: Optional[httpx.AsyncClient] = None
        self._session_id = str(uuid.uuid4())[:8]

    async def __aenter__(self) -> "GraphAPIClient":
        self.http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers=self._get_default_headers(),
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.http_client:
            await self.http_client.aclose()
            self.http_client = None

    def _get_default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Prefer": 'outlook.timezone="UTC"',
            "User-Agent": "CalendarAnalyticsService/1.0",
        }

    def _request_id(self) -> str:
        context_request_id = request_id_var.get()
        if context_request_id and context_request_id != "uninitialized":
            return context_request_id
        return f"{self._session_id}-{uuid.uuid4().hex[:8]}"

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make a Graph request, raising ProviderError on any failure.

        ``endpoint`` may be a path relative to the base URL or an absolute
        URL (as returned in ``@odata.nextLink``).
        """
        if not self.http_client:
            raise RuntimeError("HTTP client not initialized. Use async context manager.")

        url = endpoint if endpoint.startswith("http") else f"{self.base_url}{endpoint}"
        request_headers = dict(headers or {})
        request_id = self._request_id()
        request_headers["client-request-id"] = request_id

        start_time = time.time()
        try:
            response = await self.http_client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                headers=request_headers,
            )
            response_time_ms = int((time.time() - start_time) * 1000)
            logger.debug(
                f"Graph {method.upper()} {endpoint} → {response.status_code}",
                response_time_ms=response_time_ms,
            )
            response.raise_for_status()
            return response

        except httpx.TimeoutException:
            response_time_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "Graph request timed out",
                endpoint=endpoint,
                method=method.upper(),
                timeout_ms=response_time_ms,
            )
            raise ProviderError(
                message=f"Request timeout after {response_time_ms}ms",
                provider=PROVIDER,
                code=ErrorCode.PROVIDER_UNAVAILABLE,
                status_code=504,
                details={"endpoint": endpoint, "method": method.upper()},
            )

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            message, code = parse_graph_error(e.response.text, status_code)
            logger.error(
                f"Graph HTTP error: {message}",
                endpoint=endpoint,
                method=method.upper(),
                status_code=status_code,
            )

            retry_after = None
            if status_code == 429:
                retry_after_header = e.response.headers.get("Retry-After")
                if retry_after_header and retry_after_header.isdigit():
                    retry_after = int(retry_after_header)

            raise ProviderError(
                message=message,
                provider=PROVIDER,
                code=code,
                status_code=_response_status(status_code),
                response_body=e.response.text,
                retry_after=retry_after,
                details={"endpoint": endpoint, "method": method.upper()},
            )

        except httpx.RequestError as e:
            logger.error(
                "Graph request failed",
                endpoint=endpoint,
                method=method.upper(),
                error_type=type(e).__name__,
            )
            raise ProviderError(
                message=f"Request failed: {e}",
                provider=PROVIDER,
                code=ErrorCode.PROVIDER_UNAVAILABLE,
                details={
                    "endpoint": endpoint,
                    "method": method.upper(),
                    "error_type": type(e).__name__,
                },
            )

    async def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        return await self._make_request("GET", endpoint, params=params, headers=headers)

    async def post(
        self, endpoint: str, json_data: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        return await self._make_request("POST", endpoint, json_data=json_data)

    # Calendar
    async def get_calendar_view(
        self, start: datetime | str, end: datetime | str
    ) -> List[CalendarEvent]:
        """
        Get every event occurrence between start and end, following paging.

        Recurring series are expanded into occurrences by the calendar view,
        each carrying its ``seriesMasterId``.
        """
        params: Optional[Dict[str, Any]] = {
            "startDateTime": start.isoformat() if isinstance(start, datetime) else start,
            "endDateTime": end.isoformat() if isinstance(end, datetime) else end,
            "$top": self.page_size,
            "$select": CALENDAR_VIEW_SELECT,
            "$orderby": "start/dateTime",
        }
        endpoint = "/me/calendarView"
        events: List[CalendarEvent] = []
        pages = 0

        while endpoint:
            response = await self.get(endpoint, params=params)
            payload = response.json()
            events.extend(
                CalendarEvent.model_validate(item) for item in payload.get("value", [])
            )
            pages += 1
            endpoint = payload.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None

        logger.info("Fetched calendar view", event_count=len(events), pages=pages)
        return events

    async def create_event(self, event_data: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.post("/me/events", json_data=event_data)
        return response.json()

    async def add_attachment(
        self, event_id: str, attachment: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self.post(
            f"/me/events/{event_id}/attachments", json_data=attachment
        )
        return response.json()

    # Directory
    async def get_me(self) -> Dict[str, Any]:
        response = await self.get(
            "/me",
            params={"$select": "id,displayName,mail,userPrincipalName,jobTitle"},
        )
        return response.json()

    async def search_users(self, query: str, top: int = 25) -> List[Dict[str, Any]]:
        """Search the organization directory by display name or mail."""
        escaped = query.replace('"', "")
        params = {
            "$search": f'"displayName:{escaped}" OR "mail:{escaped}"',
            "$select": "id,displayName,mail,userPrincipalName,jobTitle",
            "$top": top,
        }
        # $search on directory objects requires eventual consistency
        response = await self.get(
            "/users", params=params, headers={"ConsistencyLevel": "eventual"}
        )
        return response.json().get("value", [])

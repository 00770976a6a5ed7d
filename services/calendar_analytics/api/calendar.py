"""
Calendar endpoints for the Calendar Analytics Service.

All endpoints act on behalf of the signed-in user, whose Graph access token
comes from the Authorization header or the login cookie.
"""

import asyncio
import math
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Query

from services.calendar_analytics.analytics import (
    aggregate,
    dedupe_recurring_events,
)
from services.calendar_analytics.core.clients.graph import GraphAPIClient
from services.calendar_analytics.core.oauth import get_access_token
from services.calendar_analytics.models import (
    AnalyticsResult,
    AttachmentUpload,
    CalendarEventList,
    CreateEventRequest,
    CreateEventResponse,
    ThresholdSettings,
    parse_graph_datetime,
)
from services.common.http_errors import ProviderError, ValidationError
from services.common.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


def _parse_range_bound(value: str, field: str, end_of_day: bool) -> datetime:
    """Accept a YYYY-MM-DD date or an ISO date-time, returning UTC."""
    try:
        day = date.fromisoformat(value)
    except ValueError:
        parsed = parse_graph_datetime(value)
        if parsed is None:
            raise ValidationError(
                "Invalid date format. Use YYYY-MM-DD or an ISO date-time.",
                field=field,
                value=value,
            )
        return parsed
    bound = time.max.replace(microsecond=0) if end_of_day else time.min
    return datetime.combine(day, bound, tzinfo=timezone.utc)


def resolve_date_range(
    start_date: Optional[str], end_date: Optional[str]
) -> Tuple[datetime, datetime]:
    if not start_date:
        raise ValidationError("startDate is required", field="startDate")
    if not end_date:
        raise ValidationError("endDate is required", field="endDate")
    start = _parse_range_bound(start_date, "startDate", end_of_day=False)
    end = _parse_range_bound(end_date, "endDate", end_of_day=True)
    if start >= end:
        raise ValidationError(
            "endDate must be after startDate",
            details={"startDate": start_date, "endDate": end_date},
        )
    return start, end


def validate_thresholds(
    total_meeting_hours: Optional[float],
    internal_meetings: Optional[float],
    external_meetings: Optional[float],
) -> ThresholdSettings:
    """
    Check that every threshold is present, non-zero and a number.

    Raises:
        ValidationError: naming the first offending query parameter.
    """
    values = {
        "totalMeetingHoursThreshold": total_meeting_hours,
        "internalMeetingsThreshold": internal_meetings,
        "externalMeetingsThreshold": external_meetings,
    }
    for field, value in values.items():
        if value is None:
            raise ValidationError(f"{field} is required", field=field)
        if value == 0 or math.isnan(value):
            raise ValidationError(
                f"{field} must be a non-zero number", field=field, value=value
            )
    return ThresholdSettings(
        total_meeting_hours=total_meeting_hours,
        internal_meetings=internal_meetings,
        external_meetings=external_meetings,
    )


@router.get("/events", response_model=CalendarEventList)
async def list_calendar_events(
    start_date: Optional[str] = Query(
        None, alias="startDate", description="Range start (YYYY-MM-DD or ISO)"
    ),
    end_date: Optional[str] = Query(
        None, alias="endDate", description="Range end (YYYY-MM-DD or ISO)"
    ),
    access_token: str = Depends(get_access_token),
) -> CalendarEventList:
    """List the user's calendar occurrences between startDate and endDate."""
    start, end = resolve_date_range(start_date, end_date)

    async with GraphAPIClient(access_token) as client:
        events = await client.get_calendar_view(start, end)

    return CalendarEventList(events=events, count=len(events))


async def _upload_attachments(
    client: GraphAPIClient, event_id: str, attachments: List[AttachmentUpload]
) -> List[Dict[str, Any]]:
    """
    Upload attachments to an event concurrently.

    All uploads are awaited; if any of them fails the result is an empty list
    rather than a partial one.
    """
    if not attachments:
        return []

    results = await asyncio.gather(
        *(client.add_attachment(event_id, item.to_graph()) for item in attachments),
        return_exceptions=True,
    )
    failures = [result for result in results if isinstance(result, BaseException)]
    if failures:
        logger.warning(
            "Attachment upload failed, returning no attachments",
            event_id=event_id,
            failed=len(failures),
            attempted=len(attachments),
            errors=[str(failure) for failure in failures],
        )
        for failure in failures:
            if not isinstance(failure, Exception):
                raise failure
        return []

    return [result for result in results if isinstance(result, dict)]


@router.post("/events", response_model=CreateEventResponse, status_code=201)
async def create_calendar_event(
    body: CreateEventRequest,
    access_token: str = Depends(get_access_token),
) -> CreateEventResponse:
    """Create an event in the user's calendar and attach any uploaded files."""
    async with GraphAPIClient(access_token) as client:
        event = await client.create_event(body.event)
        event_id = event.get("id")
        if not event_id:
            raise ProviderError(
                "Microsoft Graph did not return an id for the created event",
                provider="microsoft",
            )
        attachments = await _upload_attachments(client, event_id, body.attachments)

    logger.info(
        "Created calendar event", event_id=event_id, attachments=len(attachments)
    )
    return CreateEventResponse(event=event, attachments=attachments)


@router.get(
    "/analytics",
    response_model=AnalyticsResult,
    response_model_by_alias=True,
)
async def get_meeting_analytics(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    total_meeting_hours_threshold: Optional[float] = Query(
        None, alias="totalMeetingHoursThreshold"
    ),
    internal_meetings_threshold: Optional[float] = Query(
        None, alias="internalMeetingsThreshold"
    ),
    external_meetings_threshold: Optional[float] = Query(
        None, alias="externalMeetingsThreshold"
    ),
    access_token: str = Depends(get_access_token),
) -> AnalyticsResult:
    """
    Compute meeting analytics for the user's calendar over a date range.

    Recurring series are collapsed to one occurrence each before
    aggregation. Inputs are validated before Microsoft Graph is called.
    """
    start, end = resolve_date_range(start_date, end_date)
    thresholds = validate_thresholds(
        total_meeting_hours_threshold,
        internal_meetings_threshold,
        external_meetings_threshold,
    )

    async with GraphAPIClient(access_token) as client:
        events = await client.get_calendar_view(start, end)

    unique_events = dedupe_recurring_events(events)
    logger.info(
        "Computing meeting analytics",
        fetched=len(events),
        after_dedupe=len(unique_events),
    )
    return aggregate(unique_events, thresholds)

"""
Pydantic models for the Calendar Analytics Service.

Graph payload models mirror the Microsoft Graph field names (camelCase) and
only declare what the service reads; every field is optional and unknown
fields are kept so that pass-through endpoints return the provider payload
untouched.
"""

import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# Graph returns up to 7 fractional digits; datetime accepts at most 6.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_graph_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Graph ``dateTime`` string into an aware UTC datetime.

    Naive values are taken as UTC. Returns None for missing or unparseable
    input.
    """
    if not value:
        return None
    text = _FRACTION_RE.sub(r"\1", value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class GraphModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class EmailAddress(GraphModel):
    address: Optional[str] = None
    name: Optional[str] = None


class Recipient(GraphModel):
    emailAddress: Optional[EmailAddress] = None


class DateTimeTimeZone(GraphModel):
    dateTime: Optional[str] = None
    timeZone: Optional[str] = None

    def as_utc(self) -> Optional[datetime]:
        return parse_graph_datetime(self.dateTime)


class CalendarEvent(GraphModel):
    """A Microsoft Graph calendar event, as returned by the calendar view."""

    id: Optional[str] = None
    subject: Optional[str] = None
    start: Optional[DateTimeTimeZone] = None
    end: Optional[DateTimeTimeZone] = None
    importance: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    organizer: Optional[Recipient] = None
    attendees: List[Recipient] = Field(default_factory=list)
    seriesMasterId: Optional[str] = None

    @field_validator("categories", "attendees", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # Graph sends null for empty collections on some event types
        return [] if value is None else value

    @property
    def organizer_address(self) -> Optional[str]:
        if self.organizer and self.organizer.emailAddress:
            return self.organizer.emailAddress.address
        return None

    @property
    def attendee_addresses(self) -> List[Optional[str]]:
        return [
            attendee.emailAddress.address if attendee.emailAddress else None
            for attendee in self.attendees
        ]


class MeetingType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class ThresholdSettings(BaseModel):
    """Caller supplied per-week limits used to flag heavy weeks."""

    total_meeting_hours: float
    internal_meetings: float
    external_meetings: float


def _finite_or_none(value: Union[int, float]) -> Optional[Union[int, float]]:
    # JSON has no Infinity/NaN; consumers historically received null.
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class WeeklyMeetingCount(BaseModel):
    name: str
    internal: int = 0
    external: int = 0
    total: int = 0


class PriorityBucket(BaseModel):
    name: str
    value: int = 0


class WeeklyHours(BaseModel):
    name: str
    internal: float = 0.0
    external: float = 0.0
    available: float = 0.0

    @field_serializer("internal", "external", "available", when_used="json")
    def _serialize_hours(self, value: float) -> Optional[float]:
        return _finite_or_none(value)


class AnalyticsResult(BaseModel):
    """Aggregated meeting statistics for a date range."""

    model_config = ConfigDict(populate_by_name=True)

    total_meetings: int = Field(alias="totalMeetings")
    total_meeting_hours: float = Field(alias="totalMeetingHours")
    meeting_count_data: List[WeeklyMeetingCount] = Field(alias="meetingCountData")
    meeting_distribution_data: List[PriorityBucket] = Field(
        alias="meetingDistributionData"
    )
    available_vs_used_hours_data: List[WeeklyHours] = Field(
        alias="availableVsUsedHoursData"
    )
    meetings_exceeding_threshold: float = Field(alias="meetingsExceedingThreshold")
    # floor() keeps whole percentages integral; non-finite results stay floats
    current_meeting_hours_percentage: Union[int, float] = Field(
        alias="currentMeetingHoursPercentage"
    )

    @field_serializer(
        "total_meeting_hours",
        "meetings_exceeding_threshold",
        "current_meeting_hours_percentage",
        when_used="json",
    )
    def _serialize_scalars(
        self, value: Union[int, float]
    ) -> Optional[Union[int, float]]:
        return _finite_or_none(value)


class CalendarEventList(BaseModel):
    events: List[CalendarEvent]
    count: int


class AttachmentUpload(BaseModel):
    """A file attachment sent inline with a create-event request."""

    name: str
    content_type: str = Field(default="application/octet-stream", alias="contentType")
    content_bytes: str = Field(alias="contentBytes", description="Base64 content")

    model_config = ConfigDict(populate_by_name=True)

    def to_graph(self) -> Dict[str, Any]:
        return {
            "@odata.type": "#microsoft.graph.fileAttachment",
            "name": self.name,
            "contentType": self.content_type,
            "contentBytes": self.content_bytes,
        }


class CreateEventRequest(BaseModel):
    """Create-event body: a Graph event payload plus optional attachments."""

    event: Dict[str, Any]
    attachments: List[AttachmentUpload] = Field(default_factory=list)


class CreateEventResponse(BaseModel):
    event: Dict[str, Any]
    attachments: List[Dict[str, Any]]


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None


class DirectoryUserList(BaseModel):
    users: List[Dict[str, Any]]
    count: int

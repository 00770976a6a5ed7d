"""
Meeting analytics aggregation.

Buckets a list of calendar events into five fixed "weeks" keyed by the day
of month of the event start (1-7 is Week 1, ..., 29-31 is Week 5), counts
internal and external meetings, accumulates meeting hours, builds a priority
distribution and flags weeks that exceed the caller's thresholds.

Arithmetic follows IEEE float semantics throughout: hours may be NaN when an
event has no usable end time, available hours may go negative, and the
utilization percentage may be infinite or NaN when no hours are available.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from services.calendar_analytics.analytics.classifier import classify
from services.calendar_analytics.models import (
    AnalyticsResult,
    CalendarEvent,
    MeetingType,
    PriorityBucket,
    ThresholdSettings,
    WeeklyHours,
    WeeklyMeetingCount,
)
from services.common.logging_config import get_logger

logger = get_logger(__name__)

WEEK_COUNT = 5
DAYS_PER_WEEK = 7
WEEKLY_AVAILABLE_HOURS = 40
MS_PER_HOUR = 3_600_000

# Graph importance value -> distribution bucket name
PRIORITY_NAMES: Dict[str, str] = {
    "high": "High",
    "normal": "Medium",
    "low": "Low",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def _epoch_ms(value: datetime) -> int:
    return (value - _EPOCH) // _MILLISECOND


def week_index(start: Optional[datetime]) -> Optional[int]:
    """Return ceil(day_of_month / 7) for a start time, or None without one."""
    if start is None:
        return None
    return math.ceil(start.day / DAYS_PER_WEEK)


def duration_hours(event: CalendarEvent) -> float:
    """Event length in hours; NaN when either end of the event is unusable."""
    start = event.start.as_utc() if event.start else None
    end = event.end.as_utc() if event.end else None
    if start is None or end is None:
        return math.nan
    return math.floor(_epoch_ms(end) - _epoch_ms(start)) / MS_PER_HOUR


def _divide(numerator: float, denominator: float) -> float:
    """Float division that yields inf/NaN on a zero denominator."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)
    return numerator / denominator


def _floor(value: float) -> float:
    if not math.isfinite(value):
        return value
    return math.floor(value)


def aggregate(
    events: List[CalendarEvent], thresholds: ThresholdSettings
) -> AnalyticsResult:
    """
    Aggregate meeting statistics over events in a single pass.

    Events whose start cannot be bucketed still count toward the total
    number of meetings but contribute nothing else except their priority.
    """
    weeks = [
        WeeklyMeetingCount(name=f"Week {number}")
        for number in range(1, WEEK_COUNT + 1)
    ]
    hours = [
        WeeklyHours(name=f"Week {number}", available=WEEKLY_AVAILABLE_HOURS)
        for number in range(1, WEEK_COUNT + 1)
    ]
    priorities = {
        name: PriorityBucket(name=name) for name in PRIORITY_NAMES.values()
    }

    total_meetings = 0
    total_meeting_hours = 0.0

    for event in events:
        total_meetings += 1

        index = week_index(event.start.as_utc() if event.start else None)
        if index is not None and 1 <= index <= WEEK_COUNT:
            week = weeks[index - 1]
            week_hours = hours[index - 1]
            meeting_type = classify(event)
            duration = duration_hours(event)

            if meeting_type is MeetingType.INTERNAL:
                week.internal += 1
                week_hours.internal += duration
            else:
                week.external += 1
                week_hours.external += duration
            week.total += 1
            total_meeting_hours += duration

        priority_name = PRIORITY_NAMES.get(event.importance or "")
        if priority_name is not None:
            priorities[priority_name].value += 1

    weeks_exceeding = 0
    total_available_hours = 0.0
    for week, week_hours in zip(weeks, hours):
        week_hours.available = WEEKLY_AVAILABLE_HOURS - (
            week_hours.internal + week_hours.external
        )
        total_available_hours += week_hours.available

        # The last test compares a meeting count with the hours threshold.
        if (
            week.internal > thresholds.internal_meetings
            or week.external > thresholds.external_meetings
            or (week.internal + week.external) > thresholds.total_meeting_hours
        ):
            weeks_exceeding += 1

    current_percentage = _floor(
        _divide(total_meeting_hours, total_available_hours) * 100
    )
    exceeding_percentage = weeks_exceeding / WEEK_COUNT * 100

    logger.debug(
        "Aggregated meeting analytics",
        total_meetings=total_meetings,
        total_meeting_hours=total_meeting_hours,
        weeks_exceeding=weeks_exceeding,
        total_available_hours=total_available_hours,
    )

    return AnalyticsResult(
        total_meetings=total_meetings,
        total_meeting_hours=total_meeting_hours,
        meeting_count_data=weeks,
        meeting_distribution_data=list(priorities.values()),
        available_vs_used_hours_data=hours,
        meetings_exceeding_threshold=exceeding_percentage,
        current_meeting_hours_percentage=current_percentage,
    )
